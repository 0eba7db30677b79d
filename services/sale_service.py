"""
Finalização e cancelamento de vendas no caixa.
"""
import uuid
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.database import QueueSessionLocal, SessionLocal
from config.logging_config import get_logger
from config.settings import Settings
from models.coupon import Coupon
from models.product import Product
from models.sale import FORMAS_PAGAMENTO, Sale
from services.auth_service import Authorization, AuthService, IdentityProvider
from services.cart import Cart, compute_change
from services.cash_session_service import CashSessionService
from services.exceptions import (
    AlreadyCancelledError,
    EmptyCartError,
    InsufficientStockError,
    InvalidAmountError,
    InvalidCouponError,
    InvalidPaymentMethodError,
    MissingIdentifierError,
    PersistenceTimeoutError,
    SaleNotFoundError,
    UnknownPersistenceError,
)
from services.persistence import (
    AtomicResult,
    SalesRepository,
    normalize_sale_payload,
    safe_rollback,
)
from services.printing import ReceiptPrinter
from services.retry_queue import DrainSummary, PendingSaleQueue, record_stock_conflict
from utils import clock
from utils.money import ZERO, to_money

logger = get_logger(__name__)

# Executor compartilhado para a gravação da venda com timeout
_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="pdv-venda")


@dataclass
class CheckoutResult:
    """
    status: concluida (gravada no banco) | pendente (na fila offline)
    """

    status: str
    external_id: str
    total: Decimal
    troco: Decimal
    sale_id: Optional[int] = None
    mensagem: str = ""


class SaleService:
    """
    Checkout e cancelamento. A fila offline usa uma sessão própria na base
    local (queue_factory); chame close() ao terminar.
    """

    def __init__(
        self,
        db: Session,
        store_id: str,
        session_factory=SessionLocal,
        queue_factory=QueueSessionLocal,
        printer: Optional[ReceiptPrinter] = None,
        timeout: float = Settings.SALE_TIMEOUT_SECONDS,
        terminal: int = Settings.TERMINAL,
        identity_provider: Optional[IdentityProvider] = None,
    ):
        self.db = db
        self.store_id = store_id
        self.session_factory = session_factory
        self.printer = printer
        self.timeout = timeout
        self.terminal = terminal
        self.identity_provider = identity_provider
        self.queue_db = queue_factory()
        self.queue = PendingSaleQueue(self.queue_db, store_id)
        self.cash = CashSessionService(db, store_id, queue=self.queue)
        self.repo = SalesRepository(db, store_id)

    # ----- Checkout -----

    def resolve_coupon(self, codigo: str) -> Coupon:
        coupon = (
            self.db.query(Coupon)
            .filter(
                Coupon.store_id == self.store_id,
                Coupon.codigo == codigo.strip().upper(),
                Coupon.ativo.is_(True),
            )
            .first()
        )
        if coupon is None:
            raise InvalidCouponError(f"Cupom inválido ou inativo: {codigo}.")
        return coupon

    def _create_in_new_session(self, payload: dict, token: str) -> AtomicResult:
        db = self.session_factory()
        try:
            return SalesRepository(db, self.store_id).create_sale_atomic(payload, token)
        finally:
            db.close()

    def submit_sale(self, payload: dict, token: str) -> AtomicResult:
        """
        Executa a criação atômica com timeout. Se o tempo estourar a chamada
        continua em segundo plano; o mesmo token impede venda duplicada.
        """
        future = _executor.submit(self._create_in_new_session, payload, token)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError:
            raise PersistenceTimeoutError(
                f"O banco de dados não respondeu em {self.timeout:g}s."
            )

    def checkout(
        self,
        cart: Cart,
        tipo_pagamento: str,
        operator: Optional[dict] = None,
        valor_recebido=None,
        cupom: Optional[str] = None,
        idempotency_token: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CheckoutResult:
        """
        Finaliza a venda do carrinho.
        Erros de validação são levantados antes de qualquer gravação.
        Timeout ou erro do banco colocam a venda na fila e retornam 'pendente'.
        """
        session = self.cash.require_current()
        if cart.is_empty():
            raise EmptyCartError()
        if tipo_pagamento not in FORMAS_PAGAMENTO:
            raise InvalidPaymentMethodError(f"Forma de pagamento inválida: {tipo_pagamento!r}.")
        for item in cart.itens:
            if not (item.codigo or "").strip():
                raise MissingIdentifierError(f"Produto sem código no carrinho: {item.nome}.")

        subtotal = cart.subtotal
        desconto = cart.desconto
        cupom_codigo = None
        if cupom and cupom.strip():
            coupon = self.resolve_coupon(cupom)
            cupom_codigo = coupon.codigo
            desconto += to_money(subtotal * coupon.desconto_percentual / Decimal(100))
        if desconto > subtotal:
            raise InvalidAmountError("Desconto maior que o subtotal da venda.")
        total = subtotal - desconto

        troco = ZERO
        recebido = None
        if tipo_pagamento == "dinheiro":
            troco = compute_change(total, valor_recebido)
            if valor_recebido is not None and str(valor_recebido).strip():
                recebido = total + troco

        operator = operator or {}
        now = now or clock.now()
        token = idempotency_token or uuid.uuid4().hex
        payload = {
            "store_id": self.store_id,
            "cash_session_id": session.id,
            "terminal": session.terminal or self.terminal,
            "created_at": now.isoformat(),
            "data_venda": now.date().isoformat(),
            "desconto": str(desconto),
            "tipo_pagamento": tipo_pagamento,
            "valor_recebido": str(recebido) if recebido is not None else None,
            "troco": str(troco),
            "cupom": cupom_codigo,
            "operador_id": operator.get("id"),
            "operador_nome": operator.get("name"),
            "itens": cart.snapshot(),
        }
        # mesma validação da gravação: nada inválido vai para a fila
        normalize_sale_payload(payload)

        try:
            result = self.submit_sale(payload, token)
        except (PersistenceTimeoutError, UnknownPersistenceError, SQLAlchemyError) as e:
            return self._queue_sale(cart, payload, token, total, troco, str(e), now)

        if result.status == "insufficient_stock":
            record_stock_conflict(self.queue_db, self.store_id, token, result, origem="checkout")
            raise InsufficientStockError(result.codigo, result.disponivel, result.necessario)
        if result.status == "error":
            return self._queue_sale(cart, payload, token, total, troco, result.message, now)

        cart.clear()
        self.db.expire_all()
        sale = self.db.get(Sale, result.sale_id)
        logger.info("Checkout concluído venda=%s total=%s troco=%s", result.sale_id, total, troco)
        if self.printer is not None and sale is not None:
            self.printer.print_receipt(sale, list(sale.itens))
        return CheckoutResult(
            status="concluida",
            external_id=token,
            total=total,
            troco=troco,
            sale_id=result.sale_id,
            mensagem="Venda finalizada.",
        )

    def _queue_sale(self, cart, payload, token, total, troco, erro, now) -> CheckoutResult:
        # A fila fica na base local: grava mesmo com o banco principal fora do ar
        safe_rollback(self.db)
        self.queue.enqueue(payload, token, erro, now=now)
        cart.clear()
        return CheckoutResult(
            status="pendente",
            external_id=token,
            total=total,
            troco=troco,
            mensagem="Venda salva localmente e pendente de sincronização.",
        )

    def sync_pending(self, now: Optional[datetime] = None) -> DrainSummary:
        """Reenvia agora as vendas pendentes da fila."""
        return self.queue.drain(self.db, now=now)

    def close(self) -> None:
        self.queue_db.close()

    # ----- Cancelamento -----

    def cancel_sale(
        self,
        sale_id: int,
        authorization: Authorization,
        motivo: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Sale:
        """
        Cancela uma venda (exige caixa aberto e autorização de gerente/admin).
        A venda não é apagada: muda de status e o estoque volta para os produtos.
        """
        session = self.cash.require_current()
        sale = self.repo.get(sale_id)
        if sale is None:
            raise SaleNotFoundError()
        if sale.status == "cancelada":
            raise AlreadyCancelledError()
        authorizer = AuthService.authorize_elevated(
            self.db, self.store_id, authorization, self.identity_provider
        )

        sale.status = "cancelada"
        sale.cancelado_em = now or clock.now()
        sale.cancelado_por = authorizer.name
        sale.motivo_cancelamento = motivo
        sale.cancel_cash_session_id = session.id
        for item in sale.itens:
            product = None
            if item.product_id is not None:
                product = self.db.get(Product, item.product_id)
            if product is None:
                product = (
                    self.db.query(Product)
                    .filter(Product.store_id == self.store_id, Product.codigo == item.codigo)
                    .first()
                )
            if product is not None and product.estoque_atual is not None:
                product.estoque_atual = product.estoque_atual + item.quantidade
        self.db.commit()
        self.db.refresh(sale)
        logger.info(
            "Venda %s cancelada por %s (sessão %s)", sale.id, authorizer.username, session.id
        )
        return sale
