"""
Ciclo de vida do caixa: abertura, aportes e fechamento com conferência.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config.logging_config import get_logger
from models.cash_session import CashInjection, CashSession, CurrentCashSession
from models.closure import CashClosure
from services.auth_service import Authorization, AuthService, IdentityProvider
from services.catalog_service import ProductCatalog
from services.exceptions import AlreadyOpenError, NoOpenSessionError, PendingSalesError
from services.ledger import ExpenseLedger, SalesLedger
from services.printing import ReceiptPrinter
from services.reconciliation import ClosureSummary, compute_closure, reconciliation_window
from services.retry_queue import PendingSaleQueue
from utils import clock
from utils.money import parse_amount

logger = get_logger(__name__)


class CashSessionService:
    """
    Gerencia a sessão de caixa da loja. No máximo uma sessão aberta por loja,
    garantido pela linha única em current_cash_sessions.
    """

    def __init__(
        self,
        db: Session,
        store_id: str,
        catalog: Optional[ProductCatalog] = None,
        printer: Optional[ReceiptPrinter] = None,
        identity_provider: Optional[IdentityProvider] = None,
        queue: Optional[PendingSaleQueue] = None,
    ):
        self.db = db
        self.store_id = store_id
        self.catalog = catalog or ProductCatalog(db, store_id)
        self.printer = printer
        self.identity_provider = identity_provider
        self.queue = queue
        self.sales = SalesLedger(db, store_id)
        self.expenses = ExpenseLedger(db, store_id)

    def get_current(self) -> Optional[CashSession]:
        pointer = (
            self.db.query(CurrentCashSession)
            .filter(CurrentCashSession.store_id == self.store_id)
            .first()
        )
        if pointer is None:
            return None
        return pointer.cash_session

    def require_current(self) -> CashSession:
        session = self.get_current()
        if session is None:
            raise NoOpenSessionError()
        return session

    def open_session(
        self,
        valor_abertura,
        operator: Optional[dict] = None,
        terminal: int = 1,
        observacao: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CashSession:
        valor = parse_amount(valor_abertura)
        if self.get_current() is not None:
            raise AlreadyOpenError()

        now = now or clock.now()
        session = CashSession(
            store_id=self.store_id,
            terminal=terminal,
            data_abertura=now,
            valor_abertura=valor,
            status="aberta",
            aberto_por=(operator or {}).get("name"),
            observacao=observacao,
            created_at=now,
        )
        try:
            self.db.add(session)
            self.db.flush()
            self.db.add(
                CurrentCashSession(store_id=self.store_id, cash_session_id=session.id, created_at=now)
            )
            self.db.commit()
        except IntegrityError:
            # Outro terminal abriu o caixa entre a verificação e a gravação
            self.db.rollback()
            raise AlreadyOpenError()
        self.db.refresh(session)
        logger.info("Caixa aberto id=%s valor=%s", session.id, valor)

        try:
            self.catalog.refresh()
        except Exception:
            logger.exception("Falha ao atualizar catálogo após abertura do caixa")
        return session

    def add_resources(
        self, valor, operator: Optional[dict] = None, now: Optional[datetime] = None
    ) -> CashSession:
        """Aporte de dinheiro: soma ao valor de abertura da sessão aberta."""
        session = self.require_current()
        valor = parse_amount(valor, allow_zero=False)
        session.valor_abertura = session.valor_abertura + valor
        self.db.add(
            CashInjection(
                cash_session_id=session.id,
                valor=valor,
                realizado_por=(operator or {}).get("name"),
                created_at=now or clock.now(),
            )
        )
        self.db.commit()
        self.db.refresh(session)
        logger.info("Aporte no caixa id=%s valor=%s", session.id, valor)
        return session

    def _prior_closure_times(self, until: datetime) -> List[datetime]:
        rows = (
            self.db.query(CashClosure.created_at)
            .filter(CashClosure.store_id == self.store_id, CashClosure.data == until.date())
            .all()
        )
        return [row[0] for row in rows]

    def _summarize(self, session: CashSession, until: datetime) -> ClosureSummary:
        since, until = reconciliation_window(
            session.data_abertura, until, self._prior_closure_times(until)
        )
        return compute_closure(
            session,
            self.sales.sales_for_session(session.id),
            self.sales.cancellations_for_session(session.id),
            self.expenses.for_day(session.data_abertura.date()),
            until=until,
            since=since,
            cost_lookup=self.catalog.cost_for,
        )

    def pending_sales(self, session: Optional[CashSession] = None) -> list:
        """Vendas da sessão (padrão: a aberta) que ainda estão na fila offline."""
        if self.queue is None:
            return []
        session = session or self.require_current()
        return self.queue.for_session(session.id)

    def live_summary(self, now: Optional[datetime] = None) -> ClosureSummary:
        """Prévia do fechamento da sessão aberta, sem fechar o caixa."""
        session = self.require_current()
        return self._summarize(session, now or clock.now())

    def close_session(
        self,
        authorization: Authorization,
        operator: Optional[dict] = None,
        now: Optional[datetime] = None,
        permitir_pendentes: bool = False,
    ) -> CashClosure:
        """
        Fecha o caixa: exige autorização de gerente/admin, calcula o fechamento,
        grava o CashClosure, marca a sessão como fechada e remove o ponteiro,
        tudo na mesma transação.

        Vendas da sessão ainda na fila offline bloqueiam o fechamento
        (PendingSalesError). Com permitir_pendentes=True o caixa fecha e essas
        vendas entram no fechamento da sessão aberta quando forem sincronizadas.
        """
        session = self.require_current()
        pendentes = self.pending_sales(session)
        if pendentes and not permitir_pendentes:
            raise PendingSalesError(len(pendentes))
        authorizer = AuthService.authorize_elevated(
            self.db, self.store_id, authorization, self.identity_provider
        )
        if pendentes:
            logger.warning(
                "Fechando caixa id=%s com %s venda(s) na fila offline", session.id, len(pendentes)
            )
        now = now or clock.now()
        summary = self._summarize(session, now)
        snapshot = summary.snapshot()
        operator = operator or authorization.operator or {}

        closure = CashClosure(
            store_id=self.store_id,
            cash_session_id=session.id,
            data=now.date(),
            janela_inicio=summary.janela_inicio,
            janela_fim=summary.janela_fim,
            valor_abertura=summary.valor_abertura,
            total_vendas=summary.total_vendas,
            total_custos=summary.total_custos,
            total_despesas=summary.total_despesas,
            total_descontos=summary.total_descontos,
            lucro_bruto=summary.lucro_bruto,
            lucro_liquido=summary.lucro_liquido,
            valor_final_caixa=summary.valor_final_caixa,
            por_pagamento=snapshot["por_pagamento"],
            por_operador=snapshot["por_operador"],
            vendas=snapshot["vendas"],
            cancelamentos=snapshot["cancelamentos"],
            despesas=snapshot["despesas"],
            qtd_vendas=len(summary.vendas),
            qtd_cancelamentos=len(summary.cancelamentos),
            qtd_despesas=len(summary.despesas),
            criado_por=operator.get("name"),
            autorizado_por=authorizer.name,
            created_at=now,
        )
        try:
            self.db.add(closure)
            session.status = "fechada"
            session.data_fechamento = now
            self.db.query(CurrentCashSession).filter(
                CurrentCashSession.store_id == self.store_id
            ).delete(synchronize_session="fetch")
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(closure)
        logger.info(
            "Caixa fechado id=%s vendas=%s final=%s autorizado_por=%s",
            session.id,
            closure.total_vendas,
            closure.valor_final_caixa,
            authorizer.username,
        )

        if self.printer is not None:
            self.printer.print_closure_report(closure)
        return closure

    def list_sessions(self, limit: int = 50) -> List[CashSession]:
        return (
            self.db.query(CashSession)
            .filter(CashSession.store_id == self.store_id)
            .order_by(CashSession.data_abertura.desc())
            .limit(limit)
            .all()
        )

    def list_closures(self, limit: int = 50) -> List[CashClosure]:
        return (
            self.db.query(CashClosure)
            .filter(CashClosure.store_id == self.store_id)
            .order_by(CashClosure.created_at.desc())
            .limit(limit)
            .all()
        )
