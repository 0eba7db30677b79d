"""
Acompanhamento dos pedidos da loja online: cadastro, separação, envio e entrega.
"""
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy.orm import Session

from config.logging_config import get_logger
from models.online_order import STATUS_PEDIDO, OnlineOrder
from services.exceptions import InvalidAmountError, InvalidOrderStatusError, OrderNotFoundError
from services.persistence import Repository
from utils.money import ZERO, parse_amount, to_money

logger = get_logger(__name__)


def _normalize_items(itens) -> list:
    normalizados = []
    for item in itens or []:
        try:
            quantidade = Decimal(str(item.get("quantidade", 0)))
        except InvalidOperation:
            raise InvalidAmountError(f"Quantidade inválida: {item.get('quantidade')!r}.")
        if quantidade != quantidade.to_integral_value() or quantidade < 1:
            raise InvalidAmountError(f"Quantidade inválida: {item.get('quantidade')!r}.")
        preco = parse_amount(item.get("preco", 0))
        normalizados.append(
            {
                "codigo": (item.get("codigo") or "").strip(),
                "nome": (item.get("nome") or "").strip(),
                "quantidade": int(quantidade),
                "preco": str(preco),
            }
        )
    if not normalizados:
        raise InvalidAmountError("O pedido precisa de ao menos um item.")
    return normalizados


def order_total(itens: list) -> Decimal:
    total = ZERO
    for item in itens:
        total += to_money(item["preco"]) * item["quantidade"]
    return to_money(total)


class OnlineOrderService:
    def __init__(self, db: Session, store_id: str):
        self.db = db
        self.store_id = store_id
        self.repo = Repository(db, OnlineOrder, store_id)

    def create(
        self,
        cliente_nome: str,
        itens: list,
        endereco: Optional[dict] = None,
        cliente_telefone: Optional[str] = None,
        atendente: Optional[str] = None,
        forma_pagamento: Optional[str] = None,
        numero: Optional[str] = None,
        status: str = "aguardo",
    ) -> OnlineOrder:
        """
        Cadastra um pedido. O valor total é calculado a partir dos itens.
        """
        if not (cliente_nome or "").strip():
            raise InvalidAmountError("Informe o nome do cliente.")
        if status not in STATUS_PEDIDO:
            raise InvalidOrderStatusError(f"Status de pedido inválido: {status!r}.")
        normalizados = _normalize_items(itens)
        order = self.repo.create(
            numero=numero,
            cliente_nome=cliente_nome.strip(),
            cliente_telefone=cliente_telefone,
            atendente=atendente,
            endereco=dict(endereco or {}),
            itens=normalizados,
            valor_total=order_total(normalizados),
            forma_pagamento=forma_pagamento,
            status=status,
        )
        logger.info("Pedido online registrado id=%s total=%s", order.id, order.valor_total)
        return order

    def list(self, status: Optional[str] = None) -> List[OnlineOrder]:
        if status is None:
            return self.repo.list(order_by=OnlineOrder.created_at.desc())
        return self.repo.list(order_by=OnlineOrder.created_at.desc(), status=status)

    def get(self, order_id: int) -> OnlineOrder:
        order = self.repo.get(order_id)
        if order is None:
            raise OrderNotFoundError()
        return order

    def update_status(
        self, order_id: int, status: str, codigo_rastreio: Optional[str] = None
    ) -> OnlineOrder:
        if status not in STATUS_PEDIDO:
            raise InvalidOrderStatusError(f"Status de pedido inválido: {status!r}.")
        self.get(order_id)
        patch = {"status": status}
        if codigo_rastreio:
            patch["codigo_rastreio"] = codigo_rastreio.strip()
        order = self.repo.update(order_id, **patch)
        logger.info("Pedido online %s agora está '%s'", order_id, status)
        return order

    def delete(self, order_id: int) -> None:
        if not self.repo.delete(order_id):
            raise OrderNotFoundError()

    def clear_all(self) -> int:
        removidos = (
            self.db.query(OnlineOrder)
            .filter(OnlineOrder.store_id == self.store_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        logger.info("Pedidos online removidos: %s", removidos)
        return removidos
