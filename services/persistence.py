"""
Camada de persistência do PDV.

- Repository: CRUD genérico por entidade, sempre filtrado pela loja (store_id)
- SalesRepository: consultas de vendas e a criação atômica da venda
  (baixa de estoque + gravação da venda em uma única transação, idempotente por token)
- normalize_sale_payload: formato canônico da venda usado no checkout e na fila offline
"""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config.logging_config import get_logger
from models.product import Product
from models.sale import FORMAS_PAGAMENTO, Sale, SaleItem
from services.exceptions import (
    InvalidAmountError,
    InvalidPaymentMethodError,
    MissingIdentifierError,
    UnknownPersistenceError,
)
from utils import clock
from utils.money import ZERO, to_money

logger = get_logger(__name__)


class Repository:
    """
    Acesso genérico a uma tabela, restrito a uma loja.
    """

    def __init__(self, db: Session, model, store_id: str):
        self.db = db
        self.model = model
        self.store_id = store_id

    def _query(self):
        query = self.db.query(self.model)
        if hasattr(self.model, "store_id"):
            query = query.filter(self.model.store_id == self.store_id)
        return query

    def list(self, order_by=None, limit: Optional[int] = None, **filters) -> List[Any]:
        query = self._query().filter_by(**filters)
        if order_by is not None:
            query = query.order_by(order_by)
        if limit:
            query = query.limit(limit)
        return query.all()

    def get(self, id) -> Optional[Any]:
        obj = self.db.get(self.model, id)
        if obj is None:
            return None
        if getattr(obj, "store_id", self.store_id) != self.store_id:
            return None
        return obj

    def create(self, **values) -> Any:
        if hasattr(self.model, "store_id"):
            values.setdefault("store_id", self.store_id)
        obj = self.model(**values)
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def update(self, id, **patch) -> Optional[Any]:
        obj = self.get(id)
        if obj is None:
            return None
        for field, value in patch.items():
            setattr(obj, field, value)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def delete(self, id) -> bool:
        obj = self.get(id)
        if obj is None:
            return False
        self.db.delete(obj)
        self.db.commit()
        return True


@dataclass
class AtomicResult:
    """
    Resultado de create_sale_atomic.
    status: ok | already_exists | insufficient_stock | error
    """

    status: str
    sale_id: Optional[int] = None
    codigo: Optional[str] = None
    disponivel: Optional[int] = None
    necessario: Optional[int] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in ("ok", "already_exists")


# Nomes alternativos aceitos na entrada, mapeados para o formato canônico
_ITEM_ALIASES = {
    "codigo": ("codigo", "sku", "code"),
    "nome": ("nome", "name"),
    "quantidade": ("quantidade", "quantity", "qty"),
    "preco_unitario": ("preco_unitario", "unit_price", "sale_price", "price"),
    "preco_custo_unitario": ("preco_custo_unitario", "unit_cost", "cost_price"),
    "product_id": ("product_id", "id"),
}


def _pick(data: Dict[str, Any], names) -> Any:
    for name in names:
        value = data.get(name)
        if value is not None and value != "":
            return value
    return None


def _quantity(value, codigo) -> int:
    quantidade = Decimal(str(value))
    if quantidade != quantidade.to_integral_value():
        raise InvalidAmountError(f"Quantidade fracionada não permitida: {codigo} ({value}).")
    return int(quantidade)


def _money_str(value) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(to_money(value))


def _iso(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def normalize_sale_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Converte a venda para o formato canônico (serializável em JSON).
    Valores monetários viram strings com 2 casas; datas viram ISO 8601.
    Recalcula subtotais e total, rejeitando itens sem código ou com valores negativos.
    """
    raw_items = payload.get("itens") or payload.get("items") or []
    itens = []
    for raw in raw_items:
        codigo = _pick(raw, _ITEM_ALIASES["codigo"])
        if codigo is None or not str(codigo).strip():
            raise MissingIdentifierError(
                f"Produto sem código no carrinho: {_pick(raw, _ITEM_ALIASES['nome']) or '?'}."
            )
        try:
            quantidade = _quantity(_pick(raw, _ITEM_ALIASES["quantidade"]) or 0, codigo)
            preco = to_money(_pick(raw, _ITEM_ALIASES["preco_unitario"]))
            custo_raw = _pick(raw, _ITEM_ALIASES["preco_custo_unitario"])
            custo = to_money(custo_raw) if custo_raw is not None else None
        except (InvalidOperation, OverflowError, TypeError, ValueError):
            raise InvalidAmountError(f"Item com valores inválidos: {codigo}.")
        if quantidade < 1 or preco < 0 or (custo is not None and custo < 0):
            raise InvalidAmountError(f"Item com valores inválidos: {codigo}.")
        product_id = _pick(raw, _ITEM_ALIASES["product_id"])
        itens.append(
            {
                "product_id": int(product_id) if product_id is not None else None,
                "codigo": str(codigo).strip(),
                "nome": _pick(raw, _ITEM_ALIASES["nome"]) or str(codigo),
                "quantidade": quantidade,
                "preco_unitario": str(preco),
                "preco_custo_unitario": str(custo) if custo is not None else None,
                "subtotal": str(to_money(preco * quantidade)),
            }
        )

    tipo_pagamento = payload.get("tipo_pagamento")
    if tipo_pagamento not in FORMAS_PAGAMENTO:
        raise InvalidPaymentMethodError(f"Forma de pagamento inválida: {tipo_pagamento!r}.")

    total_bruto = sum((Decimal(i["subtotal"]) for i in itens), ZERO)
    desconto = to_money(payload.get("desconto"))
    total = total_bruto - desconto
    if desconto < 0 or total < 0:
        raise InvalidAmountError("Desconto maior que o subtotal da venda.")

    custo_total = payload.get("custo_total")
    if custo_total is None and itens and all(i["preco_custo_unitario"] is not None for i in itens):
        custo_total = sum(
            (Decimal(i["preco_custo_unitario"]) * i["quantidade"] for i in itens), ZERO
        )

    created_at = payload.get("created_at") or clock.now()
    data_venda = payload.get("data_venda")
    if data_venda is None:
        data_venda = (
            created_at.date()
            if isinstance(created_at, datetime)
            else datetime.fromisoformat(str(created_at)).date()
        )

    return {
        "store_id": payload.get("store_id"),
        "cash_session_id": payload.get("cash_session_id"),
        "terminal": int(payload.get("terminal") or 1),
        "created_at": _iso(created_at),
        "data_venda": _iso(data_venda),
        "total_bruto": str(total_bruto),
        "desconto": str(desconto),
        "total_vendido": str(to_money(total)),
        "custo_total": _money_str(custo_total),
        "total_pecas": sum(i["quantidade"] for i in itens),
        "tipo_pagamento": tipo_pagamento,
        "valor_recebido": _money_str(payload.get("valor_recebido")),
        "troco": _money_str(payload.get("troco")) or str(ZERO),
        "cupom": payload.get("cupom"),
        "operador_id": payload.get("operador_id"),
        "operador_nome": payload.get("operador_nome"),
        "itens": itens,
    }


class SalesRepository(Repository):
    """
    Repositório de vendas.
    """

    def __init__(self, db: Session, store_id: str):
        super().__init__(db, Sale, store_id)

    def list_finalized(self, **filters) -> List[Sale]:
        return self.list(order_by=Sale.created_at, status="concluida", **filters)

    def list_cancelled(self, **filters) -> List[Sale]:
        return self.list(order_by=Sale.cancelado_em, status="cancelada", **filters)

    def get_by_external_id(self, token: str) -> Optional[Sale]:
        return self._query().filter(Sale.external_id == token).first()

    def create_sale_atomic(self, payload: Dict[str, Any], token: str) -> AtomicResult:
        """
        Cria a venda e baixa o estoque em uma única transação.
        No máximo uma venda por token: repetir o token devolve already_exists.
        Estoque insuficiente desfaz tudo e informa disponível x necessário.
        """
        db = self.db
        existing = self.get_by_external_id(token)
        if existing is not None:
            return AtomicResult("already_exists", sale_id=existing.id)

        try:
            data = normalize_sale_payload(payload)
        except (MissingIdentifierError, InvalidAmountError, InvalidPaymentMethodError) as e:
            return AtomicResult("error", message=e.message)
        except (InvalidOperation, TypeError, ValueError) as e:
            return AtomicResult("error", message=f"Venda com dados inválidos: {e}")
        if not data["itens"]:
            return AtomicResult("error", message="Venda sem itens.")
        if data["cash_session_id"] is None:
            return AtomicResult("error", message="Venda sem sessão de caixa.")

        required: Dict[str, int] = {}
        for item in data["itens"]:
            required[item["codigo"]] = required.get(item["codigo"], 0) + item["quantidade"]

        try:
            products: Dict[str, Product] = {}
            # Ordem fixa de bloqueio evita deadlock entre terminais
            for codigo in sorted(required):
                product = (
                    db.query(Product)
                    .filter(Product.store_id == self.store_id, Product.codigo == codigo)
                    .with_for_update()
                    .first()
                )
                if product is None:
                    db.rollback()
                    return AtomicResult(
                        "error", codigo=codigo, message=f"Produto {codigo} não encontrado."
                    )
                if product.estoque_atual is not None and product.estoque_atual < required[codigo]:
                    db.rollback()
                    return AtomicResult(
                        "insufficient_stock",
                        codigo=codigo,
                        disponivel=product.estoque_atual,
                        necessario=required[codigo],
                    )
                products[codigo] = product

            for codigo, quantidade in required.items():
                product = products[codigo]
                if product.estoque_atual is not None:
                    product.estoque_atual = product.estoque_atual - quantidade

            sale = Sale(
                external_id=token,
                store_id=self.store_id,
                cash_session_id=data["cash_session_id"],
                terminal=data["terminal"],
                created_at=datetime.fromisoformat(data["created_at"]),
                data_venda=date.fromisoformat(data["data_venda"]),
                total_bruto=Decimal(data["total_bruto"]),
                desconto=Decimal(data["desconto"]),
                total_vendido=Decimal(data["total_vendido"]),
                custo_total=Decimal(data["custo_total"]) if data["custo_total"] else None,
                total_pecas=data["total_pecas"],
                tipo_pagamento=data["tipo_pagamento"],
                valor_recebido=(
                    Decimal(data["valor_recebido"]) if data["valor_recebido"] else None
                ),
                troco=Decimal(data["troco"]),
                cupom=data["cupom"],
                status="concluida",
                operador_id=data["operador_id"],
                operador_nome=data["operador_nome"],
            )
            for item in data["itens"]:
                sale.itens.append(
                    SaleItem(
                        product_id=item["product_id"] or products[item["codigo"]].id,
                        codigo=item["codigo"],
                        nome=item["nome"],
                        quantidade=item["quantidade"],
                        preco_unitario=Decimal(item["preco_unitario"]),
                        preco_custo_unitario=(
                            Decimal(item["preco_custo_unitario"])
                            if item["preco_custo_unitario"]
                            else None
                        ),
                        subtotal=Decimal(item["subtotal"]),
                    )
                )
            db.add(sale)
            db.commit()
        except IntegrityError:
            # Outro terminal gravou o mesmo token entre a verificação e o commit
            db.rollback()
            existing = self.get_by_external_id(token)
            if existing is not None:
                return AtomicResult("already_exists", sale_id=existing.id)
            raise UnknownPersistenceError("Falha de integridade ao gravar a venda.")
        except SQLAlchemyError as e:
            db.rollback()
            raise UnknownPersistenceError(f"Erro ao gravar a venda: {e}") from e

        logger.info("Venda gravada id=%s token=%s total=%s", sale.id, token, sale.total_vendido)
        return AtomicResult("ok", sale_id=sale.id)


def safe_rollback(db: Session) -> None:
    """Desfaz a transação; com o banco fora do ar apenas registra a falha."""
    try:
        db.rollback()
    except SQLAlchemyError:
        logger.warning("Não foi possível desfazer a transação no banco", exc_info=True)
