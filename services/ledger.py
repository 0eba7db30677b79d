"""
Livros de vendas e de despesas da loja.
Fornecem ao fechamento de caixa as vendas, cancelamentos e despesas de uma sessão.
"""
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.orm import Session, selectinload

from config.logging_config import get_logger
from models.expense import Expense
from models.sale import Sale
from services.persistence import Repository, SalesRepository
from utils.money import parse_amount

logger = get_logger(__name__)


class SalesLedger:
    def __init__(self, db: Session, store_id: str):
        self.db = db
        self.store_id = store_id
        self.repo = SalesRepository(db, store_id)

    def _query(self):
        return (
            self.db.query(Sale)
            .options(selectinload(Sale.itens))
            .filter(Sale.store_id == self.store_id)
        )

    def sales_for_session(self, cash_session_id: int) -> List[Sale]:
        """Todas as vendas registradas na sessão, inclusive as canceladas depois."""
        return (
            self._query()
            .filter(Sale.cash_session_id == cash_session_id)
            .order_by(Sale.created_at)
            .all()
        )

    def cancellations_for_session(self, cash_session_id: int) -> List[Sale]:
        """Vendas canceladas enquanto esta sessão estava aberta."""
        return (
            self._query()
            .filter(Sale.status == "cancelada", Sale.cancel_cash_session_id == cash_session_id)
            .order_by(Sale.cancelado_em)
            .all()
        )

    def list_between(
        self, start: datetime, end: datetime, status: Optional[str] = None
    ) -> List[Sale]:
        query = self._query().filter(Sale.created_at >= start, Sale.created_at < end)
        if status:
            query = query.filter(Sale.status == status)
        return query.order_by(Sale.created_at.desc()).all()

    def recent(self, limit: int = 50) -> List[Sale]:
        return self._query().order_by(Sale.created_at.desc()).limit(limit).all()


class ExpenseLedger:
    def __init__(self, db: Session, store_id: str):
        self.db = db
        self.store_id = store_id
        self.repo = Repository(db, Expense, store_id)

    def add(
        self,
        data: date,
        valor,
        categoria: Optional[str] = None,
        descricao: Optional[str] = None,
        criado_por: Optional[str] = None,
    ) -> Expense:
        expense = self.repo.create(
            data=data,
            valor=parse_amount(valor),
            categoria=categoria,
            descricao=descricao,
            criado_por=criado_por,
        )
        logger.info("Despesa registrada id=%s valor=%s", expense.id, expense.valor)
        return expense

    def update(self, expense_id: int, **patch) -> Optional[Expense]:
        if "valor" in patch:
            patch["valor"] = parse_amount(patch["valor"])
        return self.repo.update(expense_id, **patch)

    def delete(self, expense_id: int) -> bool:
        return self.repo.delete(expense_id)

    def for_day(self, day: date) -> List[Expense]:
        return self.repo.list(order_by=Expense.created_at, data=day)

    def list_between(self, start: date, end: date) -> List[Expense]:
        return (
            self.db.query(Expense)
            .filter(Expense.store_id == self.store_id, Expense.data >= start, Expense.data <= end)
            .order_by(Expense.data.desc(), Expense.created_at.desc())
            .all()
        )
