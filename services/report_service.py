"""
Métricas do painel inicial calculadas a partir dos fechamentos de caixa.
"""
from datetime import date, datetime, time
from typing import Dict, List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import func
from sqlalchemy.orm import Session

from models.closure import CashClosure
from models.sale import Sale
from utils import clock
from utils.formatters import format_currency
from utils.money import ZERO, to_money


def month_range(reference: Optional[date] = None):
    """Primeiro dia do mês de referência (padrão: hoje na loja) e do mês seguinte."""
    reference = reference or clock.today()
    start = reference.replace(day=1)
    return start, start + relativedelta(months=1)


def closure_metrics(
    db: Session, store_id: str, start: Optional[date] = None, end: Optional[date] = None
) -> Dict[str, object]:
    """
    Soma os fechamentos no intervalo [start, end) (padrão: mês atual).
    lucro = receita - custos - despesas
    """
    if start is None or end is None:
        start, end = month_range(start)
    closures = (
        db.query(CashClosure)
        .filter(
            CashClosure.store_id == store_id,
            CashClosure.data >= start,
            CashClosure.data < end,
        )
        .all()
    )
    receita = sum((to_money(c.total_vendas) for c in closures), ZERO)
    custos = sum((to_money(c.total_custos) for c in closures), ZERO)
    despesas = sum((to_money(c.total_despesas) for c in closures), ZERO)
    lucro = receita - custos - despesas
    return {
        "inicio": start,
        "fim": end,
        "fechamentos": len(closures),
        "receita": receita,
        "custos": custos,
        "despesas": despesas,
        "lucro": lucro,
        "receita_fmt": format_currency(receita),
        "custos_fmt": format_currency(custos),
        "despesas_fmt": format_currency(despesas),
        "lucro_fmt": format_currency(lucro),
    }


def sales_by_date(db: Session, store_id: str, start: date, end: date) -> List[Dict[str, object]]:
    """
    Total vendido (vendas concluídas) por dia no intervalo [start, end].
    """
    rows = (
        db.query(
            Sale.data_venda,
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_vendido), 0),
        )
        .filter(
            Sale.store_id == store_id,
            Sale.status == "concluida",
            Sale.created_at >= datetime.combine(start, time.min),
            Sale.created_at <= datetime.combine(end, time.max),
        )
        .group_by(Sale.data_venda)
        .order_by(Sale.data_venda)
        .all()
    )
    return [
        {"data": dia, "vendas": quantidade, "total": to_money(total)}
        for dia, quantidade, total in rows
    ]
