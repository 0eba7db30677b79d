from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, event

from config.database import Base
from utils.clock import now as local_now


class CashClosure(Base):
    """
    Fechamento de caixa. Registro imutável criado no fechamento da sessão,
    com cópias congeladas das vendas, cancelamentos e despesas incluídos.
    """

    __tablename__ = "cash_closures"

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(String(50), nullable=False, index=True)
    cash_session_id = Column(Integer, ForeignKey("cash_sessions.id"), nullable=False, unique=True)
    data = Column(Date, nullable=False, index=True)
    janela_inicio = Column(DateTime, nullable=False)
    janela_fim = Column(DateTime, nullable=False)
    valor_abertura = Column(Numeric(12, 2), nullable=False, default=0)
    total_vendas = Column(Numeric(12, 2), nullable=False, default=0)
    total_custos = Column(Numeric(12, 2), nullable=False, default=0)
    total_despesas = Column(Numeric(12, 2), nullable=False, default=0)
    total_descontos = Column(Numeric(12, 2), nullable=False, default=0)
    lucro_bruto = Column(Numeric(12, 2), nullable=False, default=0)
    lucro_liquido = Column(Numeric(12, 2), nullable=False, default=0)
    valor_final_caixa = Column(Numeric(12, 2), nullable=False, default=0)
    por_pagamento = Column(JSON, nullable=False, default=dict)
    por_operador = Column(JSON, nullable=False, default=dict)
    vendas = Column(JSON, nullable=False, default=list)
    cancelamentos = Column(JSON, nullable=False, default=list)
    despesas = Column(JSON, nullable=False, default=list)
    qtd_vendas = Column(Integer, nullable=False, default=0)
    qtd_cancelamentos = Column(Integer, nullable=False, default=0)
    qtd_despesas = Column(Integer, nullable=False, default=0)
    criado_por = Column(String(100), nullable=True)
    autorizado_por = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, default=local_now)


class ClosureImmutableError(Exception):
    pass


@event.listens_for(CashClosure, "before_update")
def _block_closure_update(mapper, connection, target):
    raise ClosureImmutableError(f"Fechamento {target.id} não pode ser alterado.")
