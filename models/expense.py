from sqlalchemy import Column, Date, DateTime, Integer, Numeric, String

from config.database import Base
from utils.clock import now as local_now


class Expense(Base):
    """
    Despesas da loja. Entram no fechamento do caixa do mesmo dia.
    """

    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(String(50), nullable=False, index=True)
    data = Column(Date, nullable=False, index=True)
    categoria = Column(String(100), nullable=True)
    descricao = Column(String(255), nullable=True)
    valor = Column(Numeric(12, 2), nullable=False, default=0)
    criado_por = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, default=local_now)
    updated_at = Column(
        DateTime, nullable=False, default=local_now, onupdate=local_now
    )
