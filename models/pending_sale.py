from sqlalchemy import JSON, Column, DateTime, Integer, String, Text

from config.database import QueueBase
from utils.clock import now as local_now


class PendingSale(QueueBase):
    """
    Venda aguardando sincronização (fila offline).
    status: pendente | conflito | falhou
    """

    __tablename__ = "pending_sales"

    external_id = Column(String(64), primary_key=True)
    store_id = Column(String(50), nullable=False, index=True)
    payload = Column(JSON, nullable=False)
    tentativas = Column(Integer, nullable=False, default=0)
    ultimo_erro = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pendente")
    proxima_tentativa = Column(DateTime, nullable=False, default=local_now)
    ultima_tentativa = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=local_now)


class StockConflict(QueueBase):
    """
    Registro local de venda rejeitada por falta de estoque.
    """

    __tablename__ = "stock_conflicts"

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(String(50), nullable=False, index=True)
    external_id = Column(String(64), nullable=False, index=True)
    codigo = Column(String(50), nullable=True)
    disponivel = Column(Integer, nullable=True)
    necessario = Column(Integer, nullable=True)
    origem = Column(String(20), nullable=False, default="checkout")  # checkout | fila
    created_at = Column(DateTime, nullable=False, default=local_now)
