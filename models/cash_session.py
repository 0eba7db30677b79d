from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from config.database import Base
from utils.clock import now as local_now


class CashSession(Base):
    """
    Sessões de caixa (abertura/fechamento).
    valor_abertura já inclui os aportes feitos durante a sessão.
    """

    __tablename__ = "cash_sessions"

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(String(50), nullable=False, index=True)
    terminal = Column(Integer, nullable=False, default=1)
    data_abertura = Column(DateTime, nullable=False, default=local_now)
    data_fechamento = Column(DateTime, nullable=True)
    valor_abertura = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default="aberta")  # aberta / fechada
    aberto_por = Column(String(100), nullable=True)
    observacao = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=local_now)

    aportes = relationship(
        "CashInjection",
        back_populates="cash_session",
        order_by="CashInjection.created_at",
    )


class CashInjection(Base):
    """
    Aporte (reforço) de dinheiro em uma sessão aberta.
    """

    __tablename__ = "cash_injections"

    id = Column(Integer, primary_key=True, index=True)
    cash_session_id = Column(Integer, ForeignKey("cash_sessions.id"), nullable=False, index=True)
    valor = Column(Numeric(12, 2), nullable=False)
    realizado_por = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, default=local_now)

    cash_session = relationship("CashSession", back_populates="aportes")


class CurrentCashSession(Base):
    """
    Ponteiro para a sessão aberta da loja.
    A chave primária por loja garante no máximo um caixa aberto.
    """

    __tablename__ = "current_cash_sessions"

    store_id = Column(String(50), primary_key=True)
    cash_session_id = Column(Integer, ForeignKey("cash_sessions.id"), nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False, default=local_now)

    cash_session = relationship("CashSession")
