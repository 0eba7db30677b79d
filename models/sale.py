from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from config.database import Base
from utils.clock import now as local_now

# Formas de pagamento aceitas no caixa
FORMAS_PAGAMENTO = ("dinheiro", "pix_maquina", "pix_direto", "debito", "credito")


class Sale(Base):
    """
    Venda (cabeçalho) vinculada a uma sessão de caixa.
    Vendas nunca são apagadas; o cancelamento apenas muda o status.
    """

    __tablename__ = "sales"

    id = Column(Integer, primary_key=True, index=True)
    # Token de idempotência gerado no checkout
    external_id = Column(String(64), unique=True, nullable=False, index=True)
    store_id = Column(String(50), nullable=False, index=True)
    cash_session_id = Column(Integer, ForeignKey("cash_sessions.id"), nullable=False, index=True)
    terminal = Column(Integer, nullable=False, default=1)
    data_venda = Column(Date, nullable=False)
    total_bruto = Column(Numeric(12, 2), nullable=False, default=0)
    desconto = Column(Numeric(12, 2), nullable=False, default=0)
    total_vendido = Column(Numeric(12, 2), nullable=False, default=0)
    custo_total = Column(Numeric(12, 2), nullable=True)
    total_pecas = Column(Integer, nullable=False, default=0)
    tipo_pagamento = Column(String(20), nullable=False)
    valor_recebido = Column(Numeric(12, 2), nullable=True)
    troco = Column(Numeric(12, 2), nullable=False, default=0)
    cupom = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default="concluida")  # concluida | cancelada
    operador_id = Column(Integer, nullable=True)
    operador_nome = Column(String(100), nullable=True)
    cancelado_em = Column(DateTime, nullable=True)
    cancelado_por = Column(String(100), nullable=True)
    motivo_cancelamento = Column(String(255), nullable=True)
    cancel_cash_session_id = Column(Integer, ForeignKey("cash_sessions.id"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=local_now)

    cash_session = relationship("CashSession", foreign_keys=[cash_session_id])
    itens = relationship("SaleItem", back_populates="sale", cascade="all, delete-orphan")


class SaleItem(Base):
    """
    Itens de venda. Código e nome ficam copiados para o histórico.
    """

    __tablename__ = "sale_items"

    id = Column(Integer, primary_key=True, index=True)
    sale_id = Column(Integer, ForeignKey("sales.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    codigo = Column(String(50), nullable=False)
    nome = Column(String(200), nullable=False)
    quantidade = Column(Integer, nullable=False, default=1)
    preco_unitario = Column(Numeric(12, 2), nullable=False, default=0)
    # Nulo em vendas antigas; o fechamento usa o custo do catálogo
    preco_custo_unitario = Column(Numeric(12, 2), nullable=True)
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)

    sale = relationship("Sale", back_populates="itens")
