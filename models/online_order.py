from sqlalchemy import JSON, Column, DateTime, Integer, Numeric, String

from config.database import Base
from utils.clock import now as local_now

# aguardo -> separado -> enviado -> entregue; cancelado a qualquer momento
STATUS_PEDIDO = ("aguardo", "separado", "enviado", "entregue", "cancelado")


class OnlineOrder(Base):
    """
    Pedidos da loja online acompanhados pelo PDV (separação e envio).
    endereco: dict com rua, numero, complemento, bairro, cidade, estado, cep.
    itens: lista de dicts com codigo, nome, quantidade e preco.
    """

    __tablename__ = "online_orders"

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(String(50), nullable=False, index=True)
    numero = Column(String(50), nullable=True, index=True)
    cliente_nome = Column(String(200), nullable=False)
    cliente_telefone = Column(String(50), nullable=True)
    atendente = Column(String(100), nullable=True)
    endereco = Column(JSON, nullable=True)
    itens = Column(JSON, nullable=False, default=list)
    valor_total = Column(Numeric(12, 2), nullable=False, default=0)
    forma_pagamento = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default="aguardo")
    codigo_rastreio = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, default=local_now)
    updated_at = Column(DateTime, nullable=False, default=local_now, onupdate=local_now)
