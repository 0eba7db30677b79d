from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, UniqueConstraint

from config.database import Base
from utils.clock import now as local_now


class Product(Base):
    """
    Produtos da loja.
    estoque_atual nulo significa estoque ilimitado (não controlado).
    """

    __tablename__ = "products"
    __table_args__ = (UniqueConstraint("store_id", "codigo", name="uq_products_store_codigo"),)

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(String(50), nullable=False, index=True)
    # SKU; produtos sem código não podem ser vendidos
    codigo = Column(String(50), nullable=True, index=True)
    nome = Column(String(200), nullable=False)
    categoria = Column(String(100), nullable=True)
    marca = Column(String(100), nullable=True)
    preco_custo = Column(Numeric(12, 2), nullable=False, default=0)
    preco_venda = Column(Numeric(12, 2), nullable=False, default=0)
    estoque_atual = Column(Integer, nullable=True)
    ativo = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=local_now)
    updated_at = Column(
        DateTime, nullable=False, default=local_now, onupdate=local_now
    )

    @property
    def controla_estoque(self) -> bool:
        return self.estoque_atual is not None
