from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, UniqueConstraint

from config.database import Base
from utils.clock import now as local_now


class Coupon(Base):
    """
    Cupons de desconto percentual.
    """

    __tablename__ = "coupons"
    __table_args__ = (UniqueConstraint("store_id", "codigo", name="uq_coupons_store_codigo"),)

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(String(50), nullable=False, index=True)
    codigo = Column(String(50), nullable=False)
    desconto_percentual = Column(Numeric(5, 2), nullable=False, default=0)
    ativo = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=local_now)
