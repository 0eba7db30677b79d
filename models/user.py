from sqlalchemy import Boolean, Column, DateTime, Integer, String, UniqueConstraint

from config.database import Base
from utils.clock import now as local_now

# Perfis que podem autorizar ações sensíveis (fechamento, cancelamento)
ELEVATED_ROLES = ("admin", "gerente")


class User(Base):
    """
    Usuários do sistema PDV.
    Perfis suportados (role):
    - admin
    - gerente
    - vendedor
    Usuários sem password_hash são validados por um provedor de identidade externo.
    """

    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("store_id", "username", name="uq_users_store_username"),)

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(String(50), nullable=False, index=True)
    username = Column(String(50), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    password_hash = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="vendedor")
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=local_now)

    @property
    def is_elevated(self) -> bool:
        return self.role in ELEVATED_ROLES
