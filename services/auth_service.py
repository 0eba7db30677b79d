"""
Serviço de autenticação e controle de acesso do PDV.
"""
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import bcrypt
import streamlit as st
from sqlalchemy.orm import Session

from config.database import SessionLocal
from config.logging_config import get_logger
from config.settings import Settings
from models.user import ELEVATED_ROLES, User
from services.exceptions import UnauthorizedError

logger = get_logger(__name__)

# Provedor de identidade externo: (username, senha) -> válido?
IdentityProvider = Callable[[str, str], bool]


@dataclass
class Authorization:
    """
    Credenciais informadas para uma ação sensível.
    operator: usuário logado (dict da sessão).
    username: gerente/admin que autoriza; ignorado se o operador já for gerente/admin.
    """

    operator: dict
    password: str
    username: Optional[str] = None


class AuthService:
    """
    Gerencia autenticação, sessão e permissões básicas (roles).
    """

    @staticmethod
    def hash_password(password: str) -> str:
        salt = bcrypt.gensalt()
        hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
        return hashed.decode("utf-8")

    @staticmethod
    def verify_password(password: str, hashed: str) -> bool:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))

    @staticmethod
    def authenticate(
        db: Session, username: str, password: str, store_id: str = Settings.STORE_ID
    ) -> Optional[User]:
        user = (
            db.query(User)
            .filter(
                User.store_id == store_id,
                User.username == username,
                User.active.is_(True),
            )
            .first()
        )
        if user and user.password_hash and AuthService.verify_password(password, user.password_hash):
            return user
        return None

    @staticmethod
    def create_user(
        db: Session,
        username: str,
        name: str,
        password: Optional[str],
        role: str,
        store_id: str = Settings.STORE_ID,
    ) -> User:
        password_hash = AuthService.hash_password(password) if password else None
        user = User(
            store_id=store_id,
            username=username,
            name=name,
            password_hash=password_hash,
            role=role,
            active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def authorize_elevated(
        db: Session,
        store_id: str,
        authorization: Authorization,
        identity_provider: Optional[IdentityProvider] = None,
    ) -> User:
        """
        Valida a autorização de gerente/admin para cancelamento ou fechamento.
        Operador gerente/admin autoriza com a própria senha; os demais informam
        um gerente/admin da mesma loja. Retorna o usuário que autorizou.
        """
        operator = authorization.operator or {}
        if not authorization.password:
            raise UnauthorizedError()

        query = db.query(User).filter(
            User.store_id == store_id,
            User.active.is_(True),
            User.role.in_(ELEVATED_ROLES),
        )
        if operator.get("role") in ELEVATED_ROLES:
            candidate = query.filter(User.id == operator.get("id")).first()
        elif authorization.username:
            candidate = query.filter(User.username == authorization.username).first()
        else:
            candidate = None
        if candidate is None:
            logger.warning("Autorização negada: usuário elevado não encontrado")
            raise UnauthorizedError()

        if candidate.password_hash:
            valid = AuthService.verify_password(authorization.password, candidate.password_hash)
        elif identity_provider is not None:
            valid = bool(identity_provider(candidate.username, authorization.password))
        else:
            valid = False
        if not valid:
            logger.warning("Autorização negada para %s", candidate.username)
            raise UnauthorizedError()
        return candidate

    # ----- Session / estado -----

    @staticmethod
    def init_session_state() -> None:
        if "authenticated" not in st.session_state:
            st.session_state.authenticated = False
        if "user" not in st.session_state:
            st.session_state.user = None

    @staticmethod
    def login(user: User) -> None:
        st.session_state.authenticated = True
        st.session_state.user = {
            "id": user.id,
            "username": user.username,
            "name": user.name,
            "role": user.role,
            "store_id": user.store_id,
        }

    @staticmethod
    def logout() -> None:
        st.session_state.authenticated = False
        st.session_state.user = None
        st.session_state.pop("cart", None)

    @staticmethod
    def is_authenticated() -> bool:
        return st.session_state.get("authenticated", False)

    @staticmethod
    def get_current_user() -> Optional[dict]:
        return st.session_state.get("user")

    # ----- Requisitos de acesso -----

    @staticmethod
    def require_auth() -> None:
        """
        Garante que o usuário esteja autenticado.
        Se não estiver, mostra mensagem e interrompe a execução da página.
        """
        AuthService.init_session_state()
        if not AuthService.is_authenticated():
            st.warning("Você precisa fazer login para acessar esta página.")
            st.stop()

    @staticmethod
    def require_roles(allowed_roles: Sequence[str]) -> None:
        """
        Garante que o usuário autenticado tenha um dos perfis permitidos.
        """
        AuthService.require_auth()
        user = AuthService.get_current_user()
        if not user or user.get("role") not in allowed_roles:
            st.error("Você não tem permissão para acessar esta funcionalidade.")
            st.stop()


def ensure_default_admin(store_id: str = Settings.STORE_ID) -> None:
    """
    Garante a existência de um usuário admin padrão.
    Executado na inicialização da aplicação.
    """
    db = SessionLocal()
    try:
        admin = (
            db.query(User).filter(User.store_id == store_id, User.role == "admin").first()
        )
        if not admin:
            AuthService.create_user(
                db=db,
                username="admin",
                name="Administrador",
                password="admin123",
                role="admin",
                store_id=store_id,
            )
            logger.warning(
                "Usuário admin criado: username=admin, senha=admin123 (altere em produção)"
            )
    finally:
        db.close()
