"""
Configuração do banco de dados para o PDV
- Banco remoto (PostgreSQL) via DATABASE_URL, quando disponível
- Fallback para SQLite local em data/pdv.db
- Fila offline de vendas em SQLite local próprio (data/fila_offline.db)
"""
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker

from config.logging_config import get_logger
from config.settings import DATA_DIR, Settings

logger = get_logger(__name__)

DATA_DIR.mkdir(parents=True, exist_ok=True)


def create_pdv_engine(url: str):
    """
    Cria o engine conforme o tipo de banco.
    """
    if url.startswith("postgresql"):
        return create_engine(
            url,
            echo=False,
            pool_pre_ping=True,
            pool_size=10,
            max_overflow=20,
            pool_recycle=3600,
        )
    # SQLite (local)
    return create_engine(
        url,
        connect_args={"check_same_thread": False},
        echo=False,
    )


def _build_engine():
    """
    Tenta o banco remoto primeiro; se não responder, usa o SQLite local.
    """
    if Settings.DATABASE_URL:
        remote = create_pdv_engine(Settings.DATABASE_URL)
        try:
            with remote.connect() as conn:
                conn.execute(text("SELECT 1"))
            return remote, Settings.DATABASE_URL
        except OperationalError as e:
            logger.warning("Banco remoto indisponível, usando SQLite local: %s", e)
            remote.dispose()
    return create_pdv_engine(Settings.LOCAL_DATABASE_URL), Settings.LOCAL_DATABASE_URL


engine, DATABASE_URL = _build_engine()

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base para os modelos
Base = declarative_base()

# Fila offline: engine próprio, sempre local
queue_engine = create_pdv_engine(Settings.QUEUE_DATABASE_URL)
QueueSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=queue_engine)
QueueBase = declarative_base()


def get_db():
    """
    Dependency simples para obter uma sessão do banco de dados.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def load_models() -> None:
    """Importa os modelos para registrá-los no metadata."""
    from models import (  # noqa: F401
        user,
        product,
        coupon,
        cash_session,
        sale,
        expense,
        closure,
        online_order,
        pending_sale,
    )


def init_db(bind=None, queue_bind=None):
    """
    Cria todas as tabelas definidas nos modelos (banco principal e fila local).
    Deve ser chamada uma vez na inicialização da aplicação.
    """
    load_models()
    Base.metadata.create_all(bind=bind or engine)
    QueueBase.metadata.create_all(bind=queue_bind or queue_engine)
