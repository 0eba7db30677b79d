import sys
from datetime import datetime
from decimal import Decimal
from pathlib import Path

# Permite rodar o pytest da raiz ou de dentro de tests/
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from config.database import Base, QueueBase, load_models
from models.coupon import Coupon
from models.product import Product
from services.auth_service import AuthService
from services.printing import ReceiptPrinter

STORE_ID = "loja_teste"
ABERTURA = datetime(2026, 3, 10, 9, 0, 0)


@pytest.fixture
def store_id():
    return STORE_ID


@pytest.fixture
def engine(tmp_path):
    load_models()
    engine = create_engine(
        f"sqlite:///{tmp_path / 'pdv_teste.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def queue_engine(tmp_path):
    """Base local da fila offline, separada do banco principal."""
    load_models()
    engine = create_engine(
        f"sqlite:///{tmp_path / 'fila_teste.db'}",
        connect_args={"check_same_thread": False},
    )
    QueueBase.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def queue_factory(queue_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=queue_engine)


@pytest.fixture
def queue_db(queue_factory):
    session = queue_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def users(db):
    """admin, gerente e vendedor com senha; gerente_sso sem senha local."""
    return {
        "admin": AuthService.create_user(db, "admin", "Administrador", "admin123", "admin", STORE_ID),
        "gerente": AuthService.create_user(db, "gerente", "Gerente", "ger123", "gerente", STORE_ID),
        "vendedor": AuthService.create_user(db, "vendedor", "Vendedora Ana", "vend123", "vendedor", STORE_ID),
        "gerente_sso": AuthService.create_user(db, "gerente_sso", "Gerente SSO", None, "gerente", STORE_ID),
    }


@pytest.fixture
def operators(users):
    """Usuários no formato guardado na sessão do Streamlit."""
    return {
        key: {"id": u.id, "username": u.username, "name": u.name, "role": u.role}
        for key, u in users.items()
    }


@pytest.fixture
def abertura():
    return ABERTURA


@pytest.fixture
def products(db):
    items = {
        "P001": Product(
            store_id=STORE_ID, codigo="P001", nome="Camiseta", preco_custo=Decimal("20.00"),
            preco_venda=Decimal("50.00"), estoque_atual=10,
        ),
        "P002": Product(
            store_id=STORE_ID, codigo="P002", nome="Jaqueta", preco_custo=Decimal("30.00"),
            preco_venda=Decimal("80.00"), estoque_atual=None,
        ),
        "P003": Product(
            store_id=STORE_ID, codigo="P003", nome="Boné", preco_custo=Decimal("10.00"),
            preco_venda=Decimal("30.00"), estoque_atual=0,
        ),
        "SEM_CODIGO": Product(
            store_id=STORE_ID, codigo=None, nome="Brinde", preco_custo=Decimal("1.00"),
            preco_venda=Decimal("5.00"), estoque_atual=None,
        ),
    }
    db.add_all(items.values())
    db.add(Coupon(store_id=STORE_ID, codigo="BEMVINDO10", desconto_percentual=Decimal("10")))
    db.commit()
    return items


@pytest.fixture
def printer(tmp_path):
    return ReceiptPrinter(tmp_path / "impressoes")


@pytest.fixture
def cash_service(db, queue_db, printer):
    from services.cash_session_service import CashSessionService
    from services.retry_queue import PendingSaleQueue

    return CashSessionService(
        db, STORE_ID, printer=printer, queue=PendingSaleQueue(queue_db, STORE_ID)
    )


@pytest.fixture
def sale_service(db, session_factory, queue_factory, printer):
    from services.sale_service import SaleService

    service = SaleService(
        db,
        STORE_ID,
        session_factory=session_factory,
        queue_factory=queue_factory,
        printer=printer,
        timeout=5,
    )
    yield service
    service.close()


@pytest.fixture
def open_session(cash_service, operators, products):
    """Caixa aberto às 09:00 com R$ 100,00."""
    return cash_service.open_session("100.00", operator=operators["vendedor"], now=ABERTURA)
