import time
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from models.pending_sale import PendingSale, StockConflict
from models.product import Product
from models.sale import Sale
from services.auth_service import Authorization
from services.cart import Cart
from services.exceptions import (
    AlreadyCancelledError,
    EmptyCartError,
    InsufficientPaymentError,
    InsufficientStockError,
    InvalidAmountError,
    InvalidCouponError,
    InvalidPaymentMethodError,
    MissingIdentifierError,
    NoOpenSessionError,
    PendingSalesError,
    SaleNotFoundError,
    UnauthorizedError,
    UnknownPersistenceError,
)
from services.persistence import SalesRepository
from services.retry_queue import PendingSaleQueue


def _cart(*produtos_qtd):
    cart = Cart()
    for produto, qtd in produtos_qtd:
        cart.add_product(produto, qtd)
    return cart


def _close(cash_service, operators, when):
    auth = Authorization(operator=operators["gerente"], password="ger123")
    return cash_service.close_session(auth, now=when)


def test_cash_sale_then_close(db, store_id, cash_service, sale_service, open_session, operators, abertura):
    sacola = Product(store_id=store_id, codigo="S050", nome="Sacola", preco_custo=Decimal("0"),
                     preco_venda=Decimal("50.00"), estoque_atual=None)
    db.add(sacola)
    db.commit()

    result = sale_service.checkout(
        _cart((sacola, 1)), "dinheiro", operator=operators["vendedor"],
        now=abertura + timedelta(minutes=30),
    )
    assert result.status == "concluida"

    closure = _close(cash_service, operators, abertura + timedelta(hours=8))
    assert closure.total_vendas == Decimal("50.00")
    assert closure.valor_final_caixa == Decimal("150.00")
    assert closure.por_pagamento["dinheiro"] == "50.00"
    assert closure.por_operador["Vendedora Ana"]["total"] == "50.00"
    assert closure.qtd_vendas == 1


def test_cancelled_credit_sale_nets_to_zero(cash_service, sale_service, open_session, operators, products, abertura):
    result = sale_service.checkout(
        _cart((products["P002"], 1)), "credito", operator=operators["vendedor"],
        now=abertura + timedelta(minutes=30),
    )
    sale_service.cancel_sale(
        result.sale_id,
        Authorization(operator=operators["vendedor"], password="ger123", username="gerente"),
        motivo="Cliente desistiu",
        now=abertura + timedelta(hours=1),
    )

    closure = _close(cash_service, operators, abertura + timedelta(hours=8))
    assert closure.total_vendas == Decimal("0.00")
    assert closure.valor_final_caixa == Decimal("100.00") - closure.total_custos
    assert closure.por_pagamento["credito"] == "0.00"
    assert closure.qtd_cancelamentos == 1
    assert closure.cancelamentos[0]["cancelado_por"] == "Gerente"


def test_line_without_identifier_is_rejected(db, sale_service, open_session, operators, products):
    cart = _cart((products["P001"], 1), (products["SEM_CODIGO"], 1))

    with pytest.raises(MissingIdentifierError):
        sale_service.checkout(cart, "dinheiro", operator=operators["vendedor"])

    assert len(cart) == 2
    assert db.query(Sale).count() == 0


def test_cash_payment_change(sale_service, open_session, operators, products):
    result = sale_service.checkout(
        _cart((products["P002"], 1)), "dinheiro", operator=operators["vendedor"], valor_recebido="100,00"
    )
    assert result.troco == Decimal("20.00")

    exato = sale_service.checkout(
        _cart((products["P002"], 1)), "dinheiro", operator=operators["vendedor"], valor_recebido=""
    )
    assert exato.troco == Decimal("0.00")


def test_underpayment_keeps_cart_and_writes_nothing(db, sale_service, open_session, operators, products):
    cart = _cart((products["P002"], 1))

    with pytest.raises(InsufficientPaymentError):
        sale_service.checkout(cart, "dinheiro", operator=operators["vendedor"], valor_recebido="70")

    assert len(cart) == 1
    assert db.query(Sale).count() == 0


def test_same_token_creates_one_sale(db, sale_service, open_session, operators, products):
    token = "token-repetido"
    primeiro = sale_service.checkout(
        _cart((products["P001"], 1)), "pix_direto", operator=operators["vendedor"], idempotency_token=token
    )
    segundo = sale_service.checkout(
        _cart((products["P001"], 1)), "pix_direto", operator=operators["vendedor"], idempotency_token=token
    )

    assert primeiro.sale_id == segundo.sale_id
    assert db.query(Sale).filter(Sale.external_id == token).count() == 1
    db.expire_all()
    assert db.get(Product, products["P001"].id).estoque_atual == 9


def test_persisted_total_matches_lines_minus_discount(db, sale_service, open_session, operators, products):
    cart = _cart((products["P001"], 2), (products["P002"], 1))
    cart.apply_discount("15")

    result = sale_service.checkout(cart, "debito", operator=operators["vendedor"])

    sale = db.get(Sale, result.sale_id)
    linhas = sum(i.preco_unitario * i.quantidade for i in sale.itens)
    assert sale.total_vendido == linhas - sale.desconto == Decimal("165.00")
    assert sale.custo_total == Decimal("70.00")
    assert sale.total_pecas == 3
    assert cart.is_empty()


def test_coupon_discount(db, sale_service, open_session, operators, products):
    result = sale_service.checkout(
        _cart((products["P001"], 1)), "pix_maquina", operator=operators["vendedor"], cupom="bemvindo10"
    )

    sale = db.get(Sale, result.sale_id)
    assert sale.desconto == Decimal("5.00")
    assert sale.total_vendido == Decimal("45.00")
    assert sale.cupom == "BEMVINDO10"


def test_invalid_coupon(sale_service, open_session, operators, products):
    cart = _cart((products["P001"], 1))
    with pytest.raises(InvalidCouponError):
        sale_service.checkout(cart, "dinheiro", operator=operators["vendedor"], cupom="NAOEXISTE")
    assert len(cart) == 1


def test_checkout_requires_open_session(sale_service, operators, products):
    with pytest.raises(NoOpenSessionError):
        sale_service.checkout(_cart((products["P001"], 1)), "dinheiro", operator=operators["vendedor"])


def test_empty_cart_and_unknown_payment(sale_service, open_session, operators, products):
    with pytest.raises(EmptyCartError):
        sale_service.checkout(Cart(), "dinheiro")
    with pytest.raises(InvalidPaymentMethodError):
        sale_service.checkout(_cart((products["P001"], 1)), "cheque")


def test_stock_race_is_rejected_at_commit(db, queue_db, store_id, sale_service, open_session, operators, products):
    cart = _cart((products["P001"], 3))
    # Outro terminal vendeu antes
    products["P001"].estoque_atual = 2
    db.commit()

    with pytest.raises(InsufficientStockError) as exc:
        sale_service.checkout(cart, "dinheiro", operator=operators["vendedor"])

    assert (exc.value.codigo, exc.value.disponivel, exc.value.necessario) == ("P001", 2, 3)
    assert len(cart) == 1
    assert db.query(Sale).count() == 0
    conflito = queue_db.query(StockConflict).one()
    assert conflito.origem == "checkout"
    db.expire_all()
    assert db.get(Product, products["P001"].id).estoque_atual == 2


def test_timeout_queues_sale_and_replay_creates_it(db, queue_db, store_id, sale_service, open_session, operators, products, abertura):
    sale_service.timeout = 0.05

    def slow(payload, token):
        time.sleep(0.5)

    sale_service._create_in_new_session = slow
    cart = _cart((products["P001"], 1))

    result = sale_service.checkout(
        cart, "dinheiro", operator=operators["vendedor"], now=abertura + timedelta(minutes=10)
    )

    assert result.status == "pendente"
    assert cart.is_empty()
    assert db.query(Sale).count() == 0
    entrada = queue_db.query(PendingSale).one()
    assert entrada.external_id == result.external_id

    summary = PendingSaleQueue(queue_db, store_id).drain(db, now=abertura + timedelta(minutes=11))

    assert summary.enviadas == [result.external_id]
    assert queue_db.query(PendingSale).count() == 0
    assert db.query(Sale).filter(Sale.external_id == result.external_id).count() == 1


def test_persistence_error_queues_sale(queue_db, sale_service, open_session, operators, products, monkeypatch):
    def boom(self, payload, token):
        raise UnknownPersistenceError("conexão recusada")

    monkeypatch.setattr(SalesRepository, "create_sale_atomic", boom)

    result = sale_service.checkout(_cart((products["P001"], 1)), "dinheiro", operator=operators["vendedor"])

    assert result.status == "pendente"
    assert queue_db.query(PendingSale).one().ultimo_erro == "conexão recusada"


def test_receipt_is_printed(sale_service, open_session, operators, products, printer):
    result = sale_service.checkout(_cart((products["P001"], 1)), "dinheiro", operator=operators["vendedor"])

    assert (printer.print_dir / f"recibo_{result.sale_id}.html").exists()


def test_cancel_restores_stock(db, sale_service, open_session, operators, products, abertura):
    result = sale_service.checkout(
        _cart((products["P001"], 2)), "dinheiro", operator=operators["vendedor"]
    )

    sale = sale_service.cancel_sale(
        result.sale_id, Authorization(operator=operators["admin"], password="admin123"),
        now=abertura + timedelta(hours=1),
    )

    assert sale.status == "cancelada"
    assert sale.cancelado_por == "Administrador"
    assert sale.cancel_cash_session_id == open_session.id
    db.expire_all()
    assert db.get(Product, products["P001"].id).estoque_atual == 10


def test_cancel_guards(db, sale_service, open_session, operators, products):
    result = sale_service.checkout(_cart((products["P002"], 1)), "credito", operator=operators["vendedor"])

    with pytest.raises(UnauthorizedError):
        sale_service.cancel_sale(result.sale_id, Authorization(operator=operators["vendedor"], password="vend123"))
    assert db.get(Sale, result.sale_id).status == "concluida"

    with pytest.raises(SaleNotFoundError):
        sale_service.cancel_sale(9999, Authorization(operator=operators["admin"], password="admin123"))

    auth = Authorization(operator=operators["admin"], password="admin123")
    sale_service.cancel_sale(result.sale_id, auth)
    with pytest.raises(AlreadyCancelledError):
        sale_service.cancel_sale(result.sale_id, auth)


def test_cancel_requires_open_session(cash_service, sale_service, open_session, operators, products, abertura):
    result = sale_service.checkout(
        _cart((products["P002"], 1)), "credito", operator=operators["vendedor"],
        now=abertura + timedelta(minutes=5),
    )
    _close(cash_service, operators, abertura + timedelta(hours=1))

    with pytest.raises(NoOpenSessionError):
        sale_service.cancel_sale(result.sale_id, Authorization(operator=operators["admin"], password="admin123"))


def _timeout(sale_service):
    sale_service.timeout = 0.05

    def slow(payload, token):
        time.sleep(0.5)

    sale_service._create_in_new_session = slow


def test_sale_is_queued_locally_when_main_database_is_down(
    db, queue_db, sale_service, open_session, operators, products, monkeypatch
):
    def boom(self, payload, token):
        raise UnknownPersistenceError("server closed the connection")

    def main_db_down(*args, **kwargs):
        raise OperationalError("COMMIT", {}, Exception("server closed the connection"))

    monkeypatch.setattr(SalesRepository, "create_sale_atomic", boom)
    monkeypatch.setattr(db, "commit", main_db_down)
    monkeypatch.setattr(db, "rollback", main_db_down)

    result = sale_service.checkout(_cart((products["P001"], 1)), "dinheiro", operator=operators["vendedor"])

    assert result.status == "pendente"
    entrada = queue_db.query(PendingSale).one()
    assert entrada.external_id == result.external_id
    assert entrada.payload["cash_session_id"] == open_session.id


def test_close_is_blocked_while_session_has_pending_sales(
    cash_service, sale_service, open_session, operators, products, abertura
):
    _timeout(sale_service)
    result = sale_service.checkout(
        _cart((products["P002"], 1)), "credito", operator=operators["vendedor"],
        now=abertura + timedelta(hours=1),
    )
    assert result.status == "pendente"

    with pytest.raises(PendingSalesError) as exc:
        _close(cash_service, operators, abertura + timedelta(hours=2))
    assert exc.value.quantidade == 1
    assert cash_service.get_current().id == open_session.id

    summary = sale_service.sync_pending(now=abertura + timedelta(hours=2))
    assert summary.enviadas == [result.external_id]

    closure = _close(cash_service, operators, abertura + timedelta(hours=3))
    assert closure.total_vendas == Decimal("80.00")


def test_sale_replayed_after_forced_close_is_counted_in_next_session(
    cash_service, sale_service, open_session, operators, products, abertura
):
    _timeout(sale_service)
    sale_service.checkout(
        _cart((products["P002"], 1)), "credito", operator=operators["vendedor"],
        now=abertura + timedelta(hours=1),
    )

    c1 = cash_service.close_session(
        Authorization(operator=operators["gerente"], password="ger123"),
        now=abertura + timedelta(hours=2),
        permitir_pendentes=True,
    )
    s2 = cash_service.open_session("100.00", operator=operators["vendedor"], now=abertura + timedelta(hours=3))
    summary = sale_service.sync_pending(now=abertura + timedelta(hours=3, minutes=30))
    c2 = _close(cash_service, operators, abertura + timedelta(hours=9))

    assert len(summary.enviadas) == 1
    assert c1.total_vendas == Decimal("0.00")
    assert c2.cash_session_id == s2.id
    assert c2.total_vendas == Decimal("80.00")
    assert c1.total_vendas + c2.total_vendas == Decimal("80.00")


def test_fractional_quantity_is_rejected_before_saving(db, queue_db, sale_service, open_session, operators, products):
    cart = _cart((products["P001"], 1))
    cart.itens[0].quantidade = 1.5

    with pytest.raises(InvalidAmountError):
        sale_service.checkout(cart, "dinheiro", operator=operators["vendedor"])

    assert len(cart) == 1
    assert db.query(Sale).count() == 0
    assert queue_db.query(PendingSale).count() == 0
