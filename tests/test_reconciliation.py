from datetime import date, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

from services.reconciliation import compute_closure, reconciliation_window, sale_cost

ABERTURA = datetime(2026, 3, 10, 9, 0)
FECHAMENTO = datetime(2026, 3, 10, 18, 0)


def _session(valor="100.00", aberta=ABERTURA):
    return SimpleNamespace(id=1, data_abertura=aberta, valor_abertura=Decimal(valor))


def _item(codigo="P001", quantidade=1, preco="50.00", custo="20.00"):
    return SimpleNamespace(
        codigo=codigo,
        nome=codigo,
        quantidade=quantidade,
        preco_unitario=Decimal(preco),
        preco_custo_unitario=Decimal(custo) if custo is not None else None,
    )


_ids = iter(range(1, 10_000))


def _sale(total, forma="dinheiro", minutos=60, custo_total=None, itens=None, operador="Ana",
          terminal=1, desconto="0", cancelado_em=None):
    return SimpleNamespace(
        id=next(_ids),
        external_id="x",
        created_at=ABERTURA + timedelta(minutes=minutos),
        total_vendido=Decimal(total),
        desconto=Decimal(desconto),
        custo_total=Decimal(custo_total) if custo_total is not None else None,
        tipo_pagamento=forma,
        operador_nome=operador,
        terminal=terminal,
        status="cancelada" if cancelado_em else "concluida",
        cancelado_em=cancelado_em,
        cancelado_por=None,
        itens=itens if itens is not None else [],
    )


def _expense(valor, dia=date(2026, 3, 10)):
    return SimpleNamespace(id=1, data=dia, categoria="Geral", descricao=None, valor=Decimal(valor))


def test_empty_session_closes_at_opening_amount():
    result = compute_closure(_session("100.00"), [], [], [], until=FECHAMENTO)

    assert result.total_vendas == Decimal("0.00")
    assert result.total_custos == Decimal("0.00")
    assert result.valor_final_caixa == Decimal("100.00")
    assert sum(result.por_pagamento.values()) == Decimal("0.00")


def test_totals_costs_and_profits():
    vendas = [
        _sale("50.00", "dinheiro", custo_total="20.00", desconto="5.00"),
        _sale("80.00", "credito", itens=[_item("P002", 2, "40.00", "15.00")]),
    ]
    result = compute_closure(
        _session("100.00"), vendas, [], [_expense("12.00")], until=FECHAMENTO
    )

    assert result.total_vendas == Decimal("130.00")
    assert result.total_custos == Decimal("50.00")
    assert result.total_descontos == Decimal("5.00")
    assert result.total_despesas == Decimal("12.00")
    assert result.lucro_bruto == Decimal("80.00")
    assert result.lucro_liquido == Decimal("68.00")
    assert result.valor_final_caixa == Decimal("180.00")


def test_cancellation_is_subtracted_from_its_payment_bucket():
    cancelada = _sale("80.00", "credito", custo_total="30.00",
                      cancelado_em=ABERTURA + timedelta(hours=2))
    vendas = [_sale("50.00", "dinheiro", custo_total="0"), cancelada]

    result = compute_closure(_session(), vendas, [cancelada], [], until=FECHAMENTO)

    assert result.total_vendas == Decimal("50.00")
    assert result.por_pagamento["credito"] == Decimal("0.00")
    assert result.por_pagamento["dinheiro"] == Decimal("50.00")
    assert sum(result.por_pagamento.values()) == result.total_vendas
    assert result.total_custos == Decimal("0.00")


def test_negative_day_is_preserved():
    # Venda de outra sessão cancelada nesta sessão
    antiga = _sale("80.00", "pix_direto", minutos=-600, custo_total="30.00",
                   cancelado_em=ABERTURA + timedelta(hours=1))

    result = compute_closure(_session("100.00"), [], [antiga], [], until=FECHAMENTO)

    assert result.total_vendas == Decimal("-80.00")
    assert result.por_pagamento["pix_direto"] == Decimal("-80.00")
    assert result.total_custos == Decimal("-30.00")
    assert result.valor_final_caixa == Decimal("50.00")


def test_sales_outside_window_are_ignored():
    vendas = [
        _sale("10.00", minutos=-30),
        _sale("20.00", minutos=30),
        _sale("40.00", minutos=60 * 12),
    ]

    result = compute_closure(_session(), vendas, [], [], until=FECHAMENTO)

    assert result.total_vendas == Decimal("20.00")
    assert len(result.vendas) == 1


def test_prior_closure_of_same_day_moves_window_start():
    anterior = ABERTURA + timedelta(hours=3)
    ontem = ABERTURA - timedelta(days=1)
    inicio, fim = reconciliation_window(ABERTURA, FECHAMENTO, [ontem, anterior])

    assert inicio == anterior
    assert fim == FECHAMENTO

    vendas = [_sale("10.00", minutos=60), _sale("25.00", minutos=60 * 4)]
    result = compute_closure(_session(), vendas, [], [], until=fim, since=inicio)
    assert result.total_vendas == Decimal("25.00")
    assert result.janela_inicio == anterior


def test_expenses_only_from_session_day():
    despesas = [_expense("10.00"), _expense("99.00", dia=date(2026, 3, 9))]

    result = compute_closure(_session(), [], [], despesas, until=FECHAMENTO)

    assert result.total_despesas == Decimal("10.00")
    assert len(result.despesas) == 1


def test_cost_falls_back_to_catalog_for_items_without_cost():
    venda = _sale("100.00", itens=[_item("P001", 2, "50.00", custo=None)])

    assert sale_cost(venda, lambda codigo: Decimal("22.50")) == Decimal("45.00")
    assert sale_cost(venda) == Decimal("0.00")


def test_operator_breakdown_falls_back_to_register_label():
    vendas = [
        _sale("50.00", "dinheiro", operador="Ana"),
        _sale("30.00", "debito", operador="Ana"),
        _sale("20.00", "pix_maquina", operador=None, terminal=2),
    ]

    result = compute_closure(_session(), vendas, [], [], until=FECHAMENTO)

    assert set(result.por_operador) == {"Ana", "Caixa 2"}
    assert result.por_operador["Ana"]["total"] == Decimal("80.00")
    assert result.por_operador["Ana"]["por_pagamento"]["debito"] == Decimal("30.00")
    assert result.por_operador["Caixa 2"]["total"] == Decimal("20.00")


def test_snapshot_is_json_friendly():
    venda = _sale("50.00", itens=[_item()])
    result = compute_closure(_session(), [venda], [], [_expense("5.00")], until=FECHAMENTO)

    snap = result.snapshot()

    assert snap["por_pagamento"]["dinheiro"] == "50.00"
    assert snap["vendas"][0]["itens"][0]["codigo"] == "P001"
    assert snap["despesas"][0]["valor"] == "5.00"
    assert snap["por_operador"]["Ana"]["total"] == "50.00"
