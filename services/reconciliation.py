"""
Cálculo do fechamento de caixa.

Função pura: recebe a sessão, as vendas, os cancelamentos e as despesas já
carregados e devolve os totais do fechamento. Não acessa o banco.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Iterable, Optional, Tuple

from models.sale import FORMAS_PAGAMENTO
from utils.money import ZERO, to_money

CostLookup = Callable[[str], Optional[Decimal]]


@dataclass
class ClosureSummary:
    janela_inicio: datetime
    janela_fim: datetime
    valor_abertura: Decimal
    total_vendas: Decimal
    total_custos: Decimal
    total_despesas: Decimal
    total_descontos: Decimal
    lucro_bruto: Decimal
    lucro_liquido: Decimal
    valor_final_caixa: Decimal
    por_pagamento: Dict[str, Decimal] = field(default_factory=dict)
    por_operador: Dict[str, dict] = field(default_factory=dict)
    vendas: list = field(default_factory=list)
    cancelamentos: list = field(default_factory=list)
    despesas: list = field(default_factory=list)

    def snapshot(self) -> dict:
        """Cópia congelada (JSON) para gravar no CashClosure."""
        return {
            "por_pagamento": {k: str(v) for k, v in self.por_pagamento.items()},
            "por_operador": {
                nome: {
                    "total": str(dados["total"]),
                    "por_pagamento": {k: str(v) for k, v in dados["por_pagamento"].items()},
                }
                for nome, dados in self.por_operador.items()
            },
            "vendas": [sale_snapshot(s) for s in self.vendas],
            "cancelamentos": [sale_snapshot(s) for s in self.cancelamentos],
            "despesas": [expense_snapshot(e) for e in self.despesas],
        }


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def sale_snapshot(sale) -> dict:
    return {
        "id": sale.id,
        "external_id": sale.external_id,
        "created_at": _iso(sale.created_at),
        "total_vendido": str(to_money(sale.total_vendido)),
        "desconto": str(to_money(sale.desconto)),
        "custo_total": str(to_money(sale.custo_total)) if sale.custo_total is not None else None,
        "tipo_pagamento": sale.tipo_pagamento,
        "operador": operator_label(sale),
        "status": sale.status,
        "cancelado_em": _iso(sale.cancelado_em),
        "cancelado_por": sale.cancelado_por,
        "itens": [
            {
                "codigo": item.codigo,
                "nome": item.nome,
                "quantidade": item.quantidade,
                "preco_unitario": str(to_money(item.preco_unitario)),
            }
            for item in sale.itens
        ],
    }


def expense_snapshot(expense) -> dict:
    return {
        "id": expense.id,
        "data": _iso(expense.data),
        "categoria": expense.categoria,
        "descricao": expense.descricao,
        "valor": str(to_money(expense.valor)),
    }


def operator_label(sale) -> str:
    """Nome do operador da venda; sem nome, usa 'Caixa N' (terminal)."""
    nome = (sale.operador_nome or "").strip()
    return nome or f"Caixa {sale.terminal or 1}"


def reconciliation_window(
    opened_at: datetime, until: datetime, prior_closures: Iterable[datetime] = ()
) -> Tuple[datetime, datetime]:
    """
    Janela do fechamento: do mais recente entre a abertura da sessão e o
    último fechamento anterior do mesmo dia, até o momento do fechamento.
    """
    start = opened_at
    for closed_at in prior_closures:
        if closed_at is None or closed_at.date() != until.date() or closed_at > until:
            continue
        if closed_at > start:
            start = closed_at
    return start, until


def sale_cost(sale, cost_lookup: Optional[CostLookup] = None) -> Decimal:
    """
    Custo da venda: usa custo_total gravado; senão soma quantidade x custo unitário
    dos itens; item sem custo usa o custo atual do catálogo.
    """
    if sale.custo_total is not None:
        return to_money(sale.custo_total)
    total = ZERO
    for item in sale.itens:
        unit_cost = item.preco_custo_unitario
        if unit_cost is None and cost_lookup is not None:
            unit_cost = cost_lookup(item.codigo)
        total += to_money(unit_cost) * item.quantidade
    return to_money(total)


def _in_window(moment: Optional[datetime], start: datetime, end: datetime) -> bool:
    return moment is not None and start <= moment <= end


def compute_closure(
    session,
    sales: Iterable,
    cancellations: Iterable,
    expenses: Iterable,
    until: datetime,
    since: Optional[datetime] = None,
    cost_lookup: Optional[CostLookup] = None,
) -> ClosureSummary:
    """
    Calcula o fechamento de uma sessão de caixa.

    - total_vendas = vendas - cancelamentos da janela (pode ficar negativo)
    - total_custos = custo das vendas - custo das vendas canceladas
    - total_despesas = despesas com data no dia da abertura da sessão
    - lucro_bruto = total_vendas - total_custos
    - lucro_liquido = lucro_bruto - total_despesas
    - valor_final_caixa = valor_abertura + total_vendas - total_custos
    """
    start = session.data_abertura
    if since is not None and since > start:
        start = since
    end = until

    vendas = [s for s in sales if _in_window(s.created_at, start, end)]
    cancelamentos = [c for c in cancellations if _in_window(c.cancelado_em, start, end)]
    dia = session.data_abertura.date()
    despesas = [e for e in expenses if e.data == dia]

    por_pagamento: Dict[str, Decimal] = {forma: ZERO for forma in FORMAS_PAGAMENTO}
    por_operador: Dict[str, dict] = {}

    def _bucket(sale, sign: int) -> None:
        valor = to_money(sale.total_vendido) * sign
        forma = sale.tipo_pagamento or "dinheiro"
        por_pagamento[forma] = por_pagamento.get(forma, ZERO) + valor
        nome = operator_label(sale)
        dados = por_operador.setdefault(nome, {"total": ZERO, "por_pagamento": {}})
        dados["total"] += valor
        dados["por_pagamento"][forma] = dados["por_pagamento"].get(forma, ZERO) + valor

    total_vendas = ZERO
    total_custos = ZERO
    total_descontos = ZERO
    for sale in vendas:
        total_vendas += to_money(sale.total_vendido)
        total_custos += sale_cost(sale, cost_lookup)
        total_descontos += to_money(sale.desconto)
        _bucket(sale, 1)
    for sale in cancelamentos:
        total_vendas -= to_money(sale.total_vendido)
        total_custos -= sale_cost(sale, cost_lookup)
        _bucket(sale, -1)

    total_despesas = sum((to_money(e.valor) for e in despesas), ZERO)
    valor_abertura = to_money(session.valor_abertura)
    lucro_bruto = total_vendas - total_custos

    return ClosureSummary(
        janela_inicio=start,
        janela_fim=end,
        valor_abertura=valor_abertura,
        total_vendas=total_vendas,
        total_custos=total_custos,
        total_despesas=total_despesas,
        total_descontos=total_descontos,
        lucro_bruto=lucro_bruto,
        lucro_liquido=lucro_bruto - total_despesas,
        valor_final_caixa=valor_abertura + total_vendas - total_custos,
        por_pagamento=por_pagamento,
        por_operador=por_operador,
        vendas=vendas,
        cancelamentos=cancelamentos,
        despesas=despesas,
    )
