"""
Conversão de valores monetários (Decimal arredondado em centavos).
"""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from services.exceptions import InvalidAmountError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """
    Converte int/float/str/Decimal em Decimal com 2 casas.
    None vira zero.
    """
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = repr(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(value, allow_zero: bool = True) -> Decimal:
    """
    Lê um valor digitado pelo operador ("10,50", "10.5", 10).
    Rejeita valores vazios, não numéricos ou negativos.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmountError()
    if isinstance(value, str):
        value = value.strip().replace("R$", "").strip()
        if "," in value:
            value = value.replace(".", "").replace(",", ".")
        if not value:
            raise InvalidAmountError()
    try:
        amount = to_money(value)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmountError(f"Valor inválido: {value!r}.")
    if not amount.is_finite() or amount < 0:
        raise InvalidAmountError(f"Valor inválido: {value!r}.")
    if not allow_zero and amount == 0:
        raise InvalidAmountError("O valor deve ser maior que zero.")
    return amount
