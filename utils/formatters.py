from datetime import date, datetime
from decimal import Decimal
from typing import Union

import locale

# Tenta usar locale pt_BR para formatação monetária, se disponível
try:
    locale.setlocale(locale.LC_ALL, "pt_BR.UTF-8")
except locale.Error:
    # Em alguns ambientes o locale pode ter outro nome ou não estar disponível.
    pass

PAYMENT_METHOD_LABELS = {
    "dinheiro": "Dinheiro",
    "pix_maquina": "PIX (máquina)",
    "pix_direto": "PIX (direto)",
    "debito": "Débito",
    "credito": "Crédito",
}


def format_currency(value: Union[Decimal, float, int, None]) -> str:
    """
    Formata um número como moeda em reais.
    """
    value = Decimal(str(value or 0))
    if locale.getlocale(locale.LC_MONETARY)[0] == "pt_BR":
        return locale.currency(value, grouping=True)
    sinal = "-" if value < 0 else ""
    texto = f"{abs(value):,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return f"{sinal}R$ {texto}"


def format_payment_method(tipo: str) -> str:
    return PAYMENT_METHOD_LABELS.get(tipo, tipo or "-")


def format_date(d: Union[date, datetime]) -> str:
    """
    Formata datas no padrão brasileiro.
    """
    if isinstance(d, datetime):
        return d.strftime("%d/%m/%Y %H:%M")
    return d.strftime("%d/%m/%Y")
