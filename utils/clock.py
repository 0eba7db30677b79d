"""
Relógio da loja.

Todos os horários gravados no banco são locais (fuso Settings.TIMEZONE), sem
tzinfo. O dia do caixa, a data das despesas e o mês do painel saem daqui.
"""
from datetime import date, datetime

from dateutil import tz

from config.settings import Settings


def utcnow() -> datetime:
    return datetime.now(tz.UTC)


def store_timezone():
    return tz.gettz(Settings.TIMEZONE) or tz.tzlocal()


def now() -> datetime:
    """Horário local da loja (naive)."""
    return utcnow().astimezone(store_timezone()).replace(tzinfo=None)


def today() -> date:
    return now().date()
