from decimal import ROUND_HALF_UP, Decimal

from partspos.config import settings


def amount(v) -> str:
    q = Decimal(1).scaleb(-settings.decimals)
    return f"{Decimal(v).quantize(q, rounding=ROUND_HALF_UP):.{settings.decimals}f}"


def money(v) -> str:
    return f"{amount(v)} {settings.currency}"


def percent(v) -> str:
    return f"{float(v):g}%"
