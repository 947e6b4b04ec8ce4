# coursemax/utils/money.py

from decimal import Decimal, ROUND_HALF_UP

Money = Decimal

CENT = Decimal("0.01")
NBSP = "\u00a0"


def D(x) -> Money:
    """Coerce ints, floats and numeric strings to Decimal without float noise."""
    if isinstance(x, Decimal):
        return x
    if isinstance(x, bool):
        raise TypeError("booleans are not amounts")
    return Decimal(str(x if x is not None else "0"))


def round_money(x, step: Money = CENT) -> Money:
    # ROUND_HALF_UP on Decimal rounds half away from zero
    step = D(step)
    return (D(x) / step).quantize(Decimal("1"), rounding=ROUND_HALF_UP) * step


def format_currency(amount) -> str:
    """Render an amount the way fr-CA shows Canadian dollars, e.g. ``1 234,56 $``."""
    value = round_money(amount).quantize(CENT)
    sign = "-" if value < 0 else ""
    whole, cents = f"{abs(value):.2f}".split(".")
    groups = []
    while len(whole) > 3:
        groups.insert(0, whole[-3:])
        whole = whole[:-3]
    groups.insert(0, whole)
    return f"{sign}{NBSP.join(groups)},{cents}{NBSP}$"
