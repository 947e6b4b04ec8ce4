# coursemax/logic/tips.py
from typing import Dict

from ..config import TIP_SUGGESTION_PERCENTAGES
from ..utils.money import D, round_money


def calculate_suggested_tip(amount) -> Dict[str, object]:
    """Suggested tips as a share of ``amount``, each rounded to the cent.

    >>> calculate_suggested_tip(100)
    {'percentage_10': Decimal('10.00'), 'percentage_15': Decimal('15.00'), 'percentage_20': Decimal('20.00')}
    """
    base = D(amount)
    return {
        f"percentage_{pct}": round_money(base * pct / 100)
        for pct in TIP_SUGGESTION_PERCENTAGES
    }
