from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import pandas as pd


def round_half_up(value: object, ndigits: int = 0) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    q = Decimal(10) ** -ndigits
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))


def format_try(value: object) -> str:
    """Whole-lira currency text in Turkish grouping, e.g. ``₺1.500``."""
    if value is None or pd.isna(value):
        return "—"
    amount = int(round_half_up(value) or 0)
    return "₺" + f"{amount:,}".replace(",", ".")


def format_count(value: object) -> str:
    if value is None or pd.isna(value):
        return "—"
    return f"{int(value):,}".replace(",", ".")


def format_pct(value: object, decimals: int = 1) -> str:
    if value is None or pd.isna(value):
        return "—"
    return f"%{float(value):.{decimals}f}"

