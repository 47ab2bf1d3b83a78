import re
from datetime import date, datetime
from typing import Optional

from ..rules.constants import SeasonalFactors

_DATE_FORMATS = ["%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y", "%Y/%m/%d"]


def parse_date(value) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(str(value).strip(), fmt).date()
        except ValueError:
            continue
    return None


def parse_amount(value) -> Optional[float]:
    """Coerce 1234, "1,234.50" or "$190" to float; None when nothing numeric is left."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = re.sub(r"[^\d.\-]", "", str(value).replace(",", ""))
    if cleaned in {"", "-", ".", "-."}:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def days_in_period(start: date, end: date) -> int:
    return max((end - start).days, 1)


def safe_ratio(numerator: float, denominator: float, default: float = 0.0) -> float:
    if not denominator or denominator < 0:
        return default
    return numerator / denominator


def percent_change(current: float, previous: Optional[float]) -> float:
    # No usable baseline reads as "no change"
    if not previous or previous <= 0:
        return 0.0
    return (current - previous) * 100.0 / previous


def derive_unit_rate(energy_charges: float, total_kwh: float) -> Optional[float]:
    if total_kwh is None or total_kwh <= 0 or energy_charges is None:
        return None
    return energy_charges / total_kwh


def round_currency(amount: float) -> float:
    return round(amount, 2)


def round_kwh(kwh: float) -> int:
    return int(round(kwh))


def season_for_month(month: int) -> str:
    """Season for a 1-based calendar month; any int is reduced mod 12 (0 is December)."""
    m = month % 12
    if m >= 11 or m <= 1:
        return "winter"
    if 2 <= m <= 4:
        return "spring"
    if 5 <= m <= 8:
        return "summer"
    return "fall"


def seasonal_factor_for_month(month: int, factors: SeasonalFactors) -> float:
    return factors.factor(season_for_month(month))


def confidence_score(supplied: dict, synthetic: bool, has_warnings: bool) -> float:
    score = 0.5
    for present in supplied.values():
        if present:
            score += 0.1
    if synthetic:
        score -= 0.3
    if not has_warnings:
        score += 0.1
    return round(max(0.1, min(1.0, score)), 2)
