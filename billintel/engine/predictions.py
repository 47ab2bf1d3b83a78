"""
Forecasts from a single bill.

Deliberately simple and fully deterministic: a month-on-month trend from the
previous-month comparison (2% growth when there is none) and fixed seasonal
multipliers. No regression over history is attempted.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from ..rules.constants import DEFAULT_CONSTANTS, SEASONS, AnalysisConstants
from ..schemas import (
    AnnualForecast,
    BillRecord,
    NextMonthForecast,
    Prediction,
    QuarterForecast,
    SeasonalForecast,
)
from .calculations import round_currency, round_kwh, season_for_month

NEXT_MONTH_CONFIDENCE = 0.85
ANNUAL_CONFIDENCE = 0.75
ANNUAL_BREAKDOWN = {"energy": 0.70, "delivery": 0.15, "fees": 0.15}
FORECAST_FACTORS = ("historical trend", "seasonal adjustment", "usage patterns")


class PredictiveAnalyzer:
    def __init__(self, constants: AnalysisConstants = DEFAULT_CONSTANTS):
        self.constants = constants

    def predict(self, record: BillRecord, as_of: Optional[date] = None) -> Prediction:
        as_of = as_of or date.today()
        return Prediction(
            next_month=self.next_month(record),
            quarterly=self.quarterly(record, as_of),
            annual=self.annual(record),
            seasonal=self.seasonal(record),
        )

    def trend(self, record: BillRecord) -> float:
        """Fractional month-on-month change in bill amount."""
        previous = record.comparisons.previous_month
        if previous is None or previous.amount <= 0:
            return self.constants.default_trend
        return (record.charges.total_amount - previous.amount) / previous.amount

    def next_month(self, record: BillRecord) -> NextMonthForecast:
        trend = self.trend(record)
        return NextMonthForecast(
            usage=round_kwh(record.usage.total_kwh * (1 + trend)),
            amount=round_currency(record.charges.total_amount * (1 + trend)),
            confidence=NEXT_MONTH_CONFIDENCE,
            factors=FORECAST_FACTORS,
        )

    def quarterly(self, record: BillRecord, as_of: date) -> tuple[QuarterForecast, ...]:
        forecasts = []
        for months_ahead in (1, 2, 3):
            season = season_for_month(as_of.month + months_ahead)
            factor = self.constants.seasonal_factors.factor(season)
            forecasts.append(QuarterForecast(
                month=months_ahead,
                season=season,
                usage=round_kwh(record.usage.total_kwh * factor),
                amount=round_currency(record.charges.total_amount * factor),
            ))
        return tuple(forecasts)

    def annual(self, record: BillRecord) -> AnnualForecast:
        estimate = record.charges.total_amount * 12
        return AnnualForecast(
            estimated_total=round_currency(estimate),
            breakdown={part: round_currency(estimate * share) for part, share in ANNUAL_BREAKDOWN.items()},
            confidence=ANNUAL_CONFIDENCE,
        )

    def seasonal(self, record: BillRecord) -> tuple[SeasonalForecast, ...]:
        factors = self.constants.seasonal_factors
        return tuple(
            SeasonalForecast(
                season=season,
                factor=factors.factor(season),
                estimated_amount=round_currency(record.charges.total_amount * factors.factor(season)),
            )
            for season in SEASONS
        )


def predict_bill(record: BillRecord, as_of: Optional[date] = None,
                 constants: AnalysisConstants = DEFAULT_CONSTANTS) -> Prediction:
    return PredictiveAnalyzer(constants).predict(record, as_of=as_of)
