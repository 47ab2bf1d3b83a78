"""
Usage, cost and efficiency patterns for a single bill, plus comparison
against the fixed national/regional/similar-home benchmark table.

Correlations are real Pearson coefficients over whatever series the bill
carries (explicit history, else the year-ago and previous-month snapshots).
With fewer than three points the result says so instead of guessing.
"""

from __future__ import annotations

import math
from datetime import date
from typing import Any, Optional

import pandas as pd

from ..rules.constants import DEFAULT_CONSTANTS, AnalysisConstants
from ..schemas import (
    BillRecord,
    ComparativeResult,
    CorrelationPattern,
    CostPattern,
    EfficiencyPattern,
    Opportunity,
    Pattern,
    SeasonalPattern,
    TrendPattern,
    UsagePattern,
)
from .calculations import (
    percent_change,
    round_currency,
    safe_ratio,
    season_for_month,
    seasonal_factor_for_month,
)

MIN_SERIES_POINTS = 3
DAYS_PER_MONTH = 30
USAGE_CORRELATION_INSIGHT = 0.8
PEAK_CORRELATION_INSIGHT = 0.7
PROJECTION_CONFIDENCE = 0.75


def classify_usage(total_kwh: float) -> str:
    if total_kwh < 600:
        return "low"
    if total_kwh < 1000:
        return "average"
    if total_kwh < 1500:
        return "high"
    return "very_high"


def percentile_bucket(value: float, benchmark: float) -> int:
    ratio = safe_ratio(value, benchmark)
    if ratio < 0.8:
        return 25
    if ratio < 1.0:
        return 50
    if ratio < 1.3:
        return 75
    return 90


def percentile_rank(percentile: float) -> str:
    if percentile <= 25:
        return "excellent"
    if percentile <= 50:
        return "good"
    if percentile <= 75:
        return "average"
    return "needs_improvement"


def _pearson(x: pd.Series, y: pd.Series) -> Optional[float]:
    pair = pd.concat([x, y], axis=1).dropna()
    # Constant or too-short series have no defined coefficient
    if len(pair) < MIN_SERIES_POINTS or (pair.nunique() < 2).any():
        return None
    value = pair.iloc[:, 0].corr(pair.iloc[:, 1])
    if math.isnan(value):
        return None
    return round(abs(float(value)), 4)


class PatternAnalyzer:
    def __init__(self, constants: AnalysisConstants = DEFAULT_CONSTANTS):
        self.constants = constants

    def analyze(self, record: BillRecord, as_of: Optional[date] = None) -> Pattern:
        as_of = as_of or date.today()
        return Pattern(
            usage=self.usage_pattern(record),
            cost=self.cost_pattern(record),
            efficiency=self.efficiency_pattern(record),
            seasonal=self.seasonal_pattern(record, as_of),
            trends=self.trend_pattern(record),
            correlations=self.correlation_pattern(record, as_of),
        )

    # -- single-metric helpers ------------------------------------------------

    def efficiency(self, record: BillRecord) -> float:
        """Cost per kWh; 0 when there is no usage."""
        return safe_ratio(record.charges.total_amount, record.usage.total_kwh)

    def usage_trend(self, record: BillRecord) -> float:
        previous = record.comparisons.previous_month
        return percent_change(record.usage.total_kwh, previous.usage if previous else None)

    def cost_trend(self, record: BillRecord) -> float:
        previous = record.comparisons.previous_month
        return percent_change(record.charges.total_amount, previous.amount if previous else None)

    def efficiency_trend(self, record: BillRecord) -> float:
        previous = record.comparisons.previous_month
        if previous is None:
            return 0.0
        return percent_change(self.efficiency(record), safe_ratio(previous.amount, previous.usage))

    def off_peak_kwh(self, record: BillRecord) -> float:
        if record.usage.off_peak_kwh is not None:
            return record.usage.off_peak_kwh
        return max(record.usage.total_kwh - record.usage.peak_kwh, 0.0)

    # -- pattern sections -----------------------------------------------------

    def usage_pattern(self, record: BillRecord) -> UsagePattern:
        total = record.usage.total_kwh
        peak = record.usage.peak_kwh or 0.0
        peak_share = safe_ratio(peak, total)

        recommendations = []
        if total > 1200:
            recommendations.append("Consider energy audit for high usage")
        if peak_share > 0.4:
            recommendations.append("Shift usage to off-peak hours")

        return UsagePattern(
            total_usage=total,
            peak_ratio=round(peak_share * 100, 2),
            off_peak_ratio=round(safe_ratio(self.off_peak_kwh(record), total) * 100, 2),
            daily_average=round(total / DAYS_PER_MONTH, 2),
            efficiency=round(self.efficiency(record), 4),
            trend=round(self.usage_trend(record), 2),
            classification=classify_usage(total),
            recommendations=recommendations,
        )

    def cost_pattern(self, record: BillRecord) -> CostPattern:
        charges = record.charges
        total = charges.total_amount
        kwh = record.usage.total_kwh

        def share(amount: float) -> float:
            return round(safe_ratio(amount, total) * 100, 2)

        return CostPattern(
            total_cost=total,
            breakdown={
                "energy": share(charges.energy_charges),
                "delivery": share(charges.delivery_charges),
                "base": share(charges.base_charge),
                "fees": share(charges.taxes + charges.fees),
            },
            rate_analysis={
                "averageRate": round(safe_ratio(charges.energy_charges, kwh), 4),
                "peakRate": record.rates.peak_rate,
                "offPeakRate": record.rates.off_peak_rate,
                "effectiveRate": round(safe_ratio(total, kwh), 4),
            },
            cost_efficiency=round(safe_ratio(total, kwh), 4),
            trend=round(self.cost_trend(record), 2),
        )

    def efficiency_pattern(self, record: BillRecord) -> EfficiencyPattern:
        efficiency = self.efficiency(record)
        previous = record.comparisons.previous_month
        trend = efficiency - safe_ratio(previous.amount, previous.usage) if previous else 0.0

        if efficiency > 0.15:
            recommendations = ["High cost per kWh - investigate rate plans", "Check for billing errors"]
        elif efficiency > 0.12:
            recommendations = ["Above average cost - consider efficiency improvements"]
        else:
            recommendations = ["Good efficiency - maintain current practices"]

        return EfficiencyPattern(
            current_efficiency=round(efficiency, 4),
            trend=round(trend, 4),
            benchmarks=self.benchmark_summary(),
            recommendations=recommendations,
            score=self.efficiency_score(record),
            factors=self.efficiency_factors(record),
        )

    def efficiency_score(self, record: BillRecord) -> int:
        """0-100; higher means cheaper per kWh than the national benchmark."""
        national = self.constants.benchmarks.national.cost_per_kwh
        if record.usage.total_kwh <= 0 or national <= 0:
            return 0
        score = (national - self.efficiency(record)) / national * 100
        return int(round(max(0.0, min(100.0, score))))

    def efficiency_factors(self, record: BillRecord) -> list[str]:
        factors = []
        kwh = record.usage.total_kwh
        if safe_ratio(record.usage.peak_kwh, kwh) > 0.4:
            factors.append("high_peak_usage")
        if safe_ratio(record.charges.energy_charges, kwh) > self.constants.benchmarks.national.cost_per_kwh:
            factors.append("high_rate_plan")
        if safe_ratio(record.charges.base_charge, record.charges.total_amount) > 0.3:
            factors.append("high_fixed_costs")
        return factors

    def benchmark_summary(self) -> dict[str, dict[str, float]]:
        return {
            tier: {"usage": b.usage_kwh, "cost": b.cost_per_kwh}
            for tier, b in self.constants.benchmarks.tiers().items()
        }

    def seasonal_pattern(self, record: BillRecord, as_of: date) -> SeasonalPattern:
        season = season_for_month(as_of.month)
        factor = self.constants.seasonal_factors.factor(season)
        actual = record.usage.total_kwh
        expected = safe_ratio(actual, factor)
        return SeasonalPattern(
            current_season=season,
            seasonal_factor=factor,
            expected_usage=round(expected, 2),
            actual_usage=actual,
            variance=round(percent_change(actual, expected), 2),
            weather_impact=self.weather_impact(season),
            historical_comparison=self.historical_comparison(record),
        )

    def weather_impact(self, season: str) -> dict[str, str]:
        temperature = "high" if season in ("summer", "winter") else "low"
        humidity = "high" if season == "summer" else "low"
        if temperature == "high" and humidity == "high":
            overall = "high"
        elif temperature == "high":
            overall = "moderate"
        else:
            overall = "low"
        return {"temperature": temperature, "humidity": humidity, "overall": overall}

    def historical_comparison(self, record: BillRecord) -> dict[str, Any]:
        year_ago = record.comparisons.year_ago
        if year_ago is None or year_ago.usage <= 0:
            return {"vsLastYear": None, "trend": "insufficient_data"}
        change = round(percent_change(record.usage.total_kwh, year_ago.usage), 2)
        if change < 0:
            trend = "improving"
        elif change > 0:
            trend = "worsening"
        else:
            trend = "stable"
        return {"vsLastYear": change, "trend": trend}

    def trend_pattern(self, record: BillRecord) -> TrendPattern:
        usage = self.usage_trend(record)
        cost = self.cost_trend(record)
        efficiency = self.efficiency_trend(record)
        average = (usage + cost + efficiency) / 3

        if average > 5:
            direction = "increasing"
        elif average < -5:
            direction = "decreasing"
        else:
            direction = "stable"

        if abs(average) > 15:
            strength = "strong"
        elif abs(average) > 8:
            strength = "moderate"
        else:
            strength = "weak"

        next_month = record.usage.total_kwh * (1 + usage / 100)
        return TrendPattern(
            usage=round(usage, 2),
            cost=round(cost, 2),
            efficiency=round(efficiency, 2),
            direction=direction,
            strength=strength,
            projection={
                "nextMonth": round(next_month, 2),
                "threeMonths": round(next_month * (1 + usage / 100) ** 3, 2),
                "confidence": PROJECTION_CONFIDENCE,
            },
        )

    # -- correlations ---------------------------------------------------------

    def usage_series(self, record: BillRecord, as_of: date) -> pd.DataFrame:
        """One row per billing period, oldest first, ending with the current bill.

        ``offset`` is months relative to the current bill; ``month`` is the
        calendar month used for the seasonal (weather) factor.
        """
        end = record.billing_period.end_date
        current_month = end.month if end else as_of.month
        rows = []
        if record.history:
            count = len(record.history)
            for i, period in enumerate(record.history):
                offset = i - count
                month = period.period_end.month if period.period_end else current_month + offset
                rows.append((offset, month, period.usage, period.amount, period.peak_kwh))
        else:
            comparisons = record.comparisons
            if comparisons.year_ago is not None:
                rows.append((-12, current_month - 12, comparisons.year_ago.usage, comparisons.year_ago.amount, None))
            if comparisons.previous_month is not None:
                rows.append((-1, current_month - 1, comparisons.previous_month.usage,
                             comparisons.previous_month.amount, None))
        rows.append((0, current_month, record.usage.total_kwh, record.charges.total_amount,
                     record.usage.peak_kwh))

        frame = pd.DataFrame(rows, columns=["offset", "month", "usage", "amount", "peak"])
        frame["peak"] = pd.to_numeric(frame["peak"], errors="coerce")
        frame["seasonal_factor"] = [
            seasonal_factor_for_month(int(m), self.constants.seasonal_factors) for m in frame["month"]
        ]
        return frame

    def correlation_pattern(self, record: BillRecord, as_of: date) -> CorrelationPattern:
        frame = self.usage_series(record, as_of)
        sample_size = len(frame)
        if sample_size < MIN_SERIES_POINTS:
            return CorrelationPattern(
                usage_vs_cost=None,
                peak_vs_total=None,
                weather_vs_usage=None,
                time_vs_usage=None,
                sample_size=sample_size,
                status="insufficient_data",
                insights=["Not enough billing history to measure correlations"],
            )

        result = CorrelationPattern(
            usage_vs_cost=_pearson(frame["usage"], frame["amount"]),
            peak_vs_total=_pearson(frame["peak"], frame["amount"]),
            weather_vs_usage=_pearson(frame["seasonal_factor"], frame["usage"]),
            time_vs_usage=_pearson(frame["offset"].astype(float), frame["usage"]),
            sample_size=sample_size,
            status="ok",
        )
        if result.usage_vs_cost is not None and result.usage_vs_cost > USAGE_CORRELATION_INSIGHT:
            result.insights.append("Strong correlation between usage and cost - rate structure is consistent")
        if result.peak_vs_total is not None and result.peak_vs_total > PEAK_CORRELATION_INSIGHT:
            result.insights.append("Peak usage significantly impacts total cost - time-shifting opportunities exist")
        return result

    # -- comparative mode -----------------------------------------------------

    def compare(self, record: BillRecord, region: str = "national", home_type: str = "average",
                occupancy: str = "average") -> ComparativeResult:
        tiers = self.constants.benchmarks.tiers()
        usage = record.usage.total_kwh
        cost = record.charges.total_amount
        rate = safe_ratio(cost, usage)

        metrics = {
            "usage": {"value": usage},
            "cost": {"value": cost, "rate": round(rate, 4)},
        }
        for tier, benchmark in tiers.items():
            metrics["usage"][f"vs_{tier}"] = round(percent_change(usage, benchmark.usage_kwh), 2)
            metrics["cost"][f"vs_{tier}"] = round(percent_change(rate, benchmark.cost_per_kwh), 2)

        national = tiers["national"]
        usage_percentile = percentile_bucket(usage, national.usage_kwh)
        cost_percentile = percentile_bucket(rate, national.cost_per_kwh)
        overall = (usage_percentile + cost_percentile) / 2
        ranking = {
            "usage": {"percentile": usage_percentile, "rank": percentile_rank(usage_percentile)},
            "cost": {"percentile": cost_percentile, "rank": percentile_rank(cost_percentile)},
            "overall": {"percentile": overall, "rank": percentile_rank(overall)},
        }

        insights = []
        if metrics["usage"]["vs_national"] > 20:
            insights.append("Your usage is significantly higher than national average")
        if metrics["cost"]["vs_similar"] > 15:
            insights.append("Your cost per kWh is higher than similar homes")
        if overall > 75:
            insights.append("Overall energy efficiency needs improvement")

        opportunities = []
        if metrics["usage"]["vs_national"] > 15:
            opportunities.append(Opportunity(
                type="usage_reduction",
                potential="high",
                description="Reduce overall energy consumption",
                savings=round_currency(usage * 0.15 * national.cost_per_kwh),
            ))
        if metrics["cost"]["vs_similar"] > 10:
            opportunities.append(Opportunity(
                type="rate_optimization",
                potential="medium",
                description="Optimize rate plan or supplier",
                savings=round_currency(cost * 0.10),
            ))

        benchmarks = {
            "usage": {tier: b.usage_kwh for tier, b in tiers.items()},
            "cost": {tier: b.cost_per_kwh for tier, b in tiers.items()},
            "efficiency": {tier: b.efficiency for tier, b in tiers.items()},
            "profile": {"region": region, "homeType": home_type, "occupancy": occupancy},
        }
        return ComparativeResult(
            metrics=metrics,
            ranking=ranking,
            insights=insights,
            opportunities=opportunities,
            benchmarks=benchmarks,
        )
