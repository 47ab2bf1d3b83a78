from __future__ import annotations

from ..rules.constants import DEFAULT_CONSTANTS, SEVERITY_ORDER, AnalysisConstants
from ..schemas import Anomaly, BillRecord
from .calculations import percent_change, safe_ratio

USAGE_INCREASE_ACTIONS = (
    "Check for malfunctioning appliances",
    "Review HVAC system efficiency",
    "Monitor daily usage patterns",
    "Consider energy audit",
)
USAGE_DECREASE_ACTIONS = (
    "Great job on reducing consumption!",
    "Continue current practices",
    "Monitor for any service issues",
)
COST_INCREASE_ACTIONS = (
    "Review rate changes",
    "Analyze usage patterns",
    "Check for billing errors",
    "Consider dispute if necessary",
)
COST_DECREASE_ACTIONS = (
    "Excellent cost management!",
    "Review what caused the decrease",
    "Apply successful strategies consistently",
)
PEAK_ACTIONS = (
    "Shift appliance usage to off-peak hours",
    "Use programmable timers",
    "Consider time-of-use rate plans",
    "Optimize heating/cooling schedules",
)


class AnomalyDetector:
    """Flags month-on-month usage/cost swings and peak-heavy consumption."""

    def __init__(self, constants: AnalysisConstants = DEFAULT_CONSTANTS):
        self.constants = constants

    def detect(self, record: BillRecord) -> list[Anomaly]:
        anomalies: list[Anomaly] = []
        anomalies.extend(self.usage_anomalies(record))
        anomalies.extend(self.cost_anomalies(record))
        anomalies.extend(self.peak_anomalies(record))
        # sorted() is stable, so equal severities keep detection order
        return sorted(anomalies, key=lambda a: SEVERITY_ORDER[a.severity], reverse=True)

    def usage_anomalies(self, record: BillRecord) -> list[Anomaly]:
        current = record.usage.total_kwh
        if current <= 0:
            return []
        previous = record.comparisons.previous_month
        change = percent_change(current, previous.usage if previous else None)
        severity = self.constants.usage_thresholds.classify(abs(change))
        if severity is None:
            return []
        increased = change > 0
        return [Anomaly(
            type="usage_anomaly",
            severity=severity,
            title=f"{'Increased' if increased else 'Decreased'} Usage Pattern",
            description=f"Energy usage {'increased' if increased else 'decreased'} by {abs(change):.1f}%",
            impact=abs(change),
            recommendations=USAGE_INCREASE_ACTIONS if increased else USAGE_DECREASE_ACTIONS,
        )]

    def cost_anomalies(self, record: BillRecord) -> list[Anomaly]:
        current = record.charges.total_amount
        previous = record.comparisons.previous_month
        change = percent_change(current, previous.amount if previous else None)
        severity = self.constants.cost_thresholds.classify(abs(change))
        if severity is None:
            return []
        increased = change > 0
        return [Anomaly(
            type="cost_anomaly",
            severity=severity,
            title=f"{'Higher' if increased else 'Lower'} Bill Amount",
            description=f"Total bill {'increased' if increased else 'decreased'} by {abs(change):.1f}%",
            impact=abs(change),
            recommendations=COST_INCREASE_ACTIONS if increased else COST_DECREASE_ACTIONS,
        )]

    def peak_anomalies(self, record: BillRecord) -> list[Anomaly]:
        peak_ratio = safe_ratio(record.usage.peak_kwh * 100, record.usage.total_kwh)
        if peak_ratio <= self.constants.peak_anomaly_ratio:
            return []
        return [Anomaly(
            type="peak_usage_anomaly",
            severity="severe" if peak_ratio >= self.constants.peak_severe_ratio else "moderate",
            title="High Peak Usage Pattern",
            description=f"Peak usage represents {peak_ratio:.1f}% of total consumption",
            impact=peak_ratio,
            recommendations=PEAK_ACTIONS,
        )]


def detect_anomalies(record: BillRecord, constants: AnalysisConstants = DEFAULT_CONSTANTS) -> list[Anomaly]:
    return AnomalyDetector(constants).detect(record)
