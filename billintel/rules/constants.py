# Reference tables and thresholds for bill analysis.
# Built once at import time and shared read-only by every analyzer.

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

SEASONS = ("winter", "spring", "summer", "fall")
SEVERITY_ORDER = MappingProxyType({"severe": 3, "moderate": 2, "mild": 1})
PRIORITY_ORDER = MappingProxyType({"high": 3, "medium": 2, "low": 1})


@dataclass(frozen=True)
class SeverityThresholds:
    mild: float
    moderate: float
    severe: float

    def classify(self, magnitude: float) -> Optional[str]:
        """Severity tier for an absolute percentage change, None below the mild gate."""
        if magnitude > self.severe:
            return "severe"
        if magnitude > self.moderate:
            return "moderate"
        if magnitude > self.mild:
            return "mild"
        return None


@dataclass(frozen=True)
class SeasonalFactors:
    winter: float = 1.3
    spring: float = 0.9
    summer: float = 1.4
    fall: float = 1.0

    def factor(self, season: str) -> float:
        return getattr(self, season, 1.0)

    def items(self) -> list[tuple[str, float]]:
        return [(season, self.factor(season)) for season in SEASONS]


@dataclass(frozen=True)
class Benchmark:
    usage_kwh: float  # monthly kWh
    cost_per_kwh: float  # currency/kWh
    efficiency: float  # 0-100 score


@dataclass(frozen=True)
class BenchmarkTable:
    national: Benchmark = Benchmark(877, 0.13, 85)
    regional: Benchmark = Benchmark(950, 0.12, 82)
    similar: Benchmark = Benchmark(820, 0.11, 88)

    def tiers(self) -> dict[str, Benchmark]:
        return {"national": self.national, "regional": self.regional, "similar": self.similar}


@dataclass(frozen=True)
class SeveritySavings:
    # Share of an anomaly's impact counted as recoverable savings
    severe: float = 0.25
    moderate: float = 0.15
    mild: float = 0.05

    def for_severity(self, severity: str) -> float:
        return getattr(self, severity, 0.1)


def _frozen(value):
    if isinstance(value, Mapping):
        return MappingProxyType({k: _frozen(v) for k, v in value.items()})
    return value


# Demo bill used to fill whatever the extraction step could not recover.
# Sub-charges sum to the total so the defaults alone raise no warning.
REFERENCE_BILL = _frozen({
    "accountInfo": {
        "accountNumber": "****-****-1234",
        "customerName": "John Doe",
        "serviceAddress": "123 Main Street, City, State 12345",
        "billingAddress": "123 Main Street, City, State 12345",
    },
    "billingPeriod": {
        "startDate": "2024-01-15",
        "endDate": "2024-02-14",
        "daysInPeriod": 30,
    },
    "charges": {
        "totalAmount": 190.00,
        "baseCharge": 24.99,
        "energyCharges": 137.31,
        "deliveryCharges": 15.75,
        "taxes": 8.45,
        "fees": 3.50,
        "adjustments": 0.0,
    },
    "usage": {
        "totalKwh": 847.0,
        "peakKwh": 296.0,
        "offPeakKwh": 551.0,
        "demandKw": 8.5,
    },
    "rates": {
        "energyRate": 0.12,
        "peakRate": 0.18,
        "offPeakRate": 0.09,
        "demandRate": 12.50,
    },
    # No baseline is invented: trends stay neutral until a real one is supplied
    "comparisons": {},
})


@dataclass(frozen=True)
class AnalysisConstants:
    usage_thresholds: SeverityThresholds = SeverityThresholds(15, 25, 40)
    cost_thresholds: SeverityThresholds = SeverityThresholds(20, 35, 50)
    peak_anomaly_ratio: float = 40.0  # % of total kWh
    peak_severe_ratio: float = 50.0
    seasonal_factors: SeasonalFactors = SeasonalFactors()
    benchmarks: BenchmarkTable = BenchmarkTable()
    severity_savings: SeveritySavings = SeveritySavings()
    charge_tolerance: float = 5.0  # currency units
    usage_tolerance_kwh: float = 5.0
    default_trend: float = 0.02  # assumed month-on-month growth without a baseline
    reference_bill: Mapping = field(default_factory=lambda: REFERENCE_BILL, compare=False, hash=False)


DEFAULT_CONSTANTS = AnalysisConstants()
