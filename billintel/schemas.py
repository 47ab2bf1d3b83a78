from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from typing import Any, Mapping, Optional


@dataclass
class AccountInfo:
    account_number: str = ""
    customer_name: str = ""
    service_address: str = ""
    billing_address: str = ""


@dataclass
class BillingPeriod:
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days_in_period: int = 30


@dataclass
class Charges:
    total_amount: float = 0.0
    base_charge: float = 0.0
    energy_charges: float = 0.0
    delivery_charges: float = 0.0
    taxes: float = 0.0
    fees: float = 0.0
    adjustments: float = 0.0

    @property
    def components_total(self) -> float:
        return (self.base_charge + self.energy_charges + self.delivery_charges
                + self.taxes + self.fees + self.adjustments)


@dataclass
class Usage:
    total_kwh: float = 0.0
    peak_kwh: float = 0.0
    off_peak_kwh: Optional[float] = None  # derived as total - peak when absent
    demand_kw: float = 0.0


@dataclass
class Rates:
    energy_rate: float = 0.0  # currency/kWh
    peak_rate: float = 0.0
    off_peak_rate: float = 0.0
    demand_rate: float = 0.0  # currency/kW


@dataclass
class UsageSnapshot:
    usage: float = 0.0  # kWh
    amount: float = 0.0


@dataclass
class Comparisons:
    previous_month: Optional[UsageSnapshot] = None
    year_ago: Optional[UsageSnapshot] = None


@dataclass
class PeriodSnapshot:
    """One earlier billing period, oldest first when held in a series."""
    usage: float
    amount: float
    peak_kwh: Optional[float] = None
    period_end: Optional[date] = None


@dataclass
class BillRecord:
    account_info: AccountInfo = field(default_factory=AccountInfo)
    billing_period: BillingPeriod = field(default_factory=BillingPeriod)
    charges: Charges = field(default_factory=Charges)
    usage: Usage = field(default_factory=Usage)
    rates: Rates = field(default_factory=Rates)
    comparisons: Comparisons = field(default_factory=Comparisons)
    confidence: float = 0.5  # 0.1-1.0, extraction trust
    validation_warnings: list[str] = field(default_factory=list)
    defaulted_fields: tuple[str, ...] = ()  # dotted paths filled from reference defaults
    synthetic: bool = False
    history: tuple[PeriodSnapshot, ...] = ()


@dataclass(frozen=True)
class Anomaly:
    type: str  # usage_anomaly, cost_anomaly, peak_usage_anomaly
    severity: str  # mild, moderate, severe
    title: str
    description: str
    impact: float  # % magnitude
    recommendations: tuple[str, ...] = ()


@dataclass(frozen=True)
class NextMonthForecast:
    usage: int
    amount: float
    confidence: float
    factors: tuple[str, ...] = ()


@dataclass(frozen=True)
class QuarterForecast:
    month: int  # months ahead, 1-3
    season: str
    usage: int
    amount: float


@dataclass(frozen=True)
class AnnualForecast:
    estimated_total: float
    breakdown: Mapping[str, float]
    confidence: float


@dataclass(frozen=True)
class SeasonalForecast:
    season: str
    factor: float
    estimated_amount: float


@dataclass(frozen=True)
class Prediction:
    next_month: NextMonthForecast
    quarterly: tuple[QuarterForecast, ...]
    annual: AnnualForecast
    seasonal: tuple[SeasonalForecast, ...]


@dataclass
class UsagePattern:
    total_usage: float
    peak_ratio: float  # %
    off_peak_ratio: float  # %
    daily_average: float
    efficiency: float  # currency/kWh
    trend: float  # % vs previous month
    classification: str  # low, average, high, very_high
    recommendations: list[str] = field(default_factory=list)


@dataclass
class CostPattern:
    total_cost: float
    breakdown: dict[str, float]
    rate_analysis: dict[str, float]
    cost_efficiency: float
    trend: float


@dataclass
class EfficiencyPattern:
    current_efficiency: float
    trend: float
    benchmarks: dict[str, dict[str, float]]
    recommendations: list[str]
    score: int  # 0-100, higher is cheaper than benchmark
    factors: list[str]


@dataclass
class SeasonalPattern:
    current_season: str
    seasonal_factor: float
    expected_usage: float
    actual_usage: float
    variance: float  # %
    weather_impact: dict[str, str]
    historical_comparison: dict[str, Any]


@dataclass
class TrendPattern:
    usage: float
    cost: float
    efficiency: float
    direction: str  # increasing, decreasing, stable
    strength: str  # strong, moderate, weak
    projection: dict[str, float]


@dataclass
class CorrelationPattern:
    usage_vs_cost: Optional[float]
    peak_vs_total: Optional[float]
    weather_vs_usage: Optional[float]
    time_vs_usage: Optional[float]
    sample_size: int
    status: str  # ok, insufficient_data
    insights: list[str] = field(default_factory=list)


@dataclass
class Pattern:
    usage: UsagePattern
    cost: CostPattern
    efficiency: EfficiencyPattern
    seasonal: SeasonalPattern
    trends: TrendPattern
    correlations: CorrelationPattern


@dataclass
class Opportunity:
    type: str  # usage_reduction, rate_optimization
    potential: str
    description: str
    savings: float


@dataclass
class ComparativeResult:
    metrics: dict[str, dict[str, float]]
    ranking: dict[str, dict[str, Any]]
    insights: list[str]
    opportunities: list[Opportunity]
    benchmarks: dict[str, Any]


@dataclass
class Recommendation:
    title: str
    description: str
    category: str
    priority: str  # high, medium, low
    savings: float
    actions: list[str]
    timeline: str
    impact: str = "medium"


@dataclass
class RecommendationBuckets:
    immediate: list[Recommendation] = field(default_factory=list)
    short_term: list[Recommendation] = field(default_factory=list)
    long_term: list[Recommendation] = field(default_factory=list)

    def all(self) -> list[Recommendation]:
        return [*self.immediate, *self.short_term, *self.long_term]


@dataclass
class PlanAction:
    title: str
    description: str
    cost: float
    savings: float
    timeframe: str


@dataclass
class PlanRisk:
    type: str  # budget, technology
    level: str
    description: str
    mitigation: str


@dataclass
class PlanPhase:
    name: str
    duration: str
    actions: list[PlanAction]
    priority: str


@dataclass
class OptimizationPlan:
    immediate: list[PlanAction]
    long_term: list[PlanAction]
    savings: dict[str, Any]
    implementation: dict[str, Any]
    prioritization: dict[str, list[PlanAction]]
    risks: list[PlanRisk]


@dataclass
class BillReport:
    record: BillRecord
    anomalies: list[Anomaly]
    predictions: Prediction
    patterns: Pattern
    recommendations: RecommendationBuckets

    @property
    def confidence(self) -> float:
        return self.record.confidence


@dataclass
class DocumentResult:
    filename: str
    success: bool
    report: Optional[BillReport] = None
    error: Optional[str] = None

    def to_payload(self) -> dict:
        if not self.success or self.report is None:
            return {"filename": self.filename, "success": False, "error": self.error}
        report = self.report
        return {
            "filename": self.filename,
            "success": True,
            "data": to_payload(report.record),
            "anomalies": to_payload(report.anomalies),
            "predictions": to_payload(report.predictions),
            "recommendations": to_payload(report.recommendations),
            "patterns": to_payload(report.patterns),
            "confidence": report.confidence,
        }


@dataclass
class BatchReport:
    results: list[DocumentResult]
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def total_files(self) -> int:
        return len(self.results)

    @property
    def successful_files(self) -> int:
        return sum(1 for r in self.results if r.success)

    def to_payload(self) -> dict:
        return {
            "success": True,
            "results": [r.to_payload() for r in self.results],
            "totalFiles": self.total_files,
            "successfulFiles": self.successful_files,
            "timestamp": self.timestamp,
        }


def camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def to_payload(obj: Any) -> Any:
    """Render an artifact as JSON-ready data with camelCase field names.

    Dataclass attributes are camelCased; keys of plain dicts are kept as written.
    """
    if hasattr(obj, "to_payload"):
        return obj.to_payload()
    if is_dataclass(obj) and not isinstance(obj, type):
        return {camel_case(f.name): to_payload(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, Mapping):
        return {k: to_payload(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_payload(v) for v in obj]
    if isinstance(obj, date):
        return obj.isoformat()
    return obj
