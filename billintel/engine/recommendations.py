"""
Recommendation synthesis.

Merges anomaly, forecast and pattern output into immediate / short-term /
long-term action buckets, and builds phased optimization plans with ROI-based
prioritization and a short risk list.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from ..rules.constants import DEFAULT_CONSTANTS, PRIORITY_ORDER, AnalysisConstants
from ..schemas import (
    Anomaly,
    BillRecord,
    OptimizationPlan,
    Pattern,
    PlanAction,
    PlanPhase,
    PlanRisk,
    Prediction,
    Recommendation,
    RecommendationBuckets,
)
from ..scoring import filter_feasible, prioritize_actions
from .calculations import round_currency, safe_ratio

logger = logging.getLogger(__name__)

SEVERITY_PRIORITY = {"severe": "high", "moderate": "medium", "mild": "low"}

AUDIT_USAGE_KWH = 1000
SCHEDULING_PEAK_RATIO = 35.0
BUDGET_INCREASE_RATIO = 1.1
HIGH_SEASON_FACTOR = 1.2

PHASE_TWO_MAX_COST = 500
BUDGET_RISK_COST = 1000
TECHNOLOGY_RISK_COUNT = 2

# (title, description, cost, share of current bill saved, timeframe)
NO_COST_ACTIONS = (
    ("Adjust Thermostat Settings", "Optimize heating/cooling schedules", 0, 0.05, "1 day"),
    ("Unplug Unused Devices", "Eliminate phantom power consumption", 0, 0.03, "1 day"),
)
SMART_DEVICE_ACTIONS = (
    ("Smart Plug Automation", "Cut standby load with scheduled smart plugs", 50, 0.04, "1 week"),
    ("Smart Thermostat Installation", "Learn occupancy and trim heating/cooling runtime", 250, 0.12, "2 weeks"),
    ("Smart Lighting Controls", "Occupancy sensors and schedules for lighting", 300, 0.05, "1 month"),
)
UPGRADE_ACTIONS = (
    # (min budget, ...) budget must exceed the first element
    (500, "LED Lighting Conversion", "Replace all incandescent bulbs with LED", 200, 0.08, "1 month"),
    (2000, "Energy-Efficient Appliances", "Upgrade to ENERGY STAR appliances", 2000, 0.20, "6 months"),
)


def sort_recommendations(recommendations: list[Recommendation]) -> list[Recommendation]:
    return sorted(recommendations, key=lambda r: (-PRIORITY_ORDER[r.priority], -r.savings))


class RecommendationSynthesizer:
    def __init__(self, constants: AnalysisConstants = DEFAULT_CONSTANTS):
        self.constants = constants

    def synthesize(
        self,
        record: BillRecord,
        anomalies: list[Anomaly],
        predictions: Optional[Prediction],
        patterns: Optional[Pattern] = None,
    ) -> RecommendationBuckets:
        buckets = RecommendationBuckets()
        buckets.immediate.extend(self.anomaly_recommendations(anomalies or []))
        buckets.short_term.extend(self.usage_recommendations(record, patterns))
        buckets.long_term.extend(self.cost_optimization_recommendations(record))
        if predictions is not None:
            buckets.short_term.extend(self.predictive_recommendations(record, predictions))
        return RecommendationBuckets(
            immediate=sort_recommendations(buckets.immediate),
            short_term=sort_recommendations(buckets.short_term),
            long_term=sort_recommendations(buckets.long_term),
        )

    def anomaly_recommendations(self, anomalies: list[Anomaly]) -> list[Recommendation]:
        savings = self.constants.severity_savings
        return [
            Recommendation(
                title=f"Address {anomaly.title}",
                description=f"Immediate attention needed: {anomaly.description}",
                category="anomaly_response",
                priority=SEVERITY_PRIORITY[anomaly.severity],
                savings=round_currency(anomaly.impact * savings.for_severity(anomaly.severity)),
                actions=list(anomaly.recommendations),
                timeline="1-7 days",
                impact="high",
            )
            for anomaly in anomalies
        ]

    def usage_recommendations(self, record: BillRecord, patterns: Optional[Pattern] = None) -> list[Recommendation]:
        total_cost = record.charges.total_amount
        recommendations = []

        if record.usage.total_kwh > AUDIT_USAGE_KWH:
            recommendations.append(Recommendation(
                title="Energy Efficiency Audit",
                description="Schedule professional energy audit to identify inefficiencies",
                category="efficiency",
                priority="high",
                savings=round_currency(total_cost * 0.20),
                actions=[
                    "Schedule professional energy audit",
                    "Identify major inefficiencies",
                    "Implement recommended fixes",
                    "Monitor improvements",
                ],
                timeline="2-4 weeks",
                impact="high",
            ))

        if patterns is not None:
            peak_ratio = patterns.usage.peak_ratio
        else:
            peak_ratio = safe_ratio(record.usage.peak_kwh * 100, record.usage.total_kwh)
        if peak_ratio > SCHEDULING_PEAK_RATIO:
            recommendations.append(Recommendation(
                title="Peak Usage Optimization",
                description="Reduce peak-hour consumption to lower costs",
                category="scheduling",
                priority="medium",
                savings=round_currency(total_cost * 0.15),
                actions=[
                    "Shift appliance usage to off-peak hours",
                    "Install programmable timers",
                    "Use smart home automation",
                    "Monitor peak usage patterns",
                ],
                timeline="1-2 weeks",
                impact="medium",
            ))

        recommendations.append(Recommendation(
            title="Smart Thermostat Installation",
            description="Install programmable thermostat for optimal temperature control",
            category="equipment",
            priority="medium",
            savings=round_currency(total_cost * 0.12),
            actions=[
                "Research smart thermostat options",
                "Professional installation",
                "Configure optimal schedules",
                "Monitor energy savings",
            ],
            timeline="1-3 weeks",
            impact="medium",
        ))
        return recommendations

    def cost_optimization_recommendations(self, record: BillRecord) -> list[Recommendation]:
        total_cost = record.charges.total_amount
        return [
            Recommendation(
                title="Rate Plan Analysis",
                description="Analyze current rate plan and compare with alternatives",
                category="rate_optimization",
                priority="medium",
                savings=round_currency(total_cost * 0.10),
                actions=[
                    "Review current rate plan details",
                    "Compare with available alternatives",
                    "Calculate potential savings",
                    "Switch to optimal plan if beneficial",
                ],
                timeline="1-2 months",
                impact="medium",
            ),
            Recommendation(
                title="Appliance Efficiency Review",
                description="Evaluate and upgrade inefficient appliances",
                category="equipment",
                priority="low",
                savings=round_currency(total_cost * 0.08),
                actions=[
                    "Audit current appliances",
                    "Identify energy-hungry devices",
                    "Research efficient replacements",
                    "Plan staged upgrades",
                ],
                timeline="3-12 months",
                impact="low",
            ),
            Recommendation(
                title="Home Insulation Assessment",
                description="Improve insulation to reduce heating/cooling costs",
                category="insulation",
                priority="low",
                savings=round_currency(total_cost * 0.15),
                actions=[
                    "Professional insulation audit",
                    "Identify improvement areas",
                    "Get quotes for upgrades",
                    "Implement improvements",
                ],
                timeline="2-6 months",
                impact="high",
            ),
        ]

    def predictive_recommendations(self, record: BillRecord, predictions: Prediction) -> list[Recommendation]:
        recommendations = []
        forecast = predictions.next_month

        # Forecast is compared with the current bill, not with itself
        if forecast.amount > record.charges.total_amount * BUDGET_INCREASE_RATIO:
            recommendations.append(Recommendation(
                title="Prepare for Higher Bills",
                description="Next month's bill is predicted to be higher than usual",
                category="budgeting",
                priority="medium",
                savings=0.0,
                actions=[
                    "Adjust monthly budget",
                    "Reduce discretionary usage",
                    "Monitor daily consumption",
                    "Implement immediate savings measures",
                ],
                timeline="This month",
                impact="medium",
            ))

        high_seasons = [s.season for s in predictions.seasonal if s.factor > HIGH_SEASON_FACTOR]
        if high_seasons:
            recommendations.append(Recommendation(
                title="Seasonal Usage Preparation",
                description=f"Prepare for higher usage during {', '.join(high_seasons)}",
                category="seasonal_planning",
                priority="low",
                savings=round_currency(forecast.amount * 0.1),
                actions=[
                    "Plan seasonal energy strategies",
                    "Schedule equipment maintenance",
                    "Adjust budget for high-usage seasons",
                    "Implement preventive measures",
                ],
                timeline="1-3 months",
                impact="medium",
            ))
        return recommendations

    # -- optimization plan ----------------------------------------------------

    def optimization_plan(
        self,
        record: BillRecord,
        preferences: Optional[Mapping] = None,
        constraints: Optional[Mapping] = None,
    ) -> OptimizationPlan:
        preferences = preferences or {}
        constraints = constraints or {}
        current_cost = record.charges.total_amount

        immediate = self.immediate_actions(record)
        long_term = self.long_term_strategy(record, preferences, constraints)
        plan = OptimizationPlan(
            immediate=immediate,
            long_term=long_term,
            savings=self.total_savings(immediate, long_term, current_cost),
            implementation=self.implementation_plan(immediate, long_term),
            prioritization=prioritize_actions(immediate + long_term),
            risks=[],
        )
        plan.risks = self.assess_risks(immediate + long_term)
        logger.debug("optimization plan: %d actions, %d risks",
                     plan.implementation["totalActions"], len(plan.risks))
        return plan

    def immediate_actions(self, record: BillRecord) -> list[PlanAction]:
        total_cost = record.charges.total_amount
        return [
            PlanAction(title=title, description=description, cost=cost,
                       savings=round_currency(total_cost * share), timeframe=timeframe)
            for title, description, cost, share, timeframe in NO_COST_ACTIONS
        ]

    def long_term_strategy(self, record: BillRecord, preferences: Mapping, constraints: Mapping) -> list[PlanAction]:
        total_cost = record.charges.total_amount
        budget = constraints.get("budget")
        strategy = []

        for min_budget, title, description, cost, share, timeframe in UPGRADE_ACTIONS:
            if not budget or budget > min_budget:
                strategy.append(PlanAction(title=title, description=description, cost=cost,
                                           savings=round_currency(total_cost * share), timeframe=timeframe))

        if preferences.get("smart_devices"):
            smart = [
                PlanAction(title=title, description=description, cost=cost,
                           savings=round_currency(total_cost * share), timeframe=timeframe)
                for title, description, cost, share, timeframe in SMART_DEVICE_ACTIONS
            ]
            strategy.extend(filter_feasible(smart, budget))
        return strategy

    def total_savings(self, immediate: list[PlanAction], long_term: list[PlanAction], current_cost: float) -> dict:
        immediate_savings = round_currency(sum(a.savings for a in immediate))
        long_term_savings = round_currency(sum(a.savings for a in long_term))
        total = round_currency(immediate_savings + long_term_savings)
        return {
            "total": total,
            "breakdown": {
                "immediate": immediate_savings,
                "longTerm": long_term_savings,
                "percentage": round(safe_ratio(total, current_cost) * 100, 2),
            },
        }

    def implementation_plan(self, immediate: list[PlanAction], long_term: list[PlanAction]) -> dict:
        phases = [
            PlanPhase(name="Phase 1: Immediate Actions", duration="1 week",
                      actions=list(immediate), priority="high"),
            PlanPhase(name="Phase 2: Short-term Improvements", duration="1-3 months",
                      actions=[a for a in long_term if a.cost < PHASE_TWO_MAX_COST], priority="medium"),
            PlanPhase(name="Phase 3: Long-term Investments", duration="3-12 months",
                      actions=[a for a in long_term if a.cost >= PHASE_TWO_MAX_COST], priority="low"),
        ]
        return {
            "phases": phases,
            "timeline": "12 months",
            "totalActions": len(immediate) + len(long_term),
        }

    def assess_risks(self, actions: list[PlanAction]) -> list[PlanRisk]:
        risks = []
        if sum(a.cost for a in actions) > BUDGET_RISK_COST:
            risks.append(PlanRisk(
                type="budget",
                level="medium",
                description="High upfront investment required",
                mitigation="Consider phased implementation",
            ))
        tech_actions = [a for a in actions if "smart" in a.title.lower() or "technology" in a.title.lower()]
        if len(tech_actions) > TECHNOLOGY_RISK_COUNT:
            risks.append(PlanRisk(
                type="technology",
                level="low",
                description="Multiple technology implementations",
                mitigation="Ensure proper training and support",
            ))
        return risks
