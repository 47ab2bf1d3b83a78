from .schemas import PlanAction

HIGH_ROI = 0.5
MEDIUM_ROI = 0.2


def _roi(action: PlanAction) -> float:
    return action.savings / (action.cost or 1.0)  # no-cost actions divide by 1


def compute_roi(action: PlanAction) -> float:
    return round(_roi(action), 3)


def priority_for(action: PlanAction) -> str:
    # Tiers compare the exact ratio; rounding is for display only
    roi = _roi(action)
    if roi > HIGH_ROI or action.cost == 0:
        return "high"
    if roi > MEDIUM_ROI:
        return "medium"
    return "low"


def rank_actions(actions: list[PlanAction]) -> list[PlanAction]:
    scored = [(compute_roi(a), a) for a in actions]
    scored.sort(key=lambda x: x[0], reverse=True)
    return [a for _, a in scored]


def prioritize_actions(actions: list[PlanAction]) -> dict[str, list[PlanAction]]:
    buckets: dict[str, list[PlanAction]] = {"high": [], "medium": [], "low": []}
    for action in rank_actions(actions):
        buckets[priority_for(action)].append(action)
    return buckets


def filter_feasible(actions: list[PlanAction], budget=None) -> list[PlanAction]:
    # Drop actions that save nothing or cost more than the budget allows
    return [a for a in actions if a.savings > 0 and (not budget or a.cost <= budget)]
