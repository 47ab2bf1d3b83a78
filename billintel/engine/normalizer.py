"""
Bill normalization.

Turns whatever the extraction step recovered into a complete BillRecord:
missing fields are deep-merged from the reference bill, the energy rate and
period length are derived, internal consistency is checked and an extraction
confidence score is attached. Nothing here raises on bad data; gaps are filled
and the confidence reflects them.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Mapping, Optional, Union

from ..rules.constants import DEFAULT_CONSTANTS, AnalysisConstants
from ..schemas import (
    AccountInfo,
    BillingPeriod,
    BillRecord,
    Charges,
    Comparisons,
    PeriodSnapshot,
    Rates,
    Usage,
    UsageSnapshot,
    camel_case,
    to_payload,
)
from .calculations import (
    confidence_score,
    days_in_period,
    derive_unit_rate,
    parse_amount,
    parse_date,
)

logger = logging.getLogger(__name__)

_SECTIONS = ("accountInfo", "billingPeriod", "charges", "usage", "rates", "comparisons")
_CHARGE_FIELDS = ("baseCharge", "energyCharges", "deliveryCharges", "taxes", "fees", "adjustments")
_CONFIDENCE_FIELDS = (
    "accountInfo.accountNumber",
    "charges.totalAmount",
    "usage.totalKwh",
    "billingPeriod.startDate",
)

CHARGES_DISCREPANCY = "total amount calculation discrepancy"
USAGE_DISCREPANCY = "usage breakdown discrepancy"
PERIOD_REVERSED = "billing period end precedes start"


def _deep_merge(base: dict, override: Mapping) -> dict:
    """Recursively merge override into base (override wins)."""
    out = dict(base)
    for k, v in override.items():
        if isinstance(v, Mapping) and isinstance(out.get(k), Mapping):
            out[k] = _deep_merge(dict(out[k]), v)
        else:
            out[k] = v
    return out


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    return value


def _camelize_keys(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {camel_case(str(k)): _camelize_keys(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_camelize_keys(v) for v in value]
    return value


def _prune_nulls(value: Any) -> Any:
    # Extraction reports unknown fields as null; those inherit the default
    if isinstance(value, Mapping):
        out = {}
        for k, v in value.items():
            v = _prune_nulls(v)
            if v is None or (isinstance(v, str) and not v.strip()):
                continue
            out[k] = v
        return out
    return value


def _leaf_paths(value: Mapping, prefix: str = "") -> set[str]:
    paths = set()
    for k, v in value.items():
        path = f"{prefix}{k}"
        if isinstance(v, Mapping):
            paths |= _leaf_paths(v, path + ".")
        else:
            paths.add(path)
    return paths


def _snapshot(value: Any) -> Optional[UsageSnapshot]:
    if not isinstance(value, Mapping):
        return None
    usage = parse_amount(value.get("usage"))
    amount = parse_amount(value.get("amount"))
    if usage is None and amount is None:
        return None
    return UsageSnapshot(usage=usage or 0.0, amount=amount or 0.0)


def _history(value: Any) -> tuple[PeriodSnapshot, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    periods = []
    for item in value:
        if isinstance(item, PeriodSnapshot):
            periods.append(item)
            continue
        if not isinstance(item, Mapping):
            continue
        usage = parse_amount(item.get("usage"))
        amount = parse_amount(item.get("amount"))
        if usage is None or amount is None:
            continue
        periods.append(PeriodSnapshot(
            usage=usage,
            amount=amount,
            peak_kwh=parse_amount(item.get("peakKwh")),
            period_end=parse_date(item.get("periodEnd")),
        ))
    return tuple(periods)


class _MergeState:
    """Tracks which leaf values came from the input and which from the reference bill."""

    def __init__(self, merged: dict, reference: Mapping, supplied: set[str]):
        self.merged = merged
        self.reference = reference
        self.supplied = supplied
        self.defaulted = _leaf_paths(reference) - supplied

    def is_supplied(self, path: str) -> bool:
        return path in self.supplied

    def _raw(self, source: Mapping, path: str) -> Any:
        section, key = path.split(".", 1)
        return (source.get(section) or {}).get(key)

    def number(self, path: str) -> float:
        value = parse_amount(self._raw(self.merged, path))
        if value is None:
            value = parse_amount(self._raw(self.reference, path)) or 0.0
            self.fall_back(path)
        return value

    def text(self, path: str) -> str:
        return str(self._raw(self.merged, path) or "").strip()

    def date(self, path: str):
        value = parse_date(self._raw(self.merged, path))
        if value is None:
            value = parse_date(self._raw(self.reference, path))
            self.fall_back(path)
        return value

    def fall_back(self, path: str) -> None:
        self.supplied.discard(path)
        self.defaulted.add(path)

    def derived(self, path: str) -> None:
        self.defaulted.discard(path)


class BillNormalizer:
    def __init__(self, constants: AnalysisConstants = DEFAULT_CONSTANTS):
        self.constants = constants

    def normalize(self, partial: Union[Mapping, BillRecord, None], synthetic: bool = False) -> BillRecord:
        """Return a fully populated BillRecord; normalizing a BillRecord again is a no-op."""
        previously_defaulted: set[str] = set()
        if isinstance(partial, BillRecord):
            previously_defaulted = set(partial.defaulted_fields)
            synthetic = synthetic or partial.synthetic
            raw = to_payload(partial)
        else:
            raw = _camelize_keys(partial or {})
            synthetic = synthetic or bool(raw.get("synthetic"))

        history = _history(raw.get("history"))
        raw = _prune_nulls({k: v for k, v in raw.items() if k in _SECTIONS and isinstance(v, Mapping)})

        reference = _thaw(self.constants.reference_bill)
        state = _MergeState(
            merged=_deep_merge(reference, raw),
            reference=reference,
            supplied=_leaf_paths(raw) - previously_defaulted,
        )
        warnings: list[str] = []

        account = AccountInfo(
            account_number=state.text("accountInfo.accountNumber"),
            customer_name=state.text("accountInfo.customerName"),
            service_address=state.text("accountInfo.serviceAddress"),
            billing_address=state.text("accountInfo.billingAddress"),
        )
        period = self._billing_period(state, warnings)
        charges = self._charges(state, warnings)
        usage = self._usage(state, warnings)
        rates = self._rates(state, charges, usage)
        comparisons = Comparisons(
            previous_month=_snapshot((state.merged.get("comparisons") or {}).get("previousMonth")),
            year_ago=_snapshot((state.merged.get("comparisons") or {}).get("yearAgo")),
        )

        for warning in warnings:
            logger.debug("bill %s: %s", account.account_number or "<unknown>", warning)

        confidence = confidence_score(
            {path: state.is_supplied(path) for path in _CONFIDENCE_FIELDS},
            synthetic=synthetic,
            has_warnings=bool(warnings),
        )
        return BillRecord(
            account_info=account,
            billing_period=period,
            charges=charges,
            usage=usage,
            rates=rates,
            comparisons=comparisons,
            confidence=confidence,
            validation_warnings=warnings,
            defaulted_fields=tuple(sorted(state.defaulted)),
            synthetic=synthetic,
            history=history,
        )

    def _billing_period(self, state: _MergeState, warnings: list[str]) -> BillingPeriod:
        start = state.date("billingPeriod.startDate")
        end = state.date("billingPeriod.endDate")
        stated_days = parse_amount((state.merged.get("billingPeriod") or {}).get("daysInPeriod"))

        start_given = state.is_supplied("billingPeriod.startDate")
        end_given = state.is_supplied("billingPeriod.endDate")
        if start_given and end_given:
            if end <= start:
                warnings.append(PERIOD_REVERSED)
            days = days_in_period(start, end)
        elif start_given or end_given:
            # Only one date recovered: anchor the stated (or reference) period length on it
            days = max(int(stated_days), 1) if stated_days and stated_days > 0 else days_in_period(start, end)
            if start_given:
                end = start + timedelta(days=days)
                state.derived("billingPeriod.endDate")
            else:
                start = end - timedelta(days=days)
                state.derived("billingPeriod.startDate")
            if not state.is_supplied("billingPeriod.daysInPeriod"):
                state.derived("billingPeriod.daysInPeriod")
        elif state.is_supplied("billingPeriod.daysInPeriod") and stated_days:
            days = max(int(stated_days), 1)
        else:
            days = days_in_period(start, end)
            state.derived("billingPeriod.daysInPeriod")
        return BillingPeriod(start_date=start, end_date=end, days_in_period=days)

    def _charges(self, state: _MergeState, warnings: list[str]) -> Charges:
        charges = Charges(
            total_amount=state.number("charges.totalAmount"),
            base_charge=state.number("charges.baseCharge"),
            energy_charges=state.number("charges.energyCharges"),
            delivery_charges=state.number("charges.deliveryCharges"),
            taxes=state.number("charges.taxes"),
            fees=state.number("charges.fees"),
            adjustments=state.number("charges.adjustments"),
        )
        if abs(charges.total_amount - charges.components_total) > self.constants.charge_tolerance:
            warnings.append(CHARGES_DISCREPANCY)
        for name in ("totalAmount",) + _CHARGE_FIELDS:
            if state.number(f"charges.{name}") < 0:
                warnings.append(f"negative charge amount: {name}")
        return charges

    def _usage(self, state: _MergeState, warnings: list[str]) -> Usage:
        total = state.number("usage.totalKwh")
        if state.is_supplied("usage.totalKwh"):
            # A reference peak/off-peak split means nothing against a caller's own total
            peak = state.number("usage.peakKwh") if state.is_supplied("usage.peakKwh") else None
            off_peak = state.number("usage.offPeakKwh") if state.is_supplied("usage.offPeakKwh") else None
            if peak is None and off_peak is None:
                peak, off_peak = 0.0, total
            elif peak is None:
                peak = max(total - off_peak, 0.0)
            elif off_peak is None:
                off_peak = max(total - peak, 0.0)
            state.derived("usage.peakKwh")
            state.derived("usage.offPeakKwh")
        else:
            peak = state.number("usage.peakKwh")
            off_peak = state.number("usage.offPeakKwh")

        if abs(off_peak - (total - peak)) > self.constants.usage_tolerance_kwh:
            warnings.append(USAGE_DISCREPANCY)
        return Usage(
            total_kwh=total,
            peak_kwh=peak,
            off_peak_kwh=off_peak,
            demand_kw=state.number("usage.demandKw"),
        )

    def _rates(self, state: _MergeState, charges: Charges, usage: Usage) -> Rates:
        if state.is_supplied("rates.energyRate"):
            energy_rate = state.number("rates.energyRate")
        else:
            derived = derive_unit_rate(charges.energy_charges, usage.total_kwh)
            if derived is None:
                energy_rate = state.number("rates.energyRate")
            else:
                energy_rate = round(derived, 4)
                state.derived("rates.energyRate")
        return Rates(
            energy_rate=energy_rate,
            peak_rate=state.number("rates.peakRate"),
            off_peak_rate=state.number("rates.offPeakRate"),
            demand_rate=state.number("rates.demandRate"),
        )


def normalize_bill(
    partial: Union[Mapping, BillRecord, None],
    synthetic: bool = False,
    constants: AnalysisConstants = DEFAULT_CONSTANTS,
) -> BillRecord:
    return BillNormalizer(constants).normalize(partial, synthetic=synthetic)
