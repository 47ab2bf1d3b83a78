# Text and CSV parsers that turn extracted bill content into partial records.
# Output uses the camelCase keys the normalizer expects; gaps are left for it to fill.

import logging
import re
from typing import Optional

import pandas as pd

from .engine.calculations import parse_amount, parse_date
from .errors import ExtractionError

logger = logging.getLogger(__name__)

SYNTHETIC_MARKER = "Mock Bill Data"

_NUMBER = r"\$?([0-9,]+\.?[0-9]*)"
_DATE = r"([0-9]{1,2}/[0-9]{1,2}/[0-9]{2,4})"

TEXT_PATTERNS = {
    "accountNumber": re.compile(r"account\s*(?:number|#)?\s*:?\s*([0-9-]+)", re.I),
    "totalAmount": re.compile(r"(?:total|amount\s*due|balance)\s*:?\s*" + _NUMBER, re.I),
    "totalKwh": re.compile(r"(?:usage|kwh|kilowatt)\s*:?\s*" + _NUMBER, re.I),
    "billingPeriod": re.compile(_DATE + r"\s*(?:to|-)?\s*" + _DATE, re.I),
    "baseCharge": re.compile(r"(?:base|basic|service)\s*(?:charge|fee)\s*:?\s*" + _NUMBER, re.I),
    "energyCharges": re.compile(r"(?:energy|electric|kwh)\s*(?:charge|cost)\s*:?\s*" + _NUMBER, re.I),
    "deliveryCharges": re.compile(r"(?:delivery|transmission|distribution)\s*(?:charge|fee)\s*:?\s*" + _NUMBER, re.I),
    "taxes": re.compile(r"(?:tax|taxes)\s*:?\s*" + _NUMBER, re.I),
}

# CSV column aliases, first match wins
KWH_COLUMNS = ("kwh", "usage", "total_kwh", "consumption (kwh)")
COST_COLUMNS = ("cost", "amount", "total_amount", "cost_gbp")
PEAK_COLUMNS = ("peak_kwh", "peak")
DATE_COLUMNS = ("date", "period_end", "end_date")


def is_synthetic_text(text: Optional[str]) -> bool:
    return bool(text) and SYNTHETIC_MARKER in text


def parse_bill_text(text: str) -> dict:
    """Regex pass over raw bill text.

    Returns a partial record holding only what was recognized; raises
    ExtractionError when the text is empty or nothing matched.
    """
    if not text or not text.strip():
        raise ExtractionError("document contained no text")

    partial: dict = {}
    for key, pattern in TEXT_PATTERNS.items():
        match = pattern.search(text)
        if not match:
            continue
        if key == "billingPeriod":
            start, end = parse_date(match.group(1)), parse_date(match.group(2))
            if start and end:
                partial["billingPeriod"] = {"startDate": start.isoformat(), "endDate": end.isoformat()}
        elif key == "accountNumber":
            partial["accountInfo"] = {"accountNumber": match.group(1)}
        elif key == "totalKwh":
            partial["usage"] = {"totalKwh": parse_amount(match.group(1))}
        else:
            partial.setdefault("charges", {})[key] = parse_amount(match.group(1))

    if not partial:
        raise ExtractionError("no bill fields recognized in document text")
    logger.debug("regex parse recovered %s", sorted(partial))
    return partial


def parse_document_text(text: str, use_llm: bool = False, model: Optional[str] = None) -> dict:
    if use_llm:
        from .llm_layer import extract_structured_bill

        try:
            return extract_structured_bill(text, model=model)
        except Exception:
            logger.warning("structured LLM parse failed, falling back to regex", exc_info=True)
    return parse_bill_text(text)


def _column(df: pd.DataFrame, aliases: tuple, required: bool = True) -> Optional[str]:
    for name in aliases:
        if name in df.columns:
            return name
    if required:
        raise ExtractionError(f"CSV needs one of the columns: {', '.join(aliases)}")
    return None


def _optional_float(value) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


def parse_usage_history_csv(path_or_buffer) -> list[dict]:
    """One entry per billing period, oldest first."""
    try:
        df = pd.read_csv(path_or_buffer)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as exc:
        raise ExtractionError(f"unreadable CSV: {exc}") from exc
    df.columns = [str(c).strip().lower() for c in df.columns]

    kwh_col = _column(df, KWH_COLUMNS)
    cost_col = _column(df, COST_COLUMNS)
    peak_col = _column(df, PEAK_COLUMNS, required=False)
    date_col = _column(df, DATE_COLUMNS, required=False)

    df[kwh_col] = pd.to_numeric(df[kwh_col], errors="coerce")
    df[cost_col] = pd.to_numeric(df[cost_col], errors="coerce")
    if date_col:
        df[date_col] = pd.to_datetime(df[date_col], errors="coerce")
    df = df.dropna(subset=[kwh_col, cost_col])
    if date_col:
        df = df.sort_values(date_col, kind="stable")
    if df.empty:
        raise ExtractionError("CSV holds no usable billing rows")

    history = []
    for _, row in df.iterrows():
        period_end = row[date_col] if date_col else None
        history.append({
            "usage": float(row[kwh_col]),
            "amount": float(row[cost_col]),
            "peakKwh": _optional_float(row[peak_col]) if peak_col else None,
            "periodEnd": None if period_end is None or pd.isna(period_end) else period_end.date(),
        })
    return history


def parse_csv_bill(path_or_buffer) -> dict:
    """Latest row becomes the bill; earlier rows become history and comparisons."""
    history = parse_usage_history_csv(path_or_buffer)
    current = history[-1]

    partial: dict = {
        "charges": {"totalAmount": current["amount"]},
        "usage": {"totalKwh": current["usage"]},
        "history": history[:-1],
    }
    if current["peakKwh"] is not None:
        partial["usage"]["peakKwh"] = current["peakKwh"]
    if current["periodEnd"] is not None:
        partial["billingPeriod"] = {"endDate": current["periodEnd"].isoformat()}
        if len(history) > 1 and history[-2]["periodEnd"] is not None:
            partial["billingPeriod"]["startDate"] = history[-2]["periodEnd"].isoformat()

    comparisons = {}
    if len(history) >= 2:
        comparisons["previousMonth"] = {"usage": history[-2]["usage"], "amount": history[-2]["amount"]}
    if len(history) >= 13:
        comparisons["yearAgo"] = {"usage": history[-13]["usage"], "amount": history[-13]["amount"]}
    if comparisons:
        partial["comparisons"] = comparisons
    return partial
