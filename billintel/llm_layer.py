from huggingface_hub import InferenceClient
import json
import logging
import os
import re
from dotenv import load_dotenv

load_dotenv()

from .errors import ExtractionError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "meta-llama/Llama-3.1-8B-Instruct"

SYSTEM_PROMPT = "You are an expert at parsing utility bills. Return only valid JSON."

EXTRACTION_PROMPT = """
Parse the following utility bill text and extract structured data in JSON format:

Text: {text}

Return JSON with this structure:
{{
    "accountInfo": {{"accountNumber": "string", "customerName": "string", "serviceAddress": "string", "billingAddress": "string"}},
    "billingPeriod": {{"startDate": "YYYY-MM-DD", "endDate": "YYYY-MM-DD", "daysInPeriod": number}},
    "charges": {{"totalAmount": number, "baseCharge": number, "energyCharges": number, "deliveryCharges": number, "taxes": number, "fees": number, "adjustments": number}},
    "usage": {{"totalKwh": number, "peakKwh": number, "offPeakKwh": number, "demandKw": number}},
    "rates": {{"energyRate": number, "peakRate": number, "offPeakRate": number, "demandRate": number}},
    "comparisons": {{"previousMonth": {{"usage": number, "amount": number}}, "yearAgo": {{"usage": number, "amount": number}}}}
}}

If any field cannot be determined, use null. Ensure all monetary values are numbers.
"""

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.M)


def _parse_json_reply(content: str) -> dict:
    cleaned = _FENCE.sub("", (content or "").strip())
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        raise ExtractionError("model reply held no JSON object")
    try:
        data = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as exc:
        raise ExtractionError(f"model reply was not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ExtractionError("model reply was not a JSON object")
    return data


def extract_structured_bill(text: str, model: str = None) -> dict:
    # Ask the hosted model for a structured guess; nulls are left for the normalizer
    token = os.getenv("HF_TOKEN")
    if not token:
        raise ExtractionError("HF_TOKEN not set")
    client = InferenceClient(model=model or DEFAULT_MODEL, token=token)
    response = client.chat_completion(
        messages=[
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": EXTRACTION_PROMPT.format(text=text)},
        ],
        max_tokens=800,
        temperature=0.1,
    )
    data = _parse_json_reply(response.choices[0].message.content)
    logger.debug("structured parse returned sections %s", sorted(data))
    return data
