"""
Shared fixtures for the billintel test suite.

Records are built through the normalizer so every test sees the same
reference-filled shape the pipeline produces.
"""
from datetime import date

import pytest

from billintel.engine.normalizer import normalize_bill

# Winter/spring/summer lookups in the tests are pinned to these dates
FEBRUARY = date(2024, 2, 1)
OCTOBER = date(2024, 10, 1)

BILL_TEXT = """
ELECTRIC UTILITY COMPANY
Account Number: 4821-3390-1177
Billing Period: 01/15/2024 - 02/14/2024

Usage: 1,200 kWh
Base Charge: $24.99
Energy Charge: $172.00
Delivery Charge: $18.25
Taxes: $12.10
Amount Due: $230.84
"""

HISTORY_CSV = """date,kwh,cost,peak_kwh
2024-01-31,700,100,200
2024-02-29,800,120,260
2024-03-31,900,130,300
2024-04-30,1000,150,350
"""


def bill(**sections) -> dict:
    """Partial camelCase record from keyword sections, e.g. bill(usage={"totalKwh": 1200})."""
    return {name: dict(values) for name, values in sections.items()}


@pytest.fixture
def reference_record():
    return normalize_bill({})


@pytest.fixture
def high_usage_record():
    return normalize_bill(bill(
        usage={"totalKwh": 1200},
        comparisons={"previousMonth": {"usage": 847, "amount": 190.00}},
    ))


@pytest.fixture
def doubled_cost_record():
    return normalize_bill(bill(
        charges={"totalAmount": 200},
        comparisons={"previousMonth": {"usage": 847, "amount": 100}},
    ))


@pytest.fixture
def history_record():
    return normalize_bill({
        "charges": {"totalAmount": 150},
        "usage": {"totalKwh": 1000, "peakKwh": 350},
        "history": [
            {"usage": 700, "amount": 100, "peakKwh": 200},
            {"usage": 800, "amount": 120, "peakKwh": 260},
            {"usage": 900, "amount": 130, "peakKwh": 300},
        ],
    })
