"""
Tests for the text/CSV parsers and the LLM structured-parse adapter.
No network: the inference client is patched.
"""
import io
from unittest.mock import MagicMock, patch

import pytest

from billintel.errors import ExtractionError
from billintel.ingest import (
    is_synthetic_text,
    parse_bill_text,
    parse_csv_bill,
    parse_document_text,
    parse_usage_history_csv,
)
from billintel.llm_layer import extract_structured_bill

from conftest import BILL_TEXT, HISTORY_CSV


def _chat_reply(content):
    client = MagicMock()
    client.chat_completion.return_value.choices = [MagicMock(message=MagicMock(content=content))]
    return client


class TestParseBillText:

    def test_fields_recovered(self):
        partial = parse_bill_text(BILL_TEXT)
        assert partial["accountInfo"] == {"accountNumber": "4821-3390-1177"}
        assert partial["billingPeriod"] == {"startDate": "2024-01-15", "endDate": "2024-02-14"}
        assert partial["usage"] == {"totalKwh": 1200.0}
        assert partial["charges"] == {
            "totalAmount": 230.84,
            "baseCharge": 24.99,
            "energyCharges": 172.00,
            "deliveryCharges": 18.25,
            "taxes": 12.10,
        }

    def test_partial_text(self):
        assert parse_bill_text("Balance: $1,045.10") == {"charges": {"totalAmount": 1045.10}}

    def test_empty_text(self):
        with pytest.raises(ExtractionError):
            parse_bill_text("   ")

    def test_unrecognized_text(self):
        with pytest.raises(ExtractionError):
            parse_bill_text("Thank you for your business.")

    def test_synthetic_marker(self):
        assert is_synthetic_text(BILL_TEXT + "\nMock Bill Data - Generated for demonstration purposes")
        assert not is_synthetic_text(BILL_TEXT)
        assert not is_synthetic_text(None)


class TestCsv:

    def test_history_rows(self):
        history = parse_usage_history_csv(io.StringIO(HISTORY_CSV))
        assert [h["usage"] for h in history] == [700.0, 800.0, 900.0, 1000.0]
        assert history[0]["peakKwh"] == 200.0
        assert history[-1]["periodEnd"].isoformat() == "2024-04-30"

    def test_rows_sorted_by_date(self):
        shuffled = "date,kwh,cost\n2024-03-31,900,130\n2024-01-31,700,100\n2024-02-29,800,120\n"
        history = parse_usage_history_csv(io.StringIO(shuffled))
        assert [h["usage"] for h in history] == [700.0, 800.0, 900.0]

    def test_latest_row_is_the_bill(self):
        partial = parse_csv_bill(io.StringIO(HISTORY_CSV))
        assert partial["charges"] == {"totalAmount": 150.0}
        assert partial["usage"] == {"totalKwh": 1000.0, "peakKwh": 350.0}
        assert partial["billingPeriod"] == {"startDate": "2024-03-31", "endDate": "2024-04-30"}
        assert partial["comparisons"] == {"previousMonth": {"usage": 900.0, "amount": 130.0}}
        assert len(partial["history"]) == 3

    def test_column_aliases(self):
        partial = parse_csv_bill(io.StringIO("Usage,Amount\n500,80\n"))
        assert partial["usage"]["totalKwh"] == 500.0
        assert "comparisons" not in partial

    def test_bad_rows_skipped(self):
        history = parse_usage_history_csv(io.StringIO("kwh,cost\n500,80\nn/a,90\n600,95\n"))
        assert [h["usage"] for h in history] == [500.0, 600.0]

    def test_missing_columns(self):
        with pytest.raises(ExtractionError):
            parse_csv_bill(io.StringIO("date,reading\n2024-01-31,12\n"))

    def test_empty_csv(self):
        with pytest.raises(ExtractionError):
            parse_csv_bill(io.StringIO(""))


class TestLlmLayer:

    def test_requires_token(self, monkeypatch):
        monkeypatch.delenv("HF_TOKEN", raising=False)
        with pytest.raises(ExtractionError):
            extract_structured_bill(BILL_TEXT)

    def test_parses_fenced_json(self, monkeypatch):
        monkeypatch.setenv("HF_TOKEN", "hf_test")
        reply = '```json\n{"charges": {"totalAmount": 120.5}, "usage": {"totalKwh": null}}\n```'
        with patch("billintel.llm_layer.InferenceClient", return_value=_chat_reply(reply)) as client_cls:
            data = extract_structured_bill(BILL_TEXT, model="some/model")
        assert data == {"charges": {"totalAmount": 120.5}, "usage": {"totalKwh": None}}
        client_cls.assert_called_once_with(model="some/model", token="hf_test")

    def test_non_json_reply(self, monkeypatch):
        monkeypatch.setenv("HF_TOKEN", "hf_test")
        with patch("billintel.llm_layer.InferenceClient", return_value=_chat_reply("Sorry, I cannot help.")):
            with pytest.raises(ExtractionError):
                extract_structured_bill(BILL_TEXT)


class TestParseDocumentText:

    def test_regex_by_default(self):
        with patch("billintel.llm_layer.extract_structured_bill") as llm:
            partial = parse_document_text(BILL_TEXT)
        llm.assert_not_called()
        assert partial["usage"]["totalKwh"] == 1200.0

    def test_llm_result_used(self):
        with patch("billintel.llm_layer.extract_structured_bill", return_value={"usage": {"totalKwh": 999}}):
            assert parse_document_text(BILL_TEXT, use_llm=True) == {"usage": {"totalKwh": 999}}

    def test_llm_failure_falls_back_to_regex(self, caplog):
        with patch("billintel.llm_layer.extract_structured_bill", side_effect=ExtractionError("HF_TOKEN not set")):
            partial = parse_document_text(BILL_TEXT, use_llm=True)
        assert partial["charges"]["totalAmount"] == 230.84
        assert "falling back to regex" in caplog.text
