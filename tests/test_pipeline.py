"""
Tests for single-bill analysis and the batch runner.
"""
import json
import time

import pytest

from billintel.pipeline import BillPipeline, SourceDocument, analyze_bill, process_batch, process_document
from billintel.schemas import to_payload

from conftest import BILL_TEXT, FEBRUARY, HISTORY_CSV, bill


def _text_doc(name, text=BILL_TEXT):
    return SourceDocument(filename=name, content=text)


class TestAnalyzeBill:

    def test_high_usage_report(self):
        report = analyze_bill(
            bill(usage={"totalKwh": 1200}, comparisons={"previousMonth": {"usage": 847, "amount": 190}}),
            as_of=FEBRUARY,
        )
        assert [a.severity for a in report.anomalies] == ["severe"]
        assert "Energy Efficiency Audit" in [r.title for r in report.recommendations.short_term]
        assert report.confidence == report.record.confidence

    def test_zero_usage_is_safe(self):
        report = analyze_bill(bill(usage={"totalKwh": 0}, comparisons={"previousMonth": {"usage": 800, "amount": 190}}),
                              as_of=FEBRUARY)
        assert report.patterns.efficiency.score == 0
        assert report.patterns.usage.peak_ratio == 0.0
        assert all(a.type == "cost_anomaly" for a in report.anomalies)

    def test_payload_is_json_ready(self):
        report = analyze_bill({}, as_of=FEBRUARY)
        payload = to_payload(report.record)
        json.dumps(to_payload(report))
        assert payload["billingPeriod"]["startDate"] == "2024-01-15"
        assert payload["charges"]["totalAmount"] == 190.0
        assert "validationWarnings" in payload


class TestProcessDocument:

    def test_text_document(self):
        result = process_document(_text_doc("bill.txt"), as_of=FEBRUARY)
        assert result.success
        record = result.report.record
        assert record.account_info.account_number == "4821-3390-1177"
        assert record.usage.total_kwh == 1200
        assert record.confidence == 1.0

    def test_synthetic_text_lowers_confidence(self):
        result = process_document(_text_doc("mock.txt", BILL_TEXT + "\nMock Bill Data\n"), as_of=FEBRUARY)
        assert result.report.record.synthetic
        assert result.report.confidence == 0.7

    def test_csv_document(self):
        document = SourceDocument(filename="history.csv", content=HISTORY_CSV.encode("utf-8"),
                                  content_type="text/csv")
        result = process_document(document, as_of=FEBRUARY)
        assert result.success
        assert result.report.record.usage.total_kwh == 1000
        assert result.report.patterns.correlations.status == "ok"

    def test_mapping_extractor(self):
        result = process_document(_text_doc("x.json"), lambda doc: {"usage": {"totalKwh": 640}}, as_of=FEBRUARY)
        assert result.report.record.usage.total_kwh == 640

    def test_failure_recorded(self, caplog):
        result = process_document(_text_doc("blank.txt", ""), as_of=FEBRUARY)
        assert not result.success
        assert result.error == "document contained no text"
        assert result.to_payload() == {"filename": "blank.txt", "success": False, "error": "document contained no text"}
        assert "failed to process blank.txt" in caplog.text

    def test_extractor_exception_recorded(self):
        def broken(document):
            raise RuntimeError("ocr backend unavailable")

        result = process_document(_text_doc("scan.pdf"), broken)
        assert result.error == "ocr backend unavailable"

    def test_success_payload_shape(self):
        payload = process_document(_text_doc("bill.txt"), as_of=FEBRUARY).to_payload()
        assert set(payload) == {"filename", "success", "data", "anomalies", "predictions",
                                "recommendations", "patterns", "confidence"}
        assert set(payload["recommendations"]) == {"immediate", "shortTerm", "longTerm"}
        assert "nextMonth" in payload["predictions"]


class TestProcessBatch:

    def test_partial_failure(self):
        documents = [_text_doc("a.txt"), _text_doc("b.txt", "nothing useful here"), _text_doc("c.txt")]
        batch = process_batch(documents, as_of=FEBRUARY)
        assert [r.filename for r in batch.results] == ["a.txt", "b.txt", "c.txt"]
        assert [r.success for r in batch.results] == [True, False, True]
        assert batch.total_files == 3
        assert batch.successful_files == 2

    def test_order_kept_under_concurrency(self):
        # later documents finish first
        def slow_first(document):
            time.sleep(0.05 if document.filename == "0.txt" else 0)
            return {"usage": {"totalKwh": 500 + int(document.filename.split(".")[0])}}

        documents = [_text_doc(f"{i}.txt") for i in range(8)]
        batch = process_batch(documents, slow_first, max_workers=4, as_of=FEBRUARY)
        assert [r.filename for r in batch.results] == [d.filename for d in documents]
        assert [r.report.record.usage.total_kwh for r in batch.results] == [500 + i for i in range(8)]

    def test_empty_batch(self):
        batch = process_batch([])
        assert batch.to_payload()["totalFiles"] == 0
        assert batch.to_payload()["results"] == []

    def test_batch_payload(self):
        payload = process_batch([_text_doc("a.txt")], as_of=FEBRUARY).to_payload()
        assert payload["success"] is True
        assert payload["successfulFiles"] == 1
        assert payload["timestamp"]
        json.dumps(payload)


class TestFromConfig:

    def test_config_values_applied(self):
        pipeline = BillPipeline.from_config({
            "batch": {"max_workers": 2},
            "llm": {"enabled": False, "model": "some/model"},
            "analysis": {"peak_anomaly_ratio": 30, "peak_severe_ratio": 60},
        })
        assert pipeline.max_workers == 2
        assert pipeline.llm_model == "some/model"
        report = pipeline.analyze(bill(usage={"totalKwh": 1000, "peakKwh": 350}), as_of=FEBRUARY)
        assert [(a.type, a.severity) for a in report.anomalies] == [("peak_usage_anomaly", "moderate")]

    def test_defaults(self):
        pipeline = BillPipeline.from_config({})
        assert pipeline.max_workers == 4
        assert pipeline.use_llm is False
