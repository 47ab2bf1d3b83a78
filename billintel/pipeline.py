"""
Single-bill analysis and the concurrent batch runner.

Each document goes extraction -> normalization -> {anomalies, predictions,
patterns} -> recommendations. A failure in one document is recorded on its
own result and never aborts the rest of the batch.
"""

from __future__ import annotations

import io
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from .config_loader import DEFAULT_MAX_WORKERS, build_constants, max_workers
from .engine.anomalies import AnomalyDetector
from .engine.normalizer import BillNormalizer
from .engine.patterns import PatternAnalyzer
from .engine.predictions import PredictiveAnalyzer
from .engine.recommendations import RecommendationSynthesizer
from .errors import ExtractionError
from .ingest import is_synthetic_text, parse_csv_bill, parse_document_text
from .rules.constants import DEFAULT_CONSTANTS, AnalysisConstants
from .schemas import BatchReport, BillRecord, BillReport, DocumentResult

logger = logging.getLogger(__name__)


@dataclass
class SourceDocument:
    filename: str
    content: Union[str, bytes]
    content_type: str = "text/plain"

    @property
    def text(self) -> str:
        if isinstance(self.content, bytes):
            return self.content.decode("utf-8", errors="replace")
        return self.content or ""

    @property
    def is_csv(self) -> bool:
        return self.content_type == "text/csv" or self.filename.lower().endswith(".csv")


# An extractor turns a document into raw bill text or a structured partial record
Extractor = Callable[[SourceDocument], Union[str, Mapping[str, Any]]]


def default_extractor(document: SourceDocument) -> Union[str, Mapping[str, Any]]:
    if document.is_csv:
        return parse_csv_bill(io.StringIO(document.text))
    return document.text


class BillPipeline:
    def __init__(self, constants: AnalysisConstants = DEFAULT_CONSTANTS, use_llm: bool = False,
                 llm_model: Optional[str] = None, max_workers: int = DEFAULT_MAX_WORKERS):
        # Analyzers hold only frozen constants, so one set serves every worker thread
        self.normalizer = BillNormalizer(constants)
        self.anomaly_detector = AnomalyDetector(constants)
        self.predictor = PredictiveAnalyzer(constants)
        self.pattern_analyzer = PatternAnalyzer(constants)
        self.synthesizer = RecommendationSynthesizer(constants)
        self.use_llm = use_llm
        self.llm_model = llm_model
        self.max_workers = max_workers

    @classmethod
    def from_config(cls, cfg: dict) -> "BillPipeline":
        llm = cfg.get("llm") or {}
        return cls(
            constants=build_constants(cfg),
            use_llm=bool(llm.get("enabled", False)),
            llm_model=llm.get("model"),
            max_workers=max_workers(cfg),
        )

    def analyze(self, partial: Union[Mapping, BillRecord, None], synthetic: bool = False,
                as_of: Optional[date] = None) -> BillReport:
        record = self.normalizer.normalize(partial, synthetic=synthetic)
        anomalies = self.anomaly_detector.detect(record)
        predictions = self.predictor.predict(record, as_of=as_of)
        patterns = self.pattern_analyzer.analyze(record, as_of=as_of)
        recommendations = self.synthesizer.synthesize(record, anomalies, predictions, patterns)
        return BillReport(
            record=record,
            anomalies=anomalies,
            predictions=predictions,
            patterns=patterns,
            recommendations=recommendations,
        )

    def extract(self, document: SourceDocument, extractor: Extractor) -> tuple[Mapping, bool]:
        extracted = extractor(document)
        if isinstance(extracted, Mapping):
            return extracted, bool(extracted.get("synthetic"))
        if isinstance(extracted, str):
            partial = parse_document_text(extracted, use_llm=self.use_llm, model=self.llm_model)
            return partial, is_synthetic_text(extracted)
        raise ExtractionError(f"extractor returned {type(extracted).__name__}, expected text or mapping")

    def process_document(self, document: SourceDocument, extractor: Extractor = default_extractor,
                         as_of: Optional[date] = None) -> DocumentResult:
        logger.info("processing %s", document.filename)
        try:
            partial, synthetic = self.extract(document, extractor)
            report = self.analyze(partial, synthetic=synthetic, as_of=as_of)
        except Exception as exc:
            logger.exception("failed to process %s", document.filename)
            return DocumentResult(filename=document.filename, success=False, error=str(exc) or type(exc).__name__)
        logger.info("processed %s: %d anomalies, confidence %.2f",
                    document.filename, len(report.anomalies), report.confidence)
        return DocumentResult(filename=document.filename, success=True, report=report)

    def process_batch(self, documents: Iterable[SourceDocument], extractor: Extractor = default_extractor,
                      as_of: Optional[date] = None) -> BatchReport:
        documents = list(documents)
        if not documents:
            return BatchReport(results=[])
        workers = min(self.max_workers, len(documents))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            # map() yields in submission order regardless of completion order
            results = list(pool.map(lambda doc: self.process_document(doc, extractor, as_of), documents))
        report = BatchReport(results=results)
        logger.info("batch finished: %d/%d documents succeeded", report.successful_files, report.total_files)
        return report


def analyze_bill(partial: Union[Mapping, BillRecord, None], synthetic: bool = False,
                 as_of: Optional[date] = None, constants: AnalysisConstants = DEFAULT_CONSTANTS) -> BillReport:
    return BillPipeline(constants).analyze(partial, synthetic=synthetic, as_of=as_of)


def process_document(document: SourceDocument, extractor: Extractor = default_extractor,
                     as_of: Optional[date] = None, constants: AnalysisConstants = DEFAULT_CONSTANTS) -> DocumentResult:
    return BillPipeline(constants).process_document(document, extractor, as_of=as_of)


def process_batch(documents: Iterable[SourceDocument], extractor: Extractor = default_extractor,
                  max_workers: int = DEFAULT_MAX_WORKERS, as_of: Optional[date] = None,
                  constants: AnalysisConstants = DEFAULT_CONSTANTS) -> BatchReport:
    return BillPipeline(constants, max_workers=max_workers).process_batch(documents, extractor, as_of=as_of)
