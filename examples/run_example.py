import os
import sys
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import argparse
import json
import logging

from billintel.config_loader import get_config
from billintel.logging_setup import setup_logging
from billintel.pipeline import BillPipeline, SourceDocument
from billintel.schemas import to_payload

logger = logging.getLogger("run_example")

DEMO_BILL = """
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


def load_documents(paths):
    documents = []
    for path in paths:
        with open(path, "rb") as f:
            content = f.read()
        content_type = "text/csv" if path.lower().endswith(".csv") else "text/plain"
        documents.append(SourceDocument(filename=os.path.basename(path), content=content, content_type=content_type))
    return documents


def main(argv=None):
    parser = argparse.ArgumentParser(description="Analyze utility bills and print the JSON report.")
    parser.add_argument("files", nargs="*", help="bill text or CSV files (a demo bill is used when omitted)")
    parser.add_argument("--config", help="path to config.yml")
    parser.add_argument("--previous", nargs=2, type=float, metavar=("KWH", "AMOUNT"),
                        help="previous-month usage and amount for the demo bill")
    parser.add_argument("--plan", action="store_true", help="also print an optimization plan per bill")
    parser.add_argument("--smart-devices", action="store_true", help="include smart-device actions in the plan")
    parser.add_argument("--budget", type=float, help="budget limit for long-term plan actions")
    args = parser.parse_args(argv)

    cfg = get_config(args.config)
    setup_logging(cfg)
    pipeline = BillPipeline.from_config(cfg)

    if args.files:
        batch = pipeline.process_batch(load_documents(args.files))
    else:
        logger.info("no files given, analyzing the built-in demo bill")
        demo = SourceDocument(filename="demo_bill.txt", content=DEMO_BILL)

        def extractor(document):
            partial = pipeline.extract(document, lambda d: d.text)[0]
            if args.previous:
                partial = dict(partial, comparisons={
                    "previousMonth": {"usage": args.previous[0], "amount": args.previous[1]}})
            return partial

        batch = pipeline.process_batch([demo], extractor)

    payload = batch.to_payload()
    if args.plan:
        preferences = {"smart_devices": args.smart_devices}
        constraints = {"budget": args.budget} if args.budget else {}
        for result, entry in zip(batch.results, payload["results"]):
            if result.success:
                plan = pipeline.synthesizer.optimization_plan(result.report.record, preferences, constraints)
                entry["optimizationPlan"] = to_payload(plan)

    print(json.dumps(payload, indent=2, default=str))
    return 0 if batch.successful_files == batch.total_files else 1


if __name__ == "__main__":
    sys.exit(main())
