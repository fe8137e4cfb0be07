#!/usr/bin/env python3
"""
CLI entry point for scoring a local CSV.

Usage:
    # Score a file using CHURN_* settings (storage_root, database_url, ...)
    python -m churn_batch.cli data/customers.csv

    # Persist to SQLite and pin the reference date
    python -m churn_batch.cli data/customers.csv --sqlite churn.db --as-of 2025-01-31

    # Load deployment settings from YAML
    python -m churn_batch.cli data/customers.csv --config configs/local.yaml
"""

import argparse
import json
import sys
from dataclasses import replace
from datetime import date
from pathlib import Path

import pandas as pd

from .aggregator import top_risks
from .config import PipelineSettings
from .digest import OwnerProfile, StaticProfileDirectory
from .errors import ChurnPipelineError
from .logging_config import configure_logging
from .pipeline import ChurnPipeline


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Churn batch scoring",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m churn_batch.cli customers.csv
  python -m churn_batch.cli customers.csv --sqlite churn.db --top 10
        """,
    )
    parser.add_argument("csv", help="Path to the customer CSV")
    parser.add_argument("--owner", default="local", help="Owner id for the analysis")
    parser.add_argument("--config", help="YAML file with pipeline settings")
    parser.add_argument("--as-of", type=date.fromisoformat,
                        help="Reference date for inactivity (YYYY-MM-DD)")
    parser.add_argument("--sqlite", help="Persist to this SQLite file instead of database_url")
    parser.add_argument("--top", type=int, default=5, help="Rows in the top-risk table")
    parser.add_argument("--json", action="store_true", help="Print the raw response JSON")

    args = parser.parse_args(argv)

    settings = PipelineSettings.from_yaml(args.config) if args.config else PipelineSettings.from_env()
    configure_logging(settings.log_level)

    source = Path(args.csv)
    if not source.is_file():
        print(f"File not found: {source}", file=sys.stderr)
        return 1

    if args.sqlite:
        settings = replace(settings, database_url=f"sqlite:///{args.sqlite}")

    profiles = StaticProfileDirectory({args.owner: OwnerProfile(email=f"{args.owner}@localhost")})
    pipeline = ChurnPipeline.from_settings(settings, profiles=profiles)
    pipeline.file_store.upload(source.name, source.read_bytes())
    try:
        report = pipeline.analyze_sync(args.owner, source.name, as_of=args.as_of)
    except ChurnPipelineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
        return 0 if report.success else 1

    print(report.message)
    if report.summary is not None:
        s = report.summary
        print(f"  Churn rate: {s.churn_rate:.1%}")
        print(f"  High/Medium/Low: {s.high_risk_count}/{s.medium_risk_count}/{s.low_risk_count}")
        print(f"  Avg CLTV: ${s.avg_cltv:,.2f}")

    top = top_risks(report.predictions, args.top)
    if top:
        df = pd.DataFrame([p.to_dict() for p in top])
        print()
        print(df[["customer_id", "churn_probability", "risk_level", "source"]].to_string(index=False))

    for detail in report.error_details:
        print(f"  Row {detail['row']} ({detail['customerId']}): {detail['error']}")

    return 0 if report.success else 1


if __name__ == "__main__":
    sys.exit(main())
