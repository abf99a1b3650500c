"""Run the reconciliation report for a payment batch.

Usage:
    python scripts/reconcile_batch.py 1
    python scripts/reconcile_batch.py 1 --output report.json

Exit code is 0 for PASS, 1 for WARN, 2 for FAIL.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.config import get_settings
from core.errors import PaymentsError
from core.observability.logging import configure_logging
from reconciliation.engine import build_engine
from reconciliation.report import CheckStatus


EXIT_CODES = {
    CheckStatus.PASS.value: 0,
    CheckStatus.WARN.value: 1,
    CheckStatus.FAIL.value: 2,
}


async def main_async(args) -> int:
    engine = build_engine()
    try:
        report = await engine.reconcile_batch(args.batch_id)
    except PaymentsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 3

    print(f"Batch {report.batch_number}: {report.status}")
    for check in report.checks:
        marker = "PASS" if check["passed"] else check["severity"]
        print(f"  [{marker:<5}] {check['check_id']}: {check['message']}")

    summary = report.summary
    print(
        f"\n{summary['passed_checks']}/{summary['total_checks']} checks passed, "
        f"{summary['blocking_issues']} blocking, {summary['warnings']} warning(s)"
    )

    if args.output:
        args.output.write_text(json.dumps(report.model_dump(mode="json"), indent=2), encoding="utf-8")
        print(f"Report written to {args.output}")

    return EXIT_CODES[report.status]


def main():
    parser = argparse.ArgumentParser(description="Reconcile a grower payment batch")
    parser.add_argument("batch_id", type=int, help="Batch id")
    parser.add_argument("--output", "-o", type=Path, help="Also write the report as JSON")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    sys.exit(asyncio.run(main_async(args)))


if __name__ == "__main__":
    main()
