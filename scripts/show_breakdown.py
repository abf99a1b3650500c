"""Print the breakdown of a grower cheque.

Usage:
    python scripts/show_breakdown.py A-1001
    python scripts/show_breakdown.py A-1001 --json
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
from models.results import ChequeBreakdown
from reconciliation.engine import build_engine


def print_breakdown(breakdown: ChequeBreakdown) -> None:
    header = breakdown.header
    print("=" * 70)
    print(f"CHEQUE {header.cheque_number}  {header.cheque_date}  {header.status.value}")
    print(f"Payee: {header.payee_name or header.grower_id}  (grower {header.grower_id})")
    print("=" * 70)

    for section in breakdown.batches:
        print(f"\nBatch {section.batch_number} ({section.status.value if section.status else 'unknown'})")
        for line in section.receipts:
            print(
                f"  {line.receipt_number:<10} grade {line.grade or '-'}  "
                f"{line.weight:>10} lb @ {line.price_per_pound:<8} {line.amount:>12}"
            )
        print(f"  {'Subtotal':<52}{section.subtotal:>12}")

    if breakdown.deductions:
        print("\nDeductions")
        for deduction in breakdown.deductions:
            print(f"  {deduction.description:<52}{deduction.deduction_amount:>12}")

    summary = breakdown.summary
    print("\nSummary")
    print(f"  {'Gross':<52}{summary.total_gross:>12}")
    print(f"  {'Deductions':<52}{summary.total_deductions:>12}")
    print(f"  {'Net':<52}{summary.net_amount:>12}")
    print(f"  {'Cheque amount':<52}{summary.recorded_amount:>12}")

    if breakdown.history.payments:
        print("\nPrior payments")
        for payment in breakdown.history.payments:
            print(f"  {str(payment.key):<12} {payment.cheque_date}  {payment.net_amount:>12}")
    if breakdown.history.season_total is not None:
        print(f"  Season total: {breakdown.history.season_total}")

    for warning in breakdown.warnings:
        print(f"\nWARNING {warning.kind.value}: {warning.message}")


async def main_async(args) -> int:
    engine = build_engine()
    try:
        breakdown = await engine.build_cheque_breakdown(args.cheque)
    except PaymentsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(breakdown.model_dump(mode="json"), indent=2))
    else:
        print_breakdown(breakdown)
    return 2 if breakdown.has_mismatch else 0


def main():
    parser = argparse.ArgumentParser(description="Show a grower cheque breakdown")
    parser.add_argument("cheque", help="Cheque key, e.g. A-1001")
    parser.add_argument("--json", action="store_true", help="Print the breakdown as JSON")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    sys.exit(asyncio.run(main_async(args)))


if __name__ == "__main__":
    main()
