#!/usr/bin/env python3
"""
Monthly Tutoring Billing Script.

Builds monthly invoices from lessons, cancellations and subscriptions
stored in Airtable.

Usage:
    python run_billing.py build --month YYYY-MM (--customer ID | --all) [--dry-run] [--workers N]
    python run_billing.py validate --month YYYY-MM
    python run_billing.py report --month YYYY-MM

Examples:
    # Bill one customer for March 2024
    python run_billing.py build --month 2024-03 --customer recAbC123

    # Bill every active customer, 4 at a time, without writing
    python run_billing.py build --month 2024-03 --all --workers 4 --dry-run

    # Check the month's data before billing
    python run_billing.py validate --month 2024-03

    # Invoice KPIs of the month
    python run_billing.py report --month 2024-03
"""

import sys
import argparse
import logging
from datetime import datetime
from typing import List

import pandas as pd

from tutor_billing.billing.batch import BatchRunner
from tutor_billing.billing.engine import BillingEngine
from tutor_billing.billing.errors import DomainError, NoBillableDataError
from tutor_billing.billing.periods import validate_period
from tutor_billing.billing.report import build_invoice_report, invoices_to_frame
from tutor_billing.models.invoice import BatchReport, CustomerOutcome
from tutor_billing.store.airtable_client import AirtableClient
from tutor_billing.store.airtable_store import AirtableRecordStore
from tutor_billing.utils.config import config
from tutor_billing.utils.file_utils import generate_filename, save_csv, save_json
from tutor_billing.utils.logger import generate_run_id, setup_logger
from tutor_billing.validation.period_validator import PeriodValidator


def parse_arguments(argv=None):
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="Build monthly tutoring invoices",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: LOG_LEVEL or INFO)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    build = subparsers.add_parser("build", help="Create or update invoices")
    build.add_argument(
        "--month",
        required=True,
        help="Billing month in YYYY-MM format (e.g., 2024-03)"
    )
    target = build.add_mutually_exclusive_group(required=True)
    target.add_argument("--customer", help="Customer (student) record id")
    target.add_argument("--all", action="store_true", help="All active customers")
    build.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute invoices without writing them"
    )
    build.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Customers billed in parallel (default: BILLING_MAX_WORKERS)"
    )

    validate = subparsers.add_parser("validate", help="Check a month's data")
    validate.add_argument("--month", required=True, help="Billing month in YYYY-MM format")

    report = subparsers.add_parser("report", help="Invoice KPIs of a month")
    report.add_argument("--month", required=True, help="Billing month in YYYY-MM format")

    return parser.parse_args(argv)


def create_store() -> AirtableRecordStore:
    """Create the Airtable record store from configuration."""
    client = AirtableClient(
        api_key=config.airtable_api_key,
        base_id=config.airtable_base_id,
        api_url=config.airtable_api_url,
        timeout=config.store_timeout,
        max_retries=config.store_max_retries
    )
    return AirtableRecordStore(client, config.field_map())


def display_outcomes(title: str, outcomes: List[CustomerOutcome]):
    """Print one bucket of a batch report."""
    if not outcomes:
        return

    print(f"\n{title}:")
    print("-" * 60)
    for outcome in outcomes:
        if outcome.result is not None:
            result = outcome.result
            print(
                f"  {result.customer_id:20s} | {result.total:10.2f} | "
                f"{result.status.value:16s} | {'created' if result.created else 'updated'}"
            )
        else:
            message = outcome.error.message if outcome.error else ""
            print(f"  {outcome.customer_id:20s} | {outcome.kind.value:18s} | {message}")
            if outcome.error is not None and outcome.error.code == "MISSING_FIELDS":
                for entry in outcome.error.missing_fields:
                    print(f"      - {entry.table}.{entry.field}: {entry.why_needed}")
                    if entry.record_ids:
                        print(f"        records: {', '.join(entry.record_ids)}")
    print("-" * 60)


def display_summary(report: BatchReport):
    """
    Display summary of a batch run.

    Args:
        report: Batch report
    """
    counts = report.counts

    print("\n" + "=" * 60)
    print(f"BILLING SUMMARY {report.period}" + (" (DRY RUN)" if report.dry_run else ""))
    print("=" * 60)
    print(f"Run id:                   {report.run_id}")
    print(f"Customers fetched:        {counts.customers_fetched}")
    print(f"Sessions fetched:         {counts.sessions_fetched}")
    print(f"Cancellations fetched:    {counts.cancellations_fetched}")
    print(f"Invoices created:         {counts.created}")
    print(f"Invoices updated:         {counts.updated}")
    print(f"Skipped (no activity):    {counts.skipped}")
    print(f"Errors:                   {counts.errored}")
    if counts.not_processed:
        print(f"Not processed:            {counts.not_processed}")
    print(f"Total billed:             {report.total_billed:.2f}")
    print("=" * 60)

    display_outcomes("Billed", report.succeeded)
    display_outcomes("Errors", report.errored)


def save_execution_report(report: BatchReport):
    """
    Save execution report as JSON, and outcomes as CSV.

    Args:
        report: Batch report
    """
    output_dir = config.reports_dir

    json_path = output_dir / generate_filename(f"billing_report_{report.period}", "json")
    if save_json(report.to_dict(), json_path):
        print(f"\nReport saved to: {json_path}")

    rows = []
    for outcome in report.succeeded + report.skipped + report.errored:
        row = {"customer_id": outcome.customer_id, "outcome": outcome.kind.value}
        if outcome.result is not None:
            row.update(outcome.result.to_dict())
        if outcome.error is not None:
            row["error_code"] = outcome.error.code
            row["error_message"] = outcome.error.message
        rows.append(row)

    if rows:
        csv_path = output_dir / generate_filename(f"billing_outcomes_{report.period}", "csv")
        if save_csv(pd.DataFrame(rows), csv_path):
            print(f"Outcomes saved to: {csv_path}")


def run_build(args, store, logger) -> int:
    """Build invoices for one customer or all active customers."""
    dry_run = args.dry_run
    if dry_run:
        logger.info("DRY RUN MODE - No invoice will be written")
        print("\n*** DRY RUN MODE ***\n")

    engine = BillingEngine(
        store,
        unit_price=config.solo_unit_price,
        timezone=config.timezone,
        dry_run=dry_run
    )

    if args.all:
        workers = args.workers or config.max_workers
        runner = BatchRunner(store, engine, max_workers=workers)
        report = runner.run(args.month, run_id=generate_run_id())

        display_summary(report)
        save_execution_report(report)
        return 0 if not report.errored else 1

    try:
        result = engine.build_customer_month(args.customer, args.month)
    except NoBillableDataError as e:
        print(f"\nNothing to bill: {e.message}")
        return 0

    if result.is_missing_data:
        print("\nMissing business data, invoice not written:")
        for entry in result.missing_fields:
            print(f"  - {entry.table}.{entry.field}: {entry.why_needed}")
            if entry.record_ids:
                print(f"    records: {', '.join(entry.record_ids)}")
            if entry.example_values:
                print(f"    examples: {', '.join(entry.example_values)}")
        return 1

    billing = result.unwrap()
    action = "Would write" if billing.dry_run else ("Created" if billing.created else "Updated")
    print("\n" + "=" * 60)
    print(f"{action} invoice {billing.invoice_id or '-'} for {billing.customer_id} {billing.period}")
    print("=" * 60)
    print(f"Sessions:        {billing.sessions_count:3d}  {billing.sessions_total:10.2f}")
    print(f"Cancellations:   {billing.cancellations_count:3d}  {billing.cancellations_total:10.2f}")
    print(f"  pending:       {billing.pending_cancellations_count:3d}")
    print(f"Subscriptions:   {billing.subscriptions_count:3d}  {billing.subscriptions_total:10.2f}")
    print(f"Total:                {billing.total:10.2f}")
    print(f"Status:          {billing.status.value}")
    return 0


def run_validate(args, store, logger) -> int:
    """Validate a month's data without billing."""
    report = PeriodValidator(store).validate(args.month)

    print("\n" + "=" * 60)
    print(f"VALIDATION {report.period}")
    print("=" * 60)
    for table in ("sessions", "cancellations", "subscriptions"):
        result = getattr(report, table)
        print(f"\n{table} ({report.counts.get(table, 0)} records):")
        print(result.get_summary())

    save_json(
        report.to_dict(),
        config.reports_dir / generate_filename(f"validation_{report.period}", "json")
    )
    return 0 if report.is_valid else 1


def run_report(args, store, logger) -> int:
    """Print and save the invoice KPIs of a month."""
    period = validate_period(args.month)
    invoices = store.list_invoices(period)
    report = build_invoice_report(invoices, period)

    print("\n" + "=" * 60)
    print(f"INVOICE REPORT {period}")
    print("=" * 60)
    print(f"Invoices:                 {report.invoice_count}")
    print(f"Customers:                {report.customer_count}")
    print(f"Total to bill:            {report.total_to_bill:.2f}")
    print(f"Paid:                     {report.paid_total:.2f}")
    print(f"Pending:                  {report.pending_total:.2f}")
    print(f"  draft:                  {report.draft_total:.2f}")
    print(f"  approved, unpaid:       {report.approved_unpaid_total:.2f}")
    print(f"Collection rate:          {report.collection_rate:.2f}%")
    print(f"Payment links to send:    {report.pending_link_count}")
    print(f"Average bill:             {report.average_bill:.2f}")
    print("=" * 60)

    save_json(report.to_dict(), config.reports_dir / generate_filename(f"kpi_{period}", "json"))
    if invoices:
        save_csv(
            invoices_to_frame(invoices),
            config.reports_dir / generate_filename(f"invoices_{period}", "csv")
        )
    return 0


COMMANDS = {
    "build": run_build,
    "validate": run_validate,
    "report": run_report,
}


def main(argv=None):
    """Main execution function."""
    args = parse_arguments(argv)

    level_name = args.log_level or config.log_level
    log_file = config.output_dir / "billing_logs" / f"billing_{datetime.now():%Y%m%d}.log"
    logger = setup_logger(
        "tutor_billing",
        level=getattr(logging, level_name, logging.INFO),
        log_file=str(log_file)
    )

    try:
        logger.info(f"Command: {args.command} month={args.month}")

        # Validate configuration
        config.validate()
        config.create_output_directories()

        store = create_store()
        return COMMANDS[args.command](args, store, logger)

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        logger.info("Interrupted by user")
        return 130

    except DomainError as e:
        logger.error(f"{e.code}: {e.message}")
        print(f"\nERROR [{e.code}]: {e.message}")
        return 1

    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        print(f"\nERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
