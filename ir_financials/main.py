#!/usr/bin/env python3
"""Annual-report orchestrator - discover, download, extract, consolidate, export.

This module runs the complete workflow for one company:
1. Discover annual reports on the investor-relations page
2. Download one PDF per fiscal year (viewer links resolved)
3. Extract the three financial statements with the configured model
4. Consolidate the years into ``compiled_data/<company>.json``
5. Export ``exports/<company>_financials.csv``

Usage (from project root):
    python -m ir_financials.main --url https://www.novonordisk.com/investors/annual-report.html
    python -m ir_financials.main --url URL --company novonordisk --no-headless
    python -m ir_financials.main --company novonordisk --skip-download
    python -m ir_financials.main --compare novonordisk sanofi
    python -m ir_financials.main --list

CLI Flags:
    --url, -u           Investor-relations page URL
    --company, -c       Company id (default: derived from the URL host)
    --skip-download, -s Re-parse documents already on disk
    --no-export         Don't write the company CSV
    --no-headless       Show browser window during discovery
    --compare           Write a comparative CSV for the given companies
    --list              List companies with compiled data
"""

from __future__ import annotations

import argparse
import sys

from ir_financials.config import setup_logging
from ir_financials.errors import IRFinancialsError
from ir_financials.pipeline import PipelineResult, run_pipeline
from ir_financials.writer.csv_exporter import export_comparative_csv
from ir_financials.writer.record_store import company_display_name, list_companies

logger = setup_logging(__name__)


# =============================================================================
# Reporting
# =============================================================================


def print_pipeline_report(result: PipelineResult) -> None:
    """Print a short summary of a finished run."""
    print()
    print("=" * 60)
    print(f"  {company_display_name(result.company_id)}")
    print("=" * 60)

    if result.discovery is not None:
        print(f"  Discovery ({result.discovery.strategy}): {len(result.discovery.candidates)} reports")
    print(f"  Documents: {len(result.documents)}")
    print(f"  Extracted years: {len(result.extractions)}")

    if result.record is not None:
        print(f"  Years covered: {', '.join(result.record.years_covered)}")
    if result.csv_path is not None:
        print(f"  CSV: {result.csv_path}")

    if result.failures:
        print("  Skipped years:")
        for year in sorted(result.failures, reverse=True):
            print(f"    {year}: {result.failures[year]}")
    print()


# =============================================================================
# CLI
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(
        description="Extract multi-year financial statements from a company's annual reports.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m ir_financials.main --url https://www.novonordisk.com/investors/annual-report.html
  python -m ir_financials.main --company novonordisk --skip-download
  python -m ir_financials.main --compare novonordisk sanofi
  python -m ir_financials.main --list
        """,
    )
    parser.add_argument("--url", "-u", help="Investor-relations page URL")
    parser.add_argument("--company", "-c", help="Company id (default: derived from the URL host)")
    parser.add_argument("--skip-download", "-s", action="store_true", help="Re-parse documents already on disk")
    parser.add_argument("--no-export", action="store_true", help="Don't write the company CSV")
    parser.add_argument("--no-headless", action="store_true", help="Show browser window during discovery")
    parser.add_argument("--compare", nargs="+", metavar="COMPANY", help="Write a comparative CSV for these companies")
    parser.add_argument("--list", action="store_true", help="List companies with compiled data")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse CLI flags and run the requested action.

    Returns
    -------
    int
        ``0`` on success; ``1`` on a terminal pipeline error or bad input.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list:
        companies = list_companies()
        if not companies:
            print("No compiled data found.")
        for company in companies:
            print(f"{company}\t{company_display_name(company)}")
        return 0

    if args.compare:
        try:
            path = export_comparative_csv(args.compare)
        except FileNotFoundError as e:
            logger.error("%s", e)
            return 1
        print(f"Comparative CSV: {path}")
        return 0

    if not args.url and not (args.skip_download and args.company):
        parser.error("--url is required (or --company with --skip-download)")

    try:
        result = run_pipeline(
            args.url,
            args.company,
            skip_download=args.skip_download,
            export=not args.no_export,
            headless=False if args.no_headless else None,
        )
    except IRFinancialsError as e:
        logger.error("Pipeline failed at %s stage: %s", e.stage, e.message)
        print(f"FAILED [{e.stage}]: {e.message}", file=sys.stderr)
        return 1
    except ValueError as e:
        logger.error("%s", e)
        return 1

    print_pipeline_report(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
