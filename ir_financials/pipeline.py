"""Staged pipeline: discover -> acquire -> extract -> consolidate -> export.

Each stage returns a typed artifact consumed by the next one:

    DiscoveryResult -> FetchOutcome -> list[YearExtraction]
                    -> ConsolidatedCompanyFinancials -> CSV path

Failures scoped to one candidate, document or year are logged, recorded in
``PipelineResult.failures`` and skipped. Terminal errors (no candidates,
rejected credentials, zero successful years, a concurrent run for the same
company) propagate to the caller with the stage that failed.

Runs for distinct companies may proceed in parallel; at most one run per
company id is in flight in this process.
"""

from __future__ import annotations

import contextlib
import re
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from ir_financials.config import get_config, get_section, setup_logging
from ir_financials.errors import (
    ExtractionAuthenticationError,
    ExtractionRateLimited,
    IRFinancialsError,
    PipelineBusy,
)
from ir_financials.extractor.pdf_parser import extract_document_text
from ir_financials.extractor.statement_extractor import StatementExtractor
from ir_financials.scraper.browser import BrowserSession
from ir_financials.scraper.discovery import discover_reports
from ir_financials.scraper.downloader import fetch_reports, list_downloaded_documents
from ir_financials.scraper.fetch import create_http_client
from ir_financials.transformer.consolidator import consolidate
from ir_financials.writer.csv_exporter import export_company_csv
from ir_financials.writer.record_store import load_year_extractions, save_consolidated, save_year_extraction

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path

    import httpx

    from ir_financials.models import (
        AnnualReportDocument,
        ConsolidatedCompanyFinancials,
        DiscoveryResult,
        YearExtraction,
    )

logger = setup_logging(__name__)

_COMPANY_ID_CHARS = re.compile(r"[^a-z0-9_-]+")


@dataclass
class PipelineResult:
    """Artifacts and per-year failures of one pipeline run."""

    company_id: str
    discovery: DiscoveryResult | None = None
    documents: list[AnnualReportDocument] = field(default_factory=list)
    extractions: list[YearExtraction] = field(default_factory=list)
    record: ConsolidatedCompanyFinancials | None = None
    csv_path: Path | None = None
    failures: dict[int, str] = field(default_factory=dict)


# =============================================================================
# Company identity and locking
# =============================================================================


def company_id_from_url(ir_url: str) -> str:
    """Derive a storage namespace from the IR page host.

    Examples
    --------
    >>> company_id_from_url("https://www.novonordisk.com/investors/annual-report.html")
    'novonordisk'
    >>> company_id_from_url("https://investors.sanofi.com/")
    'investors'

    Raises
    ------
    ValueError
        If the URL has no host.
    """
    host = (urlparse(ir_url).hostname or "").lower()
    host = host.removeprefix("www.")
    label = _COMPANY_ID_CHARS.sub("", host.split(".", 1)[0])
    if not label:
        msg = f"Cannot derive a company id from URL: {ir_url}"
        raise ValueError(msg)
    return label


_registry_lock = threading.Lock()
_company_locks: dict[str, threading.Lock] = {}


@contextlib.contextmanager
def company_lock(company_id: str) -> Iterator[None]:
    """Hold the per-company run lock for the duration of the block.

    Raises
    ------
    PipelineBusy
        If another run for ``company_id`` holds the lock.
    """
    with _registry_lock:
        lock = _company_locks.setdefault(company_id, threading.Lock())

    if not lock.acquire(blocking=False):
        msg = f"A pipeline run for {company_id} is already in progress"
        raise PipelineBusy(msg)
    try:
        yield
    finally:
        lock.release()


# =============================================================================
# Stages
# =============================================================================


def extract_with_retries(
    extractor: StatementExtractor,
    text: str,
    fiscal_year: int,
    source_file: str,
    retry_config: dict[str, Any],
    sleep: Callable[[float], None] = time.sleep,
) -> YearExtraction:
    """Run one extraction, backing off exponentially on rate limits.

    Raises
    ------
    ExtractionRateLimited
        If every attempt is throttled.
    """
    max_attempts = max(1, int(retry_config["max_attempts"]))
    base_delay = float(retry_config["base_delay_seconds"])
    max_delay = float(retry_config["max_delay_seconds"])

    attempt = 0
    while True:
        try:
            return extractor.extract(text, fiscal_year, source_file)
        except ExtractionRateLimited:
            attempt += 1
            if attempt >= max_attempts:
                logger.warning("All %s attempts rate limited for %s", max_attempts, fiscal_year)
                raise
            delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
            logger.warning("Rate limited on %s, retrying in %ss (%d/%d)", fiscal_year, delay, attempt, max_attempts)
            sleep(delay)


def extract_documents(
    documents: list[AnnualReportDocument],
    extractor: StatementExtractor,
    company_id: str,
    retry_config: dict[str, Any],
    failures: dict[int, str],
    data_dir: Path | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> list[YearExtraction]:
    """Extract and store statements for each document, newest first.

    Per-year failures are written into ``failures``; terminal errors
    propagate.
    """
    extractions = []

    for document in sorted(documents, key=lambda d: d.fiscal_year, reverse=True):
        year = document.fiscal_year
        source_file = document.local_path.name
        logger.info("Parsing %s for year %s", source_file, year)

        try:
            text = extract_document_text(document.local_path)
            extraction = extract_with_retries(extractor, text, year, source_file, retry_config, sleep)
        except IRFinancialsError as e:
            if e.terminal:
                raise
            logger.warning("Skipping %s: %s", year, e.describe())
            failures[year] = e.describe()
            continue
        except Exception as e:
            logger.exception("Unexpected error parsing %s", source_file)
            failures[year] = f"extraction: {e}"
            continue

        save_year_extraction(company_id, extraction, data_dir)
        extractions.append(extraction)

    logger.info("Parsed %d of %d documents for %s", len(extractions), len(documents), company_id)
    return extractions


def consolidate_from_store(
    company_id: str,
    extractor: StatementExtractor,
    data_dir: Path | None = None,
) -> ConsolidatedCompanyFinancials:
    """Rebuild the consolidated record from every stored per-year extraction."""
    record = consolidate(
        company_id,
        load_year_extractions(company_id, data_dir),
        ai_provider=extractor.provider,
        model_used=extractor.model,
    )
    save_consolidated(record, data_dir)
    return record


def _build_extractor(config: dict[str, Any]) -> StatementExtractor:
    try:
        return StatementExtractor.from_config(config)
    except ValueError as e:
        # Missing key or unknown provider: nothing can be extracted
        raise ExtractionAuthenticationError(str(e)) from e


# =============================================================================
# Orchestration
# =============================================================================


def run_pipeline(
    ir_url: str | None = None,
    company_id: str | None = None,
    *,
    skip_download: bool = False,
    export: bool = True,
    headless: bool | None = None,
    use_browser: bool = True,
    extractor: StatementExtractor | None = None,
    client: httpx.Client | None = None,
    session_factory: Callable[[], BrowserSession] | None = None,
    data_dir: Path | None = None,
    config: dict[str, Any] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> PipelineResult:
    """Run the full pipeline for one company.

    Parameters
    ----------
    ir_url : str | None, optional
        Investor-relations page; required unless ``skip_download``.
    company_id : str | None, optional
        Storage namespace; derived from ``ir_url`` when omitted.
    skip_download : bool, optional
        Re-parse the documents already on disk instead of discovering.
    export : bool, optional
        Write the per-company CSV after consolidation.
    headless : bool | None, optional
        Override the configured browser headless flag.
    use_browser : bool, optional
        Allow Playwright for discovery fallback and viewer resolution.
    extractor : StatementExtractor | None, optional
        Pre-built extractor; built from config when omitted.
    client : httpx.Client | None, optional
        Shared HTTP client; a temporary one is created when omitted.
    session_factory : Callable[[], BrowserSession] | None, optional
        Builds scoped browser sessions.
    data_dir : Path | None, optional
        Root data directory override.
    config : dict[str, Any] | None, optional
        Already-loaded configuration.
    sleep : Callable[[float], None], optional
        Used for rate-limit backoff.

    Returns
    -------
    PipelineResult
        Artifacts of every stage plus per-year failure reasons.

    Raises
    ------
    ValueError
        If neither a URL nor (with ``skip_download``) a company id is given.
    IRFinancialsError
        Terminal errors: ``DiscoveryFailure``, ``ExtractionAuthenticationError``,
        ``ConsolidationEmpty`` or ``PipelineBusy``.
    """
    if not skip_download and not ir_url:
        msg = "An IR page URL is required unless skip_download is set"
        raise ValueError(msg)
    if company_id is None:
        if not ir_url:
            msg = "A company id is required when no IR page URL is given"
            raise ValueError(msg)
        company_id = company_id_from_url(ir_url)

    config = config if config is not None else get_config()
    retry_config = get_section("extraction", config)["retry"]
    result = PipelineResult(company_id=company_id)

    with company_lock(company_id), contextlib.ExitStack() as stack:
        logger.info("=" * 60)
        logger.info("Starting pipeline for %s", company_id)
        logger.info("=" * 60)

        if extractor is None:
            extractor = _build_extractor(config)

        # Step 1-2: Discover and download, or reuse what is on disk
        if skip_download:
            result.documents = list_downloaded_documents(company_id, data_dir)
            logger.info("Using %d existing documents for %s", len(result.documents), company_id)
        else:
            http_client = client if client is not None else stack.enter_context(create_http_client(config))
            factory = session_factory or (lambda: BrowserSession(headless=headless, config=config))

            result.discovery = discover_reports(
                ir_url or "",
                client=http_client,
                session_factory=factory,
                use_browser=use_browser,
                config=config,
            )
            outcome = fetch_reports(
                result.discovery.candidates,
                company_id,
                client=http_client,
                session_factory=factory,
                use_browser=use_browser,
                data_dir=data_dir,
                config=config,
            )
            result.documents = outcome.documents
            result.failures.update(outcome.failures)

        # Step 3: Extract statements per document
        result.extractions = extract_documents(
            result.documents,
            extractor,
            company_id,
            retry_config,
            result.failures,
            data_dir=data_dir,
            sleep=sleep,
        )

        # Step 4: Consolidate from every stored year
        result.record = consolidate_from_store(company_id, extractor, data_dir)

        # Step 5: Export
        if export:
            result.csv_path = export_company_csv(company_id, result.record, data_dir=data_dir)

    logger.info(
        "Pipeline finished for %s: %d years covered, %d failures",
        company_id,
        len(result.record.years_covered),
        len(result.failures),
    )
    return result
