"""Annual-report download with validation and on-disk reuse.

Each candidate link becomes at most one stored document named
``<year>-annual-report.pdf`` under the company's report directory. Downloads
stream through httpx into a ``.part`` file that is renamed only after the
content type, size, and PDF signature checks pass; any failure deletes the
partial file and raises :class:`~ir_financials.errors.DownloadFailure` for
that year. An existing artifact is reused instead of re-fetched.

Functions
---------
download_file_sync : Stream one URL to disk and validate it
fetch_report : Resolve and download a single candidate
fetch_reports : Sequentially fetch every candidate for a company

Notes
-----
Fetches for one company run one at a time; the pipeline's per-company lock
keeps two runs from writing the same artifact.
"""

from __future__ import annotations

import contextlib
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import httpx
from playwright.sync_api import Error as PlaywrightError

from ir_financials.config import get_company_paths, get_section, setup_logging
from ir_financials.errors import DownloadFailure, ResolutionFailure
from ir_financials.models import AnnualReportDocument, CandidateLink, FetchOutcome
from ir_financials.scraper.browser import BrowserSession
from ir_financials.scraper.fetch import (
    GENERIC_BINARY_TYPES,
    create_http_client,
    is_binary_content_type,
    normalize_content_type,
)
from ir_financials.scraper.resolver import ViewerResolver, is_direct_document_url

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from pathlib import Path

logger = setup_logging(__name__)

PDF_SIGNATURE = b"%PDF"
_CHUNK_SIZE = 64 * 1024


def report_filename(fiscal_year: int) -> str:
    """Return the stored filename for a fiscal year's report."""
    return f"{fiscal_year}-annual-report.pdf"


def find_existing_document(
    company_id: str,
    fiscal_year: int,
    reports_dir: Path,
    min_size_bytes: int = 1024,
) -> AnnualReportDocument | None:
    """Return the stored report for ``fiscal_year`` when a plausible one exists.

    Undersized leftovers are deleted so the year is fetched again.
    """
    path = reports_dir / report_filename(fiscal_year)
    if not path.exists():
        return None

    stats = path.stat()
    if stats.st_size < min_size_bytes:
        logger.warning("Discarding undersized artifact %s (%d bytes)", path.name, stats.st_size)
        path.unlink()
        return None

    return AnnualReportDocument(
        company_id=company_id,
        fiscal_year=fiscal_year,
        source_url=path.as_uri(),
        local_path=path,
        size_bytes=stats.st_size,
        content_type="application/pdf",
        downloaded_at=datetime.fromtimestamp(stats.st_mtime, UTC),
        reused=True,
    )


def _check_artifact(part_path: Path, size: int, content_type: str, min_size_bytes: int) -> None:
    """Raise DownloadFailure unless the streamed file looks like a real document."""
    if size < min_size_bytes:
        msg = f"Implausibly small download ({size} bytes)"
        raise DownloadFailure(msg)

    # Generic or missing types are only trusted with a PDF signature
    if not content_type or content_type in GENERIC_BINARY_TYPES:
        with part_path.open("rb") as f:
            head = f.read(1024)
        if PDF_SIGNATURE not in head:
            msg = f"Body served as {content_type or 'unknown type'} is not a PDF"
            raise DownloadFailure(msg)


def download_file_sync(
    client: httpx.Client,
    url: str,
    destination: Path,
    min_size_bytes: int = 1024,
) -> tuple[int, str]:
    """Stream a document to ``destination`` and validate it.

    Parameters
    ----------
    client : httpx.Client
        Client with redirects and timeouts configured.
    url : str
        Direct document URL.
    destination : Path
        Final path; parent directories are created.
    min_size_bytes : int, optional
        Smallest plausible document size.

    Returns
    -------
    tuple[int, str]
        Size in bytes and normalized content type.

    Raises
    ------
    DownloadFailure
        On network errors, non-binary content types, undersized bodies, or a
        missing PDF signature. No partial file is left behind.
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    part_path = destination.with_name(destination.name + ".part")

    logger.info("Downloading: %s", url)
    logger.debug("Destination: %s", destination)

    try:
        with client.stream("GET", url) as response:
            response.raise_for_status()  # Raise on 4xx/5xx
            content_type = normalize_content_type(response.headers.get("content-type"))

            if content_type and not is_binary_content_type(content_type):
                msg = f"Non-binary content type {content_type!r} from {url}"
                raise DownloadFailure(msg)

            size = 0
            with part_path.open("wb") as output_file:
                for chunk in response.iter_bytes(chunk_size=_CHUNK_SIZE):
                    output_file.write(chunk)
                    size += len(chunk)

        _check_artifact(part_path, size, content_type, min_size_bytes)
    except (httpx.HTTPError, OSError) as e:
        part_path.unlink(missing_ok=True)
        msg = f"Failed to download {url}: {e}"
        raise DownloadFailure(msg) from e
    except DownloadFailure:
        part_path.unlink(missing_ok=True)
        raise

    part_path.replace(destination)
    logger.info("Downloaded: %s (%d bytes)", destination.name, size)
    return size, content_type or "application/pdf"


def fetch_report(
    link: CandidateLink,
    company_id: str,
    reports_dir: Path,
    client: httpx.Client,
    resolver: ViewerResolver,
    min_size_bytes: int = 1024,
) -> AnnualReportDocument:
    """Turn one candidate link into a stored document.

    Raises
    ------
    ResolutionFailure
        When a viewer link cannot be resolved.
    DownloadFailure
        When the download or its validation fails.
    """
    if link.inferred_year is None:
        msg = f"Candidate has no fiscal year: {link.url}"
        raise DownloadFailure(msg)
    year = link.inferred_year

    existing = find_existing_document(company_id, year, reports_dir, min_size_bytes)
    if existing is not None:
        logger.info("Skipping %s (already exists)", existing.local_path.name)
        return existing

    direct_url = resolver.resolve(link.url, fiscal_year=year)
    destination = reports_dir / report_filename(year)

    try:
        size, content_type = download_file_sync(client, direct_url, destination, min_size_bytes)
    except DownloadFailure as e:
        e.fiscal_year = year
        raise

    return AnnualReportDocument(
        company_id=company_id,
        fiscal_year=year,
        source_url=direct_url,
        local_path=destination,
        size_bytes=size,
        content_type=content_type,
        downloaded_at=datetime.now(UTC),
    )


def fetch_reports(
    candidates: Iterable[CandidateLink],
    company_id: str,
    *,
    client: httpx.Client | None = None,
    session_factory: Callable[[], BrowserSession] | None = None,
    use_browser: bool = True,
    data_dir: Path | None = None,
    config: dict[str, Any] | None = None,
) -> FetchOutcome:
    """Fetch every candidate for a company, one at a time.

    A browser session is opened only when some candidate is a viewer link,
    and is closed before returning on every path.

    Parameters
    ----------
    candidates : Iterable[CandidateLink]
        Year-tagged candidates from discovery.
    company_id : str
        Storage namespace for the company.
    client : httpx.Client | None, optional
        Shared client; a temporary one is created if absent.
    session_factory : Callable[[], BrowserSession] | None, optional
        Builds the scoped session used to render viewer pages.
    use_browser : bool, optional
        Allow rendering viewer pages in a browser.
    data_dir : Path | None, optional
        Root data directory override.
    config : dict[str, Any] | None, optional
        Already-loaded configuration.

    Returns
    -------
    FetchOutcome
        Stored documents (newest first) and per-year failure reasons.
    """
    candidates = list(candidates)
    min_size_bytes = int(get_section("download", config)["min_size_bytes"])
    reports_dir = get_company_paths(company_id, data_dir)["reports"]
    reports_dir.mkdir(parents=True, exist_ok=True)

    outcome = FetchOutcome()
    needs_browser = use_browser and any(not is_direct_document_url(c.url) for c in candidates)

    with contextlib.ExitStack() as stack:
        http_client = client if client is not None else stack.enter_context(create_http_client(config))

        session: BrowserSession | None = None
        if needs_browser:
            factory = session_factory or (lambda: BrowserSession(config=config))
            try:
                session = stack.enter_context(factory())
            except PlaywrightError as e:
                logger.warning("Browser unavailable for viewer resolution: %s", e)

        resolver = ViewerResolver(http_client, session=session)

        for link in candidates:
            year = link.inferred_year
            try:
                document = fetch_report(link, company_id, reports_dir, http_client, resolver, min_size_bytes)
            except (ResolutionFailure, DownloadFailure) as e:
                logger.warning("Skipping %s report: %s", year, e.describe())
                if year is not None:
                    outcome.failures[year] = e.describe()
                continue
            outcome.documents.append(document)

    outcome.documents.sort(key=lambda d: d.fiscal_year, reverse=True)
    logger.info(
        "Download completed for %s: %d documents, %d failures",
        company_id,
        len(outcome.documents),
        len(outcome.failures),
    )
    return outcome


def list_downloaded_documents(company_id: str, data_dir: Path | None = None) -> list[AnnualReportDocument]:
    """List stored reports for a company, newest year first.

    Files whose name does not start with a fiscal year are ignored.
    """
    reports_dir = get_company_paths(company_id, data_dir)["reports"]
    if not reports_dir.exists():
        return []

    documents = []
    for path in reports_dir.glob("*.pdf"):
        prefix = path.name.split("-", 1)[0]
        if not (prefix.isdigit() and len(prefix) == 4):
            continue
        stats = path.stat()
        documents.append(
            AnnualReportDocument(
                company_id=company_id,
                fiscal_year=int(prefix),
                source_url=path.as_uri(),
                local_path=path,
                size_bytes=stats.st_size,
                content_type="application/pdf",
                downloaded_at=datetime.fromtimestamp(stats.st_mtime, UTC),
                reused=True,
            ),
        )

    documents.sort(key=lambda d: d.fiscal_year, reverse=True)
    return documents
