"""Annual-report discovery on investor-relations pages.

Discovery runs two strategies in order:

1. **static**: fetch the raw markup with httpx (no script execution), parse
   it with lxml, and classify every anchor.
2. **browser**: only when the static pass yields nothing, render the page
   in a scoped Playwright session, read anchors from every frame, and, when
   too few candidates turn up, follow per-year navigation links (such as
   ``/annual-report/2022``) to reach the documents.

The result holds at most one candidate per fiscal year, newest first,
capped at the configured report count. Finding nothing is terminal for the
run and raises :class:`~ir_financials.errors.DiscoveryFailure`.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin, urlparse

import httpx
from playwright.sync_api import Error as PlaywrightError

from ir_financials.config import fiscal_year_window, get_section, setup_logging
from ir_financials.errors import DiscoveryFailure
from ir_financials.models import CandidateLink, DiscoveryResult
from ir_financials.scraper.browser import BrowserSession
from ir_financials.scraper.classifier import classify_link, classify_links, select_candidates
from ir_financials.scraper.fetch import create_http_client, document_base_url, fetch_markup, parse_html

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import date

logger = setup_logging(__name__)

IGNORED_SCHEMES = ("javascript:", "mailto:", "tel:", "data:")

# Per-year archive pages such as /annual-report/2022 or /reports/annual-reports/2021.html
YEAR_NAVIGATION_PATTERN = re.compile(r"annual[-_ ]?reports?/(?:[^?#]*?/)?(\d{4})(?!\d)", re.IGNORECASE)
_BARE_YEAR_TEXT = re.compile(r"^\s*(?:fy\s*)?(\d{4})\s*$", re.IGNORECASE)
_DOCUMENT_SUFFIXES = (".pdf", ".zip", ".xhtml", ".xbrl", ".xlsx", ".doc", ".docx")


def extract_links_from_markup(markup: str, base_url: str) -> list[tuple[str, str]]:
    """Return ``(text, absolute_url)`` for every usable anchor in ``markup``.

    Parameters
    ----------
    markup : str
        Raw HTML of the page.
    base_url : str
        URL the markup was fetched from; a ``<base href>`` overrides it.

    Returns
    -------
    list[tuple[str, str]]
        Anchors in document order, without script/mail links, fragments,
        or repeated ``(text, url)`` pairs.
    """
    document = parse_html(markup)
    if document is None:
        logger.warning("Could not parse markup from %s", base_url)
        return []

    base_url = document_base_url(document, base_url)

    links: list[tuple[str, str]] = []
    seen: set[tuple[str, str]] = set()

    for anchor in document.iter("a"):
        href = (anchor.get("href") or "").strip()
        if not href or href.startswith("#") or href.lower().startswith(IGNORED_SCHEMES):
            continue

        try:
            absolute = urljoin(base_url, href)
        except ValueError:
            logger.debug("Skipping malformed href: %s", href)
            continue

        text = " ".join(anchor.text_content().split()) or (anchor.get("title") or "").strip()
        key = (text, absolute)
        if key in seen:
            continue
        seen.add(key)
        links.append(key)

    return links


def find_year_navigation_links(
    links: Iterable[tuple[str, str]],
    window: range,
) -> list[tuple[str, int]]:
    """Pick links leading to per-year report pages rather than documents.

    Parameters
    ----------
    links : Iterable[tuple[str, str]]
        ``(text, url)`` pairs from the rendered IR page.
    window : range
        Accepted fiscal years.

    Returns
    -------
    list[tuple[str, int]]
        Unique ``(url, year)`` pairs in page order.
    """
    found: list[tuple[str, int]] = []
    seen_urls: set[str] = set()

    for text, url in links:
        path = urlparse(url).path.lower()
        if path.endswith(_DOCUMENT_SUFFIXES) or url in seen_urls:
            continue

        year: int | None = None
        url_match = YEAR_NAVIGATION_PATTERN.search(url)
        if url_match:
            year = int(url_match.group(1))
        else:
            text_match = _BARE_YEAR_TEXT.match(text)
            if text_match:
                year = int(text_match.group(1))

        if year is None or year not in window:
            continue

        seen_urls.add(url)
        found.append((url, year))

    return found


def discover_static(
    ir_url: str,
    client: httpx.Client,
    window: range,
    max_reports: int = 10,
) -> list[CandidateLink]:
    """Run the markup-only strategy.

    Returns
    -------
    list[CandidateLink]
        Selected candidates; empty when the fetch fails or nothing matches.
    """
    try:
        markup = fetch_markup(client, ir_url)
    except httpx.HTTPError as e:
        logger.warning("Static scrape failed for %s: %s", ir_url, e)
        return []

    links = extract_links_from_markup(markup, ir_url)
    logger.info("Static scan found %d links on %s", len(links), ir_url)
    return classify_links(links, window=window, max_reports=max_reports)


def discover_with_browser(
    ir_url: str,
    session: BrowserSession,
    window: range,
    max_reports: int = 10,
    min_candidates: int = 2,
) -> list[CandidateLink]:
    """Run the rendered-page strategy inside an open browser session.

    Parameters
    ----------
    ir_url : str
        Investor-relations landing page.
    session : BrowserSession
        Started session; the caller owns its lifetime.
    window : range
        Accepted fiscal years.
    max_reports : int, optional
        Maximum number of years to keep.
    min_candidates : int, optional
        Below this count, per-year navigation links are followed.

    Returns
    -------
    list[CandidateLink]
        Selected candidates, newest first.
    """
    links = session.collect_links(ir_url)
    logger.info("Rendered scan found %d links on %s", len(links), ir_url)

    tagged = [c for text, url in links if (c := classify_link(text, url, window)) is not None]
    candidates = select_candidates(tagged, max_reports=max_reports)

    if len(candidates) >= min_candidates:
        return candidates

    covered = {c.inferred_year for c in candidates}
    year_pages = [(url, year) for url, year in find_year_navigation_links(links, window) if year not in covered]
    logger.info("Following %d year navigation links", len(year_pages))

    for year_url, year in year_pages:
        try:
            year_links = session.collect_links(year_url)
        except PlaywrightError as e:
            logger.warning("Could not load year page %s: %s", year_url, e)
            continue

        match = next(
            (
                c
                for text, url in year_links
                if (c := classify_link(text, url, window, year_hint=year)) is not None and c.inferred_year == year
            ),
            None,
        )
        if match is None:
            logger.warning("No report link found for year %s on %s", year, year_url)
            continue

        logger.info("Found report for year %s: %s", year, match.url)
        tagged.append(match)

    return select_candidates(tagged, max_reports=max_reports)


def discover_reports(
    ir_url: str,
    *,
    client: httpx.Client | None = None,
    session_factory: Callable[[], BrowserSession] | None = None,
    use_browser: bool = True,
    headless: bool | None = None,
    today: date | None = None,
    config: dict[str, Any] | None = None,
) -> DiscoveryResult:
    """Find up to one annual report per fiscal year on an IR page.

    Parameters
    ----------
    ir_url : str
        Investor-relations landing page URL.
    client : httpx.Client | None, optional
        Client for the static strategy; a temporary one is created if absent.
    session_factory : Callable[[], BrowserSession] | None, optional
        Builds the scoped browser session for the fallback strategy.
    use_browser : bool, optional
        Allow the scripted-browser fallback.
    headless : bool | None, optional
        Override the configured headless flag for the default factory.
    today : date | None, optional
        Reference date for the fiscal-year window.
    config : dict[str, Any] | None, optional
        Already-loaded configuration.

    Returns
    -------
    DiscoveryResult
        Candidates sorted newest first with unique years.

    Raises
    ------
    DiscoveryFailure
        If neither strategy yields a qualifying candidate.
    """
    discovery_config = get_section("discovery", config)
    window = fiscal_year_window(today, int(discovery_config["window_years"]))
    max_reports = int(discovery_config["max_reports"])

    logger.info("Scraping annual reports for %s (years %s-%s)", ir_url, window.start, window.stop - 1)

    owns_client = client is None
    http_client = client if client is not None else create_http_client(config)
    try:
        candidates = discover_static(ir_url, http_client, window, max_reports)
    finally:
        if owns_client:
            http_client.close()

    if candidates:
        _log_candidates(candidates)
        return DiscoveryResult(ir_url=ir_url, candidates=candidates, strategy="static")

    if not use_browser:
        msg = f"No annual reports found on {ir_url}"
        raise DiscoveryFailure(msg)

    logger.info("No reports found using static scraping. Falling back to browser...")
    factory = session_factory or (lambda: BrowserSession(headless=headless, config=config))

    try:
        with factory() as session:
            candidates = discover_with_browser(
                ir_url,
                session,
                window,
                max_reports=max_reports,
                min_candidates=int(discovery_config["min_browser_candidates"]),
            )
    except PlaywrightError as e:
        logger.warning("Browser scrape failed for %s: %s", ir_url, e)
        candidates = []

    if not candidates:
        msg = f"No annual reports found on {ir_url}, even with a rendered browser session"
        raise DiscoveryFailure(msg)

    _log_candidates(candidates)
    return DiscoveryResult(ir_url=ir_url, candidates=candidates, strategy="browser")


def _log_candidates(candidates: list[CandidateLink]) -> None:
    logger.info("Found %d valid annual reports:", len(candidates))
    for candidate in candidates:
        logger.info("   %s: %s", candidate.inferred_year, candidate.display_text or candidate.url)
