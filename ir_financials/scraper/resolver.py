"""Viewer-link resolution to direct document URLs.

Many IR sites link to an HTML viewer instead of the PDF itself. Resolution
is an ordered chain of strategies, each looking at the viewer page and
returning at most one candidate URL:

1. ``served_directly``: the viewer URL itself already returns a binary
2. ``download_affordance``: an explicit download link or button
3. ``embedded_source``: ``iframe``/``embed``/``object`` sources (pdf.js
   ``?file=`` parameters unwrapped)
4. ``markup_pattern``: ``.pdf`` URLs anywhere in the markup or inline scripts
5. ``query_parameter_guess``: a URL-valued query parameter of the viewer URL
6. ``suffix_guess``: the viewer path with a ``.pdf`` suffix

The chain stops at the first candidate whose response content type is a
document binary. If none verifies, :class:`ResolutionFailure` is raised and
the caller skips that document.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import cached_property
from typing import TYPE_CHECKING
from urllib.parse import parse_qs, unquote, urljoin, urlparse, urlunparse

import httpx
from playwright.sync_api import Error as PlaywrightError

from ir_financials.config import setup_logging
from ir_financials.errors import ResolutionFailure
from ir_financials.scraper.browser import FrameMarkup
from ir_financials.scraper.fetch import (
    document_base_url,
    fetch_markup,
    is_binary_content_type,
    parse_html,
    probe_content_type,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ir_financials.scraper.browser import BrowserSession

logger = setup_logging(__name__)

_DOWNLOAD_WORDING = re.compile(r"\b(?:download|pdf|full\s+report|save)\b", re.IGNORECASE)
_ABSOLUTE_PDF_URL = re.compile(r"(?:https?:)?//[^\s\"'<>()\\]+?\.pdf(?:\?[^\s\"'<>()\\]*)?", re.IGNORECASE)
_QUOTED_PDF_PATH = re.compile(r"[\"']([^\"'\s<>]+?\.pdf(?:\?[^\"'\s<>]*)?)[\"']", re.IGNORECASE)
_URL_QUERY_KEYS = ("file", "url", "src", "doc", "document", "pdf", "path", "asset")
_VIEWER_SUFFIXES = (".html", ".htm", ".aspx", ".php", ".jsp")


def is_direct_document_url(url: str) -> bool:
    """Return ``True`` when the URL path names a PDF file."""
    return urlparse(url).path.lower().endswith(".pdf")


@dataclass
class ViewerPage:
    """A viewer URL whose markup is loaded on first access.

    Attributes
    ----------
    viewer_url : str
        The indirect link being resolved.
    loader : Callable[[str], list[FrameMarkup]]
        Returns the page markup (static or rendered, one entry per frame).
    """

    viewer_url: str
    loader: Callable[[str], list[FrameMarkup]] = field(repr=False)

    @cached_property
    def markups(self) -> list[FrameMarkup]:
        """Markup of the viewer page and its frames."""
        return self.loader(self.viewer_url)


ResolverStrategy = Callable[[ViewerPage], str | None]


def _absolute(base_url: str, href: str | None) -> str | None:
    href = (href or "").strip()
    if not href or href.startswith(("#", "javascript:", "mailto:", "about:")):
        return None
    try:
        return urljoin(base_url, href)
    except ValueError:
        return None


def _unwrap_viewer_parameter(url: str) -> str:
    """Return the document URL carried by a pdf.js style ``?file=`` parameter."""
    parsed = urlparse(url)
    params = parse_qs(parsed.query)
    for key in ("file", "url", "src"):
        if params.get(key):
            return urljoin(url, unquote(params[key][0]))
    return url


def served_directly(page: ViewerPage) -> str | None:
    """Offer the viewer URL itself; some "viewer" links serve the binary."""
    return page.viewer_url


def download_affordance(page: ViewerPage) -> str | None:
    """Find an explicit download link or button in the rendered page."""
    for markup in page.markups:
        document = parse_html(markup.html)
        if document is None:
            continue
        base_url = document_base_url(document, markup.url or page.viewer_url)

        # An anchor with a download attribute is the strongest signal
        for anchor in document.xpath("//a[@download][@href]"):
            if url := _absolute(base_url, anchor.get("href")):
                return url

        labelled: list[str] = []
        for element in document.xpath("//a[@href] | //*[@data-href] | //*[@data-url] | //*[@data-download-url]"):
            label = " ".join(
                [
                    element.text_content(),
                    element.get("title") or "",
                    element.get("aria-label") or "",
                    element.get("class") or "",
                ],
            )
            if not _DOWNLOAD_WORDING.search(label):
                continue
            href = (
                element.get("href")
                or element.get("data-href")
                or element.get("data-url")
                or element.get("data-download-url")
            )
            url = _absolute(base_url, href)
            if url and url != page.viewer_url:
                labelled.append(url)

        # Prefer a labelled link that already names a PDF
        if labelled:
            return next((u for u in labelled if is_direct_document_url(u)), labelled[0])

    return None


def embedded_source(page: ViewerPage) -> str | None:
    """Use the source of an embedded frame, embed, or object element."""
    for markup in page.markups:
        document = parse_html(markup.html)
        if document is None:
            continue
        base_url = document_base_url(document, markup.url or page.viewer_url)

        for element in document.xpath("//iframe[@src] | //embed[@src] | //object[@data]"):
            url = _absolute(base_url, element.get("src") or element.get("data"))
            if url:
                return _unwrap_viewer_parameter(url)

    # Rendered sessions report child frames separately
    for markup in page.markups[1:]:
        if markup.url and is_direct_document_url(markup.url):
            return markup.url

    return None


def markup_pattern(page: ViewerPage) -> str | None:
    """Scan markup and inline scripts for anything that looks like a PDF URL."""
    for markup in page.markups:
        # JSON blobs in scripts often escape slashes
        text = markup.html.replace("\\/", "/")
        base_url = markup.url or page.viewer_url

        absolute = _ABSOLUTE_PDF_URL.search(text)
        if absolute:
            return urljoin(base_url, absolute.group(0))

        quoted = _QUOTED_PDF_PATH.search(text)
        if quoted:
            return _absolute(base_url, quoted.group(1))

    return None


def query_parameter_guess(page: ViewerPage) -> str | None:
    """Treat a URL-valued query parameter of the viewer URL as the document."""
    params = parse_qs(urlparse(page.viewer_url).query)
    for key in _URL_QUERY_KEYS:
        for value in params.get(key, []):
            value = unquote(value).strip()
            if value.startswith(("http://", "https://", "/")) or value.lower().endswith(".pdf"):
                return urljoin(page.viewer_url, value)
    return None


def suffix_guess(page: ViewerPage) -> str | None:
    """Construct ``<viewer path>.pdf`` from the viewer URL shape."""
    parsed = urlparse(page.viewer_url)
    path = parsed.path.rstrip("/")
    if not path:
        return None

    lowered = path.lower()
    for suffix in _VIEWER_SUFFIXES:
        if lowered.endswith(suffix):
            path = path[: -len(suffix)]
            break

    return urlunparse(parsed._replace(path=f"{path}.pdf", query="", fragment=""))


DEFAULT_STRATEGIES: tuple[tuple[str, ResolverStrategy], ...] = (
    ("served_directly", served_directly),
    ("download_affordance", download_affordance),
    ("embedded_source", embedded_source),
    ("markup_pattern", markup_pattern),
    ("query_parameter_guess", query_parameter_guess),
    ("suffix_guess", suffix_guess),
)


class ViewerResolver:
    """Resolve viewer links through an ordered strategy chain.

    Parameters
    ----------
    client : httpx.Client
        Client used for markup fetches and content-type verification.
    session : BrowserSession | None, optional
        Open browser session; when given, strategies see rendered markup.
    strategies : Sequence[tuple[str, ResolverStrategy]], optional
        Named strategies in priority order.
    """

    def __init__(
        self,
        client: httpx.Client,
        session: BrowserSession | None = None,
        strategies: Sequence[tuple[str, ResolverStrategy]] = DEFAULT_STRATEGIES,
    ) -> None:
        self.client = client
        self.session = session
        self.strategies = tuple(strategies)

    def load_markup(self, url: str) -> list[FrameMarkup]:
        """Return rendered markup when a session is open, else static markup."""
        if self.session is not None:
            try:
                return self.session.rendered_markup(url)
            except PlaywrightError as e:
                logger.warning("Rendering failed for %s, using static markup: %s", url, e)

        try:
            return [FrameMarkup(url=url, html=fetch_markup(self.client, url))]
        except httpx.HTTPError as e:
            logger.warning("Could not fetch viewer page %s: %s", url, e)
            return []

    def resolve(self, url: str, fiscal_year: int | None = None) -> str:
        """Return a direct document URL for ``url``.

        Parameters
        ----------
        url : str
            Direct or viewer link.
        fiscal_year : int | None, optional
            Year carried into the failure for reporting.

        Returns
        -------
        str
            ``url`` itself when it names a PDF, otherwise the first strategy
            result whose content type verifies as binary.

        Raises
        ------
        ResolutionFailure
            When no strategy yields a verified binary URL.
        """
        if is_direct_document_url(url):
            return url

        logger.info("Resolving viewer link: %s", url)
        page = ViewerPage(viewer_url=url, loader=self.load_markup)
        tried: set[str] = set()

        for name, strategy in self.strategies:
            candidate = strategy(page)
            if not candidate or candidate in tried:
                continue
            tried.add(candidate)

            content_type = probe_content_type(self.client, candidate)
            logger.debug("Strategy %s offered %s (%s)", name, candidate, content_type or "unreachable")
            if is_binary_content_type(content_type):
                logger.info("Resolved via %s: %s", name, candidate)
                return candidate

        msg = f"Could not resolve viewer link to a document: {url}"
        raise ResolutionFailure(msg, fiscal_year=fiscal_year)
