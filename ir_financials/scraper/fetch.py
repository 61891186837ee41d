"""httpx helpers shared by discovery, resolution, and download.

Functions
---------
create_http_client : Sync httpx.Client with browser-like headers and timeouts
fetch_markup : GET a page and return its decoded HTML
parse_html : Parse HTML text with lxml
probe_content_type : Ask a URL for its content type without reading the body
is_binary_content_type : Decide whether a content type denotes a document binary
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin

import httpx
import lxml.html
from lxml import etree

from ir_financials.config import get_section, setup_logging

if TYPE_CHECKING:
    from lxml.html import HtmlElement

logger = setup_logging(__name__)

_HTML_PARSER = lxml.html.HTMLParser(encoding="utf-8")

# Content types accepted as a downloadable report binary
BINARY_CONTENT_TYPES = frozenset(
    {
        "application/pdf",
        "application/x-pdf",
        "application/acrobat",
        "application/octet-stream",
        "binary/octet-stream",
        "application/force-download",
        "application/download",
    },
)

# Types that need a %PDF signature check because servers use them for anything
GENERIC_BINARY_TYPES = frozenset(BINARY_CONTENT_TYPES - {"application/pdf", "application/x-pdf", "application/acrobat"})


def create_http_client(config: dict[str, Any] | None = None) -> httpx.Client:
    """Create the sync client used for static fetches and downloads.

    Parameters
    ----------
    config : dict[str, Any] | None, optional
        Already-loaded configuration; ``None`` loads ``config/config.json``.

    Returns
    -------
    httpx.Client
        Client following redirects with a bounded timeout and the configured
        user agent. Callers own it and must close it.
    """
    http_config = get_section("http", config)
    return httpx.Client(
        timeout=float(http_config["timeout_seconds"]),
        follow_redirects=True,
        headers={"User-Agent": http_config["user_agent"]},
    )


def normalize_content_type(header_value: str | None) -> str:
    """Strip parameters and case from a ``Content-Type`` header."""
    if not header_value:
        return ""
    return header_value.split(";", 1)[0].strip().lower()


def is_binary_content_type(content_type: str | None) -> bool:
    """Return ``True`` when ``content_type`` denotes a document binary.

    Examples
    --------
    >>> is_binary_content_type("application/pdf; charset=binary")
    True
    >>> is_binary_content_type("text/html")
    False
    """
    return normalize_content_type(content_type) in BINARY_CONTENT_TYPES


def fetch_markup(client: httpx.Client, url: str) -> str:
    """Fetch a page without executing scripts.

    Raises
    ------
    httpx.HTTPError
        On connection failures, timeouts, or 4xx/5xx responses.
    """
    logger.debug("Fetching markup: %s", url)
    response = client.get(url)
    response.raise_for_status()
    return response.text


def parse_html(markup: str) -> HtmlElement | None:
    """Parse HTML text with lxml, returning ``None`` for empty or broken input."""
    if not markup or not markup.strip():
        return None

    try:
        # Bytes input sidesteps lxml's refusal of str with an encoding declaration
        return lxml.html.fromstring(markup.encode("utf-8"), parser=_HTML_PARSER)
    except (etree.ParserError, ValueError) as e:
        logger.debug("HTML parse failed: %s", e)
        return None


def document_base_url(document: HtmlElement, page_url: str) -> str:
    """Return the URL relative links resolve against (``<base href>`` wins)."""
    base_elements = document.xpath("//base[@href]")
    if base_elements:
        return urljoin(page_url, (base_elements[0].get("href") or "").strip())
    return page_url


def probe_content_type(client: httpx.Client, url: str) -> str:
    """Return the normalized content type served at ``url``.

    A ``HEAD`` request is tried first; servers that refuse it (405/403/404
    or no content type) are asked again with a streamed ``GET`` whose body is
    not read.

    Returns
    -------
    str
        Lowercase media type, or ``""`` when the URL cannot be reached.
    """
    try:
        response = client.head(url)
        content_type = normalize_content_type(response.headers.get("content-type"))
        if response.is_success and content_type:
            return content_type
    except httpx.HTTPError as e:
        logger.debug("HEAD failed for %s: %s", url, e)

    try:
        with client.stream("GET", url) as response:
            if not response.is_success:
                return ""
            return normalize_content_type(response.headers.get("content-type"))
    except httpx.HTTPError as e:
        logger.debug("GET probe failed for %s: %s", url, e)
        return ""
