"""Browser automation utilities using Playwright.

This module wraps Playwright's sync API in :class:`BrowserSession`, a scoped
resource created once per discovery or resolution phase. Entering the
session launches Chromium; leaving it (normally, on error, or on timeout)
closes the context, the browser, and the Playwright driver, so no external
browser process outlives the phase.

Main components:
- create_browser / create_browser_context: launch settings
- BrowserSession: context manager exposing link and markup collection

Notes
-----
Uses Chromium headless mode by default. Chrome args disable GPU and sandbox
for compatibility with containerized/server environments (Ubuntu headless).
"""

from __future__ import annotations

import contextlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from ir_financials.config import DEFAULT_USER_AGENT, get_section, setup_logging

if TYPE_CHECKING:
    from types import TracebackType

    from playwright.sync_api import Browser, BrowserContext, Frame, Page, Playwright

logger = setup_logging(__name__)

# Absolute href (resolved by the DOM) and visible text of every anchor
_ANCHORS_JS = """
els => els.map(a => ({
    href: a.href || "",
    text: (a.innerText || a.textContent || a.getAttribute("title") || "").trim()
}))
"""


@dataclass
class FrameMarkup:
    """Rendered HTML of one frame together with its document URL."""

    url: str
    html: str


def create_browser(playwright: Playwright, headless: bool = True) -> Browser:
    """Create a Chromium browser instance.

    Parameters
    ----------
    playwright : Playwright
        Started Playwright driver.
    headless : bool, optional
        Run browser in headless mode. Default True for server use.

    Returns
    -------
    Browser
        Configured Chromium browser instance.
    """
    # Chrome args ensure compatibility with containerized environments
    return playwright.chromium.launch(
        headless=headless,
        args=[
            "--disable-gpu",  # No GPU in headless environments
            "--disable-dev-shm-usage",  # Prevents /dev/shm overflow in Docker
            "--no-sandbox",  # Required for root/containerized execution
        ],
    )


def create_browser_context(browser: Browser, user_agent: str = DEFAULT_USER_AGENT) -> BrowserContext:
    """Create a browser context with appropriate settings.

    Parameters
    ----------
    browser : Browser
        Browser instance to create context on.
    user_agent : str, optional
        User agent presented to IR sites.

    Returns
    -------
    BrowserContext
        Context configured with realistic viewport and user agent.
    """
    return browser.new_context(
        viewport={"width": 1920, "height": 1080},
        user_agent=user_agent,
        accept_downloads=True,
    )


class BrowserSession:
    """Scoped Chromium session for rendering IR and viewer pages.

    Use as a context manager::

        with BrowserSession() as session:
            links = session.collect_links(url)

    Attributes
    ----------
    headless : bool
        Whether Chromium runs without a window.
    navigation_timeout_ms : int
        Upper bound for each ``page.goto`` call.
    settle_ms : int
        Extra wait after load for late JavaScript rendering.
    """

    def __init__(
        self,
        headless: bool | None = None,
        navigation_timeout_ms: int | None = None,
        settle_ms: int | None = None,
        user_agent: str | None = None,
        config: dict[str, Any] | None = None,
    ) -> None:
        browser_config = get_section("browser", config)
        http_config = get_section("http", config)

        self.headless = browser_config["headless"] if headless is None else headless
        self.navigation_timeout_ms = int(navigation_timeout_ms or browser_config["navigation_timeout_ms"])
        self.settle_ms = int(browser_config["settle_ms"] if settle_ms is None else settle_ms)
        self.user_agent = user_agent or http_config["user_agent"]

        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    def __enter__(self) -> BrowserSession:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def page(self) -> Page:
        """The session's working page; only valid inside the ``with`` block."""
        if self._page is None:
            msg = "BrowserSession is not started"
            raise RuntimeError(msg)
        return self._page

    def start(self) -> None:
        """Launch the driver, browser, context, and working page."""
        if self._page is not None:
            return

        logger.debug("Starting browser session (headless=%s)", self.headless)
        self._playwright = sync_playwright().start()
        try:
            self._browser = create_browser(self._playwright, headless=self.headless)
            self._context = create_browser_context(self._browser, self.user_agent)
            self._page = self._context.new_page()
        except BaseException:
            self.close()
            raise

    def close(self) -> None:
        """Release every browser resource; safe to call more than once."""
        # Cleanup in reverse order: context closes pages, browser closes contexts
        if self._context is not None:
            with contextlib.suppress(PlaywrightError):
                self._context.close()
        if self._browser is not None:
            with contextlib.suppress(PlaywrightError):
                self._browser.close()
        if self._playwright is not None:
            with contextlib.suppress(PlaywrightError):
                self._playwright.stop()
            logger.debug("Browser session closed")

        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None

    def open(self, url: str) -> Page:
        """Navigate the working page to ``url`` and let it settle.

        Raises
        ------
        playwright.sync_api.TimeoutError
            If navigation exceeds ``navigation_timeout_ms``.
        """
        page = self.page
        logger.debug("Navigating to: %s", url)
        # networkidle ensures JavaScript-rendered content is available
        page.goto(url, wait_until="networkidle", timeout=self.navigation_timeout_ms)
        if self.settle_ms:
            page.wait_for_timeout(self.settle_ms)
        return page

    def collect_links(self, url: str) -> list[tuple[str, str]]:
        """Return ``(text, absolute_href)`` for anchors in every frame of ``url``.

        Embedded frames are inspected as separate sub-documents so reports
        listed inside an iframe widget are found too.
        """
        page = self.open(url)
        links: list[tuple[str, str]] = []

        for frame in page.frames:
            links.extend(_frame_links(frame))

        logger.debug("Collected %d links from %d frames", len(links), len(page.frames))
        return links

    def rendered_markup(self, url: str) -> list[FrameMarkup]:
        """Return the rendered HTML of the main frame and each child frame."""
        page = self.open(url)
        markups: list[FrameMarkup] = []

        for frame in page.frames:
            try:
                markups.append(FrameMarkup(url=frame.url, html=frame.content()))
            except PlaywrightError as e:
                logger.debug("Skipping unreadable frame %s: %s", frame.url, e)

        return markups


def _frame_links(frame: Frame) -> list[tuple[str, str]]:
    """Extract anchors from one frame; detached or cross-origin failures yield nothing."""
    try:
        anchors = frame.eval_on_selector_all("a[href]", _ANCHORS_JS)
    except PlaywrightError as e:
        logger.debug("Could not read links from frame %s: %s", frame.url, e)
        return []

    return [(str(a.get("text", "")), str(a.get("href", ""))) for a in anchors if a.get("href")]
