"""Tests for annual-report discovery.

Tests cover:
1. Anchor extraction from static markup
2. Year-navigation link detection
3. Static strategy, browser fallback, and year-page following
4. Terminal failure when nothing qualifies
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date

import httpx
import pytest
from playwright.sync_api import Error as PlaywrightError

from ir_financials.errors import DiscoveryFailure
from ir_financials.scraper.discovery import (
    discover_reports,
    discover_with_browser,
    extract_links_from_markup,
    find_year_navigation_links,
)

IR_URL = "https://www.example.com/investors"
TODAY = date(2025, 6, 1)

STATIC_PAGE = """<html><head><base href="https://cdn.example.com/docs/"></head><body>
<a href="ar-2024.pdf">Annual Report 2024</a>
<a href="ar-2024.pdf">Annual Report 2024</a>
<a href="q3-2024.pdf">Q3 2024 Interim Report</a>
<a href="#top">Annual report 2023</a>
<a href="mailto:ir@example.com">Annual report 2022</a>
<a href="/files/ar-2023.pdf">Annual
    Report 2023</a>
</body></html>"""

EMPTY_PAGE = "<html><body><div id='app'></div><a href='/contact'>Contact</a></body></html>"

ClientFactory = Callable[[Callable[[httpx.Request], httpx.Response]], httpx.Client]


def serve(markup: str, status: int = 200) -> Callable[[httpx.Request], httpx.Response]:
    """Handler returning ``markup`` for every request."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, text=markup, headers={"content-type": "text/html"})

    return handler


# =============================================================================
# Markup Parsing
# =============================================================================


class TestExtractLinks:
    """Tests for static anchor extraction."""

    def test_base_href_and_dedup(self) -> None:
        """Relative links resolve against <base>; repeats and fragments drop."""
        links = extract_links_from_markup(STATIC_PAGE, IR_URL)
        assert links == [
            ("Annual Report 2024", "https://cdn.example.com/docs/ar-2024.pdf"),
            ("Q3 2024 Interim Report", "https://cdn.example.com/docs/q3-2024.pdf"),
            ("Annual Report 2023", "https://cdn.example.com/files/ar-2023.pdf"),
        ]

    def test_empty_markup(self) -> None:
        """Blank markup yields no links."""
        assert extract_links_from_markup("   ", IR_URL) == []

    def test_encoding_declaration_tolerated(self) -> None:
        """Markup carrying an XML encoding declaration still parses."""
        markup = '<?xml version="1.0" encoding="utf-8"?><html><body><a href="/a.pdf">AR</a></body></html>'
        assert extract_links_from_markup(markup, IR_URL) == [("AR", "https://www.example.com/a.pdf")]


class TestYearNavigation:
    """Tests for per-year page detection."""

    def test_url_and_text_patterns(self, window: range) -> None:
        """Both /annual-report/<year> URLs and bare year texts qualify."""
        links = [
            ("Archive", f"{IR_URL}/annual-report/2023"),
            ("2022", f"{IR_URL}/archive/2022"),
            ("Annual Report 2024", f"{IR_URL}/ar-2024.pdf"),
            ("2009", f"{IR_URL}/archive/2009"),
        ]
        assert find_year_navigation_links(links, window) == [
            (f"{IR_URL}/annual-report/2023", 2023),
            (f"{IR_URL}/archive/2022", 2022),
        ]


# =============================================================================
# Strategies
# =============================================================================


class TestDiscoverReports:
    """Tests for the static-then-browser discovery flow."""

    def test_static_strategy(self, mock_client: ClientFactory) -> None:
        """Static markup with report links needs no browser."""
        factory_calls: list[int] = []

        def factory() -> None:
            factory_calls.append(1)

        with mock_client(serve(STATIC_PAGE)) as client:
            result = discover_reports(IR_URL, client=client, session_factory=factory, today=TODAY, config={})  # type: ignore[arg-type]

        assert result.strategy == "static"
        assert result.years == [2024, 2023]
        assert factory_calls == []

    def test_browser_fallback(self, mock_client: ClientFactory, fake_session: type) -> None:
        """Script-rendered pages are read in a scoped browser session."""
        session = fake_session(
            links={
                IR_URL: [
                    ("Annual Report 2022", "https://www.example.com/ar-2022.pdf"),
                    ("Annual Report 2021", "https://www.example.com/ar-2021.pdf"),
                ],
            },
        )

        with mock_client(serve(EMPTY_PAGE)) as client:
            result = discover_reports(IR_URL, client=client, session_factory=lambda: session, today=TODAY, config={})

        assert result.strategy == "browser"
        assert result.years == [2022, 2021]
        assert session.entered
        assert session.closed

    def test_static_http_error_falls_back(self, mock_client: ClientFactory, fake_session: type) -> None:
        """A failing static fetch is not terminal."""
        session = fake_session(links={IR_URL: [("Annual Report 2024", "https://www.example.com/ar.pdf")]})

        with mock_client(serve("nope", status=503)) as client:
            result = discover_reports(IR_URL, client=client, session_factory=lambda: session, today=TODAY, config={})

        assert result.years == [2024]

    def test_nothing_found_without_browser(self, mock_client: ClientFactory) -> None:
        """No candidates and no browser is a terminal discovery failure."""
        with mock_client(serve(EMPTY_PAGE)) as client, pytest.raises(DiscoveryFailure) as exc_info:
            discover_reports(IR_URL, client=client, use_browser=False, today=TODAY, config={})

        assert exc_info.value.terminal
        assert exc_info.value.stage == "discovery"

    def test_browser_failure_is_terminal(self, mock_client: ClientFactory) -> None:
        """A browser that cannot start leaves discovery empty."""

        def broken_factory() -> None:
            raise PlaywrightError("Executable doesn't exist")

        with mock_client(serve(EMPTY_PAGE)) as client, pytest.raises(DiscoveryFailure):
            discover_reports(IR_URL, client=client, session_factory=broken_factory, today=TODAY, config={})  # type: ignore[arg-type]

    def test_session_closed_on_error(self, mock_client: ClientFactory, fake_session: type) -> None:
        """The session is released even when link collection fails."""
        session = fake_session()

        def failing_collect(url: str) -> list[tuple[str, str]]:
            raise PlaywrightError("Timeout 60000ms exceeded")

        session.collect_links = failing_collect

        with mock_client(serve(EMPTY_PAGE)) as client, pytest.raises(DiscoveryFailure):
            discover_reports(IR_URL, client=client, session_factory=lambda: session, today=TODAY, config={})

        assert session.closed


class TestDiscoverWithBrowser:
    """Tests for following per-year navigation pages."""

    def test_follows_year_pages(self, fake_session: type, window: range) -> None:
        """Sparse landing pages are completed from per-year pages."""
        session = fake_session(
            links={
                IR_URL: [
                    ("Annual Report 2024", f"{IR_URL}/ar-2024.pdf"),
                    ("2023", f"{IR_URL}/archive/2023"),
                    ("2022", f"{IR_URL}/archive/2022"),
                ],
                f"{IR_URL}/archive/2023": [
                    ("Remuneration report", f"{IR_URL}/files/rem-2023.pdf"),
                    ("Download annual report", f"{IR_URL}/files/nn-ar.pdf"),
                ],
                f"{IR_URL}/archive/2022": [],
            },
        )

        candidates = discover_with_browser(IR_URL, session, window, max_reports=10, min_candidates=2)

        assert [(c.inferred_year, c.url) for c in candidates] == [
            (2024, f"{IR_URL}/ar-2024.pdf"),
            (2023, f"{IR_URL}/files/nn-ar.pdf"),
        ]
        assert f"{IR_URL}/archive/2022" in session.visited

    def test_enough_candidates_skips_year_pages(self, fake_session: type, window: range) -> None:
        """Year pages are not visited when the landing page suffices."""
        session = fake_session(
            links={
                IR_URL: [
                    ("Annual Report 2024", f"{IR_URL}/ar-2024.pdf"),
                    ("Annual Report 2023", f"{IR_URL}/ar-2023.pdf"),
                    ("2022", f"{IR_URL}/archive/2022"),
                ],
            },
        )

        candidates = discover_with_browser(IR_URL, session, window, min_candidates=2)

        assert len(candidates) == 2
        assert session.visited == [IR_URL]
