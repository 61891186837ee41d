"""Pytest configuration for ir_financials tests.

This module provides:
- A fixed fiscal-year window so year filtering does not depend on the clock
- Factories for extraction records and consolidated records
- A fake browser session standing in for Playwright
- httpx clients backed by MockTransport (no test touches the network)
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

import httpx
import pytest
from dotenv import load_dotenv

from ir_financials.config import fiscal_year_window
from ir_financials.models import CANONICAL_ITEMS, YearExtraction
from ir_financials.scraper.browser import FrameMarkup

# Load environment variables from project .env so API keys are available in tests
PROJECT_ROOT = Path(__file__).parent.parent
load_dotenv(PROJECT_ROOT / ".env")

TODAY = date(2025, 6, 1)
PDF_BODY = b"%PDF-1.7\n" + b"0" * 4096


@pytest.fixture
def window() -> range:
    """Fiscal years 2016-2025."""
    return fiscal_year_window(TODAY, 10)


@pytest.fixture
def pdf_body() -> bytes:
    """A body that passes the size and signature checks."""
    return PDF_BODY


def statement_values(statement_type: str, base: int) -> dict[str, str]:
    """Build a full canonical statement with distinct numeric values."""
    return {item: str(base + i) for i, item in enumerate(CANONICAL_ITEMS[statement_type])}


@pytest.fixture
def make_extraction() -> Callable[..., YearExtraction]:
    """Factory for YearExtraction records with deterministic values."""

    def _make(year: int, source_file: str | None = None, base: int | None = None) -> YearExtraction:
        base = base if base is not None else year * 10
        return YearExtraction(
            fiscal_year=year,
            source_file=source_file or f"{year}-annual-report.pdf",
            income_statement=statement_values("income_statement", base),
            balance_sheet=statement_values("balance_sheet", base + 100),
            cash_flow=statement_values("cash_flow", base + 200),
            extracted_at=datetime(2025, 1, 1, tzinfo=UTC),
            model_used="gpt-4o",
            ai_provider="openai",
        )

    return _make


@pytest.fixture
def test_config() -> dict[str, Any]:
    """Configuration with pacing and backoff disabled."""
    return {
        "browser": {"settle_ms": 0},
        "extraction": {
            "call_delay_seconds": 0,
            "retry": {"max_attempts": 3, "base_delay_seconds": 0.01, "max_delay_seconds": 0.05},
        },
    }


class FakeBrowserSession:
    """Stand-in for BrowserSession serving canned links and markup per URL."""

    def __init__(
        self,
        links: dict[str, list[tuple[str, str]]] | None = None,
        markup: dict[str, list[FrameMarkup]] | None = None,
    ) -> None:
        self.links = links or {}
        self.markup = markup or {}
        self.visited: list[str] = []
        self.entered = False
        self.closed = False

    def __enter__(self) -> FakeBrowserSession:
        self.entered = True
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.closed = True

    def collect_links(self, url: str) -> list[tuple[str, str]]:
        self.visited.append(url)
        return self.links.get(url, [])

    def rendered_markup(self, url: str) -> list[FrameMarkup]:
        self.visited.append(url)
        return self.markup.get(url, [])


@pytest.fixture
def fake_session() -> type[FakeBrowserSession]:
    """The FakeBrowserSession class, for building sessions in tests."""
    return FakeBrowserSession


def make_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.Client:
    """httpx client whose requests are answered by ``handler``."""
    return httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=True)


@pytest.fixture
def mock_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.Client]:
    """Factory for MockTransport-backed clients."""
    return make_client
