"""Environment validation tests for ir-financials."""

import os
import sys

import pytest


def test_python_version() -> None:
    """Verify Python version is 3.12 or higher."""
    assert sys.version_info >= (3, 12), f"Python 3.12+ required, got {sys.version}"


def test_core_imports() -> None:
    """Verify core packages can be imported."""
    import httpx  # noqa: F401
    import lxml  # noqa: F401
    import pandas as pd  # noqa: F401
    import pdfplumber  # noqa: F401


def test_api_client_imports() -> None:
    """Verify API client packages can be imported."""
    from openai import OpenAI  # noqa: F401


def test_playwright_import() -> None:
    """Verify Playwright can be imported."""
    from playwright.sync_api import sync_playwright  # noqa: F401


def test_project_structure() -> None:
    """Verify project module structure."""
    from ir_financials import __version__, get_version
    from ir_financials.config import PROJECT_ROOT

    assert __version__ == "0.1.0"
    assert get_version() == __version__
    assert PROJECT_ROOT.exists()


def test_config_loads() -> None:
    """Verify config.json can be loaded."""
    from ir_financials.config import get_config

    config = get_config()
    for section in ("http", "browser", "discovery", "download", "extraction"):
        assert section in config


def test_data_directories_exist() -> None:
    """Verify data directories exist."""
    from ir_financials.config import DATA_DIR, LOGS_DIR, TEMP_DIR

    assert DATA_DIR.exists()
    assert LOGS_DIR.exists()
    assert TEMP_DIR.exists()


@pytest.mark.skipif(not os.getenv("OPENAI_API_KEY"), reason="OPENAI_API_KEY not set")
def test_openai_client_creation() -> None:
    """Verify OpenAI client can be created (requires API key)."""
    from ir_financials.config import get_openai_client

    client = get_openai_client()
    assert client is not None


@pytest.mark.skipif(not os.getenv("OPENROUTER_API_KEY"), reason="OPENROUTER_API_KEY not set")
def test_openrouter_client_creation() -> None:
    """Verify OpenRouter client can be created (requires API key)."""
    from ir_financials.config import get_openrouter_client

    client = get_openrouter_client()
    assert client is not None
