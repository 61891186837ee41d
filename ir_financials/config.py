"""Configuration management for ir-financials.

This module centralizes file-system paths, environment variables, the JSON
configuration loader, and logging setup used by the discovery, download and
extraction pipeline.

Configuration file
------------------
``config/config.json`` holds tunables grouped by concern:

* ``http``: user agent and request timeout for static fetches and downloads
* ``browser``: headless flag and navigation timeout for Playwright sessions
* ``discovery``: fiscal-year window and report cap
* ``download``: minimum plausible artifact size
* ``extraction``: provider, model, text budget, pacing and retry policy

Every accessor falls back to code defaults for keys missing from the file.

Environment variables
---------------------
``DATA_DIR``, ``LOGS_DIR``, and ``TEMP_DIR`` override default directories; the
extraction service relies on ``OPENAI_API_KEY`` or, for the OpenRouter
provider, ``OPENROUTER_API_KEY``. Directories are created eagerly on import so
downstream callers can rely on their existence.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any, cast

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"
DATA_DIR = Path(os.getenv("DATA_DIR", PROJECT_ROOT / "data"))
LOGS_DIR = Path(os.getenv("LOGS_DIR", PROJECT_ROOT / "logs"))
TEMP_DIR = Path(os.getenv("TEMP_DIR", PROJECT_ROOT / "temp"))

# Ensure directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
LOGS_DIR.mkdir(parents=True, exist_ok=True)
TEMP_DIR.mkdir(parents=True, exist_ok=True)

# API Keys
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "")

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

# Browser-like user agent shared by httpx and Playwright
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0.0.0 Safari/537.36"
)

_DEFAULTS: dict[str, dict[str, Any]] = {
    "http": {
        "user_agent": DEFAULT_USER_AGENT,
        "timeout_seconds": 60.0,
    },
    "browser": {
        "headless": True,
        "navigation_timeout_ms": 60000,
        "settle_ms": 3000,
    },
    "discovery": {
        "window_years": 10,
        "max_reports": 10,
        "min_browser_candidates": 2,
    },
    "download": {
        "min_size_bytes": 1024,
    },
    "extraction": {
        "provider": "openai",
        "model": "gpt-4o",
        "temperature": 0.1,
        "max_tokens": 4096,
        "timeout_seconds": 120.0,
        "max_text_chars": 100000,
        "min_text_chars": 1000,
        "call_delay_seconds": 1.0,
        "retry": {
            "max_attempts": 3,
            "base_delay_seconds": 5.0,
            "max_delay_seconds": 60.0,
        },
    },
}


def get_config() -> dict[str, Any]:
    """Load the primary project configuration.

    Returns
    -------
    dict[str, Any]
        Parsed contents of ``config/config.json``.

    Raises
    ------
    FileNotFoundError
        If ``config/config.json`` is missing.
    json.JSONDecodeError
        If the file exists but is not valid JSON.
    """
    config_path = CONFIG_DIR / "config.json"
    if not config_path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with Path(config_path).open(encoding="utf-8") as f:
        return json.load(f)  # type: ignore[no-any-return]


def get_section(name: str, config: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return one configuration section merged over its code defaults.

    Parameters
    ----------
    name : str
        Section key such as ``"http"`` or ``"extraction"``.
    config : dict[str, Any] | None, optional
        Already-loaded configuration; ``None`` loads ``config/config.json``.

    Returns
    -------
    dict[str, Any]
        Defaults for the section overlaid with any configured values.
    """
    if config is None:
        config = get_config()
    overlay = cast("dict[str, Any]", config.get(name, {}))
    return _deep_merge(_DEFAULTS.get(name, {}), overlay)


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge dictionaries, allowing overrides in ``overlay``.

    Parameters
    ----------
    base : dict[str, Any]
        Original mapping.
    overlay : dict[str, Any]
        Values that override or extend ``base``.

    Returns
    -------
    dict[str, Any]
        New merged mapping.
    """
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def get_company_paths(company_id: str, data_dir: Path | None = None) -> dict[str, Path]:
    """Return per-company paths for raw documents, parsed years, and outputs.

    Parameters
    ----------
    company_id : str
        Storage namespace for the company (e.g., ``"novonordisk"``).
    data_dir : Path | None, optional
        Root data directory; defaults to ``DATA_DIR``.

    Returns
    -------
    dict[str, Path]
        Mapping with keys ``reports`` (binary documents), ``parsed``
        (per-year extraction records), ``compiled`` (consolidated record
        file), and ``exports`` (CSV output directory).
    """
    root = data_dir if data_dir is not None else DATA_DIR

    return {
        "reports": root / "annual_reports" / company_id,
        "parsed": root / "parsed_data" / company_id,
        "compiled": root / "compiled_data" / f"{company_id}.json",
        "exports": root / "exports",
    }


def fiscal_year_window(today: date | None = None, window_years: int = 10) -> range:
    """Return the rolling fiscal-year window ``[current - (n-1), current]``.

    Parameters
    ----------
    today : date | None, optional
        Reference date; defaults to the current UTC date.
    window_years : int, optional
        Number of years in the window (default 10).

    Returns
    -------
    range
        Inclusive range of accepted fiscal years, ascending.

    Examples
    --------
    >>> list(fiscal_year_window(date(2024, 6, 1), 3))
    [2022, 2023, 2024]
    """
    current_year = (today or datetime.now(UTC).date()).year
    return range(current_year - window_years + 1, current_year + 1)


def setup_logging(name: str = "ir_financials") -> logging.Logger:
    """Configure a console+file logger if not already present.

    Parameters
    ----------
    name : str, optional
        Logger namespace; reused to avoid duplicate handlers.

    Returns
    -------
    logging.Logger
        Logger with INFO-level console handler and DEBUG-level daily file
        handler under ``LOGS_DIR``.
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        logger.setLevel(logging.DEBUG)

        # Console handler
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_format = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
        console_handler.setFormatter(console_format)
        logger.addHandler(console_handler)

        # File handler
        log_filename = f"{datetime.now(UTC).strftime('%Y-%m-%d')}_run.log"
        file_handler = logging.FileHandler(LOGS_DIR / log_filename)
        file_handler.setLevel(logging.DEBUG)
        file_format = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        file_handler.setFormatter(file_format)
        logger.addHandler(file_handler)

    return logger


def validate_api_keys() -> dict[str, bool]:
    """Report availability of extraction-service API keys.

    Returns
    -------
    dict[str, bool]
        Flags for ``openai`` and ``openrouter`` indicating whether the
        corresponding environment variables are set.
    """
    return {
        "openai": bool(OPENAI_API_KEY),
        "openrouter": bool(OPENROUTER_API_KEY),
    }


def get_openai_client(timeout: float = 120.0) -> Any:
    """Instantiate the OpenAI SDK client.

    Parameters
    ----------
    timeout : float, optional
        Per-request timeout in seconds.

    Returns
    -------
    openai.OpenAI
        Client configured with ``OPENAI_API_KEY``. Automatic SDK retries are
        disabled; retry policy belongs to the pipeline.

    Raises
    ------
    ValueError
        If ``OPENAI_API_KEY`` is absent.
    """
    if not OPENAI_API_KEY:
        msg = "OPENAI_API_KEY is not set"
        raise ValueError(msg)

    from openai import OpenAI

    return OpenAI(api_key=OPENAI_API_KEY, timeout=timeout, max_retries=0)


def get_openrouter_client(timeout: float = 120.0) -> Any:
    """Instantiate an OpenAI-compatible client against OpenRouter.

    Parameters
    ----------
    timeout : float, optional
        Per-request timeout in seconds.

    Returns
    -------
    openai.OpenAI
        Client configured with ``OPENROUTER_API_KEY`` and OpenRouter base URL.

    Raises
    ------
    ValueError
        If ``OPENROUTER_API_KEY`` is absent.
    """
    if not OPENROUTER_API_KEY:
        msg = "OPENROUTER_API_KEY is not set"
        raise ValueError(msg)

    from openai import OpenAI

    return OpenAI(
        api_key=OPENROUTER_API_KEY,
        base_url=OPENROUTER_BASE_URL,
        timeout=timeout,
        max_retries=0,
    )


def get_extraction_client(config: dict[str, Any] | None = None) -> Any:
    """Return the chat client for the configured extraction provider.

    Parameters
    ----------
    config : dict[str, Any] | None, optional
        Already-loaded configuration; ``None`` loads ``config/config.json``.

    Returns
    -------
    openai.OpenAI
        Client for ``"openai"`` (default) or ``"openrouter"``.

    Raises
    ------
    ValueError
        If the provider is unknown or its API key is missing.
    """
    extraction = get_section("extraction", config)
    provider = extraction["provider"]
    timeout = float(extraction["timeout_seconds"])

    if provider == "openai":
        return get_openai_client(timeout)
    if provider == "openrouter":
        return get_openrouter_client(timeout)

    msg = f"Unknown extraction provider: {provider}"
    raise ValueError(msg)
