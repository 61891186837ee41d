"""ir-financials: multi-year financial statements from annual reports.

The package finds a company's annual reports on its investor-relations page,
downloads one PDF per fiscal year, extracts the income statement, balance
sheet and cash flow statement with a chat model, and consolidates the years
into a single record exported as JSON and CSV.

Architecture
------------
* ``scraper``: httpx/lxml static discovery with a Playwright fallback,
  viewer-link resolution and validated downloads.
* ``extractor``: pdfplumber text extraction and the OpenAI-compatible
  statement extractor.
* ``transformer``: write-once multi-year consolidation.
* ``writer``: JSON record store and pandas CSV export.
* ``pipeline``: the staged run with per-company locking.

Configuration and credentials
-----------------------------
Paths default to the ``data/`` tree but respect ``DATA_DIR``, ``LOGS_DIR``,
and ``TEMP_DIR`` overrides. Extraction uses ``OPENAI_API_KEY``, or
``OPENROUTER_API_KEY`` when ``extraction.provider`` is ``"openrouter"``.

Examples
--------
Run the pipeline for one company:

    >>> python -m ir_financials.main --url https://www.novonordisk.com/investors/annual-report.html

Re-parse reports already on disk:

    >>> python -m ir_financials.main --company novonordisk --skip-download
"""

__version__ = "0.1.0"
__all__ = ["__version__"]


# Public helper for introspection tools.
def get_version() -> str:
    """Return the current package version string.

    Returns
    -------
    str
        Semantic version identifier (e.g., ``"0.1.0"``).
    """
    return __version__


__all__.append("get_version")
