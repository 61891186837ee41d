"""Scraper module for finding and downloading annual reports.

Primary entry points:
- discover_reports: Find one annual-report link per fiscal year on an IR page
- fetch_reports: Resolve viewer links and download each report as a PDF
- BrowserSession: Scoped Playwright session for script-rendered pages

Files are saved per company:
- data/annual_reports/<company>/<year>-annual-report.pdf
"""

from ir_financials.scraper.browser import BrowserSession, create_browser, create_browser_context
from ir_financials.scraper.classifier import classify_link, classify_links, is_annual_report
from ir_financials.scraper.discovery import discover_reports
from ir_financials.scraper.downloader import fetch_reports, list_downloaded_documents, report_filename
from ir_financials.scraper.resolver import DEFAULT_STRATEGIES, ViewerResolver, is_direct_document_url

__all__ = [
    # Resolution
    "DEFAULT_STRATEGIES",
    # Browser utilities
    "BrowserSession",
    "ViewerResolver",
    # Classification
    "classify_link",
    "classify_links",
    "create_browser",
    "create_browser_context",
    # Discovery
    "discover_reports",
    # Download
    "fetch_reports",
    "is_annual_report",
    "is_direct_document_url",
    "list_downloaded_documents",
    "report_filename",
]
