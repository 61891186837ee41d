"""PDF text extraction using pdfplumber."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pdfplumber
from pdfminer.psparser import PSException
from pdfplumber.utils.exceptions import PdfminerException

from ir_financials.config import setup_logging
from ir_financials.errors import ExtractionUnreadable

if TYPE_CHECKING:
    from pathlib import Path

logger = setup_logging(__name__)

# Errors pdfplumber/pdfminer raise for damaged or non-PDF input
_UNREADABLE_ERRORS = (PdfminerException, PSException, KeyError, TypeError, ValueError)


def extract_text_from_pdf(
    file_path: Path,
    pages: list[int] | None = None,
) -> dict[int, str]:
    """Extract text content from PDF pages.

    Parameters
    ----------
    file_path : Path
        PDF to read.
    pages : list[int] | None, optional
        One-indexed pages to extract; ``None`` processes all pages.

    Returns
    -------
    dict[int, str]
        Mapping of one-indexed page numbers to extracted text.

    Raises
    ------
    FileNotFoundError
        If ``file_path`` does not exist.
    """
    logger.info("Extracting text from PDF: %s", file_path)

    if not file_path.exists():
        msg = f"PDF file not found: {file_path}"
        raise FileNotFoundError(msg)

    result: dict[int, str] = {}

    with pdfplumber.open(file_path) as pdf:
        total_pages = len(pdf.pages)
        logger.debug("PDF has %s pages", total_pages)

        page_indices = (
            range(total_pages) if pages is None else [p - 1 for p in pages if 0 < p <= total_pages]
        )

        for idx in page_indices:
            text = pdf.pages[idx].extract_text() or ""
            result[idx + 1] = text  # 1-indexed page numbers
            logger.debug("Page %d: %d characters", idx + 1, len(text))

    logger.info("Extracted text from %d pages", len(result))
    return result


def extract_document_text(file_path: Path) -> str:
    """Return the full text of a report, pages joined with newlines.

    Parameters
    ----------
    file_path : Path
        Stored annual report.

    Returns
    -------
    str
        Concatenated page text; may be empty for image-only documents.

    Raises
    ------
    ExtractionUnreadable
        If the file is missing or pdfplumber cannot parse it.
    """
    try:
        pages = extract_text_from_pdf(file_path)
    except FileNotFoundError as e:
        raise ExtractionUnreadable(str(e)) from e
    except _UNREADABLE_ERRORS as e:
        msg = f"Could not read {file_path.name}: {e}"
        raise ExtractionUnreadable(msg) from e

    text = "\n".join(pages[number] for number in sorted(pages))
    logger.info("Extracted %d characters from %s", len(text), file_path.name)
    return text

