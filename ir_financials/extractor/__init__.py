"""Extractor module for report text and financial statements.

Key exports:
    extract_document_text: Full text of a stored report (pdfplumber)
    StatementExtractor: Chat-model adapter returning canonical statements
    build_extraction_prompt: Prompt embedding schema and terminology map
"""

from ir_financials.extractor.pdf_parser import extract_document_text, extract_text_from_pdf
from ir_financials.extractor.prompts import SYSTEM_PROMPT, TERMINOLOGY_MAP, build_extraction_prompt
from ir_financials.extractor.statement_extractor import (
    StatementExtractor,
    find_json_object,
    normalize_statement,
    normalize_value,
    parse_reply,
)

__all__ = [
    # Prompts
    "SYSTEM_PROMPT",
    "TERMINOLOGY_MAP",
    # Statement extraction
    "StatementExtractor",
    "build_extraction_prompt",
    # PDF text
    "extract_document_text",
    "extract_text_from_pdf",
    "find_json_object",
    "normalize_statement",
    "normalize_value",
    "parse_reply",
]
