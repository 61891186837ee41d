"""Prompt templates for statement extraction.

The request embeds the fiscal year, the JSON skeleton of the three statements
with their canonical items, the terminology map and the numeric rules. The
report text is truncated to the configured character budget.
"""

from __future__ import annotations

import json

from ir_financials.models import CANONICAL_ITEMS, NOT_AVAILABLE

SYSTEM_PROMPT = "You are a financial data extraction expert. Return only valid JSON."

# Canonical item -> wording commonly used for it in annual reports
TERMINOLOGY_MAP: dict[str, tuple[str, ...]] = {
    "Revenue": ("Net sales", "Revenue", "Sales", "Total revenue", "Turnover"),
    "Cost of Sales": ("Cost of goods sold", "Cost of sales", "COGS", "Cost of revenue"),
    "Gross Profit": ("Gross profit", "Gross margin", "Gross income"),
    "Operating Expenses": (
        "Sales and distribution",
        "Research and development",
        "Administrative",
        "General and administrative",
        "SG&A",
        "Operating expenses",
    ),
    "Operating Income": ("Operating profit", "Operating income", "EBIT", "Earnings before interest and tax"),
    "Net Income": ("Net profit", "Net income", "Net earnings", "Profit for the year", "Net profit for the year"),
    "Total Assets": ("Total assets",),
    "Current Assets": ("Current assets",),
    "Non-current Assets": ("Non-current assets", "Fixed assets"),
    "Total Liabilities": ("Total liabilities",),
    "Current Liabilities": ("Current liabilities", "Short-term liabilities"),
    "Non-current Liabilities": ("Non-current liabilities", "Long-term liabilities"),
    "Total Equity": ("Total equity", "Shareholders' equity", "Total shareholders' equity"),
    "Operating Cash Flow": (
        "Cash flow from operating activities",
        "Operating cash flow",
        "Net cash from operating activities",
    ),
    "Investing Cash Flow": (
        "Cash flow from investing activities",
        "Investing cash flow",
        "Net cash from investing activities",
    ),
    "Financing Cash Flow": (
        "Cash flow from financing activities",
        "Financing cash flow",
        "Net cash from financing activities",
    ),
    "Net Change in Cash": ("Net change in cash and cash equivalents", "Net increase/decrease in cash"),
    "Cash and Cash Equivalents": ("Cash and cash equivalents at the end of the year", "Cash at end of period"),
}

EXTRACTION_RULES = f"""EXTRACTION RULES:
- Extract values in millions (remove "DKK million", "EUR million", etc.)
- For Operating Expenses, if not explicitly stated, sum the individual expense line items
- Look for the specific year {{year}} data only
- Values should be numeric strings without currency symbols
- Use "-" prefix for negative values
- If truly not found after thorough search, use "{NOT_AVAILABLE}" not "0"
- Focus on the consolidated financial statements section
- Ignore segment or geographical breakdowns"""


def statement_skeleton() -> dict[str, dict[str, str]]:
    """Return the JSON structure the service must fill in."""
    return {
        statement_type: dict.fromkeys(items, "value_in_millions")
        for statement_type, items in CANONICAL_ITEMS.items()
    }


def format_terminology_map() -> str:
    """Render the mapping rules, one canonical item per line."""
    lines = []
    for item, terms in TERMINOLOGY_MAP.items():
        wording = ", ".join(f'"{term}"' for term in terms)
        if item == "Operating Expenses":
            lines.append(f"{item}: Sum of {wording}")
        else:
            lines.append(f"{item}: {wording}")
    return "\n".join(lines)


def build_extraction_prompt(text: str, fiscal_year: int, max_chars: int = 100000) -> str:
    """Build the user message for one annual report.

    Parameters
    ----------
    text : str
        Full document text.
    fiscal_year : int
        Year whose figures are requested.
    max_chars : int, optional
        Character budget; longer text is truncated.

    Returns
    -------
    str
        Prompt embedding instructions, schema, mapping rules and report text.
    """
    skeleton = json.dumps(statement_skeleton(), indent=2)

    return f"""You are a financial analyst expert. Extract financial data from this annual report for year {fiscal_year}.

INSTRUCTIONS:
1. Extract ONLY the main financial statements: Income Statement, Balance Sheet, and Cash Flow Statement
2. Return data as JSON with this exact structure:
{skeleton}

MAPPING RULES - Look for these equivalent terms:
{format_terminology_map()}

{EXTRACTION_RULES.format(year=fiscal_year)}

ANNUAL REPORT TEXT:
{text[:max_chars]}

Return ONLY the JSON object, no explanations."""
