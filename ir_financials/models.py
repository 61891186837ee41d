"""Typed artifacts passed between pipeline stages.

Each stage consumes the artifact of the previous one:

    CandidateLink -> AnnualReportDocument -> YearExtraction
                  -> ConsolidatedCompanyFinancials

This module holds pure data structures and the canonical line-item
vocabulary, with no dependencies on the rest of the package.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path

__all__ = [
    "CANONICAL_ITEMS",
    "NOT_AVAILABLE",
    "STATEMENT_DISPLAY_NAMES",
    "STATEMENT_TYPES",
    "AnnualReportDocument",
    "CandidateLink",
    "ConsolidatedCompanyFinancials",
    "DiscoveryResult",
    "FetchOutcome",
    "StatementLineItems",
    "YearExtraction",
]

# Sentinel for a line item the document does not report; never 0
NOT_AVAILABLE = "N/A"

STATEMENT_TYPES = ("income_statement", "balance_sheet", "cash_flow")

STATEMENT_DISPLAY_NAMES = {
    "income_statement": "Income Statement",
    "balance_sheet": "Balance Sheet",
    "cash_flow": "Cash Flow Statement",
}

CANONICAL_ITEMS: dict[str, tuple[str, ...]] = {
    "income_statement": (
        "Revenue",
        "Cost of Sales",
        "Gross Profit",
        "Operating Expenses",
        "Operating Income",
        "Net Income",
    ),
    "balance_sheet": (
        "Total Assets",
        "Current Assets",
        "Non-current Assets",
        "Total Liabilities",
        "Current Liabilities",
        "Non-current Liabilities",
        "Total Equity",
    ),
    "cash_flow": (
        "Operating Cash Flow",
        "Investing Cash Flow",
        "Financing Cash Flow",
        "Net Change in Cash",
        "Cash and Cash Equivalents",
    ),
}

# Canonical item name -> numeric string in millions or NOT_AVAILABLE
StatementLineItems = dict[str, str]


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class CandidateLink:
    """A link found on an IR page that may point to an annual report.

    Attributes
    ----------
    display_text : str
        Visible anchor text (may be empty).
    url : str
        Absolute URL of the link target.
    inferred_year : int | None
        Fiscal year tagged by the classifier.
    secondary : bool
        ``True`` for machine-readable variants (XHTML/ESEF) that yield to a
        primary document for the same year.
    """

    display_text: str
    url: str
    inferred_year: int | None = None
    secondary: bool = False


@dataclass
class DiscoveryResult:
    """Deduplicated, year-sorted candidates for one IR page."""

    ir_url: str
    candidates: list[CandidateLink]
    strategy: str  # "static" or "browser"

    @property
    def years(self) -> list[int]:
        """Fiscal years covered, newest first."""
        return [c.inferred_year for c in self.candidates if c.inferred_year is not None]


@dataclass
class AnnualReportDocument:
    """A stored binary annual report for one company and fiscal year."""

    company_id: str
    fiscal_year: int
    source_url: str
    local_path: Path
    size_bytes: int
    content_type: str
    downloaded_at: datetime
    reused: bool = False


@dataclass
class FetchOutcome:
    """Documents fetched for a company plus per-year failure reasons."""

    documents: list[AnnualReportDocument] = field(default_factory=list)
    failures: dict[int, str] = field(default_factory=dict)


@dataclass
class YearExtraction:
    """Canonical statement maps extracted from one annual report."""

    fiscal_year: int
    source_file: str
    income_statement: StatementLineItems
    balance_sheet: StatementLineItems
    cash_flow: StatementLineItems
    extracted_at: datetime = field(default_factory=_utc_now)
    model_used: str = ""
    ai_provider: str = ""

    def statement(self, statement_type: str) -> StatementLineItems:
        """Return the line items for ``statement_type``."""
        return getattr(self, statement_type)  # type: ignore[no-any-return]


@dataclass
class ConsolidatedCompanyFinancials:
    """Multi-year statements for one company.

    ``statements`` maps each statement type to ``{year_string: line_items}``.
    The dict form produced by :meth:`to_dict` is the persisted record schema.
    """

    company_id: str
    statements: dict[str, dict[str, StatementLineItems]]
    years_covered: list[str]
    total_files: int
    parsed_at: datetime
    ai_provider: str = ""
    model_used: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the consolidated record schema."""
        return {
            "company": self.company_id,
            "statements": {
                statement_type: {
                    year: dict(items) for year, items in self.statements.get(statement_type, {}).items()
                }
                for statement_type in STATEMENT_TYPES
            },
            "metadata": {
                "parsed_at": self.parsed_at.isoformat(),
                "total_files": self.total_files,
                "years_covered": list(self.years_covered),
                "ai_provider": self.ai_provider,
                "model_used": self.model_used,
            },
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> ConsolidatedCompanyFinancials:
        """Rebuild a record from its serialized schema.

        Parameters
        ----------
        payload : dict[str, Any]
            Mapping with ``company``, ``statements``, and ``metadata`` keys.

        Returns
        -------
        ConsolidatedCompanyFinancials
            Record whose statement maps equal those in ``payload``.
        """
        metadata = payload.get("metadata", {})
        raw_statements = payload.get("statements", {})

        statements = {
            statement_type: {
                str(year): {str(k): str(v) for k, v in items.items()}
                for year, items in raw_statements.get(statement_type, {}).items()
            }
            for statement_type in STATEMENT_TYPES
        }

        parsed_at_raw = metadata.get("parsed_at")
        parsed_at = datetime.fromisoformat(parsed_at_raw) if parsed_at_raw else _utc_now()

        return cls(
            company_id=str(payload.get("company", "")),
            statements=statements,
            years_covered=[str(y) for y in metadata.get("years_covered", [])],
            total_files=int(metadata.get("total_files", 0)),
            parsed_at=parsed_at,
            ai_provider=str(metadata.get("ai_provider") or ""),
            model_used=str(metadata.get("model_used") or ""),
        )
