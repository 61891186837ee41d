"""Multi-year consolidation of per-report extractions.

Functions
---------
consolidate
    Merge :class:`~ir_financials.models.YearExtraction` records into one
    :class:`~ir_financials.models.ConsolidatedCompanyFinancials`.

Notes
-----
Extractions are visited newest year first, ties broken by source filename,
and each (statement type, year) slot is written once: the first extraction
to reach a slot keeps it. The result therefore does not depend on the order
extractions arrive in, and reruns over the same inputs differ only in
``parsed_at``. Years with no extraction are simply absent.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from ir_financials.config import setup_logging
from ir_financials.errors import ConsolidationEmpty
from ir_financials.models import STATEMENT_TYPES, ConsolidatedCompanyFinancials, StatementLineItems

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ir_financials.models import YearExtraction

logger = setup_logging(__name__)


def consolidate(
    company_id: str,
    extractions: Iterable[YearExtraction],
    ai_provider: str = "",
    model_used: str = "",
    parsed_at: datetime | None = None,
) -> ConsolidatedCompanyFinancials:
    """Merge per-year extractions into one multi-year record.

    Parameters
    ----------
    company_id : str
        Company the extractions belong to.
    extractions : Iterable[YearExtraction]
        Successful extractions, in any order.
    ai_provider, model_used : str, optional
        Recorded in the metadata; default to the values on the extractions.
    parsed_at : datetime | None, optional
        Consolidation timestamp; defaults to now (UTC).

    Returns
    -------
    ConsolidatedCompanyFinancials
        Record with one entry per (statement type, fiscal year).

    Raises
    ------
    ConsolidationEmpty
        If ``extractions`` is empty.
    """
    ordered = sorted(extractions, key=lambda e: (-e.fiscal_year, e.source_file))
    if not ordered:
        msg = f"No successful extractions for {company_id}"
        raise ConsolidationEmpty(msg)

    statements: dict[str, dict[str, StatementLineItems]] = {t: {} for t in STATEMENT_TYPES}

    for extraction in ordered:
        year = str(extraction.fiscal_year)
        for statement_type in STATEMENT_TYPES:
            if year in statements[statement_type]:
                logger.debug(
                    "Skipping duplicate %s for %s from %s",
                    statement_type,
                    year,
                    extraction.source_file,
                )
                continue
            statements[statement_type][year] = dict(extraction.statement(statement_type))

    years_covered = sorted({str(e.fiscal_year) for e in ordered})
    total_files = len({e.source_file for e in ordered})

    logger.info(
        "Consolidated %s: %d files, years %s",
        company_id,
        total_files,
        ", ".join(years_covered),
    )

    return ConsolidatedCompanyFinancials(
        company_id=company_id,
        statements=statements,
        years_covered=years_covered,
        total_files=total_files,
        parsed_at=parsed_at or datetime.now(UTC),
        ai_provider=ai_provider or ordered[0].ai_provider,
        model_used=model_used or ordered[0].model_used,
    )
