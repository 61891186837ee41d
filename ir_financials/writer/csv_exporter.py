"""CSV export of consolidated records using pandas.

Two layouts are produced:
- per company:  ``Statement,Item,<year1>,<year2>,...``
- comparative:  ``Statement,Item,Year,<Company1>,<Company2>,...``

Missing cells are always ``"N/A"``, never blank or 0. Quoting is pandas'
minimal quoting: fields holding a comma, quote or line break are quoted and
embedded quotes doubled.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pandas as pd

from ir_financials.config import get_company_paths, setup_logging
from ir_financials.models import (
    CANONICAL_ITEMS,
    NOT_AVAILABLE,
    STATEMENT_DISPLAY_NAMES,
    STATEMENT_TYPES,
    ConsolidatedCompanyFinancials,
)
from ir_financials.writer.record_store import company_display_name, load_consolidated

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

logger = setup_logging(__name__)


def _cell(value: str | None) -> str:
    """Return ``value`` or ``"N/A"`` when it is missing or blank."""
    if value is None or not str(value).strip():
        return NOT_AVAILABLE
    return str(value)


def _ordered_items(statement_type: str, seen: Iterable[str]) -> list[str]:
    """Canonical items first in their defined order, then any extras sorted."""
    canonical = list(CANONICAL_ITEMS.get(statement_type, ()))
    extras = sorted(set(seen) - set(canonical))
    return canonical + extras


def _items_in(record: ConsolidatedCompanyFinancials, statement_type: str) -> set[str]:
    items: set[str] = set()
    for year_items in record.statements.get(statement_type, {}).values():
        items.update(year_items)
    return items


def table_years(years: Iterable[str]) -> list[str]:
    """Return the year columns for a table, filling gaps between covered years.

    A year with no extraction still gets a column so the gap shows as
    ``"N/A"`` rather than disappearing.

    Examples
    --------
    >>> table_years(["2020", "2018"])
    ['2018', '2019', '2020']
    """
    unique = sorted(set(years))
    if not unique or not all(y.isdigit() for y in unique):
        return unique
    return [str(y) for y in range(int(unique[0]), int(unique[-1]) + 1)]


def build_company_table(record: ConsolidatedCompanyFinancials) -> pd.DataFrame:
    """Build the per-company table.

    Parameters
    ----------
    record
        Consolidated multi-year statements.

    Returns
    -------
    pd.DataFrame
        Columns ``Statement``, ``Item`` and one per fiscal year (ascending).
    """
    years = table_years(record.years_covered)
    rows = []

    for statement_type in STATEMENT_TYPES:
        statement = record.statements.get(statement_type, {})
        for item in _ordered_items(statement_type, _items_in(record, statement_type)):
            row = {
                "Statement": STATEMENT_DISPLAY_NAMES[statement_type],
                "Item": item,
            }
            for year in years:
                row[year] = _cell(statement.get(year, {}).get(item))
            rows.append(row)

    return pd.DataFrame(rows, columns=["Statement", "Item", *years])


def build_comparative_table(
    companies: Sequence[str],
    records: dict[str, ConsolidatedCompanyFinancials],
) -> pd.DataFrame:
    """Build the comparative table across companies.

    Parameters
    ----------
    companies
        Company ids in column order; ids absent from ``records`` are skipped.
        Ids sharing a display name are headed by the raw id instead.
    records
        Consolidated record per company id.

    Returns
    -------
    pd.DataFrame
        One row per (statement, item, year) over the union of items and
        years, one column per company.
    """
    present = list(dict.fromkeys(c for c in companies if c in records))
    names = [company_display_name(c) for c in present]
    # Ids that share a display name keep their raw id as the header
    columns = [c if names.count(name) > 1 else name for c, name in zip(present, names, strict=True)]
    years = sorted({year for c in present for year in records[c].years_covered})
    rows = []

    for statement_type in STATEMENT_TYPES:
        seen: set[str] = set()
        for company in present:
            seen |= _items_in(records[company], statement_type)

        for item in _ordered_items(statement_type, seen):
            for year in years:
                row = {
                    "Statement": STATEMENT_DISPLAY_NAMES[statement_type],
                    "Item": item,
                    "Year": year,
                }
                for company, column in zip(present, columns, strict=True):
                    statement = records[company].statements.get(statement_type, {})
                    row[column] = _cell(statement.get(year, {}).get(item))
                rows.append(row)

    return pd.DataFrame(rows, columns=["Statement", "Item", "Year", *columns])


def to_csv_text(df: pd.DataFrame) -> str:
    """Serialize a table to CSV text with ``\\n`` line endings."""
    return df.to_csv(index=False, lineterminator="\n")


def export_company_csv(
    company_id: str,
    record: ConsolidatedCompanyFinancials | None = None,
    output_dir: Path | None = None,
    data_dir: Path | None = None,
) -> Path:
    """Write ``<company>_financials.csv``.

    Parameters
    ----------
    company_id
        Company to export.
    record
        Consolidated record; loaded from ``compiled_data`` when omitted.
    output_dir
        Destination directory; defaults to ``DATA_DIR/exports``.
    data_dir
        Root data directory override.

    Returns
    -------
    Path
        Location of the written CSV file.

    Raises
    ------
    FileNotFoundError
        If ``record`` is omitted and the company has no compiled data.
    """
    if record is None:
        record = load_consolidated(company_id, data_dir)

    save_dir = output_dir if output_dir is not None else get_company_paths(company_id, data_dir)["exports"]
    save_dir.mkdir(parents=True, exist_ok=True)
    filepath = save_dir / f"{company_id}_financials.csv"

    filepath.write_text(to_csv_text(build_company_table(record)), encoding="utf-8")

    logger.info("Saved company CSV: %s", filepath)
    return filepath


def export_comparative_csv(
    companies: Sequence[str],
    output_dir: Path | None = None,
    data_dir: Path | None = None,
) -> Path:
    """Write a comparative CSV for several companies.

    Companies without compiled data are skipped with a warning.

    Raises
    ------
    FileNotFoundError
        If none of ``companies`` has compiled data.
    """
    records: dict[str, ConsolidatedCompanyFinancials] = {}
    for company in companies:
        try:
            records[company] = load_consolidated(company, data_dir)
        except FileNotFoundError:
            logger.warning("No compiled data for %s, skipping", company)

    if not records:
        msg = "No compiled data found for the specified companies"
        raise FileNotFoundError(msg)

    present = list(dict.fromkeys(c for c in companies if c in records))
    save_dir = output_dir if output_dir is not None else get_company_paths(present[0], data_dir)["exports"]
    save_dir.mkdir(parents=True, exist_ok=True)
    filepath = save_dir / f"comparative_{'_'.join(present)}.csv"

    filepath.write_text(to_csv_text(build_comparative_table(present, records)), encoding="utf-8")

    logger.info("Saved comparative CSV for %d companies: %s", len(present), filepath)
    return filepath
