"""Tests for CSV export of consolidated records.

Tests cover:
1. Per-company layout (canonical row order, ascending year columns)
2. N/A cells for gaps, never blank or 0
3. Minimal quoting of commas and quotes
4. Comparative layout across companies
"""

from __future__ import annotations

import io
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pandas as pd
import pytest

from ir_financials.models import CANONICAL_ITEMS, ConsolidatedCompanyFinancials, YearExtraction
from ir_financials.transformer.consolidator import consolidate
from ir_financials.writer.csv_exporter import (
    build_company_table,
    build_comparative_table,
    export_company_csv,
    export_comparative_csv,
    table_years,
    to_csv_text,
)
from ir_financials.writer.record_store import save_consolidated

if TYPE_CHECKING:
    from pathlib import Path

MakeExtraction = Callable[..., YearExtraction]

ITEM_COUNT = sum(len(items) for items in CANONICAL_ITEMS.values())


def read_csv(text: str) -> pd.DataFrame:
    return pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False)


def manual_record(company_id: str, income: dict[str, dict[str, str]]) -> ConsolidatedCompanyFinancials:
    return ConsolidatedCompanyFinancials(
        company_id=company_id,
        statements={"income_statement": income, "balance_sheet": {}, "cash_flow": {}},
        years_covered=sorted(income),
        total_files=len(income),
        parsed_at=datetime(2025, 1, 1, tzinfo=UTC),
    )


class TestTableYears:
    """Tests for year-column selection."""

    def test_gaps_filled(self) -> None:
        """Missing years between covered ones get a column."""
        assert table_years(["2020", "2017"]) == ["2017", "2018", "2019", "2020"]

    def test_empty(self) -> None:
        """No years, no columns."""
        assert table_years([]) == []


class TestCompanyTable:
    """Tests for the per-company layout."""

    def test_layout(self, make_extraction: MakeExtraction) -> None:
        """Header, row order, and values follow the canonical vocabulary."""
        record = consolidate("acme", [make_extraction(2024), make_extraction(2023)])

        df = build_company_table(record)

        assert list(df.columns) == ["Statement", "Item", "2023", "2024"]
        assert len(df) == ITEM_COUNT
        assert list(df["Item"][:3]) == ["Revenue", "Cost of Sales", "Gross Profit"]
        assert df.iloc[0]["Statement"] == "Income Statement"
        assert df.iloc[-1]["Statement"] == "Cash Flow Statement"
        assert df.iloc[0]["2024"] == "20240"

    def test_gap_year_column_is_na(self, make_extraction: MakeExtraction) -> None:
        """A skipped fiscal year shows as an all-N/A column."""
        record = consolidate("acme", [make_extraction(2020), make_extraction(2018)])

        df = build_company_table(record)

        assert list(df.columns) == ["Statement", "Item", "2018", "2019", "2020"]
        assert set(df["2019"]) == {"N/A"}

    def test_missing_item_is_na(self) -> None:
        """Items absent from a year's statement are N/A, including blanks."""
        record = manual_record("acme", {"2024": {"Revenue": "100", "Net Income": " "}})

        rows = build_company_table(record).set_index("Item")["2024"]

        assert rows["Revenue"] == "100"
        assert rows["Net Income"] == "N/A"
        assert rows["Total Assets"] == "N/A"

    def test_zero_kept(self) -> None:
        """A reported zero is written as 0."""
        record = manual_record("acme", {"2024": {"Revenue": "0"}})

        assert build_company_table(record).iloc[0]["2024"] == "0"

    def test_quoting(self) -> None:
        """Fields with commas or quotes are quoted and quotes doubled."""
        record = manual_record("acme", {"2024": {"Revenue": "1,000", 'Other "adjusted" items': "5"}})

        text = to_csv_text(build_company_table(record))
        lines = text.splitlines()

        assert lines[0] == "Statement,Item,2024"
        assert lines[1] == 'Income Statement,Revenue,"1,000"'
        assert 'Income Statement,"Other ""adjusted"" items",5' in lines
        assert "\r" not in text

    def test_csv_parses_back(self, make_extraction: MakeExtraction) -> None:
        """The CSV text reads back to the same table."""
        df = build_company_table(consolidate("acme", [make_extraction(2022)]))

        pd.testing.assert_frame_equal(read_csv(to_csv_text(df)), df, check_dtype=False)


class TestComparativeTable:
    """Tests for the comparative layout."""

    def test_layout(self, make_extraction: MakeExtraction) -> None:
        """One row per item and year, one column per company."""
        records = {
            "acme": consolidate("acme", [make_extraction(2023), make_extraction(2024)]),
            "novo_nordisk": consolidate("novo_nordisk", [make_extraction(2024, base=7)]),
        }

        df = build_comparative_table(["acme", "novo_nordisk"], records)

        assert list(df.columns) == ["Statement", "Item", "Year", "Acme", "Novo Nordisk"]
        assert len(df) == ITEM_COUNT * 2
        revenue = df[df["Item"] == "Revenue"].set_index("Year")
        assert revenue.loc["2024", "Novo Nordisk"] == "7"
        assert revenue.loc["2023", "Novo Nordisk"] == "N/A"
        assert revenue.loc["2023", "Acme"] == "20230"

    def test_unknown_and_repeated_companies(self, make_extraction: MakeExtraction) -> None:
        """Ids without records are skipped; repeats appear once."""
        records = {"acme": consolidate("acme", [make_extraction(2024)])}

        df = build_comparative_table(["acme", "ghost", "acme"], records)

        assert list(df.columns) == ["Statement", "Item", "Year", "Acme"]

    def test_clashing_display_names(self, make_extraction: MakeExtraction) -> None:
        """Ids with the same display name keep separate columns."""
        records = {
            "novo_nordisk": consolidate("novo_nordisk", [make_extraction(2024, base=1)]),
            "novo-nordisk": consolidate("novo-nordisk", [make_extraction(2024, base=2)]),
            "sanofi": consolidate("sanofi", [make_extraction(2024, base=3)]),
        }

        df = build_comparative_table(["novo_nordisk", "novo-nordisk", "sanofi"], records)

        assert list(df.columns) == ["Statement", "Item", "Year", "novo_nordisk", "novo-nordisk", "Sanofi"]
        revenue = df[df["Item"] == "Revenue"].iloc[0]
        assert (revenue["novo_nordisk"], revenue["novo-nordisk"], revenue["Sanofi"]) == ("1", "2", "3")


class TestExport:
    """Tests for writing CSV files."""

    def test_company_csv(self, tmp_path: Path, make_extraction: MakeExtraction) -> None:
        """The per-company file is written under exports/."""
        record = consolidate("acme", [make_extraction(2024)])

        path = export_company_csv("acme", record, data_dir=tmp_path)

        assert path == tmp_path / "exports" / "acme_financials.csv"
        assert read_csv(path.read_text(encoding="utf-8")).shape == (ITEM_COUNT, 3)

    def test_company_csv_from_compiled_data(self, tmp_path: Path, make_extraction: MakeExtraction) -> None:
        """Without a record, the compiled file is loaded."""
        save_consolidated(consolidate("acme", [make_extraction(2024)]), tmp_path)

        path = export_company_csv("acme", data_dir=tmp_path, output_dir=tmp_path / "out")

        assert path == tmp_path / "out" / "acme_financials.csv"

    def test_comparative_csv_skips_missing(self, tmp_path: Path, make_extraction: MakeExtraction) -> None:
        """Companies without compiled data are skipped."""
        save_consolidated(consolidate("acme", [make_extraction(2024)]), tmp_path)
        save_consolidated(consolidate("sanofi", [make_extraction(2024)]), tmp_path)

        path = export_comparative_csv(["sanofi", "ghost", "acme"], data_dir=tmp_path)

        assert path.name == "comparative_sanofi_acme.csv"
        assert read_csv(path.read_text(encoding="utf-8")).columns.tolist() == [
            "Statement",
            "Item",
            "Year",
            "Sanofi",
            "Acme",
        ]

    def test_comparative_csv_none_found(self, tmp_path: Path) -> None:
        """No compiled data for any company raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            export_comparative_csv(["ghost"], data_dir=tmp_path)
