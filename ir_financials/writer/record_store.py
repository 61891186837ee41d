"""JSON persistence for per-year extractions and consolidated records.

Layout under ``DATA_DIR``:
- parsed_data/<company>/<year>.json   one extraction per fiscal year
- compiled_data/<company>.json        consolidated multi-year record

Per-year files let a rerun consolidate from disk without calling the
extraction service again for years that already succeeded.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ir_financials.config import DATA_DIR, get_company_paths, setup_logging
from ir_financials.models import STATEMENT_TYPES, ConsolidatedCompanyFinancials, YearExtraction

if TYPE_CHECKING:
    from pathlib import Path

logger = setup_logging(__name__)


def _write_json(filepath: Path, payload: dict[str, Any]) -> Path:
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with filepath.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
    return filepath


def _read_json(filepath: Path) -> dict[str, Any]:
    with filepath.open(encoding="utf-8") as f:
        return json.load(f)  # type: ignore[no-any-return]


def save_year_extraction(company_id: str, extraction: YearExtraction, data_dir: Path | None = None) -> Path:
    """Save one fiscal year's extraction.

    Parameters
    ----------
    company_id
        Storage namespace for the company.
    extraction
        Normalized statements for one report.
    data_dir
        Root data directory; defaults to ``DATA_DIR``.

    Returns
    -------
    Path
        Location of the written JSON file.
    """
    filepath = get_company_paths(company_id, data_dir)["parsed"] / f"{extraction.fiscal_year}.json"

    payload: dict[str, Any] = {
        "company": company_id,
        "year": extraction.fiscal_year,
        "source_file": extraction.source_file,
        "parsed_at": extraction.extracted_at.isoformat(),
    }
    for statement_type in STATEMENT_TYPES:
        payload[statement_type] = dict(extraction.statement(statement_type))
    payload["ai_provider"] = extraction.ai_provider
    payload["model_used"] = extraction.model_used

    _write_json(filepath, payload)
    logger.info("Saved parsed data: %s", filepath)
    return filepath


def load_year_extraction(filepath: Path) -> YearExtraction:
    """Load a per-year extraction file.

    Raises
    ------
    KeyError
        If a statement or the year is missing from the file.
    """
    data = _read_json(filepath)
    return YearExtraction(
        fiscal_year=int(data["year"]),
        source_file=str(data.get("source_file", filepath.name)),
        income_statement={str(k): str(v) for k, v in data["income_statement"].items()},
        balance_sheet={str(k): str(v) for k, v in data["balance_sheet"].items()},
        cash_flow={str(k): str(v) for k, v in data["cash_flow"].items()},
        extracted_at=datetime.fromisoformat(data["parsed_at"]),
        model_used=str(data.get("model_used") or ""),
        ai_provider=str(data.get("ai_provider") or ""),
    )


def load_year_extractions(company_id: str, data_dir: Path | None = None) -> list[YearExtraction]:
    """Load every readable per-year extraction for a company.

    Unreadable files are logged and skipped.
    """
    parsed_dir = get_company_paths(company_id, data_dir)["parsed"]
    if not parsed_dir.exists():
        return []

    extractions = []
    for filepath in sorted(parsed_dir.glob("*.json")):
        try:
            extractions.append(load_year_extraction(filepath))
        except (OSError, ValueError, KeyError, AttributeError) as e:
            logger.warning("Skipping unreadable parsed file %s: %s", filepath.name, e)

    return extractions


def save_consolidated(record: ConsolidatedCompanyFinancials, data_dir: Path | None = None) -> Path:
    """Write the consolidated record to ``compiled_data/<company>.json``."""
    filepath = get_company_paths(record.company_id, data_dir)["compiled"]
    _write_json(filepath, record.to_dict())
    logger.info("Saved compiled data: %s", filepath)
    return filepath


def load_consolidated(company_id: str, data_dir: Path | None = None) -> ConsolidatedCompanyFinancials:
    """Load a company's consolidated record.

    Raises
    ------
    FileNotFoundError
        If the company has no compiled data.
    """
    filepath = get_company_paths(company_id, data_dir)["compiled"]
    if not filepath.exists():
        msg = f"Compiled data not found: {filepath}"
        raise FileNotFoundError(msg)

    return ConsolidatedCompanyFinancials.from_dict(_read_json(filepath))


def list_companies(data_dir: Path | None = None) -> list[str]:
    """Return company ids that have compiled data, sorted."""
    compiled_dir = (data_dir if data_dir is not None else DATA_DIR) / "compiled_data"
    if not compiled_dir.exists():
        return []
    return sorted(path.stem for path in compiled_dir.glob("*.json"))


def company_display_name(company_id: str) -> str:
    """Turn a company id into a display name.

    Examples
    --------
    >>> company_display_name("novo_nordisk")
    'Novo Nordisk'
    >>> company_display_name("sanofi")
    'Sanofi'
    """
    words = company_id.replace("-", "_").split("_")
    return " ".join(word[:1].upper() + word[1:] for word in words if word)
