"""Writer module for JSON records and CSV output.

Per-year JSON: parsed_data/<company>/<year>.json
Consolidated JSON: compiled_data/<company>.json
CSV output: exports/<company>_financials.csv
"""

from ir_financials.writer.csv_exporter import (
    build_company_table,
    build_comparative_table,
    export_company_csv,
    export_comparative_csv,
)
from ir_financials.writer.record_store import (
    company_display_name,
    list_companies,
    load_consolidated,
    load_year_extractions,
    save_consolidated,
    save_year_extraction,
)

__all__ = [
    # CSV export
    "build_company_table",
    "build_comparative_table",
    # Record store
    "company_display_name",
    "export_company_csv",
    "export_comparative_csv",
    "list_companies",
    "load_consolidated",
    "load_year_extractions",
    "save_consolidated",
    "save_year_extraction",
]
