"""Transformer module for multi-year consolidation.

Submodules
----------
consolidator
    Merges per-year extractions into one record, newest year first,
    writing each (statement type, year) slot once.
"""

from ir_financials.transformer.consolidator import consolidate

__all__ = ["consolidate"]
