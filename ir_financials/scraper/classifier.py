"""Annual-report link classification, year tagging, and deduplication.

A link qualifies when its text or URL matches an include pattern (annual or
integrated report wording, regulatory filing-form codes, locale
equivalents) and matches no exclude pattern (sustainability, interim,
governance, presentations, amendments, ...). Filing-form codes such as
``20-F`` or ``10-K`` qualify on their own unless they are amendment forms.

Tie-break rule
--------------
When several qualifying links carry the same fiscal year, the first one in
scan order is kept, except that a machine-readable variant (XHTML/ESEF)
yields to a primary document of the same year. Scan order is page order, so
this is a policy choice, not something the data guarantees.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING
from urllib.parse import unquote

from ir_financials.config import fiscal_year_window, setup_logging
from ir_financials.models import CandidateLink

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = setup_logging(__name__)

INCLUDE_PATTERNS = (
    r"\bannual\s*reports?\b",
    r"\bannual\s*financial\s*reports?\b",
    r"\bintegrated\s*(?:annual\s*)?reports?\b",
    r"\bconsolidated\s+financial\s+statements\b",
    r"\b(?:årsrapport|arsrapport|årsredovisning|jahresbericht|geschäftsbericht|geschaeftsbericht)\b",
    r"\b(?:rapport\s+annuel|rapport\s+financier\s+annuel|informe\s+anual|relazione\s+annuale)\b",
    r"\b(?:jaarverslag|relatório\s+anual|relatorio\s+anual|vuosikertomus)\b",
)

# Regulatory annual filing forms (10-K, 20-F, 40-F) after separator folding
FILING_FORM_PATTERN = re.compile(r"\b(?:10\s?k|20\s?f|40\s?f)\b")
AMENDMENT_FORM_PATTERN = re.compile(r"\b(?:10\s?k|20\s?f|40\s?f)\s?/\s?a\b|\b(?:10\s?k|20\s?f|40\s?f)a\b")

EXCLUDE_PATTERNS = (
    r"\bsustainab\w*",
    r"\besg\b",
    r"\bcsr\b",
    r"\bcorporate\s+(?:social\s+)?responsibility\b",
    r"\bclimate\b",
    r"\btax\w*\b",
    r"\binterim\b",
    r"\bquarter\w*\b",
    r"\bq[1-4]\b",
    r"\bh[12]\b",
    r"\bhalf\s?year\w*\b",
    r"\bsemi\s?annual\b",
    r"\bgovernance\b",
    r"\bremuneration\b",
    r"\bcompensation\s+report\b",
    r"\bpress\s+release\b",
    r"\bregistration\b",
    r"\bprospectus\b",
    r"\bpresentation\b",
    r"\binvestor\s+day\b",
    r"\bfact\s?sheet\b",
    r"\bnotice\b",
    r"\bamendment\b",
)

SECONDARY_VARIANT_PATTERN = re.compile(r"\bx?html\b|\besef\b|\.xhtml\b|\.zip\b")

_INCLUDE_RE = re.compile("|".join(INCLUDE_PATTERNS))
_EXCLUDE_RE = re.compile("|".join(EXCLUDE_PATTERNS))
_YEAR_TOKEN_RE = re.compile(r"(?<!\d)(\d{4})(?!\d)")
_SEPARATORS_RE = re.compile(r"[_\-+.,;:()\[\]]+|\s+")


def normalize_link_text(text: str, url: str) -> str:
    """Fold anchor text and URL into one lowercase, separator-free string.

    URL escapes are decoded and ``_ - + .`` style separators become spaces
    so that ``Annual_Report-2021.pdf`` matches ``annual report``. Slashes are
    kept to let amendment forms such as ``10-K/A`` remain recognizable.

    Parameters
    ----------
    text : str
        Visible anchor text.
    url : str
        Link target.

    Returns
    -------
    str
        Normalized haystack used by every classification rule.
    """
    combined = f"{text} {unquote(url)}".lower()
    return _SEPARATORS_RE.sub(" ", combined).strip()


def is_amendment_form(text: str, url: str) -> bool:
    """Return ``True`` for amended filing forms such as ``10-K/A``."""
    return bool(AMENDMENT_FORM_PATTERN.search(normalize_link_text(text, url)))


def is_annual_report(text: str, url: str) -> bool:
    """Decide whether a link points to an annual report.

    Parameters
    ----------
    text : str
        Visible anchor text.
    url : str
        Link target.

    Returns
    -------
    bool
        ``True`` when an include pattern or filing-form code matches and no
        exclude pattern or amendment form does.

    Examples
    --------
    >>> is_annual_report("Q3 2022 Interim Report.pdf", "/q3-2022.pdf")
    False
    >>> is_annual_report("Form 20-F 2020", "/sec/20f-2020.pdf")
    True
    """
    haystack = normalize_link_text(text, url)

    if _EXCLUDE_RE.search(haystack) or AMENDMENT_FORM_PATTERN.search(haystack):
        return False

    return bool(_INCLUDE_RE.search(haystack) or FILING_FORM_PATTERN.search(haystack))


def is_secondary_variant(text: str, url: str) -> bool:
    """Return ``True`` for machine-readable XHTML/ESEF renditions."""
    combined = f"{text} {unquote(url)}".lower()
    return bool(SECONDARY_VARIANT_PATTERN.search(combined))


def extract_year(text: str, url: str, window: range) -> int | None:
    """Return the first 4-digit token inside ``window`` across text and URL.

    Parameters
    ----------
    text : str
        Visible anchor text (searched first).
    url : str
        Link target.
    window : range
        Accepted fiscal years.

    Returns
    -------
    int | None
        Fiscal year, or ``None`` when no token falls inside the window.
    """
    for match in _YEAR_TOKEN_RE.finditer(f"{text} {unquote(url)}"):
        year = int(match.group(1))
        if year in window:
            return year
    return None


def classify_link(
    text: str,
    url: str,
    window: range,
    year_hint: int | None = None,
) -> CandidateLink | None:
    """Classify and year-tag a single link.

    Parameters
    ----------
    text : str
        Visible anchor text.
    url : str
        Absolute link target.
    window : range
        Accepted fiscal years.
    year_hint : int | None, optional
        Year to assume when the link carries none (e.g., the year of the
        navigation page it was found on).

    Returns
    -------
    CandidateLink | None
        Tagged candidate, or ``None`` when rejected or undated.
    """
    text = " ".join(text.split())

    if not is_annual_report(text, url):
        return None

    year = extract_year(text, url, window)
    if year is None and year_hint is not None and year_hint in window:
        year = year_hint
    if year is None:
        logger.debug("Discarding undated candidate: %s (%s)", text, url)
        return None

    return CandidateLink(
        display_text=text,
        url=url,
        inferred_year=year,
        secondary=is_secondary_variant(text, url),
    )


def select_candidates(
    candidates: Iterable[CandidateLink],
    max_reports: int = 10,
) -> list[CandidateLink]:
    """Keep one candidate per fiscal year, newest first, capped.

    Parameters
    ----------
    candidates : Iterable[CandidateLink]
        Year-tagged candidates in scan order.
    max_reports : int, optional
        Maximum number of years to keep (default 10).

    Returns
    -------
    list[CandidateLink]
        Candidates with unique years, sorted descending by year.
    """
    by_year: dict[int, CandidateLink] = {}

    for candidate in candidates:
        year = candidate.inferred_year
        if year is None:
            continue

        existing = by_year.get(year)
        if existing is None:
            by_year[year] = candidate
        elif existing.secondary and not candidate.secondary:
            logger.debug("Preferring %s over %s for %s", candidate.url, existing.url, year)
            by_year[year] = candidate
        else:
            logger.debug("Multiple reports found for %s, keeping first one", year)

    ordered = sorted(by_year.values(), key=lambda c: c.inferred_year or 0, reverse=True)
    return ordered[:max_reports]


def classify_links(
    links: Iterable[tuple[str, str]],
    window: range | None = None,
    max_reports: int = 10,
    year_hint: int | None = None,
) -> list[CandidateLink]:
    """Classify raw ``(text, url)`` pairs and select one report per year.

    Parameters
    ----------
    links : Iterable[tuple[str, str]]
        Anchor text and absolute URL pairs in page order.
    window : range | None, optional
        Accepted fiscal years; defaults to the current 10-year window.
    max_reports : int, optional
        Maximum number of years to keep.
    year_hint : int | None, optional
        Year assumed for undated links.

    Returns
    -------
    list[CandidateLink]
        Selected candidates, newest first.
    """
    if window is None:
        window = fiscal_year_window()

    tagged = []
    for text, url in links:
        candidate = classify_link(text, url, window, year_hint=year_hint)
        if candidate is not None:
            tagged.append(candidate)

    return select_candidates(tagged, max_reports=max_reports)
