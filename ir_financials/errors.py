"""Error taxonomy for the discovery, acquisition, and extraction pipeline.

Failures scoped to one candidate link, document, or fiscal year are raised
by the component that detects them and recovered by the pipeline (logged and
skipped). Only whole-run conditions are terminal: no candidates at all, an
authentication failure against the extraction service, or zero successful
extractions. Terminal errors carry the ``stage`` that failed.
"""

from __future__ import annotations

__all__ = [
    "ConsolidationEmpty",
    "DiscoveryFailure",
    "DownloadFailure",
    "ExtractionAuthenticationError",
    "ExtractionRateLimited",
    "ExtractionServiceError",
    "ExtractionServiceUnavailable",
    "ExtractionUnreadable",
    "IRFinancialsError",
    "MalformedResponse",
    "PipelineBusy",
    "ResolutionFailure",
]


class IRFinancialsError(Exception):
    """Base class for all pipeline errors."""

    stage: str = "pipeline"
    terminal: bool = False

    def __init__(self, message: str, *, fiscal_year: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.fiscal_year = fiscal_year

    def describe(self) -> str:
        """Return ``"<stage>: <message>"`` for user-facing reports."""
        return f"{self.stage}: {self.message}"


class DiscoveryFailure(IRFinancialsError):
    """No qualifying annual-report candidates were found on the IR page."""

    stage = "discovery"
    terminal = True


class ResolutionFailure(IRFinancialsError):
    """A viewer link could not be converted to a direct binary URL."""

    stage = "resolution"


class DownloadFailure(IRFinancialsError):
    """Network, content-type, or size problem while fetching one document."""

    stage = "download"


class ExtractionUnreadable(IRFinancialsError):
    """Document text is missing or shorter than the minimum threshold."""

    stage = "text_extraction"


class ExtractionServiceError(IRFinancialsError):
    """Base class for extraction-service failures."""

    stage = "extraction"


class ExtractionAuthenticationError(ExtractionServiceError):
    """The extraction service rejected the credentials; aborts the run."""

    terminal = True


class ExtractionRateLimited(ExtractionServiceError):
    """The extraction service throttled the request; the caller may retry."""

    retryable = True


class MalformedResponse(ExtractionServiceError):
    """The service reply held no parseable object with all three statements."""


class ExtractionServiceUnavailable(ExtractionServiceError):
    """Timeout, connection error, or server-side failure for one request."""


class ConsolidationEmpty(IRFinancialsError):
    """Zero fiscal years were extracted successfully for the company."""

    stage = "consolidation"
    terminal = True


class PipelineBusy(IRFinancialsError):
    """Another pipeline run for the same company is already in flight."""

    terminal = True
