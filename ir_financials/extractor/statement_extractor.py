"""LLM-backed extraction of canonical financial statements.

:class:`StatementExtractor` sends one request per annual report to an
OpenAI-compatible chat endpoint (OpenAI or OpenRouter) and turns the reply
into a :class:`~ir_financials.models.YearExtraction`.

The reply is free text that should contain a JSON object. The first balanced
``{...}`` substring that parses is used, so prose or code fences around the
object are tolerated. Values are normalized to numeric strings in millions
and every canonical item is present, with ``"N/A"`` for anything the report
does not state.

Service failures are classified, never retried here:

- rejected credentials -> ``ExtractionAuthenticationError`` (aborts the run)
- throttling -> ``ExtractionRateLimited`` (the pipeline backs off and retries)
- timeouts, connection and server errors -> ``ExtractionServiceUnavailable``
- unusable replies -> ``MalformedResponse``
"""

from __future__ import annotations

import json
import math
import re
import time
from typing import TYPE_CHECKING, Any

import openai

from ir_financials.config import get_extraction_client, get_section, setup_logging
from ir_financials.errors import (
    ExtractionAuthenticationError,
    ExtractionRateLimited,
    ExtractionServiceUnavailable,
    ExtractionUnreadable,
    MalformedResponse,
)
from ir_financials.extractor.prompts import SYSTEM_PROMPT, build_extraction_prompt
from ir_financials.models import CANONICAL_ITEMS, NOT_AVAILABLE, STATEMENT_TYPES, StatementLineItems, YearExtraction

if TYPE_CHECKING:
    from collections.abc import Callable

logger = setup_logging(__name__)

_MISSING_MARKERS = frozenset({"", "-", "--", "–", "—", "n/a", "na", "n.a.", "none", "null", "not available"})
_NEGATIVE_PREFIXES = ("-", "−", "–")
_DIGIT_GROUPING = re.compile(r"(?<=\d)[,\s '](?=\d{3}(?!\d))")
_NUMBER = re.compile(r"\d+(?:\.\d+)?")


# =============================================================================
# Reply parsing
# =============================================================================


def find_json_object(text: str) -> dict[str, Any] | None:
    """Return the first balanced ``{...}`` substring of ``text`` that parses.

    Braces inside string literals do not count toward balance, so values like
    ``"note {a}"`` do not end the object early.

    Examples
    --------
    >>> find_json_object('Here you go: {"a": "}"} Thanks!')
    {'a': '}'}
    >>> find_json_object("no object here") is None
    True
    """
    start = text.find("{")
    while start != -1:
        end = _matching_brace(text, start)
        payload = None
        if end is not None:
            try:
                payload = json.loads(text[start : end + 1])
            except json.JSONDecodeError:
                payload = None
        if isinstance(payload, dict):
            return payload
        start = text.find("{", start + 1)
    return None


def _matching_brace(text: str, start: int) -> int | None:
    """Return the index of the brace closing the one at ``start``."""
    depth = 0
    in_string = False
    escaped = False

    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index

    return None


def normalize_value(value: Any) -> str:
    """Normalize one reported value to a numeric string or ``"N/A"``.

    Thousands separators, currency and unit labels are stripped, and
    accounting parentheses become a leading minus, also after a currency
    code such as ``"DKK -1,234"`` or ``"$(1,234)"``. A literal zero is kept.

    Examples
    --------
    >>> normalize_value("(1,234.5)")
    '-1234.5'
    >>> normalize_value("DKK 33,724 million")
    '33724'
    >>> normalize_value("")
    'N/A'
    >>> normalize_value(0)
    '0'
    """
    if value is None or isinstance(value, bool):
        return NOT_AVAILABLE

    if isinstance(value, int):
        return str(value)

    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return NOT_AVAILABLE
        return str(int(value)) if value.is_integer() else str(value)

    text = str(value).strip()
    if text.lower() in _MISSING_MARKERS:
        return NOT_AVAILABLE

    cleaned = _DIGIT_GROUPING.sub("", text)
    match = _NUMBER.search(cleaned)
    if match is None:
        return NOT_AVAILABLE

    # Sign sits right before the digits, after any currency code or symbol
    before = cleaned[: match.start()].rstrip()
    after = cleaned[match.end() :]
    negative = (
        before.endswith(_NEGATIVE_PREFIXES)
        or (before.endswith("(") and ")" in after)
        or (text.startswith("(") and text.endswith(")"))
    )

    number = match.group(0)
    return f"-{number}" if negative else number


def normalize_statement(raw: Any, statement_type: str) -> StatementLineItems:
    """Map a raw statement object onto its canonical items.

    Items outside the canonical vocabulary are dropped; canonical items the
    reply omits become ``"N/A"``. Keys are matched case-insensitively.
    """
    raw_items: dict[str, Any] = raw if isinstance(raw, dict) else {}
    by_lower = {str(key).strip().lower(): value for key, value in raw_items.items()}

    return {
        item: normalize_value(by_lower.get(item.lower()))
        for item in CANONICAL_ITEMS[statement_type]
    }


def parse_reply(reply: str | None, fiscal_year: int | None = None) -> dict[str, StatementLineItems]:
    """Turn a service reply into the three normalized statements.

    Raises
    ------
    MalformedResponse
        If the reply is empty, holds no JSON object, or the object lacks any
        of the three statement keys.
    """
    if not reply or not reply.strip():
        msg = "Empty reply from extraction service"
        raise MalformedResponse(msg, fiscal_year=fiscal_year)

    payload = find_json_object(reply)
    if payload is None:
        msg = f"No JSON object in reply: {reply[:200]!r}"
        raise MalformedResponse(msg, fiscal_year=fiscal_year)

    missing = [key for key in STATEMENT_TYPES if not isinstance(payload.get(key), dict)]
    if missing:
        msg = f"Reply is missing statements: {', '.join(missing)}"
        raise MalformedResponse(msg, fiscal_year=fiscal_year)

    return {key: normalize_statement(payload[key], key) for key in STATEMENT_TYPES}


# =============================================================================
# Service adapter
# =============================================================================


class StatementExtractor:
    """Extract canonical statements from report text through a chat model.

    Parameters
    ----------
    client : Any
        ``openai.OpenAI`` (or compatible) client.
    model : str
        Chat model identifier.
    provider : str
        Provider label stored with each extraction.
    temperature : float, optional
        Sampling temperature.
    max_tokens : int, optional
        Reply token cap.
    max_text_chars : int, optional
        Report text budget per request.
    min_text_chars : int, optional
        Shorter text is treated as unreadable.
    call_delay_seconds : float, optional
        Minimum gap between consecutive requests.
    sleep, clock : Callable, optional
        Injected for tests.
    """

    def __init__(
        self,
        client: Any,
        model: str,
        provider: str = "openai",
        temperature: float = 0.1,
        max_tokens: int = 4096,
        max_text_chars: int = 100000,
        min_text_chars: int = 1000,
        call_delay_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.model = model
        self.provider = provider
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_text_chars = max_text_chars
        self.min_text_chars = min_text_chars
        self.call_delay_seconds = call_delay_seconds
        self._sleep = sleep
        self._clock = clock
        self._last_call_at: float | None = None

    @classmethod
    def from_config(cls, config: dict[str, Any] | None = None, client: Any = None) -> StatementExtractor:
        """Build an extractor from the ``extraction`` config section.

        Raises
        ------
        ValueError
            If the provider is unknown or its API key is missing.
        """
        extraction = get_section("extraction", config)
        return cls(
            client=client if client is not None else get_extraction_client(config),
            model=extraction["model"],
            provider=extraction["provider"],
            temperature=float(extraction["temperature"]),
            max_tokens=int(extraction["max_tokens"]),
            max_text_chars=int(extraction["max_text_chars"]),
            min_text_chars=int(extraction["min_text_chars"]),
            call_delay_seconds=float(extraction["call_delay_seconds"]),
        )

    def extract(self, text: str, fiscal_year: int, source_file: str) -> YearExtraction:
        """Extract the three statements for ``fiscal_year`` from report text.

        Parameters
        ----------
        text : str
            Full report text.
        fiscal_year : int
            Year whose figures are requested.
        source_file : str
            Stored filename, recorded with the result.

        Returns
        -------
        YearExtraction
            Normalized statements with every canonical item present.

        Raises
        ------
        ExtractionUnreadable
            If ``text`` is shorter than ``min_text_chars``.
        ExtractionServiceError
            Subclass describing the service or reply failure.
        """
        if len(text.strip()) < self.min_text_chars:
            msg = f"Text too short or empty in {source_file} ({len(text.strip())} characters)"
            raise ExtractionUnreadable(msg, fiscal_year=fiscal_year)

        prompt = build_extraction_prompt(text, fiscal_year, self.max_text_chars)
        logger.info(
            "Sending %s (%d chars) to %s/%s",
            source_file,
            min(len(text), self.max_text_chars),
            self.provider,
            self.model,
        )

        reply = self._complete(prompt, fiscal_year)
        logger.debug("Received reply for %s (%d chars)", source_file, len(reply or ""))

        statements = parse_reply(reply, fiscal_year)
        logger.info("Extracted statements for %s from %s", fiscal_year, source_file)

        return YearExtraction(
            fiscal_year=fiscal_year,
            source_file=source_file,
            income_statement=statements["income_statement"],
            balance_sheet=statements["balance_sheet"],
            cash_flow=statements["cash_flow"],
            model_used=self.model,
            ai_provider=self.provider,
        )

    def _wait_for_slot(self) -> None:
        """Keep at least ``call_delay_seconds`` between consecutive requests."""
        if self._last_call_at is None or self.call_delay_seconds <= 0:
            return
        remaining = self.call_delay_seconds - (self._clock() - self._last_call_at)
        if remaining > 0:
            logger.debug("Pacing extraction requests: waiting %.2fs", remaining)
            self._sleep(remaining)

    def _complete(self, prompt: str, fiscal_year: int) -> str | None:
        """Run one chat completion and classify any service failure."""
        self._wait_for_slot()
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            msg = f"Extraction service rejected credentials: {e}"
            raise ExtractionAuthenticationError(msg, fiscal_year=fiscal_year) from e
        except openai.RateLimitError as e:
            msg = f"Extraction service rate limit hit: {e}"
            raise ExtractionRateLimited(msg, fiscal_year=fiscal_year) from e
        except (openai.APIConnectionError, openai.APIStatusError) as e:
            # APITimeoutError is an APIConnectionError; 5xx are APIStatusError
            msg = f"Extraction service unavailable: {e}"
            raise ExtractionServiceUnavailable(msg, fiscal_year=fiscal_year) from e
        finally:
            self._last_call_at = self._clock()

        if not response.choices:
            return None
        return response.choices[0].message.content
