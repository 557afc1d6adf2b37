"""LLM-backed enrichment providers.

Each provider builds a prompt, sends it through an LLMProvider with retry
and backoff, and parses a single JSON object from the completion. Shape
problems that the model commonly makes are repaired here before the body
reaches the orchestrator:

- Markdown code fences around the JSON are stripped.
- Speaker arrays are padded (names with null, roles with "Undefined") or
  truncated to max speaker ordinal + 1.
- A COMPANY lookup that is shaped like a two-word personal name is re-typed
  as PERSON.

Errors are classified as rate_limit, timeout, transient, malformed or fatal;
only the first three are retried.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import re
from collections.abc import Mapping, Sequence
from typing import Any

from ..config import AnnotatorConfig
from ..exceptions import ProviderError
from ..models import UNDEFINED_ROLE, Turn
from ..speaker_resolver import max_speaker_ordinal, normalize_array
from .base import EnrichmentProviders
from .financial import create_financial_provider
from .llm_client import LLMConfig, LLMProvider, create_llm_provider
from .prompts import (
    ERROR_SYSTEM_PROMPT,
    ERROR_USER_TEMPLATE,
    FOLLOWUP_SYSTEM_PROMPT,
    FOLLOWUP_USER_TEMPLATE,
    LOOKUP_SYSTEM_PROMPT,
    LOOKUP_USER_TEMPLATE,
    RESPONSE_SYSTEM_PROMPT,
    RESPONSE_USER_TEMPLATE,
    SPEAKER_NAME_SYSTEM_PROMPT,
    SPEAKER_ROLE_SYSTEM_PROMPT,
    SPEAKER_USER_TEMPLATE,
    TICKER_SYSTEM_PROMPT,
    TICKER_USER_TEMPLATE,
)

logger = logging.getLogger(__name__)

_PERSON_SHAPED = re.compile(r"^[A-Z][a-z]+ [A-Z][a-z]+$")
_CODE_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def extract_json(response: str) -> str | None:
    """Extract a JSON object from an LLM completion.

    Handles Markdown code blocks and leading/trailing prose around the
    outermost ``{ ... }`` pair. Returns None if no object is found.
    """
    response = response.strip()

    if "```" in response:
        matches = _CODE_BLOCK.findall(response)
        if matches:
            response = str(matches[0]).strip()

    brace_start = response.find("{")
    if brace_start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i, char in enumerate(response[brace_start:], start=brace_start):
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
                return response[brace_start : i + 1]
    return None


def parse_json_object(response: str) -> dict[str, Any]:
    """Parse the JSON object in ``response``.

    Raises:
        json.JSONDecodeError: If no valid JSON object is present.
    """
    text = extract_json(response)
    if text is None:
        raise json.JSONDecodeError("No JSON object in response", response, 0)
    data = json.loads(text)
    if not isinstance(data, dict):
        raise json.JSONDecodeError("Response JSON is not an object", text, 0)
    return data


def _turn_line(turn: Turn) -> str:
    return f"[{turn.id}] speaker {turn.speaker}: {turn.text}"


def _speaker_transcript(turns: Sequence[Turn]) -> str:
    return json.dumps(
        [{"id": t.id, "speaker": t.speaker, "text": t.text} for t in turns],
        ensure_ascii=False,
        indent=2,
    )


class LLMEnrichmentProvider:
    """Base class for LLM-backed providers.

    Provides JSON parsing, error classification and retry with exponential
    backoff and jitter around ``LLMProvider.complete``.
    """

    # Default retry configuration
    DEFAULT_MAX_RETRIES = 3
    DEFAULT_INITIAL_BACKOFF_MS = 1000
    DEFAULT_MAX_BACKOFF_MS = 32000

    # Error patterns for classification
    RATE_LIMIT_PATTERNS = (
        "rate limit",
        "rate_limit",
        "ratelimit",
        "too many requests",
        "429",
        "quota exceeded",
    )

    TIMEOUT_PATTERNS = (
        "timeout",
        "timed out",
        "time out",
        "deadline exceeded",
    )

    TRANSIENT_PATTERNS = (
        "connection",
        "network",
        "temporary",
        "unavailable",
        "server error",
        "overloaded",
        "500",
        "502",
        "503",
        "504",
        "529",
    )

    def __init__(
        self,
        llm: LLMProvider,
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_backoff_ms: int = DEFAULT_INITIAL_BACKOFF_MS,
        max_backoff_ms: int = DEFAULT_MAX_BACKOFF_MS,
    ) -> None:
        self.llm = llm
        self._max_retries = max_retries
        self._initial_backoff_ms = initial_backoff_ms
        self._max_backoff_ms = max_backoff_ms

    def _classify_error(self, error: Exception) -> str:
        """Classify an error as rate_limit, timeout, transient, malformed or fatal."""
        if isinstance(error, json.JSONDecodeError):
            return "malformed"
        if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
            return "timeout"

        # Provider errors wrap the SDK exception; look at both
        parts = [str(error), type(error).__name__]
        if error.__cause__ is not None:
            parts += [str(error.__cause__), type(error.__cause__).__name__]
        error_str = " ".join(parts).lower()

        if any(pattern in error_str for pattern in self.RATE_LIMIT_PATTERNS):
            return "rate_limit"
        if any(pattern in error_str for pattern in self.TIMEOUT_PATTERNS):
            return "timeout"
        if any(pattern in error_str for pattern in self.TRANSIENT_PATTERNS):
            return "transient"
        return "fatal"

    def _should_retry(self, error_type: str, attempt: int) -> bool:
        if attempt >= self._max_retries:
            return False
        return error_type in ("rate_limit", "timeout", "transient")

    def _calculate_backoff(self, attempt: int, error_type: str) -> float:
        """Backoff delay in seconds: exponential, capped, with 0-25% jitter."""
        base_delay_ms = self._initial_backoff_ms * (2**attempt)

        # Rate limit errors get longer initial delay
        if error_type == "rate_limit":
            base_delay_ms = max(base_delay_ms, 5000)

        delay_ms = min(base_delay_ms, self._max_backoff_ms)
        delay_ms += random.uniform(0, 0.25) * delay_ms
        return float(delay_ms / 1000.0)

    async def _request_json(self, system: str, user: str) -> dict[str, Any]:
        """Complete and parse one JSON object, retrying recoverable errors.

        Raises:
            ProviderError: On a non-recoverable failure or when retries run out.
        """
        last_error: Exception | None = None

        for attempt in range(self._max_retries + 1):
            try:
                response = await self.llm.complete(system, user)
                return parse_json_object(response.text)
            except Exception as e:
                last_error = e
                error_type = self._classify_error(e)

            if not self._should_retry(error_type, attempt):
                logger.warning(
                    "%s request failed (attempt %d): %s - %s",
                    self.llm.name,
                    attempt + 1,
                    error_type,
                    last_error,
                )
                raise ProviderError(
                    f"{self.llm.name} request failed ({error_type}): {last_error}"
                ) from last_error

            backoff_seconds = self._calculate_backoff(attempt, error_type)
            logger.info(
                "%s request failed (attempt %d), retrying in %.2fs: %s - %s",
                self.llm.name,
                attempt + 1,
                backoff_seconds,
                error_type,
                last_error,
            )
            await asyncio.sleep(backoff_seconds)

        # Should not reach here, but just in case
        raise ProviderError(f"{self.llm.name} request failed: {last_error}")


class LLMLookupProvider(LLMEnrichmentProvider):
    async def lookup(self, turn: Turn, ignore_list: Sequence[str]) -> dict[str, Any]:
        user = LOOKUP_USER_TEMPLATE.format(
            ignore_list=json.dumps(list(ignore_list), ensure_ascii=False),
            text=turn.text,
        )
        data = await self._request_json(LOOKUP_SYSTEM_PROMPT, user)
        return retype_person_lookups(data)


def retype_person_lookups(data: dict[str, Any]) -> dict[str, Any]:
    """Re-type COMPANY lookups shaped like "Firstname Lastname" as PERSON."""
    terms = data.get("lookupTerm")
    types = data.get("lookupType")
    if not isinstance(terms, list) or not isinstance(types, list):
        return data

    retyped = []
    for i, term_type in enumerate(types):
        term = terms[i] if i < len(terms) else None
        if term_type == "COMPANY" and isinstance(term, str) and _PERSON_SHAPED.match(term):
            logger.debug("Re-typing lookup %r from COMPANY to PERSON", term)
            term_type = "PERSON"
        retyped.append(term_type)
    return {**data, "lookupType": retyped}


class LLMErrorProvider(LLMEnrichmentProvider):
    async def detect(
        self,
        turn: Turn,
        context: Sequence[Turn],
        market_context: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        user = ERROR_USER_TEMPLATE.format(
            context="\n".join(_turn_line(t) for t in context) or "(start of conversation)",
            market_context=(
                json.dumps(market_context, ensure_ascii=False, indent=2)
                if market_context
                else "(none)"
            ),
            speaker=turn.speaker,
            text=turn.text,
        )
        return await self._request_json(ERROR_SYSTEM_PROMPT, user)


class LLMFollowupProvider(LLMEnrichmentProvider):
    """Follow-up questions for substantive turns.

    Turns shorter than ``min_words`` get an empty answer without a request.
    The orchestrator applies the same filter before dispatch; this guard
    covers direct callers.
    """

    def __init__(self, llm: LLMProvider, min_words: int = 8, **kwargs: Any) -> None:
        super().__init__(llm, **kwargs)
        self.min_words = min_words

    async def followup(self, turn: Turn) -> dict[str, Any]:
        if turn.word_count < self.min_words:
            return {"followupQuestion": None, "followupConfidence": None}
        user = FOLLOWUP_USER_TEMPLATE.format(speaker=turn.speaker, text=turn.text)
        return await self._request_json(FOLLOWUP_SYSTEM_PROMPT, user)


class LLMSpeakerIdentityProvider(LLMEnrichmentProvider):
    """Speaker names and roles from two concurrent requests.

    Whatever succeeds is merged; the call fails only if both requests fail.
    """

    async def identify(self, turns: Sequence[Turn]) -> dict[str, Any] | None:
        max_ordinal = max_speaker_ordinal(turns)
        if max_ordinal < 0:
            return None
        length = max_ordinal + 1

        user = SPEAKER_USER_TEMPLATE.format(
            max_speaker=max_ordinal,
            length=length,
            transcript=_speaker_transcript(turns),
        )
        names_result, roles_result = await asyncio.gather(
            self._request_json(SPEAKER_NAME_SYSTEM_PROMPT, user),
            self._request_json(SPEAKER_ROLE_SYSTEM_PROMPT, user),
            return_exceptions=True,
        )

        if isinstance(names_result, BaseException) and isinstance(roles_result, BaseException):
            raise ProviderError(
                f"Speaker identity requests failed: {names_result}"
            ) from names_result

        result: dict[str, Any] = {}
        if isinstance(names_result, BaseException):
            logger.warning("Speaker name request failed: %s", names_result)
            result["speakerName"] = [None] * length
        else:
            result["speakerName"] = normalize_array(names_result.get("speakerName"), length)

        if isinstance(roles_result, BaseException):
            logger.warning("Speaker role request failed: %s", roles_result)
            result["speakerRole"] = [UNDEFINED_ROLE] * length
        else:
            result["speakerRole"] = normalize_array(
                roles_result.get("speakerRole"), length, UNDEFINED_ROLE
            )
        return result


class LLMTickerProvider(LLMEnrichmentProvider):
    async def extract(self, turn: Turn) -> dict[str, Any]:
        user = TICKER_USER_TEMPLATE.format(text=turn.text)
        return await self._request_json(TICKER_SYSTEM_PROMPT, user)


class LLMResponseProvider(LLMEnrichmentProvider):
    async def assess(
        self,
        question_text: str,
        answer_text: str,
        interviewer_name: str,
        guest_name: str,
    ) -> dict[str, Any]:
        user = RESPONSE_USER_TEMPLATE.format(
            question_text=question_text,
            answer_text=answer_text,
            interviewer_name=interviewer_name,
            guest_name=guest_name,
        )
        return await self._request_json(RESPONSE_SYSTEM_PROMPT, user)


def create_llm_from_config(config: AnnotatorConfig) -> LLMProvider:
    """Build the LLM client for the backend, model and temperature in ``config``."""
    return create_llm_provider(
        LLMConfig(
            provider=config.llm_provider,
            model=config.llm_model,
            temperature=config.llm_temperature,
        )
    )


def create_enrichment_providers(
    config: AnnotatorConfig | None = None,
    llm: LLMProvider | None = None,
) -> EnrichmentProviders:
    """
    Build the full LLM-backed provider bundle.

    Args:
        config: Annotator configuration (backend, model, retries, thresholds).
        llm: Optional pre-built LLM client shared by every provider; when
            omitted one is created from ``config``.

    Raises:
        ConfigurationError: If the backend is unknown or has no API key, or
            the financial backend is misconfigured.
    """
    config = config or AnnotatorConfig()
    if llm is None:
        llm = create_llm_from_config(config)
    llm.check_credentials()
    logger.info("Using %s LLM backend (model %s)", llm.name, llm.model)

    financial = None
    if config.financial_provider is not None:
        financial = create_financial_provider(config)

    retry_kwargs: dict[str, Any] = {"max_retries": config.llm_max_retries}
    return EnrichmentProviders(
        lookup=LLMLookupProvider(llm, **retry_kwargs),
        error=LLMErrorProvider(llm, **retry_kwargs),
        speaker_identity=LLMSpeakerIdentityProvider(llm, **retry_kwargs),
        followup=LLMFollowupProvider(llm, min_words=config.followup_min_words, **retry_kwargs),
        ticker=LLMTickerProvider(llm, **retry_kwargs),
        response=LLMResponseProvider(llm, **retry_kwargs),
        financial=financial,
    )


__all__ = [
    "LLMEnrichmentProvider",
    "LLMErrorProvider",
    "LLMFollowupProvider",
    "LLMLookupProvider",
    "LLMResponseProvider",
    "LLMSpeakerIdentityProvider",
    "LLMTickerProvider",
    "create_enrichment_providers",
    "create_llm_from_config",
    "extract_json",
    "parse_json_object",
    "retype_person_lookups",
]
