"""Configuration for transcript annotation sessions.

AnnotatorConfig holds the orchestration thresholds (follow-up filter,
speaker-identity checkpoints and windows, diarization correction, role
heuristics), the per-call provider timeout and the LLM backend settings.

Configuration can be created programmatically or loaded from a JSON file and
environment variables, with precedence:

1. Explicit keyword overrides
2. Config file
3. Environment variables (``TRANSCRIPT_ANNOTATOR_*``)
4. Defaults
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from .exceptions import ConfigurationError
from .role_inference import RoleInferenceConfig

DEFAULT_ENV_PREFIX = "TRANSCRIPT_ANNOTATOR_"

VALID_LLM_PROVIDERS = ("openai", "anthropic", "mock")
VALID_FINANCIAL_PROVIDERS = ("polygon",)

_INT_FIELDS = (
    "followup_min_words",
    "short_turn_words",
    "initial_checkpoint",
    "refinement_checkpoint",
    "initial_window",
    "refinement_window",
    "refinement_min_turns",
    "error_context_turns",
    "role_min_turns",
    "provider_timeout_ms",
    "llm_max_retries",
)
_FLOAT_FIELDS = ("question_rate_threshold", "guest_avg_words", "llm_temperature")
_STR_FIELDS = ("llm_provider", "llm_model", "financial_provider", "financial_company_map")


@dataclass(slots=True)
class AnnotatorConfig:
    """
    Settings for one annotation pipeline.

    Attributes:
        followup_min_words: Turns shorter than this never reach the follow-up provider.
        short_turn_words: Max words for a turn to be a sandwich-correction candidate.
        initial_checkpoint: Turn count that triggers the initial speaker pass.
        refinement_checkpoint: Turn count that triggers the refinement pass.
        initial_window: Number of leading turns sent to the initial pass.
        refinement_window: Number of leading turns sent to the refinement pass.
        refinement_min_turns: The refinement pass runs only when more turns than
            this are known.
        error_context_turns: Preceding turns passed to the error provider.
        question_rate_threshold: Role heuristic, Interviewer question rate.
        guest_avg_words: Role heuristic, Guest average turn length.
        role_min_turns: Role heuristic, minimum turns per speaker.
        provider_timeout_ms: Per-call timeout for every provider request.
        llm_provider: LLM backend ("openai", "anthropic" or "mock").
        llm_model: Model name; None picks the backend default.
        llm_max_retries: Retries for rate-limit and transient LLM errors.
        llm_temperature: Sampling temperature for LLM requests.
        financial_provider: Market-data backend for financial lookups ("polygon"),
            or None to skip financial enrichment.
        financial_company_map: Optional JSON company map for the financial backend.
    """

    followup_min_words: int = 8
    short_turn_words: int = 4
    initial_checkpoint: int = 4
    refinement_checkpoint: int = 25
    initial_window: int = 200
    refinement_window: int = 300
    refinement_min_turns: int = 0

    error_context_turns: int = 5

    question_rate_threshold: float = 0.3
    guest_avg_words: float = 45.0
    role_min_turns: int = 3

    provider_timeout_ms: int = 30000

    llm_provider: str = "openai"
    llm_model: str | None = None
    llm_max_retries: int = 3
    llm_temperature: float = 0.3

    financial_provider: str | None = None
    financial_company_map: str | None = None

    # Internal field to track which config values were explicitly set
    _source_fields: set[str] = field(default_factory=set, init=False, repr=False)

    def __post_init__(self) -> None:
        for name in _INT_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ConfigurationError(f"{name} must be a non-negative integer, got {value!r}")
        for name in _FLOAT_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                raise ConfigurationError(f"{name} must be a non-negative number, got {value!r}")
        if self.initial_checkpoint < 1 or self.refinement_checkpoint < 1:
            raise ConfigurationError("Speaker checkpoints must be >= 1")
        if self.refinement_checkpoint <= self.initial_checkpoint:
            raise ConfigurationError(
                f"refinement_checkpoint ({self.refinement_checkpoint}) must be greater than "
                f"initial_checkpoint ({self.initial_checkpoint})"
            )
        if self.provider_timeout_ms == 0:
            raise ConfigurationError("provider_timeout_ms must be > 0")
        if self.question_rate_threshold > 1.0:
            raise ConfigurationError(
                f"question_rate_threshold must be in [0, 1], got {self.question_rate_threshold}"
            )
        if self.llm_provider not in VALID_LLM_PROVIDERS:
            raise ConfigurationError(
                f"llm_provider must be one of {', '.join(VALID_LLM_PROVIDERS)}, "
                f"got {self.llm_provider!r}"
            )
        if (
            self.financial_provider is not None
            and self.financial_provider not in VALID_FINANCIAL_PROVIDERS
        ):
            raise ConfigurationError(
                f"financial_provider must be one of {', '.join(VALID_FINANCIAL_PROVIDERS)} "
                f"or None, got {self.financial_provider!r}"
            )

    @property
    def provider_timeout(self) -> float:
        """Per-call provider timeout in seconds."""
        return self.provider_timeout_ms / 1000.0

    def role_inference_config(self) -> RoleInferenceConfig:
        return RoleInferenceConfig(
            question_rate_threshold=self.question_rate_threshold,
            guest_avg_words=self.guest_avg_words,
            min_turns=self.role_min_turns,
        )

    def to_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in _field_names()}

    @classmethod
    def from_file(cls, path: str | Path) -> AnnotatorConfig:
        """
        Load configuration from a JSON file.

        Unknown keys are ignored.

        Raises:
            ConfigurationError: If the file is missing, is not valid JSON, is
                not a JSON object, or holds invalid values.

        Example JSON file:
            {
                "followup_min_words": 10,
                "provider_timeout_ms": 15000,
                "llm_provider": "anthropic"
            }
        """
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in configuration file {path}: {e.msg}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration file must contain a JSON object, got {type(data).__name__}"
            )

        valid_fields = _field_names()
        filtered_data = {k: v for k, v in data.items() if k in valid_fields}

        try:
            config = cls(**filtered_data)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration data: {e}") from e
        # Track which fields were explicitly set from file
        config._source_fields = set(filtered_data.keys())
        return config

    @classmethod
    def from_env(cls, prefix: str = DEFAULT_ENV_PREFIX) -> AnnotatorConfig:
        """
        Load configuration from environment variables.

        Each field maps to ``{prefix}{FIELD_NAME_UPPER}``, for example
        ``TRANSCRIPT_ANNOTATOR_FOLLOWUP_MIN_WORDS=10`` or
        ``TRANSCRIPT_ANNOTATOR_LLM_PROVIDER=anthropic``.

        Raises:
            ConfigurationError: If a variable cannot be parsed.
        """
        config_dict: dict[str, Any] = {}

        for name in _INT_FIELDS:
            if value := os.getenv(f"{prefix}{name.upper()}"):
                try:
                    config_dict[name] = int(value)
                except ValueError as e:
                    raise ConfigurationError(
                        f"Invalid {prefix}{name.upper()}: {value}. Must be an integer."
                    ) from e

        for name in _FLOAT_FIELDS:
            if value := os.getenv(f"{prefix}{name.upper()}"):
                try:
                    config_dict[name] = float(value)
                except ValueError as e:
                    raise ConfigurationError(
                        f"Invalid {prefix}{name.upper()}: {value}. Must be a number."
                    ) from e

        for name in _STR_FIELDS:
            if value := os.getenv(f"{prefix}{name.upper()}"):
                config_dict[name] = None if value.lower() in ("none", "null") else value

        config = cls(**config_dict)
        # Track which fields were explicitly set from environment
        config._source_fields = set(config_dict.keys())
        return config

    @classmethod
    def from_sources(
        cls,
        env_prefix: str = DEFAULT_ENV_PREFIX,
        config_file: str | Path | None = None,
        **overrides: Any,
    ) -> AnnotatorConfig:
        """
        Load configuration from multiple sources with proper precedence.

        Args:
            env_prefix: Environment variable prefix.
            config_file: Optional path to a JSON configuration file.
            **overrides: Explicit values that override all other sources.
                None values are treated as "not set".

        Raises:
            ConfigurationError: If any source holds invalid values or an
                override names an unknown field.

        Example:
            # 1. Defaults: followup_min_words=8
            # 2. Env: TRANSCRIPT_ANNOTATOR_FOLLOWUP_MIN_WORDS=10 -> 10
            # 3. File: {"followup_min_words": 12} -> 12
            # 4. Override: followup_min_words=6 -> 6
            config = AnnotatorConfig.from_sources(
                config_file="annotator.json",
                followup_min_words=6,
            )
        """
        config = cls()

        env_config = cls.from_env(prefix=env_prefix)
        config = _merge_configs(config, env_config)

        if config_file is not None:
            file_config = cls.from_file(config_file)
            config = _merge_configs(config, file_config)

        filtered_overrides = {k: v for k, v in overrides.items() if v is not None}
        unknown = set(filtered_overrides) - _field_names()
        if unknown:
            raise ConfigurationError(f"Unknown configuration fields: {', '.join(sorted(unknown))}")

        if filtered_overrides:
            values = config.to_dict()
            values.update(filtered_overrides)
            source_fields = config._source_fields | set(filtered_overrides)
            config = cls(**values)
            config._source_fields = source_fields

        return config


def _field_names() -> set[str]:
    return {f.name for f in fields(AnnotatorConfig) if f.init}


def _merge_configs(base: AnnotatorConfig, override: AnnotatorConfig) -> AnnotatorConfig:
    """Apply the explicitly-set fields of ``override`` on top of ``base``."""
    values = base.to_dict()
    for name in override._source_fields:
        values[name] = getattr(override, name)
    merged = AnnotatorConfig(**values)
    merged._source_fields = base._source_fields | override._source_fields
    return merged


__all__ = [
    "DEFAULT_ENV_PREFIX",
    "VALID_FINANCIAL_PROVIDERS",
    "VALID_LLM_PROVIDERS",
    "AnnotatorConfig",
]
