"""
Tests for AnnotatorConfig.

Test coverage:
- Defaults and validation
- Loading from JSON files and environment variables
- Source precedence: overrides > file > env > defaults
"""

from __future__ import annotations

import json

import pytest

from transcript_annotator.config import AnnotatorConfig
from transcript_annotator.exceptions import ConfigurationError

PREFIX = "TRANSCRIPT_ANNOTATOR_"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove any annotator variables inherited from the outer environment."""
    import os

    for key in list(os.environ):
        if key.startswith(PREFIX):
            monkeypatch.delenv(key)


def write_config(tmp_path, data):
    path = tmp_path / "annotator.json"
    path.write_text(json.dumps(data))
    return path


class TestDefaults:
    def test_defaults(self):
        config = AnnotatorConfig()
        assert config.followup_min_words == 8
        assert config.short_turn_words == 4
        assert (config.initial_checkpoint, config.refinement_checkpoint) == (4, 25)
        assert (config.initial_window, config.refinement_window) == (200, 300)
        assert config.refinement_min_turns == 0
        assert config.provider_timeout == 30.0
        assert config.llm_provider == "openai"

    def test_role_inference_config(self):
        config = AnnotatorConfig(question_rate_threshold=0.5, role_min_turns=2)
        role_config = config.role_inference_config()
        assert role_config.question_rate_threshold == 0.5
        assert role_config.min_turns == 2
        assert role_config.guest_avg_words == 45.0

    def test_to_dict_excludes_internal_fields(self):
        data = AnnotatorConfig().to_dict()
        assert "_source_fields" not in data
        assert data["llm_model"] is None


class TestValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"followup_min_words": -1},
            {"followup_min_words": 2.5},
            {"short_turn_words": True},
            {"initial_checkpoint": 0},
            {"initial_checkpoint": 10, "refinement_checkpoint": 10},
            {"provider_timeout_ms": 0},
            {"question_rate_threshold": 1.5},
            {"guest_avg_words": -3.0},
            {"llm_provider": "cohere"},
            {"financial_provider": "yahoo"},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigurationError):
            AnnotatorConfig(**kwargs)


class TestFromFile:
    def test_loads_known_keys(self, tmp_path):
        path = write_config(tmp_path, {"followup_min_words": 12, "unrelated": True})
        config = AnnotatorConfig.from_file(path)

        assert config.followup_min_words == 12
        assert config._source_fields == {"followup_min_words"}

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            AnnotatorConfig.from_file(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            AnnotatorConfig.from_file(path)

    def test_non_object(self, tmp_path):
        path = write_config(tmp_path, [1, 2])
        with pytest.raises(ConfigurationError, match="JSON object"):
            AnnotatorConfig.from_file(path)

    def test_invalid_value(self, tmp_path):
        path = write_config(tmp_path, {"initial_checkpoint": 0})
        with pytest.raises(ConfigurationError):
            AnnotatorConfig.from_file(path)


class TestFromEnv:
    def test_reads_prefixed_variables(self, monkeypatch):
        monkeypatch.setenv(f"{PREFIX}FOLLOWUP_MIN_WORDS", "10")
        monkeypatch.setenv(f"{PREFIX}QUESTION_RATE_THRESHOLD", "0.4")
        monkeypatch.setenv(f"{PREFIX}LLM_PROVIDER", "anthropic")
        monkeypatch.setenv(f"{PREFIX}LLM_MODEL", "none")

        config = AnnotatorConfig.from_env()

        assert config.followup_min_words == 10
        assert config.question_rate_threshold == 0.4
        assert config.llm_provider == "anthropic"
        assert config.llm_model is None
        assert config._source_fields == {
            "followup_min_words",
            "question_rate_threshold",
            "llm_provider",
            "llm_model",
        }

    def test_invalid_integer(self, monkeypatch):
        monkeypatch.setenv(f"{PREFIX}PROVIDER_TIMEOUT_MS", "fast")
        with pytest.raises(ConfigurationError, match="PROVIDER_TIMEOUT_MS"):
            AnnotatorConfig.from_env()

    def test_financial_settings(self, monkeypatch):
        monkeypatch.setenv(f"{PREFIX}FINANCIAL_PROVIDER", "polygon")
        monkeypatch.setenv(f"{PREFIX}FINANCIAL_COMPANY_MAP", "companies.json")

        config = AnnotatorConfig.from_env()

        assert config.financial_provider == "polygon"
        assert config.financial_company_map == "companies.json"

    def test_financial_provider_can_be_disabled(self, monkeypatch):
        monkeypatch.setenv(f"{PREFIX}FINANCIAL_PROVIDER", "none")
        assert AnnotatorConfig.from_env().financial_provider is None

    def test_custom_prefix(self, monkeypatch):
        monkeypatch.setenv("ANNOTATE_SHORT_TURN_WORDS", "2")
        assert AnnotatorConfig.from_env(prefix="ANNOTATE_").short_turn_words == 2


class TestFromSources:
    def test_precedence(self, tmp_path, monkeypatch):
        monkeypatch.setenv(f"{PREFIX}FOLLOWUP_MIN_WORDS", "10")
        monkeypatch.setenv(f"{PREFIX}SHORT_TURN_WORDS", "6")
        monkeypatch.setenv(f"{PREFIX}ERROR_CONTEXT_TURNS", "3")
        path = write_config(tmp_path, {"followup_min_words": 12, "short_turn_words": 2})

        config = AnnotatorConfig.from_sources(config_file=path, followup_min_words=6)

        assert config.followup_min_words == 6  # override
        assert config.short_turn_words == 2  # file
        assert config.error_context_turns == 3  # env
        assert config.initial_window == 200  # default

    def test_none_overrides_are_ignored(self, monkeypatch):
        monkeypatch.setenv(f"{PREFIX}LLM_PROVIDER", "mock")
        config = AnnotatorConfig.from_sources(llm_provider=None, llm_model=None)
        assert config.llm_provider == "mock"

    def test_file_value_equal_to_default_still_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv(f"{PREFIX}FOLLOWUP_MIN_WORDS", "10")
        path = write_config(tmp_path, {"followup_min_words": 8})

        assert AnnotatorConfig.from_sources(config_file=path).followup_min_words == 8

    def test_unknown_override(self):
        with pytest.raises(ConfigurationError, match="Unknown configuration fields"):
            AnnotatorConfig.from_sources(followup_words=3)

    def test_override_validation(self):
        with pytest.raises(ConfigurationError):
            AnnotatorConfig.from_sources(initial_checkpoint=30)
