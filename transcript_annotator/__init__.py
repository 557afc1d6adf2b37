"""
Incremental transcript annotation.

Public API:
    - AnnotationPipeline: segment words, enrich turns, unify results
    - segment_words / TurnSegmenter: speaker-turn segmentation
    - words_from_deepgram: word list from a Deepgram response body
    - EnrichmentOrchestrator: per-turn provider fan-out with cancellation
    - SpeakerResolver: multi-pass speaker name/role merge
    - ResultUnifier / MergedTurn: event-log reduction and projection

Configuration:
    - AnnotatorConfig: thresholds, checkpoints, timeouts, LLM backend

Providers:
    - EnrichmentProviders: bundle of provider implementations
    - create_enrichment_providers: LLM-backed default bundle

Exceptions:
    - AnnotatorError: Base exception for this library
    - MalformedInputError: Raised for structurally invalid word input
    - ProviderError: Raised by providers when a request fails
    - ConfigurationError: Raised when configuration is invalid
"""

from __future__ import annotations

# Version of the annotator; included in CLI output metadata.
__version__ = "0.3.0"

from .config import AnnotatorConfig
from .enrichment_orchestrator import EnrichmentOrchestrator
from .events import (
    AnnotationEvent,
    ErrorEvent,
    FollowupEvent,
    LookupEvent,
    ResponseEvent,
    SpeakerMetadataEvent,
    TickerEvent,
    event_from_payload,
)
from .exceptions import AnnotatorError, ConfigurationError, MalformedInputError, ProviderError
from .models import SpeakerMetadata, SpeakerStats, Turn, WordEvent
from .pipeline import AnnotationPipeline
from .providers import EnrichmentProviders, create_enrichment_providers
from .role_inference import RoleInferenceConfig, RoleInferrer, infer_roles
from .session import SessionState, SessionToken
from .speaker_resolver import SpeakerResolver, is_valid_name
from .speaker_stats import build_speaker_stats, compute_speaker_corrections
from .turns import TurnSegmenter, segment_words, words_from_deepgram
from .unifier import MergedTurn, ResultUnifier

__all__ = [
    "__version__",
    # Pipeline and components
    "AnnotationPipeline",
    "EnrichmentOrchestrator",
    "ResultUnifier",
    "MergedTurn",
    "SpeakerResolver",
    "TurnSegmenter",
    "segment_words",
    "words_from_deepgram",
    "SessionState",
    "SessionToken",
    # Speaker analytics
    "build_speaker_stats",
    "compute_speaker_corrections",
    "infer_roles",
    "is_valid_name",
    "RoleInferenceConfig",
    "RoleInferrer",
    # Models and events
    "WordEvent",
    "Turn",
    "SpeakerStats",
    "SpeakerMetadata",
    "AnnotationEvent",
    "LookupEvent",
    "ErrorEvent",
    "FollowupEvent",
    "TickerEvent",
    "ResponseEvent",
    "SpeakerMetadataEvent",
    "event_from_payload",
    # Configuration and providers
    "AnnotatorConfig",
    "EnrichmentProviders",
    "create_enrichment_providers",
    # Exceptions
    "AnnotatorError",
    "ConfigurationError",
    "MalformedInputError",
    "ProviderError",
]
