"""
Enrichment providers.

- base: provider protocols and the EnrichmentProviders bundle
- llm_client: async completion clients (OpenAI, Anthropic, mock)
- llm: LLM-backed implementations of every provider protocol
- financial: Polygon-backed market data for financial lookup entities
"""

from transcript_annotator.providers.base import (
    EnrichmentProviders,
    ErrorProvider,
    FinancialProvider,
    FollowupProvider,
    LookupProvider,
    ProviderResult,
    ResponseProvider,
    SpeakerIdentityProvider,
    TickerProvider,
)
from transcript_annotator.providers.financial import (
    PolygonFinancialProvider,
    create_financial_provider,
    financial_entities,
)
from transcript_annotator.providers.llm import create_enrichment_providers
from transcript_annotator.providers.llm_client import (
    LLMConfig,
    LLMProvider,
    LLMResponse,
    MockProvider,
    create_llm_provider,
)

__all__ = [
    "EnrichmentProviders",
    "ErrorProvider",
    "FinancialProvider",
    "FollowupProvider",
    "LLMConfig",
    "LLMProvider",
    "LLMResponse",
    "LookupProvider",
    "MockProvider",
    "PolygonFinancialProvider",
    "ProviderResult",
    "ResponseProvider",
    "SpeakerIdentityProvider",
    "TickerProvider",
    "create_enrichment_providers",
    "create_financial_provider",
    "create_llm_provider",
    "financial_entities",
]
