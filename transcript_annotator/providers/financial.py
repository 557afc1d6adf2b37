"""
Market data for financial entities found by the lookup provider.

When a lookup response names a COMPANY, TICKER or COMMODITY, the
orchestrator passes those entities here and attaches the result to the
turn's lookup field under ``financial``. Companies are resolved through a
static company map (canonical name, ticker, aliases) and, failing that, a
Polygon ticker search. Tickers are used as given. Price and reference data
come from the Polygon REST API.

Result shape, keyed by canonical name (or by term when unresolved):
    {
        "canonicalName": "Barclays",
        "ticker": "BARC.L",
        "exchange": "XLON",
        "currency": "gbp",
        "price": 2.04,
        "asOf": "2024-05-01T00:00:00+00:00",
        "source": "polygon",
        "resolvedFrom": "static-map",
        "aliases": [...],
        "error": null
    }
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx

from ..config import AnnotatorConfig
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

FINANCIAL_TYPES = frozenset({"COMPANY", "TICKER", "COMMODITY"})

DEFAULT_COMPANY_MAP: dict[str, dict[str, Any]] = {
    "barclays": {
        "canonicalName": "Barclays",
        "ticker": "BARC.L",
        "aliases": ["barclays investment bank", "barclays plc", "barclays bank"],
    },
}


def financial_entities(
    terms: Sequence[Any], types: Sequence[Any]
) -> list[dict[str, str]]:
    """Pick the lookup terms whose type is COMPANY, TICKER or COMMODITY."""
    entities = []
    for term, term_type in zip(terms, types):
        if not isinstance(term, str) or not term.strip():
            continue
        if not isinstance(term_type, str) or term_type.strip().upper() not in FINANCIAL_TYPES:
            continue
        entities.append({"type": term_type.strip().upper(), "term": term.strip()})
    return entities


def load_company_map(path: str | Path) -> dict[str, dict[str, Any]]:
    """
    Load a company map from JSON: ``{key: {canonicalName, ticker, aliases}}``.

    Raises:
        ConfigurationError: If the file is missing or not a JSON object.
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read company map {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in company map {path}: {e.msg}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Company map must contain a JSON object, got {type(data).__name__}"
        )
    return {str(key).strip().lower(): entry for key, entry in data.items()}


class PolygonFinancialProvider:
    """
    Financial enrichment backed by the Polygon REST API.

    Needs POLYGON_API_KEY or ``api_key``. Quotes, reference data and
    resolved entities are cached for the lifetime of the provider; failed
    requests are not cached.

    Args:
        api_key: Polygon API key; falls back to the POLYGON_API_KEY env var.
        company_map: Known companies keyed by lower-case name.
        timeout: Per-request timeout in seconds.
        client: Optional shared ``httpx.AsyncClient``; when omitted a client
            is opened for each ``enrich`` call.
    """

    name = "polygon"
    BASE_URL = "https://api.polygon.io"
    API_KEY_ENV = "POLYGON_API_KEY"

    def __init__(
        self,
        api_key: str | None = None,
        company_map: Mapping[str, Mapping[str, Any]] | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        api_key = api_key or os.environ.get(self.API_KEY_ENV)
        if not api_key:
            raise ConfigurationError(
                f"Polygon API key not found. Set {self.API_KEY_ENV} env var or pass api_key."
            )
        self._api_key = api_key
        self.company_map = dict(DEFAULT_COMPANY_MAP if company_map is None else company_map)
        self.timeout = timeout
        self._client = client
        self._quotes: dict[str, dict[str, Any]] = {}
        self._meta: dict[str, dict[str, Any]] = {}
        self._entities: dict[str, dict[str, Any]] = {}

    def resolve_company(self, term: str) -> Mapping[str, Any] | None:
        """Find ``term`` in the company map by key or alias."""
        key = term.strip().lower()
        if key in self.company_map:
            return self.company_map[key]
        for entry in self.company_map.values():
            if key in (alias.lower() for alias in entry.get("aliases", ())):
                return entry
        return None

    async def enrich(self, entities: Sequence[Mapping[str, str]]) -> dict[str, Any]:
        if self._client is not None:
            return await self._enrich(self._client, entities)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._enrich(client, entities)

    async def _enrich(
        self, client: httpx.AsyncClient, entities: Sequence[Mapping[str, str]]
    ) -> dict[str, Any]:
        results: dict[str, Any] = {}

        for entity in entities:
            term = entity.get("term")
            term_type = entity.get("type")
            if not term or term_type not in ("COMPANY", "TICKER"):
                continue

            mapping = self.resolve_company(term) if term_type == "COMPANY" else None
            if mapping is not None:
                ticker = mapping.get("ticker")
                canonical_name = mapping.get("canonicalName") or term
                resolved_from = "static-map"
            elif term_type == "TICKER":
                ticker = term.upper()
                canonical_name = ticker
                resolved_from = "ticker"
            else:
                ticker, canonical_name = await self._search_ticker(client, term)
                resolved_from = "ticker-search"

            if not ticker:
                results[term] = {
                    "canonicalName": canonical_name,
                    "ticker": None,
                    "exchange": None,
                    "currency": None,
                    "price": None,
                    "asOf": None,
                    "source": "polygon",
                    "resolvedFrom": "unresolved",
                    "error": "ticker_not_found",
                }
                continue

            cached = self._entities.get(canonical_name)
            if cached is not None:
                results[canonical_name] = cached
                continue

            price, meta = await asyncio.gather(
                self._fetch_price(client, ticker),
                self._fetch_meta(client, ticker),
            )
            enriched = {
                "canonicalName": canonical_name,
                "ticker": ticker,
                "exchange": meta.get("exchange") if meta else None,
                "currency": meta.get("currency") if meta else None,
                "price": price.get("price") if price else None,
                "asOf": price.get("asOf") if price else None,
                "source": "polygon",
                "resolvedFrom": resolved_from,
                "aliases": list(mapping.get("aliases", ())) if mapping else [],
                "error": None if price else "price_unavailable",
            }
            if price:
                self._entities[canonical_name] = enriched
            results[canonical_name] = enriched

        if not results:
            logger.info(
                "Financial enrichment returned no results for %s",
                [f"{e.get('type')}:{e.get('term')}" for e in entities],
            )
        return results

    async def _get(
        self, client: httpx.AsyncClient, path: str, **params: Any
    ) -> dict[str, Any] | None:
        try:
            response = await client.get(
                f"{self.BASE_URL}{path}",
                params={**params, "apiKey": self._api_key},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning("Polygon request %s failed with HTTP %d", path, e.response.status_code)
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Polygon request %s failed: %s", path, type(e).__name__)
            return None
        return data if isinstance(data, dict) else None

    async def _search_ticker(
        self, client: httpx.AsyncClient, term: str
    ) -> tuple[str | None, str]:
        data = await self._get(
            client, "/v3/reference/tickers", search=term, active="true", limit=1
        )
        hits = data.get("results") if data else None
        if isinstance(hits, list) and hits and isinstance(hits[0], dict):
            hit = hits[0]
            if hit.get("ticker"):
                return hit["ticker"], hit.get("name") or term
        return None, term

    async def _fetch_price(
        self, client: httpx.AsyncClient, ticker: str
    ) -> dict[str, Any] | None:
        if ticker in self._quotes:
            return self._quotes[ticker]
        data = await self._get(client, f"/v2/aggs/ticker/{ticker}/prev")
        bars = data.get("results") if data else None
        if not isinstance(bars, list) or not bars or not isinstance(bars[0], dict):
            return None
        bar = bars[0]
        timestamp = bar.get("t")
        price = {
            "price": bar.get("c"),
            "asOf": (
                datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).isoformat()
                if isinstance(timestamp, (int, float))
                else None
            ),
        }
        self._quotes[ticker] = price
        return price

    async def _fetch_meta(
        self, client: httpx.AsyncClient, ticker: str
    ) -> dict[str, Any] | None:
        if ticker in self._meta:
            return self._meta[ticker]
        data = await self._get(client, f"/v3/reference/tickers/{ticker}")
        info = data.get("results") if data else None
        if not isinstance(info, dict):
            return None
        meta = {
            "exchange": info.get("primary_exchange"),
            "currency": info.get("currency_name"),
            "name": info.get("name"),
            "market": info.get("market"),
        }
        self._meta[ticker] = meta
        return meta


def create_financial_provider(config: AnnotatorConfig) -> PolygonFinancialProvider:
    """
    Build the financial backend named by ``config.financial_provider``.

    Raises:
        ConfigurationError: If the backend is unknown, has no API key, or the
            company map cannot be loaded.
    """
    if config.financial_provider != "polygon":
        raise ConfigurationError(f"Unknown financial provider: {config.financial_provider}")
    company_map = None
    if config.financial_company_map:
        company_map = load_company_map(config.financial_company_map)
    logger.info("Using Polygon financial enrichment")
    return PolygonFinancialProvider(company_map=company_map, timeout=config.provider_timeout)


__all__ = [
    "DEFAULT_COMPANY_MAP",
    "FINANCIAL_TYPES",
    "PolygonFinancialProvider",
    "create_financial_provider",
    "financial_entities",
    "load_company_map",
]
