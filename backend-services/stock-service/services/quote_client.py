# backend-services/stock-service/services/quote_client.py
"""
Client for the external stock-quote provider.

GET {QUOTE_API_URL}/stocks/{symbol} is expected to return a JSON object with
a display name, a price and a price change. Field names are configurable
because the provider is a placeholder.

fetch_quote:
- Makes exactly one request per call (no retry, no caching).
- Raises UpstreamUnavailable on network errors, timeouts and non-2xx codes.
- Raises MalformedResponse when the payload is not the expected shape.
"""

import logging
from typing import Any, Dict, Optional

import requests
from pydantic import ValidationError

from shared.contracts import Quote

logger = logging.getLogger(__name__)

DEFAULT_FIELD_MAP = {"name": "name", "price": "price", "change": "change"}


class QuoteServiceError(RuntimeError):
    """Base class for quote provider failures."""


class UpstreamUnavailable(QuoteServiceError):
    pass


class MalformedResponse(QuoteServiceError):
    pass


class QuoteClient:
    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        field_map: Optional[Dict[str, str]] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.field_map = {**DEFAULT_FIELD_MAP, **(field_map or {})}
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config) -> "QuoteClient":
        return cls(
            base_url=config.QUOTE_API_URL,
            api_key=config.QUOTE_API_KEY,
            timeout=config.QUOTE_HTTP_TIMEOUT_SECONDS,
            field_map=config.QUOTE_FIELD_MAP,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    def fetch_quote(self, symbol: str) -> Quote:
        # Escaped so "?", "#" or "/" in a path symbol cannot alter the upstream request
        url = f"{self.base_url}/stocks/{requests.utils.quote(symbol, safe='')}"
        try:
            resp = self.session.get(url, headers=self._headers(), timeout=self.timeout)
            resp.raise_for_status()
        except requests.exceptions.RequestException as exc:
            raise UpstreamUnavailable(f"Quote request failed for {symbol}: {exc}") from exc

        try:
            payload: Any = resp.json()
        except ValueError as exc:
            raise MalformedResponse(f"Quote response for {symbol} is not JSON") from exc

        if not isinstance(payload, dict):
            raise MalformedResponse(f"Quote response for {symbol} is not an object")

        missing = [key for key, field in self.field_map.items() if field not in payload]
        if missing:
            raise MalformedResponse(f"Quote response for {symbol} lacks fields: {', '.join(missing)}")

        try:
            quote = Quote(**{key: payload[field] for key, field in self.field_map.items()})
        except ValidationError as exc:
            raise MalformedResponse(f"Quote response for {symbol} failed validation: {exc}") from exc

        logger.info(f"Fetched quote for {symbol}: price={quote.price} change={quote.change}")
        return quote

    def close(self) -> None:
        self.session.close()
