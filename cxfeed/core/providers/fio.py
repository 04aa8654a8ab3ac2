"""
Client for the FIO REST market-data API.

Fetches the full exchange listing and per-ticker price history. A response
with no content is a valid empty result; a body that cannot be parsed as the
expected JSON array is a data-integrity failure and raises
:class:`MalformedPayloadError`, which is never absorbed.
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from cxfeed.core.config import UpstreamConfig
from cxfeed.core.exceptions import MalformedPayloadError, RateLimitError, UpstreamError
from cxfeed.core.logging import logger
from cxfeed.core.models import CandleEntry
from cxfeed.core.patterns import Deadline, DeadlineResult

LISTING_PATH = "/exchange/all"
HISTORY_PATH = "/exchange/cxpc/{ticker}"

_SNIPPET_LENGTH = 120


class FioGateway:
    """Async gateway owning a single :class:`httpx.AsyncClient`."""

    def __init__(
        self,
        config: UpstreamConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or UpstreamConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._deadline = Deadline(self.config.history_timeout)

    async def __aenter__(self) -> FioGateway:
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url.rstrip("/"),
                timeout=httpx.Timeout(self.config.request_timeout),
                headers={"User-Agent": self.config.user_agent, "Accept": "application/json"},
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_listing(self) -> list[dict[str, Any]]:
        """Current market listing; empty when the upstream returns no content."""
        payload = await self._get_json_array(LISTING_PATH)
        for entry in payload:
            if not isinstance(entry, dict):
                raise MalformedPayloadError(
                    "Listing entry is not an object",
                    url=LISTING_PATH,
                    snippet=repr(entry)[:_SNIPPET_LENGTH],
                )
        logger.debug("Fetched listing", entries=len(payload))
        return payload

    async def fetch_history(self, full_ticker: str) -> list[CandleEntry]:
        """Price history of one ticker; empty when the upstream returns no content."""
        path = HISTORY_PATH.format(ticker=quote(full_ticker, safe="."))
        payload = await self._get_json_array(path)
        try:
            return [CandleEntry.model_validate(entry) for entry in payload]
        except ValidationError as exc:
            raise MalformedPayloadError(
                f"History for {full_ticker} does not match the candle schema",
                url=path,
                details={"errors": exc.error_count()},
            ) from exc

    async def fetch_history_within(self, full_ticker: str) -> DeadlineResult[list[CandleEntry]]:
        """:meth:`fetch_history` raced against the configured history deadline."""
        return await self._deadline.run(self.fetch_history(full_ticker))

    async def _get_json_array(self, path: str) -> list[Any]:
        client = self._ensure_client()
        try:
            response = await client.get(path)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Request to {path} failed: {exc}", url=path) from exc

        if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
            raise RateLimitError(
                f"Upstream rate limited {path}",
                url=path,
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
            )
        if response.status_code == httpx.codes.NO_CONTENT:
            return []
        if response.is_error:
            raise UpstreamError(
                f"Upstream answered {response.status_code} for {path}",
                url=path,
                status_code=response.status_code,
            )

        text = response.text
        if not text.strip():
            return []
        try:
            payload = json.loads(text, parse_constant=_reject_constant)
        except ValueError as exc:
            raise MalformedPayloadError(
                f"Response from {path} is not valid JSON: {exc}",
                url=path,
                snippet=text[:_SNIPPET_LENGTH],
            ) from exc
        if not isinstance(payload, list):
            raise MalformedPayloadError(
                f"Response from {path} is not a JSON array",
                url=path,
                snippet=text[:_SNIPPET_LENGTH],
            )
        return payload


def _reject_constant(token: str) -> Any:
    # json.loads accepts NaN and Infinity, which are not JSON.
    raise ValueError(f"non-standard constant {token!r}")


def _parse_retry_after(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None
