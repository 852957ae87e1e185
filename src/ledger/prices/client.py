"""Historical price API clients.

Defines the contract the fetcher depends on and the Birdeye implementation
over httpx. One call asks for a single one-minute window [bucket, bucket].

Wire format (GET /defi/history_price):
    {"success": bool, "data": {"items": [{"address", "unixTime", "value"}]}}
The first item, if any, is authoritative for that minute.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from ledger.config import PriceHistorySettings
from ledger.logging import get_logger

logger = get_logger(__name__)

HTTP_OK = 200
HTTP_TOO_MANY_REQUESTS = 429
TRANSPORT_ERROR_STATUS = 0


@dataclass(frozen=True)
class PricePoint:
    """One price observation from the provider."""

    address: str
    unix_time: int
    value: Decimal


@dataclass(frozen=True)
class PriceResponse:
    """Outcome of a single history request.

    status_code is the HTTP status, or 0 when the request never got a
    usable response (connection error, timeout, malformed body).
    """

    status_code: int
    success: bool = False
    items: list[PricePoint] = field(default_factory=list)
    error: str = ""

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == HTTP_TOO_MANY_REQUESTS

    @property
    def ok(self) -> bool:
        return self.status_code == HTTP_OK and self.success


class PriceHistoryClient(ABC):
    """Abstract client for a minute-granularity price history provider."""

    @abstractmethod
    async def fetch_minute(self, mint: str, bucket: int, api_key: str) -> PriceResponse:
        """Request the price of `mint` for the minute starting at `bucket`."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""
        ...


class BirdeyeClient(PriceHistoryClient):
    """Birdeye public API client using a shared httpx.AsyncClient.

    The API key is passed per call and sent only in the X-API-KEY header;
    it is never stored on the client.
    """

    def __init__(
        self,
        settings: PriceHistorySettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._settings.base_url,
                timeout=self._settings.request_timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def fetch_minute(self, mint: str, bucket: int, api_key: str) -> PriceResponse:
        timestamp = str(bucket)
        params = {
            "address": mint,
            "address_type": "token",
            "type": "1m",
            "time_from": timestamp,
            "time_to": timestamp,
        }
        headers = {"X-API-KEY": api_key, "x-chain": self._settings.chain}

        client = await self._get_client()
        try:
            response = await client.get("/defi/history_price", params=params, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("price_request_transport_error", mint=mint, bucket=bucket, error=str(e))
            return PriceResponse(status_code=TRANSPORT_ERROR_STATUS, error=str(e))

        if response.status_code != HTTP_OK:
            return PriceResponse(status_code=response.status_code, error=response.reason_phrase)

        try:
            return _parse_history_payload(response.json(parse_float=Decimal))
        except (ValueError, KeyError, TypeError, InvalidOperation) as e:
            logger.warning("price_response_malformed", mint=mint, bucket=bucket, error=str(e))
            return PriceResponse(status_code=TRANSPORT_ERROR_STATUS, error=f"malformed response: {e}")


def _parse_history_payload(payload: Any) -> PriceResponse:
    """Convert the JSON body into a PriceResponse, prices as exact Decimals.

    Raises:
        ValueError: If the body, its data or its items have the wrong shape.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
    success = bool(payload.get("success"))
    data = payload.get("data") or {}
    if not isinstance(data, dict):
        raise ValueError(f"expected data to be an object, got {type(data).__name__}")
    raw_items = data.get("items") or []
    if not isinstance(raw_items, list) or not all(isinstance(item, dict) for item in raw_items):
        raise ValueError("expected data.items to be a list of objects")
    items = [
        PricePoint(
            address=item["address"],
            unix_time=int(item["unixTime"]),
            value=Decimal(str(item["value"])),
        )
        for item in raw_items
    ]
    return PriceResponse(status_code=HTTP_OK, success=success, items=items)
