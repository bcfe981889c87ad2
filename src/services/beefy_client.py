"""Beefy finance API client.

Thin async wrapper around the public Beefy API. Each operation issues a single
GET (or composes two concurrently), checks the coarse shape of the JSON body
and reshapes it into a mapping keyed by identifier.

Endpoints (relative to `settings.BEEFY_API_URL`):
  GET /prices          single-asset prices
  GET /lps             liquidity-pool token prices
  GET /apy/breakdown   per-vault APY breakdown
  GET /vaults          vault metadata (JSON array)
  GET /tvl             chain -> vault -> TVL
  GET /bifibuyback     chain -> BIFI buyback amounts

Every URL carries a cache buster that changes once per minute, so CDN caches
are reused within a minute and bypassed across minutes.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

import httpx

from src.core.config import settings
from src.core.errors import FetchShapeError
from src.models.beefy import (
    ApyMap,
    BuybackMap,
    PriceMap,
    TvlMap,
    VaultMap,
    VaultWithApyMap,
)
from src.services.beefy_parsing import (
    ShapeCheck,
    check_array,
    check_object,
    merge_prices,
    merge_vaults_with_apy,
    parse_apy_breakdown,
    parse_buyback,
    parse_prices,
    parse_tvls,
    parse_vaults,
    sum_tvls,
)

logger = logging.getLogger(__name__)

# Sentinel chain ids expected in dynamically keyed payloads.
TVL_SENTINEL_CHAIN = "56"
BUYBACK_SENTINEL_CHAIN = "bsc"


def cache_buster(now_seconds: float) -> int:
    """Whole minutes since the Unix epoch for a timestamp in seconds."""
    return int(now_seconds * 1000) // (1000 * 60)


class BeefyClient:
    """Async client for the Beefy finance API."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        cache_buster_param: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Create a new client.

        Args:
            base_url: API root; defaults to `settings.BEEFY_API_URL`.
            timeout_seconds: Request timeout; defaults to `settings.BEEFY_TIMEOUT_SECONDS`.
            cache_buster_param: Query parameter name for the cache buster.
            transport: Optional httpx transport override (used for unit tests).
            clock: Returns the current time in seconds (used for unit tests).
        """
        self.base_url = (base_url or settings.BEEFY_API_URL).rstrip("/")
        self._timeout = httpx.Timeout(
            timeout_seconds if timeout_seconds is not None else settings.BEEFY_TIMEOUT_SECONDS
        )
        self._cache_buster_param = cache_buster_param or settings.BEEFY_CACHE_BUSTER_PARAM
        self._transport = transport
        self._clock = clock

    def build_url(self, path: str) -> str:
        return f"{self.base_url}/{path}?{self._cache_buster_param}={cache_buster(self._clock())}"

    async def _get_json(self, path: str) -> Any:
        """GET `path` and return the decoded JSON body.

        Raises:
            httpx.HTTPStatusError: If the endpoint returns a non-success status.
            httpx.RequestError: For network errors.
            json.JSONDecodeError: If the body is not valid JSON.
        """
        url = self.build_url(path)
        logger.debug(f"GET {url}")
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.json()

    @staticmethod
    def _require(path: str, check: ShapeCheck) -> Any:
        if not check.ok:
            raise FetchShapeError(path, check.reason or "unexpected response shape")
        return check.data

    async def _get_prices(self, path: str) -> PriceMap:
        data = self._require(path, check_object(await self._get_json(path)))
        return parse_prices(data)

    async def get_single_prices(self) -> PriceMap:
        return await self._get_prices("prices")

    async def get_lp_prices(self) -> PriceMap:
        return await self._get_prices("lps")

    async def get_all_prices(self) -> PriceMap:
        """Single-asset and LP prices fetched concurrently; LP prices win on collisions."""
        single, lps = await asyncio.gather(self.get_single_prices(), self.get_lp_prices())
        return merge_prices(single, lps)

    async def get_apy_breakdown(self) -> ApyMap:
        path = "apy/breakdown"
        data = self._require(path, check_object(await self._get_json(path)))
        return parse_apy_breakdown(data)

    async def get_vaults(self) -> VaultMap:
        path = "vaults"
        data = self._require(path, check_array(await self._get_json(path)))
        vaults = parse_vaults(data)
        if len(vaults) != len(data):
            logger.debug(f"Keyed {len(vaults)} vaults from {len(data)} entries")
        return vaults

    async def get_vaults_with_apy(self) -> VaultWithApyMap:
        """Vault metadata joined with APY breakdowns, plus a derived `totalDaily`.

        Both requests run concurrently; if either fails the whole call fails.
        """
        vaults, apys = await asyncio.gather(self.get_vaults(), self.get_apy_breakdown())
        return merge_vaults_with_apy(vaults, apys)

    async def get_tvls(self) -> TvlMap:
        path = "tvl"
        data = self._require(path, check_object(await self._get_json(path), TVL_SENTINEL_CHAIN))
        return parse_tvls(data)

    async def get_total_tvl(self) -> float:
        return sum_tvls(await self.get_tvls())

    async def get_buyback(self) -> BuybackMap:
        path = "bifibuyback"
        data = self._require(path, check_object(await self._get_json(path), BUYBACK_SENTINEL_CHAIN))
        return parse_buyback(data)


# Module-level helpers bound to a default-configured client.


async def get_single_prices() -> PriceMap:
    return await BeefyClient().get_single_prices()


async def get_lp_prices() -> PriceMap:
    return await BeefyClient().get_lp_prices()


async def get_all_prices() -> PriceMap:
    return await BeefyClient().get_all_prices()


async def get_apy_breakdown() -> ApyMap:
    return await BeefyClient().get_apy_breakdown()


async def get_vaults() -> VaultMap:
    return await BeefyClient().get_vaults()


async def get_vaults_with_apy() -> VaultWithApyMap:
    return await BeefyClient().get_vaults_with_apy()


async def get_tvls() -> TvlMap:
    return await BeefyClient().get_tvls()


async def get_total_tvl() -> float:
    return await BeefyClient().get_total_tvl()


async def get_buyback() -> BuybackMap:
    return await BeefyClient().get_buyback()
