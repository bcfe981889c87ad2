"""Unit tests for the Beefy API client.

These tests are network-isolated and use httpx MockTransport.
"""

from __future__ import annotations

import asyncio
import json
import math
from typing import Any, Callable

import httpx
import pytest

from src.core.errors import FetchShapeError
from src.services.beefy_client import BeefyClient, cache_buster

BASE = "https://api.example.test"
NOW = 1_700_000_000.0
MINUTE = NOW * 1000 // 60_000


def _routes(payloads: dict[str, Any]) -> Callable[[httpx.Request], httpx.Response]:
    """Serve JSON payloads keyed by request path (without the leading slash)."""

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        path = request.url.path.lstrip("/")
        if path not in payloads:
            return httpx.Response(404, json={"error": "not found"})
        return httpx.Response(200, json=payloads[path])

    return handler


def _client(handler: Any, *, clock: Callable[[], float] = lambda: NOW) -> BeefyClient:
    return BeefyClient(base_url=BASE, transport=httpx.MockTransport(handler), clock=clock)


def test_cache_buster_is_stable_within_a_minute() -> None:
    start = 60 * 28_333_334.0
    assert cache_buster(start) == cache_buster(start + 59.999)
    assert cache_buster(start + 60) == cache_buster(start) + 1
    assert cache_buster(start - 0.001) == cache_buster(start) - 1


def test_build_url_appends_cache_buster() -> None:
    now = [NOW]
    client = BeefyClient(base_url=BASE + "/", clock=lambda: now[0])

    first = client.build_url("apy/breakdown")
    now[0] += 1
    same_minute = client.build_url("apy/breakdown")
    now[0] += 60
    next_minute = client.build_url("apy/breakdown")

    assert first == f"{BASE}/apy/breakdown?_={int(MINUTE)}"
    assert same_minute == first
    assert next_minute != first


@pytest.mark.asyncio
async def test_requests_carry_cache_buster_query() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={"BIFI": 400.0})

    await _client(handler).get_single_prices()

    assert seen == [f"{BASE}/prices?_={int(MINUTE)}"]


@pytest.mark.asyncio
async def test_get_single_prices_coerces_values() -> None:
    client = _client(_routes({"prices": {"a": 1.5, "b": "oops", "c": None}}))
    assert await client.get_single_prices() == {"a": 1.5, "b": 0, "c": 0}


@pytest.mark.asyncio
async def test_get_lp_prices_rejects_non_object() -> None:
    client = _client(_routes({"lps": ["not", "an", "object"]}))
    with pytest.raises(FetchShapeError) as excinfo:
        await client.get_lp_prices()
    assert excinfo.value.path == "lps"


@pytest.mark.asyncio
async def test_get_single_prices_rejects_null_body() -> None:
    client = _client(_raw_json("null"))
    with pytest.raises(FetchShapeError):
        await client.get_single_prices()


@pytest.mark.asyncio
async def test_get_all_prices_merges_with_lp_override() -> None:
    payloads = {
        "prices": {"BIFI": 400.0, "ETH": 2000.0},
        "lps": {"BIFI": 401.0, "cake-bnb": 55.5},
    }
    client = _client(_routes(payloads))

    single = await client.get_single_prices()
    lps = await client.get_lp_prices()
    merged = await client.get_all_prices()

    assert merged == {**single, **lps}
    assert merged["BIFI"] == 401.0


@pytest.mark.asyncio
async def test_get_all_prices_issues_both_requests_concurrently() -> None:
    """Each handler waits for the other request to arrive; serial calls would stall."""
    arrived = {"prices": asyncio.Event(), "lps": asyncio.Event()}

    async def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path.lstrip("/")
        other = "lps" if path == "prices" else "prices"
        arrived[path].set()
        await asyncio.wait_for(arrived[other].wait(), timeout=2)
        return httpx.Response(200, json={path: 1.0})

    merged = await _client(handler).get_all_prices()
    assert merged == {"prices": 1.0, "lps": 1.0}


@pytest.mark.asyncio
async def test_get_all_prices_propagates_sub_call_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/lps":
            return httpx.Response(500, json={"error": "boom"})
        return httpx.Response(200, json={"BIFI": 400.0})

    with pytest.raises(httpx.HTTPStatusError):
        await _client(handler).get_all_prices()


@pytest.mark.asyncio
async def test_get_apy_breakdown() -> None:
    client = _client(
        _routes({"apy/breakdown": {"v1": {"totalApy": 0.25, "vaultApr": 0.2}, "v2": "bad"}})
    )
    assert await client.get_apy_breakdown() == {
        "v1": {"totalApy": 0.25, "vaultApr": 0.2},
        "v2": {"totalApy": 0},
    }


@pytest.mark.asyncio
async def test_get_vaults_keys_by_id() -> None:
    client = _client(_routes({"vaults": [{"id": "v1", "name": "Vault One"}]}))
    assert await client.get_vaults() == {"v1": {"vaultId": "v1", "name": "Vault One"}}


@pytest.mark.asyncio
async def test_get_vaults_rejects_non_array() -> None:
    client = _client(_routes({"vaults": {"v1": {"id": "v1"}}}))
    with pytest.raises(FetchShapeError):
        await client.get_vaults()


@pytest.mark.asyncio
async def test_get_vaults_with_apy_joins_and_derives_total_daily() -> None:
    payloads = {
        "vaults": [
            {"id": "v1", "name": "Vault One", "chain": "bsc"},
            {"id": "v2", "name": "Vault Two", "chain": "polygon"},
        ],
        "apy/breakdown": {"v1": {"totalApy": 0.1}},
    }
    vaults = await _client(_routes(payloads)).get_vaults_with_apy()

    assert vaults["v1"]["vaultId"] == "v1"
    assert vaults["v1"]["name"] == "Vault One"
    assert math.isclose(
        vaults["v1"]["totalDaily"], ((1.1) ** (1 / 365) - 1) * 365 / 365, rel_tol=1e-12
    )
    assert vaults["v2"]["totalApy"] == 0
    assert vaults["v2"]["totalDaily"] == 0


@pytest.mark.asyncio
async def test_get_vaults_with_apy_fails_when_apy_shape_is_wrong() -> None:
    payloads = {"vaults": [{"id": "v1"}], "apy/breakdown": "maintenance"}
    with pytest.raises(FetchShapeError):
        await _client(_routes(payloads)).get_vaults_with_apy()


@pytest.mark.asyncio
async def test_get_tvls_flattens_chains() -> None:
    client = _client(_routes({"tvl": {"56": {"v1": 10, "v2": 5}, "99": {"v1": 20}}}))
    assert await client.get_tvls() == {"v1": 20, "v2": 5}


@pytest.mark.asyncio
async def test_get_tvls_requires_sentinel_chain() -> None:
    client = _client(_routes({"tvl": {"137": {"v1": 10}}}))
    with pytest.raises(FetchShapeError):
        await client.get_tvls()


@pytest.mark.asyncio
async def test_get_total_tvl_sums_flattened_values() -> None:
    client = _client(_routes({"tvl": {"56": {"v1": 10.5, "v2": 4.5}, "137": {"v3": 5}}}))
    assert await client.get_total_tvl() == 20.0


@pytest.mark.asyncio
async def test_get_buyback_parses_decimal_strings() -> None:
    payload = {
        "bsc": {"buybackTokenAmount": "12.5", "buybackUsdAmount": "5000.25"},
        "fantom": {"buybackTokenAmount": "0", "buybackUsdAmount": "not-a-number"},
    }
    client = _client(_routes({"bifibuyback": payload}))
    assert await client.get_buyback() == {
        "bsc": {"tokens": 12.5, "usd": 5000.25},
        "fantom": {"tokens": 0.0, "usd": 0.0},
    }


@pytest.mark.asyncio
async def test_get_buyback_requires_bsc_sentinel() -> None:
    client = _client(_routes({"bifibuyback": {"polygon": {}}}))
    with pytest.raises(FetchShapeError):
        await client.get_buyback()


@pytest.mark.asyncio
async def test_non_200_raises() -> None:
    """Client raises for non-success responses."""

    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": "maintenance"})

    with pytest.raises(httpx.HTTPStatusError):
        await _client(handler).get_tvls()


@pytest.mark.asyncio
async def test_malformed_json_propagates() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>oops</html>")

    with pytest.raises(json.JSONDecodeError):
        await _client(handler).get_vaults()


def test_client_defaults_come_from_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    from src.core.config import settings

    monkeypatch.setattr(settings, "BEEFY_API_URL", "https://mirror.example.test/")
    monkeypatch.setattr(settings, "BEEFY_CACHE_BUSTER_PARAM", "cb")

    client = BeefyClient(clock=lambda: NOW)
    assert client.build_url("tvl") == f"https://mirror.example.test/tvl?cb={int(MINUTE)}"


def _raw_json(body: str) -> Callable[[httpx.Request], httpx.Response]:
    """Serve a literal JSON text, including tokens a strict encoder refuses (NaN, Infinity)."""

    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, content=body.encode(), headers={"content-type": "application/json"}
        )

    return handler


@pytest.mark.asyncio
async def test_get_apy_breakdown_normalizes_non_finite_entries() -> None:
    body = '{"v1": {"totalApy": NaN}, "v2": {"totalApy": 0.1, "vaultApr": Infinity}}'
    apys = await _client(_raw_json(body)).get_apy_breakdown()

    assert apys == {"v1": {"totalApy": 0}, "v2": {"totalApy": 0}}


@pytest.mark.asyncio
async def test_get_vaults_with_apy_total_daily_is_finite() -> None:
    huge = "1" * 400

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/vaults":
            body = '[{"id": "v1"}, {"id": "v2"}, {"id": "v3"}]'
        else:
            body = (
                '{"v1": {"totalApy": NaN}, '
                '"v2": {"totalApy": 0.1, "vaultApr": Infinity}, '
                f'"v3": {{"totalApy": {huge}}}}}'
            )
        return _raw_json(body)(request)

    vaults = await _client(handler).get_vaults_with_apy()

    for vault_id in ("v1", "v2", "v3"):
        assert math.isfinite(vaults[vault_id]["totalApy"])
        assert vaults[vault_id]["totalDaily"] == 0


@pytest.mark.asyncio
async def test_get_single_prices_overflowing_value_degrades_to_zero() -> None:
    body = '{"a": ' + "1" * 400 + ', "b": 2.5, "c": Infinity}'
    prices = await _client(_raw_json(body)).get_single_prices()

    assert prices == {"a": 0.0, "b": 2.5, "c": 0.0}
