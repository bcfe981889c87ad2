"""Prefect flow: Beefy vault snapshot.

This module implements:
- Fetch vaults joined with their APY breakdown
- Fetch per-vault TVL and BIFI buyback stats
- Summarize into vault count, total TVL, buyback per chain and top vaults by APY

The summary is logged and returned; nothing is persisted.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from prefect import flow, get_run_logger, task
from prefect.exceptions import MissingContextError

from src.core.config import settings
from src.models.beefy import BuybackMap, TvlMap, VaultWithApyMap
from src.services.beefy_client import BeefyClient
from src.services.beefy_parsing import coerce_number, sum_tvls


def _get_logger() -> logging.Logger:
    """Return a logger usable both inside and outside Prefect contexts."""
    try:
        return get_run_logger()  # type: ignore[return-value]
    except MissingContextError:
        return logging.getLogger(__name__)


def build_top_vaults(
    vaults: VaultWithApyMap, tvls: TvlMap, top_n: int
) -> list[dict[str, Any]]:
    """Rank vaults by `totalApy`, highest first.

    Ties keep the upstream vault order. Vaults without a TVL entry report 0.
    """
    ranked = sorted(
        vaults.items(),
        key=lambda item: coerce_number(item[1].get("totalApy")),
        reverse=True,
    )
    rows: list[dict[str, Any]] = []
    for vault_id, vault in ranked[: max(top_n, 0)]:
        rows.append(
            {
                "vaultId": vault_id,
                "name": vault.get("name"),
                "chain": vault.get("chain"),
                "totalApy": coerce_number(vault.get("totalApy")),
                "totalDaily": vault["totalDaily"],
                "tvl": tvls.get(vault_id, 0.0),
            }
        )
    return rows


def build_snapshot_summary(
    vaults: VaultWithApyMap,
    tvls: TvlMap,
    buyback: BuybackMap,
    *,
    top_n: int,
) -> dict[str, Any]:
    return {
        "vault_count": len(vaults),
        "total_tvl": sum_tvls(tvls),
        "buyback": {chain: dict(amounts) for chain, amounts in buyback.items()},
        "top_vaults": build_top_vaults(vaults, tvls, top_n),
    }


@task
async def fetch_vaults_with_apy() -> VaultWithApyMap:
    """Fetch Beefy vaults joined with their APY breakdown."""
    return await BeefyClient().get_vaults_with_apy()


@task
async def fetch_tvls() -> TvlMap:
    """Fetch per-vault TVL across all chains."""
    return await BeefyClient().get_tvls()


@task
async def fetch_buyback() -> BuybackMap:
    """Fetch BIFI buyback amounts per chain."""
    return await BeefyClient().get_buyback()


@flow(name="beefy-snapshot", log_prints=True)
async def beefy_snapshot_flow(*, top_n: int | None = None) -> dict[str, Any]:
    """Hourly: Summarize Beefy vaults, TVL and buybacks.

    Args:
        top_n: How many vaults to list by APY. Defaults to
            `settings.SNAPSHOT_TOP_N`.
    """
    logger = _get_logger()
    logger.info(f"Starting {settings.APP_NAME}...")
    vaults = await fetch_vaults_with_apy()
    tvls = await fetch_tvls()
    buyback = await fetch_buyback()

    summary = build_snapshot_summary(
        vaults,
        tvls,
        buyback,
        top_n=settings.SNAPSHOT_TOP_N if top_n is None else top_n,
    )
    logger.info(
        f"Snapshot: {summary['vault_count']} vaults, total TVL ${summary['total_tvl']:,.2f}"
    )
    for chain, amounts in summary["buyback"].items():
        logger.info(f"Buyback {chain}: {amounts['tokens']:.4f} BIFI (${amounts['usd']:,.2f})")
    return summary


if __name__ == "__main__":
    # Local development run
    asyncio.run(beefy_snapshot_flow())
