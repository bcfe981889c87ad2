"""Shapes of the mappings returned by the Beefy API client.

Every mapping is keyed by the upstream identifier (asset, vault or chain id)
and freshly built per call.
"""

from __future__ import annotations

from typing import Any, NotRequired, TypedDict


class ApyRecord(TypedDict):
    totalApy: float
    tradingApr: NotRequired[float | None]
    vaultApr: NotRequired[float | None]


class BuybackRecord(TypedDict):
    tokens: float
    usd: float


# asset / LP id -> price in USD
PriceMap = dict[str, float]

# vault id -> APY breakdown
ApyMap = dict[str, ApyRecord]

# vault id -> vault metadata, upstream `id` re-keyed as `vaultId`
VaultMap = dict[str, dict[str, Any]]

# vault id -> vault metadata merged with its APY breakdown and `totalDaily`
VaultWithApyMap = dict[str, dict[str, Any]]

# vault id -> TVL in USD
TvlMap = dict[str, float]

# chain id -> buyback amounts
BuybackMap = dict[str, BuybackRecord]

EMPTY_APY: ApyRecord = {"totalApy": 0}
