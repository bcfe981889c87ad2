"""Shape checks and folds for Beefy API response bodies.

Everything here is pure: functions take a decoded JSON body and return a new
mapping, never mutating their input. The envelope is checked first (see
`check_object` / `check_array`); values inside a well-shaped envelope are
coerced leniently so that one malformed entry degrades to zero instead of
failing the whole response.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from src.models.beefy import (
    EMPTY_APY,
    ApyMap,
    ApyRecord,
    BuybackMap,
    PriceMap,
    TvlMap,
    VaultMap,
    VaultWithApyMap,
)

DAYS_PER_YEAR = 365

# Leading decimal literal, as accepted by a lenient float parser ("12.5abc" -> 12.5).
_LEADING_DECIMAL = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


@dataclass(frozen=True)
class ShapeCheck:
    """Tagged result of a structural check on a decoded body."""

    ok: bool
    data: Any = None
    reason: str | None = None

    @classmethod
    def passed(cls, data: Any) -> "ShapeCheck":
        return cls(ok=True, data=data)

    @classmethod
    def failed(cls, reason: str) -> "ShapeCheck":
        return cls(ok=False, reason=reason)


def check_object(data: Any, sentinel: str | None = None) -> ShapeCheck:
    """Check that `data` is a JSON object, optionally containing `sentinel`.

    Sentinel keys are well-known chain ids used as a liveness check on
    otherwise dynamically keyed payloads.
    """
    if not isinstance(data, dict):
        return ShapeCheck.failed(f"expected a JSON object, got {type(data).__name__}")
    if sentinel is not None and sentinel not in data:
        return ShapeCheck.failed(f"missing expected key {sentinel!r}")
    return ShapeCheck.passed(data)


def check_array(data: Any) -> ShapeCheck:
    if not isinstance(data, list):
        return ShapeCheck.failed(f"expected a JSON array, got {type(data).__name__}")
    return ShapeCheck.passed(data)


def _as_float(value: Any) -> float | None:
    """`value` as a finite float, or None when it is not a usable number."""
    # bool is an int subclass but never a valid amount.
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return None
    try:
        value = float(value)
    except OverflowError:
        return None
    return value if math.isfinite(value) else None


def _is_number(value: Any) -> bool:
    return _as_float(value) is not None


def coerce_number(value: Any) -> float:
    """Return `value` as a finite float, or 0.0 when it is not a number."""
    number = _as_float(value)
    return 0.0 if number is None else number


def parse_decimal(value: Any) -> float:
    """Parse a decimal string leniently, falling back to 0.0.

    Only the leading numeric literal is read, so "12.5 BIFI" parses as 12.5.
    Numbers are accepted as-is. Anything unparsable or non-finite is 0.0.
    """
    if _is_number(value):
        return coerce_number(value)
    if not isinstance(value, str):
        return 0.0
    match = _LEADING_DECIMAL.match(value)
    if match is None:
        return 0.0
    return coerce_number(float(match.group(0)))


def parse_prices(data: Mapping[str, Any]) -> PriceMap:
    return {str(key): coerce_number(value) for key, value in data.items()}


def merge_prices(*price_maps: Mapping[str, float]) -> PriceMap:
    """Union price maps; on key collisions the later map wins."""
    merged: PriceMap = {}
    for prices in price_maps:
        merged.update(prices)
    return merged


def is_apy_record(value: Any) -> bool:
    """True when `value` looks like an APY breakdown entry.

    `totalApy` must be a finite number. `tradingApr` and `vaultApr` are
    optional but, when present, must be a finite number or null.
    """
    if not isinstance(value, dict):
        return False
    if not _is_number(value.get("totalApy")):
        return False
    for key in ("tradingApr", "vaultApr"):
        if key in value and value[key] is not None and not _is_number(value[key]):
            return False
    return True


def parse_apy_breakdown(data: Mapping[str, Any]) -> ApyMap:
    apys: ApyMap = {}
    for vault_id, apy_data in data.items():
        if is_apy_record(apy_data):
            apys[str(vault_id)] = dict(apy_data)  # type: ignore[assignment]
        else:
            apys[str(vault_id)] = dict(EMPTY_APY)  # type: ignore[assignment]
    return apys


def parse_vaults(data: Iterable[Any]) -> VaultMap:
    """Key vault entries by their `id`, re-injected into the body as `vaultId`.

    Entries that are not objects or carry no id cannot be keyed and are
    skipped. Later duplicates replace earlier ones.
    """
    vaults: VaultMap = {}
    for vault in data:
        if not isinstance(vault, dict) or vault.get("id") is None:
            continue
        vault_id = str(vault["id"])
        body = {key: value for key, value in vault.items() if key != "id"}
        vaults[vault_id] = {"vaultId": vault_id, **body}
    return vaults


def implied_vault_apr(total_apy: float) -> float:
    """Convert a yearly APY into the equivalent daily-compounded APR.

    ((totalApy + 1) ** (1/365) - 1) * 365. An APY below -100% has no real
    daily rate and maps to 0.
    """
    if total_apy < -1:
        return 0.0
    return ((total_apy + 1) ** (1 / DAYS_PER_YEAR) - 1) * DAYS_PER_YEAR


def total_daily(apy: Mapping[str, Any]) -> float:
    """Daily yield implied by an APY record: (tradingApr + vaultApr) / 365."""
    trading_apr = coerce_number(apy.get("tradingApr"))
    if "vaultApr" in apy:
        vault_apr = coerce_number(apy["vaultApr"])
    else:
        vault_apr = implied_vault_apr(coerce_number(apy.get("totalApy")))
    return (trading_apr + vault_apr) / DAYS_PER_YEAR


def merge_vaults_with_apy(vaults: VaultMap, apys: Mapping[str, ApyRecord]) -> VaultWithApyMap:
    """Join vault metadata with APY breakdowns by vault id.

    APY fields override vault fields of the same name. Vaults without an APY
    entry are treated as `{"totalApy": 0}`.
    """
    merged: VaultWithApyMap = {}
    for vault_id, vault in vaults.items():
        apy = apys.get(vault_id) or EMPTY_APY
        merged[vault_id] = {**vault, **apy, "totalDaily": total_daily(apy)}
    return merged


def parse_tvls(data: Mapping[str, Any]) -> TvlMap:
    """Flatten chain -> vault -> tvl into vault -> tvl.

    A vault listed under several chains keeps the value from the last chain in
    iteration order.
    """
    tvls: TvlMap = {}
    for chain_tvls in data.values():
        if not isinstance(chain_tvls, dict):
            continue
        for vault_id, tvl in chain_tvls.items():
            tvls[str(vault_id)] = coerce_number(tvl)
    return tvls


def sum_tvls(tvls: Mapping[str, float]) -> float:
    return sum(tvls.values(), 0.0)


def parse_buyback(data: Mapping[str, Any]) -> BuybackMap:
    buybacks: BuybackMap = {}
    for chain, chain_buyback in data.items():
        if not isinstance(chain_buyback, dict):
            chain_buyback = {}
        buybacks[str(chain)] = {
            "tokens": parse_decimal(chain_buyback.get("buybackTokenAmount")),
            "usd": parse_decimal(chain_buyback.get("buybackUsdAmount")),
        }
    return buybacks
