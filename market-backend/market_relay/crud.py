"""Candle and ticker queries against the Uniswap V3 subgraph."""
import time
from typing import Any, Optional

from market_relay.config import settings
from market_relay.models import Candle, CandleResponse, Ticker
from market_relay.subgraph import DAILY, HOURLY, SubgraphClient, resolve_interval


class BadRequestError(Exception):
    """Raised when a request is invalid."""
    pass


HOURLY_CANDLES_QUERY = """
query($pool: String!, $first: Int!) {
  poolHourDatas(first: $first, orderBy: periodStartUnix, orderDirection: desc, where: { pool: $pool }) {
    periodStartUnix
    open
    high
    low
    close
    volumeToken0
    volumeToken1
  }
}
"""

DAILY_CANDLES_QUERY = """
query($pool: String!, $first: Int!) {
  poolDayDatas(first: $first, orderBy: date, orderDirection: desc, where: { pool: $pool }) {
    date
    open
    high
    low
    close
    volumeUSD
  }
}
"""

TICKER_QUERY = """
query($pool: String!) {
  pool(id: $pool) {
    id
    token0 { symbol decimals }
    token1 { symbol decimals }
    feeTier
    liquidity
    sqrtPrice
    tick
    volumeUSD
    totalValueLockedUSD
  }
  poolDayDatas(first: 2, orderBy: date, orderDirection: desc, where: { pool: $pool }) {
    date
    volumeUSD
    high
    low
    open
    close
  }
}
"""


def normalize_pool(pool: Optional[str]) -> str:
    """
    Validate a pool address and return it lower-cased.

    Raises:
        BadRequestError: If the address is missing, not 42 characters
            long or not ``0x``-prefixed
    """
    if not isinstance(pool, str):
        raise BadRequestError("Invalid pool address")
    pool = pool.lower()
    if len(pool) != 42 or not pool.startswith("0x"):
        raise BadRequestError("Invalid pool address")
    return pool


def clamp_limit(limit: int) -> int:
    if not isinstance(limit, int) or limit < 1:
        raise BadRequestError(f"Invalid limit parameter: {limit}. Must be a positive integer.")
    return min(limit, settings.MAX_CANDLE_LIMIT)


def now_ms() -> int:
    return int(time.time() * 1000)


def _num(value: Any) -> float:
    # subgraph BigDecimal/BigInt fields arrive as strings
    if value is None or value == "":
        return 0.0
    return float(value)


def _chronological(candles: list[Candle], limit: int) -> list[Candle]:
    """Order newest-first subgraph rows ascending, drop duplicate periods and cap at limit."""
    by_ts = {}
    for candle in candles:
        by_ts.setdefault(candle.timestamp, candle)
    ordered = [by_ts[ts] for ts in sorted(by_ts)]
    return ordered[-limit:]


def _hourly_candle(row: dict) -> Candle:
    return Candle(
        timestamp=int(_num(row.get("periodStartUnix"))) * 1000,
        open=_num(row.get("open")),
        high=_num(row.get("high")),
        low=_num(row.get("low")),
        close=_num(row.get("close")),
        volume=_num(row.get("volumeToken0")) + _num(row.get("volumeToken1")),
    )


def _daily_candle(row: dict) -> Candle:
    return Candle(
        timestamp=int(_num(row.get("date"))) * 1000,
        open=_num(row.get("open")),
        high=_num(row.get("high")),
        low=_num(row.get("low")),
        close=_num(row.get("close")),
        volume=_num(row.get("volumeUSD")),
    )


async def _daily_candles(client: SubgraphClient, pool: str, limit: int) -> list[Candle]:
    data = await client.query(DAILY_CANDLES_QUERY, {"pool": pool, "first": limit})
    rows = data.get(DAILY.entity) or []
    return _chronological([_daily_candle(row) for row in rows], limit)


async def get_candles(
    client: SubgraphClient,
    pool: str,
    interval: Optional[str] = None,
    limit: int = 200,
) -> CandleResponse:
    """
    Get the most recent candles for a pool.

    Args:
        client: Subgraph client
        pool: Pool address (validated here)
        interval: "1h" or "1d"; anything else resolves to "1h"
        limit: Maximum number of candles, clamped to MAX_CANDLE_LIMIT

    Returns:
        CandleResponse with candles in ascending timestamp order. When a
        pool has no hourly data the daily series is returned instead,
        tagged with interval "1d".

    Raises:
        BadRequestError: If the pool address or limit is invalid
        SubgraphError: If the subgraph query fails
    """
    pool = normalize_pool(pool)
    limit = clamp_limit(limit)
    resolved = resolve_interval(interval)

    if resolved is DAILY:
        candles = await _daily_candles(client, pool, limit)
        return CandleResponse(interval=DAILY.name, candles=candles)

    data = await client.query(HOURLY_CANDLES_QUERY, {"pool": pool, "first": limit})
    rows = data.get(HOURLY.entity) or []
    if not rows:
        fallback_limit = min(limit, settings.MAX_DAILY_FALLBACK_LIMIT)
        candles = await _daily_candles(client, pool, fallback_limit)
        return CandleResponse(interval=DAILY.name, candles=candles)

    candles = _chronological([_hourly_candle(row) for row in rows], limit)
    return CandleResponse(interval=HOURLY.name, candles=candles)


def change_percent(price: float, prev_close: float) -> float:
    if not prev_close:
        return 0.0
    return (price - prev_close) / prev_close * 100


async def get_ticker(client: SubgraphClient, pool: str) -> Ticker:
    """
    Get the 24h ticker for a pool from its two most recent daily aggregates.

    Raises:
        BadRequestError: If the pool address is invalid
        SubgraphError: If the subgraph query fails
    """
    pool = normalize_pool(pool)
    data = await client.query(TICKER_QUERY, {"pool": pool})

    meta = data.get("pool") or {}
    days = data.get("poolDayDatas") or []
    latest = days[0] if len(days) > 0 else None
    previous = days[1] if len(days) > 1 else None

    price = _num(latest.get("close")) if latest else 0.0
    prev_close = _num(previous.get("close")) if previous else price

    fee_tier = meta.get("feeTier")
    return Ticker(
        pool=meta.get("id"),
        token0=(meta.get("token0") or {}).get("symbol"),
        token1=(meta.get("token1") or {}).get("symbol"),
        feeTier=str(fee_tier) if fee_tier is not None else None,
        price=price,
        changePercent24h=change_percent(price, prev_close),
        volume24h=_num(latest.get("volumeUSD")) if latest else 0.0,
        high24h=_num(latest.get("high")) if latest else price,
        low24h=_num(latest.get("low")) if latest else price,
        timestamp=now_ms(),
    )
