"""Pydantic models for responses and WebSocket messages."""
from pydantic import BaseModel
from typing import Literal, Optional


class Candle(BaseModel):
    """OHLCV candle for one subgraph period."""
    timestamp: int  # epoch millis, period start
    open: float
    high: float
    low: float
    close: float
    volume: float


class CandleResponse(BaseModel):
    """Response model for candle queries."""
    interval: Literal["1h", "1d"]
    candles: list[Candle]


class Ticker(BaseModel):
    """24h summary for a pool."""
    pool: Optional[str] = None
    token0: Optional[str] = None
    token1: Optional[str] = None
    feeTier: Optional[str] = None
    price: float
    changePercent24h: float
    volume24h: float
    high24h: float
    low24h: float
    timestamp: int


class WsSubscribeMessage(BaseModel):
    """Client request to stream ticks for a pool."""
    type: Literal["subscribe"]
    pool: str


class WsSubscribedMessage(BaseModel):
    """Acknowledgement of a subscribe request."""
    type: Literal["subscribed"] = "subscribed"
    pool: str


class WsTickMessage(BaseModel):
    """Live price derived from the pool's slot0()."""
    type: Literal["tick"] = "tick"
    pool: str
    tick: int
    price: float
    ts: int  # epoch millis
