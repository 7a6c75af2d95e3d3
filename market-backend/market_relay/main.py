"""FastAPI applications: REST endpoints and the live tick WebSocket."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Query, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from market_relay.config import settings
from market_relay.context import RelayContext
from market_relay.crud import BadRequestError, get_candles, get_ticker
from market_relay.models import CandleResponse, Ticker
from market_relay.subgraph import SubgraphClient, SubgraphError
from market_relay.ws import TickBroadcaster


logger = logging.getLogger(__name__)

context = RelayContext.from_settings(settings)


def get_subgraph_client() -> SubgraphClient:
    return context.subgraph


def get_broadcaster() -> TickBroadcaster:
    return context.broadcaster


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Using subgraph %s", "gateway" if settings.GRAPH_API_KEY else "public endpoint")
    yield
    await context.subgraph.aclose()


@asynccontextmanager
async def ws_lifespan(app: FastAPI):
    context.broadcaster.start()
    yield
    await context.broadcaster.stop()
    await context.broadcaster.reader.aclose()


app = FastAPI(title="Market Data Relay", lifespan=lifespan)

# Chart clients may be served from any origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(BadRequestError)
async def bad_request_handler(request, exc: BadRequestError):
    """Handle BadRequestError exceptions."""
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request, exc: RequestValidationError):
    """Report malformed query parameters in the same shape as other client errors."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())[1:])
        message = f"Invalid {field} parameter: {first.get('msg')}"
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(SubgraphError)
async def subgraph_error_handler(request, exc: SubgraphError):
    """Handle upstream subgraph failures."""
    return JSONResponse(status_code=500, content={"error": str(exc) or "Server error"})


# REST Endpoints

@app.get("/health")
async def health():
    """Liveness check; reports which subgraph endpoint is configured."""
    return {
        "status": "ok",
        "subgraph": "gateway" if settings.GRAPH_API_KEY else "public",
        "subscriptions": len(context.broadcaster.subscriptions),
    }


@app.get("/candles", response_model=CandleResponse)
async def get_candles_endpoint(
    pool: Optional[str] = Query(default=None, description="Pool address (required)"),
    interval: str = Query(default="1h", description="Candle interval: 1h or 1d"),
    limit: int = Query(default=settings.DEFAULT_CANDLE_LIMIT, ge=1, description="Maximum number of candles"),
    client: SubgraphClient = Depends(get_subgraph_client),
):
    """
    Get recent OHLCV candles for a pool.

    Args:
        pool: Pool address, 0x-prefixed, 42 characters
        interval: "1h" (default) or "1d"
        limit: Maximum number of candles (default: 200, clamped to 500)

    Returns:
        CandleResponse with candles in ascending timestamp order. If the
        pool has no hourly data, daily candles are returned with
        interval "1d".
    """
    try:
        return await get_candles(client, pool=pool, interval=interval, limit=limit)
    except BadRequestError:
        raise
    except SubgraphError:
        raise
    except Exception as e:
        logger.exception("Candle request failed for pool %s", pool)
        raise SubgraphError(str(e) or "Server error")


@app.get("/ticker", response_model=Ticker)
async def get_ticker_endpoint(
    pool: Optional[str] = Query(default=None, description="Pool address (required)"),
    client: SubgraphClient = Depends(get_subgraph_client),
):
    """
    Get the 24h ticker for a pool.

    Returns:
        Ticker with latest daily close, 24h change, volume, high and low
    """
    try:
        return await get_ticker(client, pool=pool)
    except BadRequestError:
        raise
    except SubgraphError:
        raise
    except Exception as e:
        logger.exception("Ticker request failed for pool %s", pool)
        raise SubgraphError(str(e) or "Server error")


# WebSocket app, served on PORT + 1

ws_app = FastAPI(title="Market Data Relay ticks", lifespan=ws_lifespan)


@ws_app.websocket("/")
async def websocket_ticks(
    websocket: WebSocket,
    broadcaster: TickBroadcaster = Depends(get_broadcaster),
):
    """
    Live tick stream.

    Behavior:
        - Client sends {"type": "subscribe", "pool": "0x..."}
        - Server replies {"type": "subscribed", "pool": "0x..."}
        - Every TICK_INTERVAL_SECONDS the server pushes
          {"type": "tick", "pool", "tick", "price", "ts"}
        - Any other message is ignored; a new subscribe replaces the old one
    """
    await broadcaster.handle_connection(websocket)
