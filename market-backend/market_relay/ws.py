"""Live tick broadcaster for WebSocket subscribers."""
import asyncio
import json
import logging
from collections import defaultdict
from typing import Optional

from fastapi import WebSocket
from pydantic import ValidationError
from starlette.websockets import WebSocketState

from market_relay.crud import BadRequestError, normalize_pool, now_ms
from market_relay.models import WsSubscribedMessage, WsSubscribeMessage, WsTickMessage


logger = logging.getLogger(__name__)

# a subscribe frame is well under 100 bytes
MAX_SUBSCRIBE_FRAME_CHARS = 1024


def parse_subscribe(raw: str) -> Optional[str]:
    """
    Extract the pool from a subscribe frame.

    Returns:
        The normalized pool address, or None when the frame is not a
        well-formed subscribe message
    """
    # web3 raises the recursion limit, so deeply nested JSON must never reach json.loads
    if len(raw) > MAX_SUBSCRIBE_FRAME_CHARS:
        return None
    try:
        message = WsSubscribeMessage.model_validate(json.loads(raw))
        return normalize_pool(message.pool)
    except (ValueError, ValidationError, BadRequestError, RecursionError):
        return None


def client_id(websocket: WebSocket) -> str:
    if websocket.client:
        return f"{websocket.client.host}:{websocket.client.port}"
    return f"ws-{id(websocket):x}"


def is_open(websocket: WebSocket) -> bool:
    return (
        websocket.client_state == WebSocketState.CONNECTED
        and websocket.application_state == WebSocketState.CONNECTED
    )


class TickBroadcaster:
    """
    Owns the RPC reader and the connection -> pool subscription map.

    Each cycle reads slot0() once per subscribed pool and fans the same
    tick out to every connection subscribed to that pool. A connection
    holds at most one subscription; a later subscribe replaces it.
    """

    def __init__(self, reader, interval: float = 2.0, send_timeout: float = 5.0):
        self.reader = reader
        self.interval = interval
        self.send_timeout = send_timeout
        self.subscriptions: dict[WebSocket, str] = {}
        self._task: Optional[asyncio.Task] = None

    async def handle_connection(self, websocket: WebSocket):
        """Serve one client until it disconnects."""
        await websocket.accept()
        client = client_id(websocket)
        logger.debug("WebSocket client %s connected", client)

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break

                raw = message.get("text")
                if raw is None and message.get("bytes") is not None:
                    raw = message["bytes"].decode("utf-8", errors="replace")
                pool = parse_subscribe(raw) if raw is not None else None
                if pool is None:
                    logger.debug("Ignoring malformed message from %s", client)
                    continue

                self.subscriptions[websocket] = pool
                await websocket.send_json(WsSubscribedMessage(pool=pool).model_dump())
                logger.info("Client %s subscribed to %s", client, pool)
        finally:
            self.subscriptions.pop(websocket, None)
            logger.debug("WebSocket client %s disconnected", client)

    async def broadcast_once(self) -> int:
        """
        Run one tick cycle.

        Returns:
            Number of tick messages delivered
        """
        by_pool = defaultdict(list)
        for websocket, pool in list(self.subscriptions.items()):
            # closed sockets stay mapped until their handler exits
            if is_open(websocket):
                by_pool[pool].append(websocket)

        if not by_pool:
            return 0

        pools = list(by_pool)
        results = await asyncio.gather(
            *(self.reader.read_slot0(pool) for pool in pools),
            return_exceptions=True,
        )

        delivered = 0
        for pool, result in zip(pools, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning("slot0() read failed for pool %s: %s", pool, result)
                continue

            tick = WsTickMessage(
                pool=pool,
                tick=result.tick,
                price=result.price,
                ts=now_ms(),
            ).model_dump()

            # skip connections that closed or re-subscribed during the read
            targets = [ws for ws in by_pool[pool] if self.subscriptions.get(ws) == pool]
            sent = await asyncio.gather(*(self._send(ws, pool, tick) for ws in targets))
            delivered += sum(sent)

        return delivered

    async def _send(self, websocket: WebSocket, pool: str, tick: dict) -> bool:
        try:
            await asyncio.wait_for(websocket.send_json(tick), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(
                "Timed out sending tick for pool %s to %s after %.1fs",
                pool, client_id(websocket), self.send_timeout,
            )
        except Exception as e:
            logger.warning(
                "Failed to send tick for pool %s to %s: %s",
                pool, client_id(websocket), e,
            )
        return False

    async def run(self):
        """Run a cycle every `interval` seconds, measured start to start."""
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            try:
                await self.broadcast_once()
            except Exception:
                logger.exception("Tick cycle failed")
            await asyncio.sleep(max(0.0, self.interval - (loop.time() - started)))

    def start(self):
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
            logger.info("Tick broadcaster started (interval %.1fs)", self.interval)

    async def stop(self):
        """Stop the timer and close every open socket."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        for websocket in list(self.subscriptions):
            if not is_open(websocket):
                continue
            try:
                await websocket.close(code=1001)
            except Exception as e:
                logger.debug("Error closing %s: %s", client_id(websocket), e)
        self.subscriptions.clear()
        logger.info("Tick broadcaster stopped")
