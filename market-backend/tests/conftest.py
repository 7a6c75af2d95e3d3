import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from market_relay.main import app, get_subgraph_client
from market_relay.subgraph import SubgraphClient


POOL = "0x88e6a0c2ddd26feeb64f039a2c41296fcb3f5640"


class FakeSubgraph:
    """Serves canned subgraph data keyed by the entity a query selects."""

    def __init__(self):
        self.hourly = []
        self.daily = []
        self.pool = None
        self.errors = None
        self.status_code = 200
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)

        if self.status_code != 200:
            return httpx.Response(self.status_code, text="upstream unavailable")
        if self.errors is not None:
            return httpx.Response(200, json={"data": None, "errors": self.errors})

        query = body["query"]
        first = body["variables"].get("first")
        if "pool(id" in query:
            data = {"pool": self.pool, "poolDayDatas": self.daily[:2]}
        elif "poolHourDatas" in query:
            data = {"poolHourDatas": self.hourly[:first]}
        else:
            data = {"poolDayDatas": self.daily[:first]}
        return httpx.Response(200, json={"data": data})


def hour_row(ts, close, volume0="1", volume1="2"):
    return {
        "periodStartUnix": ts,
        "open": str(close - 1),
        "high": str(close + 2),
        "low": str(close - 2),
        "close": str(close),
        "volumeToken0": volume0,
        "volumeToken1": volume1,
    }


def day_row(date, close, volume_usd="1000"):
    return {
        "date": date,
        "open": str(close - 1),
        "high": str(close + 5),
        "low": str(close - 5),
        "close": str(close),
        "volumeUSD": volume_usd,
    }


class FakeSocket:
    """Stand-in for a connected starlette WebSocket."""

    def __init__(self, fail_send=False, stall_send=False):
        self.client = None
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.fail_send = fail_send
        self.stall_send = stall_send
        self.sent = []
        self.close_code = None

    async def send_json(self, data):
        if self.fail_send:
            raise RuntimeError("socket is gone")
        if self.stall_send:
            # a client that stopped reading
            await asyncio.Event().wait()
        self.sent.append(data)

    async def close(self, code=1000):
        self.close_code = code
        self.client_state = WebSocketState.DISCONNECTED
        self.application_state = WebSocketState.DISCONNECTED


class FakeReader:
    """Records slot0() reads and replays configured results."""

    def __init__(self, results=None):
        self.results = results or {}
        self.calls = []

    async def read_slot0(self, pool):
        self.calls.append(pool)
        result = self.results[pool]
        if isinstance(result, Exception):
            raise result
        return result

    async def aclose(self):
        pass


@pytest.fixture
def subgraph():
    fake = FakeSubgraph()
    client = SubgraphClient("https://subgraph.test/uniswap-v3", transport=httpx.MockTransport(fake.handler))
    app.dependency_overrides[get_subgraph_client] = lambda: client
    yield fake
    app.dependency_overrides.pop(get_subgraph_client, None)


@pytest.fixture
def client():
    return TestClient(app)
