import asyncio
import json

import httpx
import pytest

from market_relay.config import Settings
from market_relay.subgraph import DAILY, HOURLY, SubgraphClient, SubgraphError, resolve_interval


def run_query(handler, query="{ pools { id } }", variables=None):
    client = SubgraphClient("https://subgraph.test/uniswap-v3", transport=httpx.MockTransport(handler))

    async def go():
        try:
            return await client.query(query, variables)
        finally:
            await client.aclose()

    return asyncio.run(go())


def test_query_posts_json_body():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"data": {"pools": [{"id": "0x1"}]}})

    data = run_query(handler, "query($pool: String!) { pool(id: $pool) { id } }", {"pool": "0x1"})
    assert data == {"pools": [{"id": "0x1"}]}
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://subgraph.test/uniswap-v3"
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {
        "query": "query($pool: String!) { pool(id: $pool) { id } }",
        "variables": {"pool": "0x1"},
    }


def test_graphql_errors_raise_even_on_200():
    errors = [{"message": "Type `Query` has no field `poolz`"}]

    def handler(request):
        return httpx.Response(200, json={"errors": errors})

    with pytest.raises(SubgraphError) as exc:
        run_query(handler)
    assert str(exc.value) == json.dumps(errors)


def test_http_error_carries_status_and_body():
    def handler(request):
        return httpx.Response(429, text="rate limited")

    with pytest.raises(SubgraphError, match="Subgraph error: 429 rate limited"):
        run_query(handler)


def test_transport_error_becomes_subgraph_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(SubgraphError, match="connection refused"):
        run_query(handler)


def test_invalid_json_becomes_subgraph_error():
    def handler(request):
        return httpx.Response(200, text="<html>gateway</html>")

    with pytest.raises(SubgraphError):
        run_query(handler)


def test_missing_data_returns_empty_dict():
    def handler(request):
        return httpx.Response(200, json={"data": None})

    assert run_query(handler) == {}


@pytest.mark.parametrize("interval, expected", [
    ("1h", HOURLY),
    ("1d", DAILY),
    ("1D", DAILY),
    (None, HOURLY),
    ("", HOURLY),
    ("15m", HOURLY),
])
def test_resolve_interval(interval, expected):
    assert resolve_interval(interval) is expected


def test_interval_entities():
    assert (HOURLY.name, HOURLY.entity) == ("1h", "poolHourDatas")
    assert (DAILY.name, DAILY.entity) == ("1d", "poolDayDatas")


def test_subgraph_url_uses_gateway_with_api_key():
    configured = Settings(GRAPH_API_KEY="secret")
    assert configured.subgraph_url == (
        "https://gateway.thegraph.com/api/secret/subgraphs/name/uniswap/uniswap-v3"
    )


def test_subgraph_url_falls_back_to_public_endpoint():
    configured = Settings(GRAPH_API_KEY="")
    assert configured.subgraph_url == configured.SUBGRAPH_PUBLIC_URL


def test_default_ports():
    configured = Settings(PORT=4001)
    assert configured.ws_port == 4002
