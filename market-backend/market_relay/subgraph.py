"""Uniswap V3 subgraph client and interval resolution."""
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx


logger = logging.getLogger(__name__)


class SubgraphError(Exception):
    """Raised when the subgraph request fails or returns GraphQL errors."""
    pass


@dataclass(frozen=True)
class IntervalSpec:
    """Subgraph entity backing a candle interval."""
    name: str
    entity: str


HOURLY = IntervalSpec(name="1h", entity="poolHourDatas")
DAILY = IntervalSpec(name="1d", entity="poolDayDatas")


def resolve_interval(interval: Optional[str]) -> IntervalSpec:
    """
    Map an interval string to its subgraph entity.

    Only "1d" selects daily data; anything else, including a missing
    value, falls back to hourly.
    """
    if (interval or "1h").strip().lower() == "1d":
        return DAILY
    return HOURLY


class SubgraphClient:
    """
    Thin async GraphQL client for a Uniswap V3 subgraph.

    Every call is a fresh POST; there is no retry or caching.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def query(self, query: str, variables: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """
        Execute a GraphQL query.

        Args:
            query: GraphQL document
            variables: Query variables

        Returns:
            The ``data`` object of the response

        Raises:
            SubgraphError: On transport failure, non-2xx status or a
                GraphQL ``errors`` payload
        """
        try:
            response = await self._client.post(
                self.url,
                json={"query": query, "variables": variables or {}},
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            logger.warning("Subgraph request to %s failed: %s", self.url, e)
            raise SubgraphError(f"Subgraph request failed: {str(e) or type(e).__name__}")

        if not response.is_success:
            logger.warning("Subgraph returned HTTP %s", response.status_code)
            raise SubgraphError(f"Subgraph error: {response.status_code} {response.text}")

        try:
            payload = response.json()
        except ValueError:
            raise SubgraphError(f"Subgraph returned invalid JSON: {response.text[:200]}")

        if not isinstance(payload, dict):
            raise SubgraphError("Subgraph returned an unexpected payload")

        if payload.get("errors") is not None:
            logger.warning("Subgraph returned GraphQL errors: %s", payload["errors"])
            raise SubgraphError(json.dumps(payload["errors"]))

        return payload.get("data") or {}

    async def aclose(self):
        await self._client.aclose()
