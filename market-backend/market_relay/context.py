"""Process-wide handles shared by the HTTP and WebSocket apps."""
from dataclasses import dataclass

from market_relay.config import Settings
from market_relay.rpc import PoolStateReader
from market_relay.subgraph import SubgraphClient
from market_relay.ws import TickBroadcaster


@dataclass
class RelayContext:
    """Created at process start, torn down at shutdown."""
    settings: Settings
    subgraph: SubgraphClient
    broadcaster: TickBroadcaster

    @classmethod
    def from_settings(cls, settings: Settings) -> "RelayContext":
        reader = PoolStateReader(settings.MAINNET_RPC_URL, timeout=settings.RPC_TIMEOUT_SECONDS)
        return cls(
            settings=settings,
            subgraph=SubgraphClient(settings.subgraph_url, timeout=settings.SUBGRAPH_TIMEOUT_SECONDS),
            broadcaster=TickBroadcaster(
                reader,
                interval=settings.TICK_INTERVAL_SECONDS,
                send_timeout=settings.TICK_SEND_TIMEOUT_SECONDS,
            ),
        )
