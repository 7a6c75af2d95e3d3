"""On-chain pool state reads over JSON-RPC."""
from dataclasses import dataclass

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3


# slot0() -> (sqrtPriceX96, tick, observationIndex, observationCardinality,
#             observationCardinalityNext, feeProtocol, unlocked)
POOL_ABI = [
    {
        "name": "slot0",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [
            {"name": "sqrtPriceX96", "type": "uint160"},
            {"name": "tick", "type": "int24"},
            {"name": "observationIndex", "type": "uint16"},
            {"name": "observationCardinality", "type": "uint16"},
            {"name": "observationCardinalityNext", "type": "uint16"},
            {"name": "feeProtocol", "type": "uint8"},
            {"name": "unlocked", "type": "bool"},
        ],
    }
]

Q192 = 2 ** 192


@dataclass(frozen=True)
class Slot0:
    sqrt_price_x96: int
    tick: int

    @property
    def price(self) -> float:
        return sqrt_price_to_price(self.sqrt_price_x96)


def sqrt_price_to_price(sqrt_price_x96: int) -> float:
    """
    Convert a Q64.96 square-root price into the token1/token0 ratio.

    The square is taken on exact integers; only the final division
    rounds to float.
    """
    sqrt_price_x96 = int(sqrt_price_x96)
    return (sqrt_price_x96 * sqrt_price_x96) / Q192


class PoolStateReader:
    """Reads slot0() from Uniswap V3 pools through one shared provider."""

    def __init__(self, rpc_url: str, timeout: float = 10.0):
        self.rpc_url = rpc_url
        provider = AsyncHTTPProvider(
            rpc_url,
            request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout)},
        )
        self.w3 = AsyncWeb3(provider)

    async def read_slot0(self, pool: str) -> Slot0:
        contract = self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(pool),
            abi=POOL_ABI,
        )
        result = await contract.functions.slot0().call()
        return Slot0(sqrt_price_x96=int(result[0]), tick=int(result[1]))

    async def aclose(self):
        # AsyncHTTPProvider keeps a cached aiohttp session per loop
        disconnect = getattr(self.w3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
