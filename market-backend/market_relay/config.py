"""Configuration settings for the market data relay."""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    PORT: int = 4001  # WebSocket listener uses PORT + 1
    HOST: str = "0.0.0.0"
    MAINNET_RPC_URL: str = "https://ethereum.publicnode.com"
    GRAPH_API_KEY: Optional[str] = None
    SUBGRAPH_GATEWAY_URL: str = (
        "https://gateway.thegraph.com/api/{api_key}/subgraphs/name/uniswap/uniswap-v3"
    )
    SUBGRAPH_PUBLIC_URL: str = "https://api.thegraph.com/subgraphs/name/uniswap/uniswap-v3"
    DEFAULT_CANDLE_LIMIT: int = 200
    MAX_CANDLE_LIMIT: int = 500
    MAX_DAILY_FALLBACK_LIMIT: int = 365
    TICK_INTERVAL_SECONDS: float = 2.0
    TICK_SEND_TIMEOUT_SECONDS: float = 5.0
    WS_MAX_MESSAGE_BYTES: int = 4096
    SUBGRAPH_TIMEOUT_SECONDS: float = 10.0
    RPC_TIMEOUT_SECONDS: float = 10.0
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def subgraph_url(self) -> str:
        """Gateway URL when an API key is configured, public endpoint otherwise."""
        if self.GRAPH_API_KEY:
            return self.SUBGRAPH_GATEWAY_URL.format(api_key=self.GRAPH_API_KEY)
        return self.SUBGRAPH_PUBLIC_URL

    @property
    def ws_port(self) -> int:
        return self.PORT + 1


settings = Settings()
