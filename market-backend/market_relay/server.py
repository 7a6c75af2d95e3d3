"""Process entry point: serves the HTTP API on PORT and ticks on PORT + 1."""
import asyncio
import logging

import uvicorn

from market_relay.config import settings
from market_relay.main import app, ws_app


logger = logging.getLogger("market_relay")


def configure_logging():
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def build_servers():
    """HTTP API on PORT, tick WebSocket on PORT + 1."""
    http_server = uvicorn.Server(uvicorn.Config(
        app, host=settings.HOST, port=settings.PORT, log_config=None,
    ))
    ws_server = uvicorn.Server(uvicorn.Config(
        ws_app, host=settings.HOST, port=settings.ws_port, log_config=None,
        ws_max_size=settings.WS_MAX_MESSAGE_BYTES,
    ))
    return [http_server, ws_server]


async def serve():
    servers = build_servers()
    logger.info("Market backend listening on :%s", settings.PORT)
    logger.info("WS listening on :%s", settings.ws_port)
    tasks = [asyncio.create_task(server.serve()) for server in servers]
    _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    # one listener exiting (signal or bind failure) takes the other down
    for server in servers:
        server.should_exit = True
    await asyncio.gather(*pending)


def main():
    configure_logging()
    asyncio.run(serve())


if __name__ == "__main__":
    main()
