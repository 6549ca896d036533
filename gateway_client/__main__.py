"""Run a gateway connection until SIGINT/SIGTERM.

    DISCORD_TOKEN=... python -m gateway_client

Variables missing from the environment are read from a ``.env`` file in
the working directory or one of its parents.  ``GATEWAY_LOG_LEVEL`` sets
the log level (default INFO).
"""

import asyncio
import logging
import os
import signal
import sys

from . import GatewayClient, GatewayConfig
from .config import load_env_file
from .errors import ConfigError, DialError, DiscoveryError


async def main(config: GatewayConfig) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    client = GatewayClient(config)

    @client.on_any
    def log_event(event):
        logging.getLogger("gateway_client.events").info(
            "recv %s (s=%s)", event.event_name, event.sequence
        )

    await client.start()
    try:
        read_task = client.read_task
        stop_task = asyncio.create_task(stop.wait())
        done, _ = await asyncio.wait(
            {stop_task, read_task}, return_when=asyncio.FIRST_COMPLETED
        )
        stop_task.cancel()
        if read_task in done:
            read_task.result()  # surface an unexpected read loop failure
    finally:
        await client.close()


def run() -> int:
    load_env_file()
    logging.basicConfig(
        level=os.environ.get("GATEWAY_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = GatewayConfig.from_env()
        asyncio.run(main(config))
    except (ConfigError, DiscoveryError, DialError) as exc:
        logging.getLogger("gateway_client").error("Startup failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(run())
