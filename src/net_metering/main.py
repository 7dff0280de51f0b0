"""FastAPI application for the net metering service."""

import argparse
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from net_metering.config import load_config
from net_metering.frontends import create_frontend
from net_metering.metering.meter import NetMeter
from net_metering.metering.scheduler import TickScheduler
from net_metering.sources import create_source
from net_metering.storage import JsonFileStore

logger = logging.getLogger("net_metering")

# Module-level config path, set before app creation
_config_path: str = "/app/config.yaml"


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = load_config(_config_path)

    # Create and start source
    source_type = config.source.type
    source_conf = {}
    if source_type == "shelly" and config.source.shelly:
        source_conf = config.source.shelly.model_dump()

    source = create_source(source_type, source_conf)
    logger.info("Starting source (%s)...", source_type)
    await source.start()

    # Load totals and take the baseline before any tick runs
    store = JsonFileStore(config.storage.path)
    meter = NetMeter(source, store, config.metering.limits())
    meter.start()

    scheduler = TickScheduler(
        meter,
        fast_tick_ms=config.metering.fast_tick_ms,
        slow_tick_ms=config.metering.slow_tick_ms,
    )
    await scheduler.start()

    frontend_type = config.frontend.type
    frontend = create_frontend(frontend_type, meter, config.frontend.shelly.model_dump())
    app.include_router(frontend.get_router())

    logger.info(
        "Net metering ready: source=%s, frontend=%s, storage=%s",
        source_type,
        frontend_type,
        store.path,
    )

    yield

    # Shutdown
    await scheduler.stop()
    await source.stop()


app = FastAPI(title="Net Metering", lifespan=lifespan)


def run() -> None:
    """CLI entry point."""
    global _config_path

    parser = argparse.ArgumentParser(description="Phase-balanced net metering")
    parser.add_argument(
        "-c",
        "--config",
        default="/app/config.yaml",
        help="Path to config YAML file",
    )
    args = parser.parse_args()

    _config_path = args.config
    config = load_config(_config_path)

    logging.basicConfig(
        level=getattr(logging, config.logging.level),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    uvicorn.run(app, host=config.server.host, port=config.server.port)
