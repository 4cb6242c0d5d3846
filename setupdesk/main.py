"""SetupDesk — application entry point.

Boots the FastAPI dashboard API and provides the CLI entry point that runs
the API server and the polling scheduler on one event loop.
"""

import logging

from fastapi import FastAPI

from setupdesk.api.routers import router

app = FastAPI(title="SetupDesk Dashboard API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("setupdesk")


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments and dispatch to the server or a one-shot print."""
    import argparse
    import asyncio

    from setupdesk.backend.client import BackendClient
    from setupdesk.config import load_config
    from setupdesk.desk_manager import DeskManager

    parser = argparse.ArgumentParser(description="SetupDesk trading setup dashboard")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Fetch every source once, print the console view, and exit",
    )
    parser.add_argument("--port", type=int, help="Dashboard API port (overrides DASHBOARD_PORT)")
    args = parser.parse_args()

    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    desk = DeskManager(config=config, client=BackendClient(config))

    from setupdesk.api.routers import configure_routers

    configure_routers(desk)

    if args.once:
        asyncio.run(_print_once(desk))
    else:
        asyncio.run(_run_desk(desk, args.port or config.dashboard_port))


async def _print_once(desk) -> None:
    """Poll every source a single time and print the console dashboard."""
    import asyncio

    from setupdesk.cli.dashboard import print_desk

    desk.register_sources()
    tasks = [desk.scheduler.refresh_now(name) for name in desk.scheduler.source_names]
    await asyncio.gather(*tasks)
    print_desk(desk)


async def _run_desk(desk, port: int) -> None:
    """Start polling and the API server; stop polling when the server exits."""
    import uvicorn

    logger.info(
        "Starting SetupDesk against %s (%d pro-trader, %d signal instrument(s)).",
        desk.config.api_base_url,
        len(desk.pro_trader_symbols),
        len(desk.signal_symbols),
    )
    uvi_config = uvicorn.Config(app, host="0.0.0.0", port=port, log_level="info")
    server = uvicorn.Server(uvi_config)

    desk.start()
    logger.info("Dashboard API available at http://localhost:%d", port)
    try:
        await server.serve()
    finally:
        desk.stop()
        logger.info("SetupDesk stopped.")


if __name__ == "__main__":
    _run_cli()
