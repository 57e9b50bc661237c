"""Runtime entrypoint for the availability sync worker and the HTTP API."""
import argparse
import asyncio
import signal
import sys
from contextlib import suppress

from punchin.app.core.constants import LOG_FILE, SYNC_WORKER_ENABLED
from punchin.app.core.db import dispose_engine, get_session_factory, init_db
from punchin.app.core.logger import get_logger, setup_logging
from punchin.app.core.store import SqlBookingStore
from punchin.app.services.alert_services import BookingAlertService
from punchin.app.services.sync_services import AvailabilitySynchronizer
from punchin.app.workers.availability_sync import start_sync_worker, sync_once
from punchin.config import get_setting

logger = get_logger()


def _build() -> tuple[SqlBookingStore, AvailabilitySynchronizer]:
    store = SqlBookingStore(get_session_factory())
    return store, AvailabilitySynchronizer(store, BookingAlertService(store))


async def run_worker() -> None:
    store, synchronizer = _build()
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    stop = await start_sync_worker(store, synchronizer)
    try:
        await stop_event.wait()
    finally:
        try:
            await stop()
        except Exception:
            logger.exception("main: stopping sync worker failed during shutdown")
        await dispose_engine()


async def run_api(host: str, port: int, with_worker: bool) -> None:
    import uvicorn

    from punchin.api.app import get_app

    stop = None
    if with_worker:
        store, synchronizer = _build()
        stop = await start_sync_worker(store, synchronizer)
    server = uvicorn.Server(uvicorn.Config(get_app(), host=host, port=port, log_config=None))
    try:
        await server.serve()
    finally:
        if stop is not None:
            try:
                await stop()
            except Exception:
                logger.exception("main: stopping sync worker failed during shutdown")
        await dispose_engine()


async def run_once() -> int:
    store, synchronizer = _build()
    try:
        return await sync_once(store, synchronizer)
    finally:
        await dispose_engine()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="punchin")
    parser.add_argument("--log-level", default=get_setting("log_level", "INFO"))
    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("worker", help="run the availability sync worker (default)")
    sub.add_parser("sync-once", help="process one batch of pending booking changes and exit")

    serve = sub.add_parser("serve", help="run the HTTP API")
    serve.add_argument("--host", default=get_setting("api_host", "0.0.0.0"))
    serve.add_argument("--port", type=int, default=get_setting("api_port", 8000))
    serve.add_argument("--no-worker", action="store_true", help="do not run the sync worker in-process")

    initdb = sub.add_parser("init-db", help="create tables without Alembic (development only)")
    initdb.add_argument("--force", action="store_true", help="drop existing tables first")

    args = parser.parse_args(argv)
    setup_logging(args.log_level, LOG_FILE)

    if args.cmd == "init-db":
        async def _init() -> None:
            await init_db(force=args.force)
            await dispose_engine()

        asyncio.run(_init())
        logger.info("Database schema created")
        return 0

    if args.cmd == "sync-once":
        handled = asyncio.run(run_once())
        print(f"Handled {handled} booking change(s).")
        return 0

    if args.cmd == "serve":
        with suppress(KeyboardInterrupt):
            asyncio.run(run_api(args.host, args.port, with_worker=SYNC_WORKER_ENABLED and not args.no_worker))
        return 0

    if not SYNC_WORKER_ENABLED:
        logger.error("SYNC_WORKER_ENABLED is off; refusing to start the worker")
        return 1
    with suppress(KeyboardInterrupt):
        asyncio.run(run_worker())
    return 0


if __name__ == "__main__":
    sys.exit(main())
