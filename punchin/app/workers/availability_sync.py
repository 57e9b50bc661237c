"""Background worker that feeds booking changes to the availability synchronizer.

Polls the ``booking_changes`` outbox in id order. A change that is handled is
marked processed; a change whose handling raises keeps its place and has its
attempt counter bumped, so it is redelivered on the next sweep until
``sync_max_attempts`` is reached. Later changes of a booking whose change
failed are left for the next sweep, so each booking is applied in order.

start_sync_worker returns an async callable that stops the worker gracefully.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from punchin.app.core.store import BookingStore
from punchin.app.services.sync_services import AvailabilitySynchronizer
from punchin.config import get_setting

logger = logging.getLogger(__name__)


async def sync_once(store: BookingStore, synchronizer: AvailabilitySynchronizer) -> int:
    """Process one batch of pending changes; returns how many were handled."""
    batch_size = int(get_setting("sync_batch_size", 50))
    max_attempts = int(get_setting("sync_max_attempts", 10))
    changes = await store.pending_changes(batch_size, max_attempts=max_attempts)
    handled = 0
    blocked: set[str] = set()
    for change in changes:
        assert change.change_id is not None
        if change.booking_id in blocked:
            logger.debug("Booking change %s deferred behind a failed change", change.change_id)
            continue
        try:
            await synchronizer.handle(change)
        except Exception as e:
            logger.warning("Booking change %s (booking %s) failed: %s", change.change_id, change.booking_id, e)
            await store.mark_change_failed(change.change_id, str(e))
            blocked.add(change.booking_id)
            continue
        await store.mark_change_processed(change.change_id)
        handled += 1
    if handled:
        logger.info("Availability sync handled %d booking change(s)", handled)
    return handled


async def _run_loop(
    stop_event: asyncio.Event,
    store: BookingStore,
    synchronizer: AvailabilitySynchronizer,
    initial_delay: float = 1.0,
) -> None:
    if initial_delay:
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=initial_delay)
            return
        except asyncio.TimeoutError:
            pass
    while not stop_event.is_set():
        try:
            await sync_once(store, synchronizer)
        except Exception as e:
            logger.exception("Availability sync iteration error: %s", e)
        # Re-read each iteration so runtime changes take effect without a restart.
        cur_interval = float(get_setting("sync_poll_seconds", 5))
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=cur_interval)
        except asyncio.TimeoutError:
            continue


async def start_sync_worker(
    store: BookingStore,
    synchronizer: AvailabilitySynchronizer,
    initial_delay: float = 1.0,
) -> Callable[[], Awaitable[None]]:
    """Start the availability sync worker and return an async stop() function."""
    stop_event: asyncio.Event = asyncio.Event()
    task = asyncio.create_task(_run_loop(stop_event, store, synchronizer, initial_delay), name="availability-sync")

    async def _stop() -> None:
        stop_event.set()
        try:
            await asyncio.wait_for(task, timeout=5)
        except asyncio.TimeoutError:
            task.cancel()
        logger.info("Availability sync worker stopped")

    logger.info("Availability sync worker started (interval=%ss)", get_setting("sync_poll_seconds", 5))
    return _stop


__all__ = ["sync_once", "start_sync_worker"]
