"""
Progress reporting and cooperative cancellation.

Progress is fire-and-forget: events are queued and delivered to observers
from a dispatcher thread, so a slow or failing observer can never stall
the scan worker. Cancellation is a flag the orchestrator polls between
files; it never interrupts an extraction already running.
"""

import asyncio
import logging
import queue
import threading
from typing import AsyncIterator, Callable, Iterable, List, Optional

from .models import ProgressEvent, ScanStatus


logger = logging.getLogger(__name__)


ProgressObserver = Callable[[ProgressEvent], None]

SENTINEL = ProgressEvent()


class CancellationToken:
    """Thread-safe stop flag shared between the caller and the scan loop."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ProgressReporter:
    """
    Delivers events to observers in order, off the scan worker.

    finish() sends the all-None sentinel and waits briefly for delivery so
    observers normally see every event before the scan call returns.
    """

    def __init__(self, observers: Iterable[ProgressObserver] = ()):
        self._observers: List[ProgressObserver] = list(observers)
        self._queue: "queue.SimpleQueue[ProgressEvent]" = queue.SimpleQueue()
        self._thread: Optional[threading.Thread] = None

    def emit(self, path: str, status: ScanStatus, detail: Optional[str] = None) -> None:
        self._put(ProgressEvent(path=path, status=status, detail=detail))

    def finish(self, wait: float = 2.0) -> None:
        self._put(SENTINEL)
        if self._thread is not None:
            self._thread.join(timeout=wait)
            if self._thread.is_alive():
                logger.warning("Progress observer is lagging; not waiting for it")

    def _put(self, event: ProgressEvent) -> None:
        if not self._observers:
            return
        if self._thread is None:
            self._thread = threading.Thread(target=self._dispatch, name="progress", daemon=True)
            self._thread.start()
        self._queue.put(event)

    def _dispatch(self) -> None:
        while True:
            event = self._queue.get()
            for observer in self._observers:
                try:
                    observer(event)
                except Exception:
                    logger.exception("Progress observer failed")
            if event.is_sentinel:
                return


class ProgressStream:
    """
    Observer that exposes events as an async iterator.

    Usage:
        stream = ProgressStream()
        task = asyncio.create_task(service.run_scan(observer=stream))
        async for event in stream:
            print(event.path, event.status)
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop or asyncio.get_running_loop()
        self._queue: "asyncio.Queue[ProgressEvent]" = asyncio.Queue()

    def __call__(self, event: ProgressEvent) -> None:
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
        except RuntimeError:
            # Event loop already closed; nobody is listening any more
            logger.debug("Dropping progress event: event loop closed")

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        while True:
            event = await self._queue.get()
            if event.is_sentinel:
                return
            yield event
