"""
RenderScheduler - batches render work into the host's next tick.

Multiple calls to ``schedule`` within the same tick are executed together
by a single ``flush``; scheduling the same callback twice runs it once, while
every ``post`` runs. The host (UI event loop, CLI wait loop, tests) calls
``flush`` once per tick.
"""

import threading
from collections import OrderedDict
from typing import Callable, Optional

from keylegend.utils.logging import log_message


class RenderScheduler:
    def __init__(self):
        self._callbacks: "OrderedDict[Callable[[], None], None]" = OrderedDict()
        self._posted = []
        self._lock = threading.Lock()
        self._error_handler: Optional[Callable[[Exception], None]] = None

    def schedule(self, callback: Callable[[], None]) -> None:
        """Queue a callback for the next flush (UI thread only)."""
        self._callbacks[callback] = None

    def post(self, callback: Callable[[], None]) -> None:
        """Queue a callback for the next flush from any thread. Not de-duplicated."""
        with self._lock:
            self._posted.append(callback)

    def flush(self) -> int:
        """
        Run all pending callbacks in scheduling order.

        Posted work is applied first, including anything it posts in turn, so
        callbacks it schedules join this same batch. Callbacks scheduled while
        the batch runs wait for the next flush. Returns the number of
        scheduled callbacks run.
        """
        while True:
            with self._lock:
                posted, self._posted = self._posted, []
            if not posted:
                break
            for callback in posted:
                self._run(callback)

        batch = list(self._callbacks)
        self._callbacks.clear()
        for callback in batch:
            self._run(callback)
        return len(batch)

    def _run(self, callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception as e:
            if self._error_handler is not None:
                self._error_handler(e)
            else:
                log_message(f"Error in render callback: {e}", always_print=True)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._callbacks) + len(self._posted)

    def is_pending(self) -> bool:
        return self.pending_count > 0

    def clear(self) -> None:
        with self._lock:
            self._posted = []
        self._callbacks.clear()

    def set_error_handler(self, handler: Optional[Callable[[Exception], None]]) -> None:
        """Route callback errors to ``handler``; None restores logging."""
        self._error_handler = handler
