"""Contract status watcher.

Detects that a pack was signed from two signals: a polling thread over
``/api/contracts/status`` and message events reported by the signing
window (``notify_message``).  Both feed ``_consume``, which remembers
completed packs, so ``on_complete`` runs exactly once per pack no matter
which signal arrives first.

Polling stops on completion, on ``close()`` and, when ``timeout`` is set,
after that many seconds.  A timed-out watch is not restarted; the caller
decides whether to ``watch()`` again.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Mapping, Optional, Set

import structlog

from clients.storefront.api import ApiError, OfflineError

logger = structlog.get_logger(__name__)

DEFAULT_POLL_INTERVAL = 4.0
COMPLETED = "completed"

StatusFetcher = Callable[[str], Mapping[str, Any]]
CompletionCallback = Callable[[str, str], None]


class ContractWatcher:
    def __init__(
        self,
        fetch_status: StatusFetcher,
        build_id: str,
        on_complete: CompletionCallback,
        interval: float = DEFAULT_POLL_INTERVAL,
        timeout: Optional[float] = None,
        on_timeout: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._fetch_status = fetch_status
        self._build_id = build_id
        self._on_complete = on_complete
        self._interval = interval
        self._timeout = timeout
        self._on_timeout = on_timeout

        self._completed: Set[str] = set()
        self._stops: Dict[str, threading.Event] = {}
        self._threads: Dict[str, threading.Thread] = {}
        self._lock = threading.Lock()
        self._closed = False

    @property
    def completed(self) -> Set[str]:
        with self._lock:
            return set(self._completed)

    def watch(self, pack: str) -> bool:
        """Start polling for ``pack``.  Returns ``False`` if already completed or watched."""
        with self._lock:
            if self._closed or pack in self._completed:
                return False
            thread = self._threads.get(pack)
            if thread is not None and thread.is_alive():
                return False
            stop = threading.Event()
            thread = threading.Thread(
                target=self._poll_loop,
                args=(pack, stop),
                name=f"ContractWatch-{pack}",
                daemon=True,
            )
            self._stops[pack] = stop
            self._threads[pack] = thread
        logger.info("contract_watch.started", build_id=self._build_id, pack=pack)
        thread.start()
        return True

    def notify_message(self, pack: str) -> bool:
        """Message-event signal from the signing window."""
        return self._consume(pack, "message")

    def close(self, timeout: float = 5.0) -> None:
        with self._lock:
            self._closed = True
            threads = list(self._threads.values())
            for stop in self._stops.values():
                stop.set()
        current = threading.current_thread()
        for thread in threads:
            if thread is not current and thread.is_alive():
                thread.join(timeout=timeout)
        logger.info("contract_watch.closed", build_id=self._build_id)

    def __enter__(self) -> "ContractWatcher":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _consume(self, pack: str, source: str) -> bool:
        with self._lock:
            if pack in self._completed:
                logger.debug("contract_watch.duplicate_signal", pack=pack, source=source)
                return False
            self._completed.add(pack)
            stop = self._stops.get(pack)
            if stop is not None:
                stop.set()
        logger.info("contract_watch.pack_completed", build_id=self._build_id, pack=pack, source=source)
        self._on_complete(pack, source)
        return True

    def _poll_loop(self, pack: str, stop: threading.Event) -> None:
        deadline = time.monotonic() + self._timeout if self._timeout is not None else None
        while not stop.wait(self._interval):
            try:
                status = self._fetch_status(self._build_id)
            except (ApiError, OfflineError) as exc:
                logger.warning("contract_watch.poll_failed", pack=pack, error=str(exc))
            else:
                if (status.get("packs") or {}).get(pack) == COMPLETED:
                    self._consume(pack, "poll")
                    return
            if deadline is not None and time.monotonic() >= deadline:
                logger.warning("contract_watch.timed_out", build_id=self._build_id, pack=pack)
                if self._on_timeout is not None:
                    self._on_timeout(pack)
                return
