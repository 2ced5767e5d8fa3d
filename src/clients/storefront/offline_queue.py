"""Offline Operation Queue.

Build mutations that fail because the storefront API is unreachable are
queued here and replayed once the client is back online.

Lifecycle: construct with an executor and a storage backend, ``start()``
on application bootstrap, ``stop()`` on teardown.  There is no module
level instance.

Drain rules:

- A drain takes a snapshot of the queue under the lock and empties it;
  operations enqueued while the drain runs wait for the next cycle.
- A failed operation whose ``retries`` is below ``max_retries`` gets
  ``retries + 1`` and goes back on the queue.  One that already reached
  ``max_retries`` is dropped and reported to the failure listeners, so an
  operation runs at most ``max_retries + 1`` times.
- While online with items queued, a timer keeps draining every
  ``retry_delay`` seconds.  Going offline cancels the timer.
"""

from __future__ import annotations

import json
import os
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

import structlog

logger = structlog.get_logger(__name__)

STORAGE_KEY = "ff_offline_queue"
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 5.0


class OperationType(StrEnum):
    PATCH_BUILD = "PATCH_BUILD"
    POST_BUILD = "POST_BUILD"


@dataclass
class QueuedOperation:
    type: OperationType
    path: str
    body: Dict[str, Any]
    build_id: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    retries: int = 0
    max_retries: int = DEFAULT_MAX_RETRIES

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = str(self.type)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueuedOperation":
        return cls(**{**data, "type": OperationType(data["type"])})


@dataclass(frozen=True)
class QueueStatus:
    is_online: bool
    queue_length: int
    has_retries: bool


@dataclass(frozen=True)
class DrainResult:
    succeeded: int = 0
    requeued: int = 0
    dropped: int = 0


class QueueStorage(Protocol):
    def load(self) -> List[Dict[str, Any]]: ...

    def save(self, items: List[Dict[str, Any]]) -> None: ...


class InMemoryQueueStorage:
    def __init__(self, items: Optional[List[Dict[str, Any]]] = None) -> None:
        self._items = list(items or [])

    def load(self) -> List[Dict[str, Any]]:
        return [dict(item) for item in self._items]

    def save(self, items: List[Dict[str, Any]]) -> None:
        self._items = [dict(item) for item in items]


class JSONFileQueueStorage:
    """Persists the queue as ``<directory>/<key>.json``.

    Writes go to a temporary file first and are moved into place, so a
    crash mid-write never leaves a truncated queue behind.
    """

    def __init__(self, directory: str | os.PathLike, key: str = STORAGE_KEY) -> None:
        self.path = Path(directory) / f"{key}.json"

    def load(self) -> List[Dict[str, Any]]:
        try:
            with self.path.open(encoding="utf-8") as fh:
                items = json.load(fh)
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as exc:
            logger.error("offline_queue.load_failed", path=str(self.path), error=str(exc))
            return []
        return items if isinstance(items, list) else []

    def save(self, items: List[Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".json.tmp")
        try:
            with tmp.open("w", encoding="utf-8") as fh:
                json.dump(items, fh)
            os.replace(tmp, self.path)
        except OSError as exc:
            logger.error("offline_queue.save_failed", path=str(self.path), error=str(exc))


Executor = Callable[[QueuedOperation], Any]
FailureListener = Callable[[QueuedOperation], None]


class OfflineQueue:
    def __init__(
        self,
        executor: Executor,
        storage: QueueStorage,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        online: bool = True,
        timer_factory: Callable[[float, Callable[[], None]], threading.Timer] = threading.Timer,
    ) -> None:
        self._executor = executor
        self._storage = storage
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._timer_factory = timer_factory

        self._items: List[QueuedOperation] = []
        self._online = online
        self._running = False
        self._timer: Optional[threading.Timer] = None
        self._listeners: List[FailureListener] = []

        # _lock guards the item list and timer; _drain_lock serialises drains.
        self._lock = threading.RLock()
        self._drain_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._items = []
            for raw in self._storage.load():
                try:
                    self._items.append(QueuedOperation.from_dict(raw))
                except (KeyError, TypeError, ValueError):
                    logger.warning("offline_queue.invalid_item_skipped", item=raw)
            self._running = True
            logger.info("offline_queue.started", queue_length=len(self._items))
            self._schedule_locked()

    def stop(self) -> None:
        with self._lock:
            self._running = False
            self._cancel_timer_locked()
        logger.info("offline_queue.stopped")

    def __enter__(self) -> "OfflineQueue":
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def enqueue(
        self,
        type: OperationType,
        path: str,
        body: Dict[str, Any],
        build_id: Optional[str] = None,
    ) -> QueuedOperation:
        operation = QueuedOperation(
            type=OperationType(type),
            path=path,
            body=dict(body),
            build_id=build_id,
            max_retries=self._max_retries,
        )
        with self._lock:
            self._items.append(operation)
            self._persist_locked()
            self._schedule_locked()
        logger.info(
            "offline_queue.enqueued",
            operation_id=operation.id,
            operation_type=str(operation.type),
            build_id=build_id,
        )
        return operation

    def queue_build_update(self, build_id: str, patch: Dict[str, Any]) -> QueuedOperation:
        return self.enqueue(OperationType.PATCH_BUILD, f"/api/builds/{build_id}", patch, build_id)

    def queue_build_create(self, data: Dict[str, Any]) -> QueuedOperation:
        return self.enqueue(OperationType.POST_BUILD, "/api/builds", data)

    def set_online(self, online: bool) -> None:
        with self._lock:
            changed = online != self._online
            self._online = online
            if not online:
                self._cancel_timer_locked()
        if changed:
            logger.info("offline_queue.connectivity_changed", online=online)
        if online:
            self.drain()

    def drain(self) -> DrainResult:
        """Replay a snapshot of the queue once."""
        with self._drain_lock:
            with self._lock:
                if not self._online or not self._items:
                    return DrainResult()
                snapshot = self._items
                self._items = []

            logger.info("offline_queue.drain_started", count=len(snapshot))
            succeeded = 0
            requeue: List[QueuedOperation] = []
            dropped: List[QueuedOperation] = []
            for item in snapshot:
                try:
                    self._executor(item)
                except Exception as exc:
                    if item.retries < item.max_retries:
                        item.retries += 1
                        requeue.append(item)
                        logger.warning(
                            "offline_queue.operation_requeued",
                            operation_id=item.id,
                            retries=item.retries,
                            max_retries=item.max_retries,
                            error=str(exc),
                        )
                    else:
                        dropped.append(item)
                        logger.error(
                            "offline_queue.operation_dropped",
                            operation_id=item.id,
                            operation_type=str(item.type),
                            retries=item.retries,
                        )
                else:
                    succeeded += 1

            with self._lock:
                # Items enqueued mid-drain stay behind the retried ones.
                self._items = requeue + self._items
                self._persist_locked()
                self._schedule_locked()

        for item in dropped:
            self._notify_failure(item)
        result = DrainResult(succeeded=succeeded, requeued=len(requeue), dropped=len(dropped))
        logger.info(
            "offline_queue.drain_finished",
            succeeded=result.succeeded,
            requeued=result.requeued,
            dropped=result.dropped,
        )
        return result

    def status(self) -> QueueStatus:
        with self._lock:
            return QueueStatus(
                is_online=self._online,
                queue_length=len(self._items),
                has_retries=any(item.retries > 0 for item in self._items),
            )

    def pending(self) -> List[QueuedOperation]:
        with self._lock:
            return list(self._items)

    def clear(self) -> None:
        with self._lock:
            self._items = []
            self._persist_locked()
            self._cancel_timer_locked()
        logger.info("offline_queue.cleared")

    def add_failure_listener(self, listener: FailureListener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unregisters it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _notify_failure(self, item: QueuedOperation) -> None:
        for listener in list(self._listeners):
            try:
                listener(item)
            except Exception:
                logger.exception("offline_queue.listener_failed", operation_id=item.id)

    def _persist_locked(self) -> None:
        self._storage.save([item.to_dict() for item in self._items])

    def _schedule_locked(self) -> None:
        if not (self._running and self._online and self._items) or self._timer is not None:
            return
        timer = self._timer_factory(self._retry_delay, self._on_timer)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _cancel_timer_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        with self._lock:
            self._timer = None
            if not self._running:
                return
        self.drain()
