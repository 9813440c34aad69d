"""In-memory request tracker.

State lives in one process and is lost on restart. Completion callbacks run
on worker threads, so every mutation goes through a lock.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from collections.abc import Callable
from datetime import UTC, datetime
from uuid import uuid4

from .errors import InvalidTransitionError, RequestNotFoundError
from .models import TERMINAL_STATUSES, FrameRequest, RequestStatus

logger = logging.getLogger(__name__)


class RequestTracker:
    """Owns every FrameRequest record for the lifetime of the app."""

    def __init__(self, *, max_entries: int | None = None) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self._lock = threading.Lock()
        # Insertion order doubles as age order for eviction.
        self._requests: OrderedDict[str, FrameRequest] = OrderedDict()
        self._evict_listeners: list[Callable[[str], None]] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)

    def __contains__(self, request_id: object) -> bool:
        with self._lock:
            return request_id in self._requests

    def create(self, prompt: str) -> str:
        """Insert a new `processing` record and return its id."""
        now = datetime.now(UTC)
        with self._lock:
            request_id = str(uuid4())
            while request_id in self._requests:
                request_id = str(uuid4())
            evicted = self._evict_locked()
            self._requests[request_id] = FrameRequest(
                request_id=request_id,
                prompt=prompt,
                status="processing",
                created_at=now,
                updated_at=now,
            )
        for evicted_id in evicted:
            for listener in self._evict_listeners:
                listener(evicted_id)
        return request_id

    def get(self, request_id: str) -> FrameRequest | None:
        with self._lock:
            return self._requests.get(request_id)

    def set_status(self, request_id: str, status: RequestStatus) -> FrameRequest:
        """Move a request from `processing` to a terminal status, exactly once."""
        if status not in TERMINAL_STATUSES:
            raise InvalidTransitionError(f"Cannot move request {request_id} to {status!r}")
        with self._lock:
            current = self._requests.get(request_id)
            if current is None:
                raise RequestNotFoundError(request_id)
            if current.is_terminal:
                raise InvalidTransitionError(
                    f"Request {request_id} already finished with status {current.status!r}"
                )
            updated = current.model_copy(update={"status": status, "updated_at": datetime.now(UTC)})
            self._requests[request_id] = updated
        return updated

    def add_evict_listener(self, listener: Callable[[str], None]) -> None:
        """Register a callback run with each evicted id, outside the lock."""
        self._evict_listeners.append(listener)

    def _evict_locked(self) -> list[str]:
        if self.max_entries is None:
            return []
        overflow = len(self._requests) - self.max_entries + 1
        if overflow <= 0:
            return []
        # In-flight requests are never evicted; the table may exceed the bound
        # while every slot is still processing.
        victims = [rid for rid, record in self._requests.items() if record.is_terminal][:overflow]
        for request_id in victims:
            del self._requests[request_id]
        if victims:
            logger.info("tracker event=evicted count=%s", len(victims))
        return victims
