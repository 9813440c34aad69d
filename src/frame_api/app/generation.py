"""Fire-and-forget image generation on a worker pool.

The HTTP handler that starts a job never waits for it; the only channel back to
the caller is the tracker status read by later `check` polls.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError
from pathlib import Path
from typing import Protocol

from .models import RequestStatus
from .tracker import RequestTracker

logger = logging.getLogger(__name__)


class ImageRunner(Protocol):
    def run(self, prompt: str) -> bytes: ...


class FrameGenerator:
    """Run prompts through a runner and record outcomes in the tracker."""

    def __init__(
        self,
        *,
        runner: ImageRunner,
        tracker: RequestTracker,
        output_dir: Path,
        max_workers: int = 8,
    ) -> None:
        self.runner = runner
        self.tracker = tracker
        self.output_dir = Path(output_dir)
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="frame-gen")
        self._futures: dict[str, Future[RequestStatus]] = {}
        self._lock = threading.Lock()
        tracker.add_evict_listener(self._discard_output)

    def output_path(self, request_id: str) -> Path:
        return self.output_dir / f"{request_id}.png"

    def start(self, request_id: str, prompt: str) -> Future[RequestStatus]:
        future = self._pool.submit(self._generate, request_id, prompt)
        with self._lock:
            self._futures[request_id] = future
        future.add_done_callback(lambda _done: self._forget(request_id))
        return future

    def wait(self, request_id: str, timeout: float | None = None) -> RequestStatus | None:
        """Block until the job for `request_id` finishes; return its final status."""
        with self._lock:
            future = self._futures.get(request_id)
        if future is not None:
            try:
                future.result(timeout=timeout)
            except TimeoutError:
                pass
        record = self.tracker.get(request_id)
        return record.status if record else None

    def shutdown(self, *, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    def _generate(self, request_id: str, prompt: str) -> RequestStatus:
        status: RequestStatus
        try:
            image = self.runner.run(prompt)
            path = self.output_path(request_id)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(image)
            status = "completed"
            logger.info(
                "frame_generate event=completed request_id=%s bytes=%s path=%s",
                request_id,
                len(image),
                path,
            )
        except Exception:  # noqa: BLE001
            status = "error"
            logger.exception("frame_generate event=failed request_id=%s", request_id)
        self.tracker.set_status(request_id, status)
        return status

    def _discard_output(self, request_id: str) -> None:
        # Evicted ids are unknown to the tracker, so their image is unreachable.
        try:
            self.output_path(request_id).unlink(missing_ok=True)
        except OSError:
            logger.warning("frame_generate event=discard_failed request_id=%s", request_id, exc_info=True)
            return
        logger.info("frame_generate event=discarded request_id=%s", request_id)

    def _forget(self, request_id: str) -> None:
        with self._lock:
            self._futures.pop(request_id, None)
