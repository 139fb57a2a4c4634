from __future__ import annotations

import logging
import threading
from queue import Queue
from typing import Callable, List
from uuid import UUID


class BaseQueue:
    def enqueue(self, job_id: UUID) -> None: ...  # pragma: no cover


class LocalQueue(BaseQueue):
    """In-process worker pool; ``workers`` bounds how many jobs run at once."""

    def __init__(self, processor: Callable[[UUID], None], workers: int = 1) -> None:
        self._processor = processor
        self._queue: Queue[UUID] = Queue()
        self._log = logging.getLogger(__name__)
        self._threads: List[threading.Thread] = []
        for index in range(max(1, workers)):
            thread = threading.Thread(target=self._run, name=f"video-worker-{index}", daemon=True)
            thread.start()
            self._threads.append(thread)

    def enqueue(self, job_id: UUID) -> None:
        self._queue.put(job_id)

    def join(self) -> None:
        self._queue.join()

    def _run(self) -> None:
        while True:
            job_id = self._queue.get()
            try:
                self._processor(job_id)
            except Exception:  # pragma: no cover - processor records its own failures
                self._log.exception("job processor crashed", extra={"job_id": str(job_id)})
            finally:
                self._queue.task_done()
