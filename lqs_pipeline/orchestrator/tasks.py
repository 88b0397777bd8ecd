"""Upload tasks and the process-wide registry that outlives whoever started them."""
from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..errors import UploadInProgressError
from ..models import ImportKind, UploadResult

LOGGER = logging.getLogger(__name__)


class UploadState(str, Enum):
    IDLE = "idle"
    PARSING = "parsing"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def finished(self) -> bool:
        return self in (UploadState.COMPLETED, UploadState.FAILED)


@dataclass
class UploadContext:
    """Who the upload is for: the agency, the lead source to stamp, the reference date."""

    agency_id: str
    lead_source_id: Optional[str] = None
    as_of: Optional[date] = None
    uploaded_by: Optional[str] = None


TaskCallback = Callable[["UploadTask"], None]


class UploadTask:
    """Handle on one background upload.

    There is no cancel operation: once scheduled the upload runs to
    completion or failure.
    """

    def __init__(self, kind: ImportKind, context: UploadContext, filename: str) -> None:
        self.upload_id = uuid.uuid4().hex
        self.kind = kind
        self.context = context
        self.filename = filename
        self.result: Optional[UploadResult] = None
        self.error: Optional[BaseException] = None
        self.progress: Tuple[int, int] = (0, 0)
        self._state = UploadState.IDLE
        self._callbacks: List[TaskCallback] = []
        self._lock = threading.Lock()
        self._finished = threading.Event()
        self._future: Optional[Future[Any]] = None

    def __repr__(self) -> str:
        return f"UploadTask(id={self.upload_id!r}, kind={self.kind.value!r}, state={self._state.value!r})"

    @property
    def agency_id(self) -> str:
        return self.context.agency_id

    @property
    def state(self) -> UploadState:
        return self._state

    def done(self) -> bool:
        return self._finished.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the task finishes; returns ``False`` on timeout."""

        return self._finished.wait(timeout)

    def outcome(self, timeout: Optional[float] = None) -> UploadResult:
        """Return the upload result, re-raising the failure of a failed task."""

        if not self._finished.wait(timeout):
            raise TimeoutError(f"Upload {self.upload_id} still running")
        if self.error is not None:
            raise self.error
        return self.result  # type: ignore[return-value]

    # ------------------------------------------------------------------
    def transition(self, state: UploadState) -> None:
        with self._lock:
            previous, self._state = self._state, state
        LOGGER.info("Upload %s (%s): %s -> %s", self.upload_id, self.kind.value, previous.value, state.value)

    def add_callback(self, callback: TaskCallback) -> None:
        with self._lock:
            if not self._finished.is_set():
                self._callbacks.append(callback)
                return
        self._invoke(callback)

    def finish(self, *, result: Optional[UploadResult] = None, error: Optional[BaseException] = None) -> None:
        self.result = result
        self.error = error
        self.transition(UploadState.FAILED if error is not None else UploadState.COMPLETED)
        with self._lock:
            callbacks, self._callbacks = self._callbacks, []
            self._finished.set()
        for callback in callbacks:
            self._invoke(callback)

    def _invoke(self, callback: TaskCallback) -> None:
        try:
            callback(self)
        except Exception:
            LOGGER.exception("Completion callback for upload %s failed", self.upload_id)


class UploadRegistry:
    """Tracks uploads by id and runs them on a shared worker pool.

    At most one unfinished upload may exist per agency and import kind.
    """

    def __init__(self, max_workers: int = 4) -> None:
        self._max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None
        self._tasks: Dict[str, UploadTask] = {}
        self._lock = threading.Lock()

    def _ensure_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="lqs-upload")
        return self._executor

    def schedule(self, task: UploadTask, work: Callable[[UploadTask], Any]) -> UploadTask:
        """Register ``task`` and run ``work(task)`` in the background."""

        with self._lock:
            for other in self._tasks.values():
                if other.agency_id == task.agency_id and other.kind is task.kind and not other.done():
                    raise UploadInProgressError(
                        f"A {task.kind.value} upload is already running for agency '{task.agency_id}'"
                    )
            self._tasks[task.upload_id] = task
            task._future = self._ensure_executor().submit(work, task)
        LOGGER.debug("Scheduled upload %s for %s", task.upload_id, task.filename)
        return task

    def subscribe(self, upload_id: str, callback: TaskCallback) -> None:
        """Invoke ``callback(task)`` when the upload finishes, or now if it already has."""

        task = self.get(upload_id)
        if task is None:
            raise KeyError(f"Unknown upload '{upload_id}'")
        task.add_callback(callback)

    def get(self, upload_id: str) -> Optional[UploadTask]:
        with self._lock:
            return self._tasks.get(upload_id)

    def active(self) -> List[UploadTask]:
        with self._lock:
            return [task for task in self._tasks.values() if not task.done()]

    def dispose(self, upload_id: str) -> bool:
        """Forget a finished upload. Running uploads cannot be disposed."""

        with self._lock:
            task = self._tasks.get(upload_id)
            if task is None:
                return False
            if not task.done():
                raise UploadInProgressError(f"Upload '{upload_id}' is still running")
            del self._tasks[upload_id]
        return True

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)


REGISTRY = UploadRegistry()


__all__ = ["REGISTRY", "TaskCallback", "UploadContext", "UploadRegistry", "UploadState", "UploadTask"]
