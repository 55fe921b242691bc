"""Upload task state for one client session."""

import logging
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, Optional

from directdrop.client.progress import (
    DEFAULT_WARMUP_SECONDS,
    ProgressEvent,
    TransferSample,
    apply_progress,
)
from directdrop.models.upload import FileDescriptor

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.SUCCESS, TaskStatus.ERROR)


@dataclass(frozen=True)
class UploadTask:
    """Snapshot of one file's upload.

    Status only moves pending -> uploading -> success|error; success and
    error are final.
    """

    id: str
    file: FileDescriptor
    status: TaskStatus = TaskStatus.PENDING
    sample: TransferSample = field(default_factory=TransferSample)
    object_key: Optional[str] = None
    url: Optional[str] = None
    download_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def name(self) -> str:
        return self.file.name

    @property
    def size(self) -> int:
        return self.file.size

    @property
    def progress(self) -> int:
        return self.sample.progress

    @property
    def speed(self) -> Optional[float]:
        return self.sample.speed

    @property
    def eta(self) -> Optional[float]:
        return self.sample.eta


class UploadSession:
    """Ordered collection of upload tasks with derived aggregates.

    Every mutation is keyed by task id, so late events for one file never
    touch another. Events for unknown ids or for tasks already in a final
    state are ignored and reported as ``False``.
    """

    def __init__(self, warmup_seconds: float = DEFAULT_WARMUP_SECONDS):
        self.warmup_seconds = warmup_seconds
        self._tasks: dict[str, UploadTask] = {}

    @property
    def tasks(self) -> list[UploadTask]:
        return list(self._tasks.values())

    def get(self, task_id: str) -> Optional[UploadTask]:
        return self._tasks.get(task_id)

    def add(self, files: Iterable[FileDescriptor]) -> list[UploadTask]:
        """Register new pending tasks, one per file, in input order."""
        created = []
        for descriptor in files:
            task = UploadTask(id=uuid.uuid4().hex, file=descriptor)
            self._tasks[task.id] = task
            created.append(task)
        return created

    def clear(self) -> None:
        self._tasks.clear()

    def _update(self, task_id: str, allowed: tuple[TaskStatus, ...], **changes) -> bool:
        task = self._tasks.get(task_id)
        if task is None or task.status not in allowed:
            logger.debug(
                "Ignoring task update",
                extra={
                    "task_id": task_id,
                    "status": task.status.value if task else None,
                    "changes": sorted(changes),
                },
            )
            return False
        self._tasks[task_id] = replace(task, **changes)
        return True

    def mark_uploading(self, task_id: str, started_at: float, object_key: Optional[str] = None) -> bool:
        return self._update(
            task_id,
            (TaskStatus.PENDING,),
            status=TaskStatus.UPLOADING,
            sample=TransferSample(started_at=started_at),
            object_key=object_key,
        )

    def record_progress(self, event: ProgressEvent) -> bool:
        task = self._tasks.get(event.file_id)
        if task is None or task.status is not TaskStatus.UPLOADING:
            return False
        return self._update(
            event.file_id,
            (TaskStatus.UPLOADING,),
            sample=apply_progress(task.sample, event, self.warmup_seconds),
        )

    def mark_success(self, task_id: str, url: Optional[str] = None) -> bool:
        task = self._tasks.get(task_id)
        if task is None:
            return False
        return self._update(
            task_id,
            (TaskStatus.PENDING, TaskStatus.UPLOADING),
            status=TaskStatus.SUCCESS,
            sample=replace(task.sample, progress=100, speed=None, eta=None),
            url=url,
        )

    def mark_error(self, task_id: str, message: str) -> bool:
        task = self._tasks.get(task_id)
        if task is None:
            return False
        return self._update(
            task_id,
            (TaskStatus.PENDING, TaskStatus.UPLOADING),
            status=TaskStatus.ERROR,
            sample=replace(task.sample, speed=None, eta=None),
            error=message,
        )

    def confirm(self, task_id: str, url: Optional[str], download_url: Optional[str] = None) -> bool:
        """Merge the confirmed public and download URLs into a successful task."""
        changes = {"download_url": download_url}
        if url:
            changes["url"] = url
        return self._update(task_id, (TaskStatus.SUCCESS,), **changes)

    def fail_active(self, message: str, ids: Optional[Iterable[str]] = None) -> list[str]:
        """Mark every non-final task as failed.

        Used for failures that affect the whole batch. Tasks already in a
        final state keep their outcome.

        Args:
            message: Error message recorded on each failed task
            ids: Restrict the failure to these tasks (default: every task)

        Returns:
            Ids of tasks that were moved to error
        """
        candidates = list(self._tasks) if ids is None else [i for i in ids if i in self._tasks]
        failed = [
            task_id
            for task_id in candidates
            if not self._tasks[task_id].status.is_terminal and self.mark_error(task_id, message)
        ]
        return failed

    def with_status(self, status: TaskStatus) -> list[UploadTask]:
        return [task for task in self._tasks.values() if task.status is status]

    @property
    def is_uploading(self) -> bool:
        return any(task.status is TaskStatus.UPLOADING for task in self._tasks.values())

    @property
    def progress(self) -> int:
        """Size-weighted progress across uploading and finished tasks."""
        active = [
            task
            for task in self._tasks.values()
            if task.status in (TaskStatus.UPLOADING, TaskStatus.SUCCESS)
        ]
        total = sum(task.size for task in active)
        if total == 0:
            return 0
        loaded = sum(task.size * task.progress / 100 for task in active)
        return round(loaded / total * 100)

    @property
    def speed(self) -> float:
        """Sum of instantaneous speeds across uploading tasks, bytes/s."""
        return sum(
            task.speed or 0.0
            for task in self._tasks.values()
            if task.status is TaskStatus.UPLOADING
        )

    @property
    def eta(self) -> Optional[float]:
        """Seconds until the slowest uploading task finishes."""
        etas = [
            task.eta
            for task in self._tasks.values()
            if task.status is TaskStatus.UPLOADING and task.eta is not None
        ]
        return max(etas) if etas else None
