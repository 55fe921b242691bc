"""Client-side upload orchestration.

Drives one batch through the protocol: authorize every file in one call,
PUT the bytes straight to storage concurrently, then confirm the successful
transfers in one complete call.
"""

import asyncio
import inspect
import logging
import mimetypes
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterator, Optional, Sequence, Union

import httpx
import pydantic

from directdrop.client.progress import ProgressEvent
from directdrop.client.session import UploadSession, UploadTask
from directdrop.core.config import ClientConfig
from directdrop.core.exceptions import DirectDropError, ProtocolError, TransferError
from directdrop.models.upload import (
    AuthorizeResult,
    CompleteResult,
    CompletionEntry,
    FileDescriptor,
)

logger = logging.getLogger(__name__)

Callback = Callable[..., Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class SourceFile:
    """A local file to upload, held in memory or read from disk in chunks."""

    name: str
    content: Union[bytes, Path]
    mime_type: str = "application/octet-stream"
    field: Optional[str] = None

    @classmethod
    def from_path(
        cls, path: Union[str, Path], mime_type: Optional[str] = None, field: Optional[str] = None
    ) -> "SourceFile":
        path = Path(path)
        if mime_type is None:
            mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(name=path.name, content=path, mime_type=mime_type, field=field)

    @property
    def size(self) -> int:
        if isinstance(self.content, Path):
            return self.content.stat().st_size
        return len(self.content)

    def descriptor(self) -> FileDescriptor:
        return FileDescriptor(
            name=self.name, size=self.size, mime_type=self.mime_type, field=self.field
        )

    def iter_chunks(self, chunk_size: int) -> Iterator[bytes]:
        if isinstance(self.content, Path):
            with self.content.open("rb") as f:
                while chunk := f.read(chunk_size):
                    yield chunk
            return
        for offset in range(0, len(self.content), chunk_size):
            yield self.content[offset : offset + chunk_size]


class UploadOrchestrator:
    """Uploads batches of files to one route and tracks their progress.

    Callbacks may be plain functions or coroutines:

    - ``on_start(files)`` once authorization succeeded
    - ``on_progress(percent)`` with aggregate progress after every chunk
    - ``on_success(tasks)`` with the tasks that finished successfully
    - ``on_error(exc)`` when the batch as a whole failed

    Per-file failures are recorded on the task and do not trigger ``on_error``.
    """

    def __init__(
        self,
        route_name: str,
        http_client: httpx.AsyncClient,
        config: Optional[ClientConfig] = None,
        on_start: Optional[Callback] = None,
        on_progress: Optional[Callback] = None,
        on_success: Optional[Callback] = None,
        on_error: Optional[Callback] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.route_name = route_name
        self.config = config or ClientConfig()
        self.on_start = on_start
        self.on_progress = on_progress
        self.on_success = on_success
        self.on_error = on_error
        self.session = UploadSession(warmup_seconds=self.config.speed_warmup_seconds)
        self.errors: list[DirectDropError] = []
        self._http = http_client
        self._clock = clock
        self._transfers: dict[str, asyncio.Task] = {}
        self._generation = 0

    @property
    def tasks(self) -> list[UploadTask]:
        return self.session.tasks

    @property
    def progress(self) -> int:
        return self.session.progress

    @property
    def speed(self) -> float:
        return self.session.speed

    @property
    def eta(self) -> Optional[float]:
        return self.session.eta

    @property
    def is_uploading(self) -> bool:
        return self.session.is_uploading

    async def upload(
        self, files: Sequence[SourceFile], metadata: Optional[dict[str, Any]] = None
    ) -> list[UploadTask]:
        """Upload a batch of files.

        Args:
            files: Files to upload, in order
            metadata: Client metadata sent with the authorize call

        Returns:
            Final task snapshots for this batch, in input order. Empty if the
            orchestrator was reset while the batch was running.
        """
        if not files:
            return []

        generation = self._generation
        tasks = self.session.add(source.descriptor() for source in files)
        sources = {task.id: source for task, source in zip(tasks, files)}

        try:
            grants = await self._authorize(tasks, metadata)
            if generation != self._generation:
                return []

            await self._emit(self.on_start, [task.file for task in tasks])
            await self._emit(self.on_progress, 0)

            running: list[str] = []
            for task, grant in zip(tasks, grants):
                if not grant.success or not grant.signed_url or not grant.object_key:
                    self.session.mark_error(task.id, grant.error or "Authorization failed")
                    continue
                self._transfers[task.id] = asyncio.create_task(
                    self._transfer(task.id, sources[task.id], grant)
                )
                running.append(task.id)

            outcomes = await asyncio.gather(
                *(self._transfers[task_id] for task_id in running), return_exceptions=True
            )
            if generation != self._generation:
                return []

            completed = {
                task_id: outcome
                for task_id, outcome in zip(running, outcomes)
                if isinstance(outcome, CompletionEntry)
            }
            if completed:
                await self._complete(
                    list(completed.values()),
                    {entry.object_key: task_id for task_id, entry in completed.items()},
                )
                await self._emit(
                    self.on_success, [self.session.get(task_id) for task_id in completed]
                )
        except DirectDropError as e:
            if generation != self._generation:
                return []
            logger.error(
                "Upload batch failed",
                extra={"route": self.route_name, "file_count": len(tasks), **e.to_dict()},
            )
            self.session.fail_active(e.message, ids=[task.id for task in tasks])
            self.errors.append(e)
            await self._emit(self.on_error, e)
        finally:
            for task in tasks:
                self._transfers.pop(task.id, None)

        return [self.session.get(task.id) for task in tasks if self.session.get(task.id) is not None]

    async def reset(self) -> None:
        """Abort in-flight transfers and forget every task."""
        self._generation += 1
        transfers = list(self._transfers.values())
        self._transfers.clear()
        for transfer in transfers:
            transfer.cancel()
        if transfers:
            await asyncio.gather(*transfers, return_exceptions=True)
        self.session.clear()
        self.errors.clear()
        logger.info("Upload session reset", extra={"cancelled_transfers": len(transfers)})

    async def _post(self, action: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._http.post(
                self.config.endpoint,
                params={"route": self.route_name, "action": action},
                json=payload,
                timeout=self.config.timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise TransferError(f"Upload endpoint request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success or not isinstance(body, dict) or not body.get("success"):
            details = body if isinstance(body, dict) else {}
            raise TransferError(
                details.get("error") or f"Server error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                code=details.get("code"),
            )
        return body

    async def _authorize(
        self, tasks: list[UploadTask], metadata: Optional[dict[str, Any]]
    ) -> list[AuthorizeResult]:
        payload: dict[str, Any] = {
            "files": [task.file.model_dump(by_alias=True, exclude_none=True) for task in tasks]
        }
        if metadata is not None:
            payload["metadata"] = metadata

        body = await self._post("authorize", payload)
        try:
            grants = [AuthorizeResult.model_validate(item) for item in body.get("results") or []]
        except pydantic.ValidationError as e:
            raise ProtocolError(f"Malformed authorize response: {e.error_count()} errors") from e
        if len(grants) != len(tasks):
            raise ProtocolError(
                f"Authorize response has {len(grants)} results for {len(tasks)} files"
            )

        logger.info(
            "Upload batch authorized",
            extra={
                "route": self.route_name,
                "file_count": len(tasks),
                "granted": sum(1 for grant in grants if grant.success),
            },
        )
        return grants

    async def _transfer(
        self, task_id: str, source: SourceFile, grant: AuthorizeResult
    ) -> Optional[CompletionEntry]:
        self.session.mark_uploading(task_id, self._clock(), object_key=grant.object_key)
        try:
            response = await self._http.put(
                grant.signed_url,
                content=self._stream(task_id, source),
                headers={"Content-Type": source.mime_type, "Content-Length": str(source.size)},
                timeout=self.config.timeout_seconds,
            )
            if not response.is_success:
                raise TransferError(
                    f"Upload failed with status: {response.status_code}",
                    status_code=response.status_code,
                )
        except httpx.HTTPError as e:
            self._fail_task(task_id, TransferError(f"Upload failed: {e}"))
            return None
        except DirectDropError as e:
            self._fail_task(task_id, e)
            return None
        except Exception as e:
            logger.error(
                "Unexpected upload failure",
                extra={"task_id": task_id, "file_name": source.name, "error": str(e)},
                exc_info=True,
            )
            self.session.mark_error(task_id, str(e) or type(e).__name__)
            return None

        if not self.session.mark_success(task_id):
            logger.warning(
                "Transferred file no longer tracked as uploading",
                extra={"task_id": task_id, "object_key": grant.object_key},
            )
            return None
        logger.info(
            "File transferred",
            extra={"task_id": task_id, "object_key": grant.object_key, "size": source.size},
        )
        return CompletionEntry(
            object_key=grant.object_key, file=source.descriptor(), metadata=grant.metadata
        )

    async def _stream(self, task_id: str, source: SourceFile):
        total = source.size
        loaded = 0
        for chunk in source.iter_chunks(self.config.chunk_size):
            yield chunk
            loaded += len(chunk)
            self.session.record_progress(ProgressEvent(task_id, loaded, total, self._clock()))
            await self._emit(self.on_progress, self.session.progress)

    def _fail_task(self, task_id: str, error: DirectDropError) -> None:
        logger.warning("File transfer failed", extra={"task_id": task_id, **error.to_dict()})
        self.session.mark_error(task_id, error.message)

    async def _complete(self, completions: list[CompletionEntry], task_ids: dict[str, str]) -> None:
        payload = {
            "completions": [
                entry.model_dump(mode="json", by_alias=True, exclude_none=True)
                for entry in completions
            ]
        }
        try:
            body = await self._post("complete", payload)
            results = [CompleteResult.model_validate(item) for item in body.get("results") or []]
        except (DirectDropError, pydantic.ValidationError) as e:
            logger.warning(
                "Upload completion notification failed",
                extra={"route": self.route_name, "error": str(e)},
            )
            return

        for result in results:
            task_id = task_ids.get(result.object_key)
            if task_id is None:
                continue
            if result.success:
                self.session.confirm(task_id, result.url, result.download_url)
            else:
                logger.warning(
                    "Upload completion rejected",
                    extra={"object_key": result.object_key, "error": result.error, "code": result.code},
                )

    async def _emit(self, callback: Optional[Callback], *args: Any) -> None:
        if callback is None:
            return
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
