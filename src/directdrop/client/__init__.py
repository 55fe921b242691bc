"""
Client-side upload orchestration.

Example:
    async with httpx.AsyncClient(base_url="http://localhost:8000") as http:
        uploader = UploadOrchestrator("avatar", http)
        tasks = await uploader.upload([SourceFile.from_path("me.png")])
"""

from directdrop.client.orchestrator import SourceFile, UploadOrchestrator
from directdrop.client.progress import (
    ProgressEvent,
    TransferSample,
    apply_progress,
    format_eta,
    format_speed,
)
from directdrop.client.session import TaskStatus, UploadSession, UploadTask

__all__ = [
    "ProgressEvent",
    "SourceFile",
    "TaskStatus",
    "TransferSample",
    "UploadOrchestrator",
    "UploadSession",
    "UploadTask",
    "apply_progress",
    "format_eta",
    "format_speed",
]
