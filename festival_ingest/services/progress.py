"""
Progress notifications for long-running pipeline runs.

The transport (websocket, queue, ...) lives outside this package; the
pipeline only sees the ProgressNotifier contract. Notifications are
fire-and-forget: a failing notifier is logged and otherwise ignored.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any

import structlog

from festival_ingest.core.models import PipelineStage

logger = structlog.get_logger()


@dataclass
class ProgressUpdate:
    stage: PipelineStage
    progress_percent: int
    message: str
    confidence: float | None = None


class ProgressNotifier(ABC):
    """Contract for pushing pipeline progress to a client session."""

    @abstractmethod
    async def send_progress(self, session_id: str, update: ProgressUpdate) -> None:
        pass

    @abstractmethod
    async def send_error(self, session_id: str, code: str, message: str) -> None:
        pass

    @abstractmethod
    async def send_completion(self, session_id: str, result: dict[str, Any], summary: str) -> None:
        pass


class NullProgressNotifier(ProgressNotifier):
    async def send_progress(self, session_id: str, update: ProgressUpdate) -> None:
        return None

    async def send_error(self, session_id: str, code: str, message: str) -> None:
        return None

    async def send_completion(self, session_id: str, result: dict[str, Any], summary: str) -> None:
        return None


class LoggingProgressNotifier(ProgressNotifier):
    """Emits progress as structured log events."""

    def __init__(self):
        self.log = logger.bind(component="progress")

    async def send_progress(self, session_id: str, update: ProgressUpdate) -> None:
        payload = asdict(update)
        payload["stage"] = update.stage.value
        self.log.info("pipeline_progress", progress_session=session_id, **payload)

    async def send_error(self, session_id: str, code: str, message: str) -> None:
        self.log.warning("pipeline_error", progress_session=session_id, code=code, message=message)

    async def send_completion(self, session_id: str, result: dict[str, Any], summary: str) -> None:
        self.log.info(
            "pipeline_completed",
            progress_session=session_id,
            summary=summary,
            success=result.get("success"),
        )


class SafeNotifier:
    """Wraps a notifier so delivery failures never reach the pipeline."""

    def __init__(self, notifier: ProgressNotifier, session_id: str | None):
        self.notifier = notifier
        self.session_id = session_id

    async def progress(
        self,
        stage: PipelineStage,
        percent: int,
        message: str,
        confidence: float | None = None,
    ) -> None:
        if self.session_id is None:
            return
        try:
            await self.notifier.send_progress(
                self.session_id, ProgressUpdate(stage, percent, message, confidence)
            )
        except Exception as e:
            logger.warning("progress_notify_failed", stage=stage.value, error=str(e))

    async def error(self, code: str, message: str) -> None:
        if self.session_id is None:
            return
        try:
            await self.notifier.send_error(self.session_id, code, message)
        except Exception as e:
            logger.warning("progress_notify_failed", stage="error", error=str(e))

    async def completion(self, result: dict[str, Any], summary: str) -> None:
        if self.session_id is None:
            return
        try:
            await self.notifier.send_completion(self.session_id, result, summary)
        except Exception as e:
            logger.warning("progress_notify_failed", stage="completion", error=str(e))
