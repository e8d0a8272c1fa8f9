"""Background dispatcher for the full analysis."""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Protocol
from uuid import UUID

from onboarding_bot.adapters.telegram_file_client import TelegramFileClient
from onboarding_bot.domain.analysis import (
    AnalysisError,
    AnalysisRecord,
    AnalysisType,
    FullAnalysisRequest,
)
from onboarding_bot.services.messaging import ChatRef, Messenger
from onboarding_bot.services.prompts import support_prompt
from onboarding_bot.services.user_info import UserInfoService
from onboarding_bot.services.vision import VisionService

logger = logging.getLogger(__name__)

ANALYSIS_COST = 1


class AnalysisRepository(Protocol):
    """Persistence interface for analysis records."""

    def create(
        self,
        user_id: UUID,
        analysis_type: AnalysisType,
        input_photo_ref: str,
        cost: int,
    ) -> AnalysisRecord:
        """Create an analysis record."""

    def complete(
        self, analysis_id: UUID, result_text: str, summary_text: str
    ) -> None:
        """Store results and mark the record completed."""


class AnalysisJobStatus(StrEnum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class AnalysisJob:
    """A queued request to analyse one user."""

    user_id: UUID
    chat_id: int
    submitted_at: datetime


@dataclass(frozen=True)
class AnalysisJobOutcome:
    """Result of running a job, published on the completion channel."""

    job: AnalysisJob
    status: AnalysisJobStatus
    error: str | None = None


@dataclass
class AnalysisDispatcher:
    """Queues analysis jobs and runs them outside the conversational turn."""

    user_info_service: UserInfoService
    analysis_repository: AnalysisRepository
    vision_service: VisionService
    file_client: TelegramFileClient
    messenger: Messenger
    support_username: str
    completed: asyncio.Queue[AnalysisJobOutcome] = field(
        default_factory=lambda: asyncio.Queue(maxsize=100)
    )
    _queue: asyncio.Queue[AnalysisJob] = field(default_factory=asyncio.Queue)
    _worker: asyncio.Task[None] | None = None

    def dispatch(self, user_id: UUID, chat_id: int) -> AnalysisJob:
        """Queue an analysis and return immediately."""
        job = AnalysisJob(
            user_id=user_id, chat_id=chat_id, submitted_at=datetime.now(tz=UTC)
        )
        self._queue.put_nowait(job)
        logger.info(
            "Analysis queued",
            extra={"user_id": str(user_id), "queue_size": self._queue.qsize()},
        )
        return job

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        """Start the worker on the running loop."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run_worker())

    async def stop(self) -> None:
        """Stop the worker; queued jobs are dropped."""
        if self._worker is None:
            return
        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None

    async def process_pending(self) -> list[AnalysisJobOutcome]:
        """Run every queued job in order without a worker."""
        outcomes = []
        while not self._queue.empty():
            job = self._queue.get_nowait()
            outcomes.append(await self._process(job))
            self._queue.task_done()
        return outcomes

    async def run_job(self, job: AnalysisJob) -> AnalysisJobOutcome:
        """Run one job. Errors are logged and reported as a failed outcome."""
        try:
            await self._analyse(job)
        except Exception as exc:
            logger.exception(
                "Background analysis failed", extra={"user_id": str(job.user_id)}
            )
            return AnalysisJobOutcome(
                job=job, status=AnalysisJobStatus.FAILED, error=str(exc)
            )
        logger.info(
            "Background analysis completed", extra={"user_id": str(job.user_id)}
        )
        return AnalysisJobOutcome(job=job, status=AnalysisJobStatus.SUCCEEDED)

    async def _run_worker(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._process(job)
            finally:
                self._queue.task_done()

    async def _process(self, job: AnalysisJob) -> AnalysisJobOutcome:
        outcome = await self.run_job(job)
        if self.completed.full():
            self.completed.get_nowait()
            self.completed.task_done()
        self.completed.put_nowait(outcome)
        return outcome

    async def _analyse(self, job: AnalysisJob) -> None:
        info = self.user_info_service.get_latest(job.user_id)
        if info is None or not info.photo_refs:
            raise AnalysisError("No photos stored for analysis")

        photos = [
            await self.file_client.download_file_bytes(ref) for ref in info.photo_refs
        ]
        result = await self.vision_service.run_full_analysis(
            FullAnalysisRequest(
                user_id=job.user_id,
                photos=photos,
                survey_answers={
                    f"question{number}": answer.to_dict()
                    for number, answer in sorted(info.survey_answers.items())
                },
                feelings=info.feelings,
            )
        )
        if not result.success:
            self.user_info_service.update(info, luscher_test_error=True)
            await self.messenger.send(
                ChatRef(job.chat_id), support_prompt(self.support_username)
            )
            raise AnalysisError(result.error or "Full analysis failed")

        record = self.analysis_repository.create(
            user_id=job.user_id,
            analysis_type=AnalysisType.DEFAULT,
            input_photo_ref=info.photo_refs[0],
            cost=ANALYSIS_COST,
        )
        self.user_info_service.update(
            info,
            analysis_id=record.id,
            description=result.full_answer,
            block_hypothesis=result.block_hypothesis,
            summary_text=result.short_summary,
            luscher_test_completed=True,
            luscher_test_error=False,
        )
        self.analysis_repository.complete(
            record.id,
            result_text=result.full_answer,
            summary_text=result.short_summary,
        )
