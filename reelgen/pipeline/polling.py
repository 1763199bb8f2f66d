"""
Polling state machine for asynchronous generation jobs.

    SUBMITTED → POLLING* → SUCCEEDED | FAILED | TIMED_OUT

Each step sleeps `interval` (never past the deadline), reads the job status
and folds it into the VideoJob. The loop is bounded by a monotonic deadline
and, optionally, an attempt cap; running out of either raises
PipelineTimeout. Suspension is asyncio.sleep, so cancelling the awaiting
task stops further status queries.
"""

import time
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from .errors import PipelineTimeout, UpstreamError

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


# Backend statuses that are not in our vocabulary
_STATUS_ALIASES = {
    "QUEUED": JobStatus.PENDING,
    "THROTTLED": JobStatus.PENDING,
    "IN_QUEUE": JobStatus.PENDING,
    "IN_PROGRESS": JobStatus.RUNNING,
    "PROCESSING": JobStatus.RUNNING,
    "SUCCESS": JobStatus.SUCCEEDED,
    "COMPLETED": JobStatus.SUCCEEDED,
    "CANCELLED": JobStatus.FAILED,
    "CANCELED": JobStatus.FAILED,
    "ERROR": JobStatus.FAILED,
}


def normalize_status(raw: Any) -> JobStatus:
    """Map a backend status string onto JobStatus. Unknown values count as RUNNING."""
    value = str(raw or "").strip().upper()
    if value in JobStatus.__members__:
        return JobStatus[value]
    if value in _STATUS_ALIASES:
        return _STATUS_ALIASES[value]
    if value:
        logger.warning(f"Unknown job status '{raw}', treating as RUNNING")
    return JobStatus.RUNNING


@dataclass
class VideoJob:
    job_id: str
    status: JobStatus = JobStatus.PENDING
    output_urls: list[str] = field(default_factory=list)
    failure: Optional[str] = None
    attempts: int = 0

    @property
    def output_url(self) -> Optional[str]:
        return self.output_urls[0] if self.output_urls else None

    def apply(self, record: dict, stage: str = "video"):
        """Fold one status read into the job."""
        self.attempts += 1
        self.status = normalize_status(record.get("status"))

        output = record.get("output") or []
        if isinstance(output, str):
            output = [output]
        elif not isinstance(output, list):
            raise UpstreamError(f"job {self.job_id} returned unexpected output: {output!r:.200}", stage)
        self.output_urls = [url for url in output if isinstance(url, str) and url]

        if self.status == JobStatus.FAILED:
            reason = record.get("failure") or record.get("error") or "unknown failure"
            code = record.get("failureCode")
            self.failure = f"{reason} ({code})" if code else str(reason)


class PollState(str, Enum):
    SUBMITTED = "SUBMITTED"
    POLLING = "POLLING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"


StatusReader = Callable[[str], Awaitable[dict]]


class JobPoller:
    """
    Drives a VideoJob to a terminal status.

    Args:
        read_status:  Coroutine returning the raw status record for a job id.
        interval:     Seconds to wait before each status read.
        timeout:      Wall-clock budget for the whole wait.
        max_attempts: Optional cap on status reads.
        clock:        Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        read_status: StatusReader,
        interval: float,
        timeout: float,
        max_attempts: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        stage: str = "video",
    ):
        self.read_status = read_status
        self.interval = max(interval, 0.0)
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.clock = clock
        self.stage = stage
        self.state = PollState.SUBMITTED

    def _transition(self, job: VideoJob, state: PollState):
        if state != self.state:
            logger.info(f"Job {job.job_id}: {self.state.value} → {state.value}")
        self.state = state

    def _time_out(self, job: VideoJob, reason: str):
        self._transition(job, PollState.TIMED_OUT)
        raise PipelineTimeout(
            f"job {job.job_id} still {job.status.value} after {job.attempts} polls: {reason}",
            self.stage,
        )

    async def wait(self, job: VideoJob) -> VideoJob:
        deadline = self.clock() + self.timeout

        while True:
            remaining = deadline - self.clock()
            if remaining <= 0:
                self._time_out(job, f"exceeded {self.timeout:.0f}s budget")
            if self.max_attempts is not None and job.attempts >= self.max_attempts:
                self._time_out(job, f"reached {self.max_attempts} attempts")

            await asyncio.sleep(min(self.interval, remaining))

            record = await self.read_status(job.job_id)
            job.apply(record, self.stage)
            self._transition(job, PollState.POLLING)
            logger.info(f"Job {job.job_id} poll #{job.attempts}: status={job.status.value}")

            if job.status == JobStatus.SUCCEEDED:
                self._transition(job, PollState.SUCCEEDED)
                return job
            if job.status == JobStatus.FAILED:
                self._transition(job, PollState.FAILED)
                return job
