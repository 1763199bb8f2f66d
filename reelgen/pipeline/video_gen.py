"""
Stage 3: Video — Runway image-to-video.

Submit → poll → fetch:
  POST /image_to_video   → { id }
  GET  /tasks/{id}       → { status, output: [url, ...], failure }
  GET  output[0]         → mp4 bytes

Image-to-video runs for minutes on the backend, so the only integration is
submit-then-poll; see polling.JobPoller for the bounded wait.
"""

import base64
import logging

import httpx

from ..config import Settings
from .errors import UpstreamError, ValidationError
from .http import request_with_backoff, download_bytes, json_body
from .polling import JobPoller, JobStatus, VideoJob

logger = logging.getLogger(__name__)

STAGE = "video"


def photo_data_uri(photo: bytes, mime_type: str = "image/jpeg") -> str:
    encoded = base64.b64encode(photo).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


class VideoGenerator:
    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        self.settings = settings
        self.client = client

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.settings.runway_api_key}",
            "X-Runway-Version": self.settings.runway_api_version,
        }

    def _url(self, path: str) -> str:
        return f"{self.settings.runway_api_base.rstrip('/')}/{path.lstrip('/')}"

    def build_payload(self, photo: bytes, mime_type: str) -> dict:
        return {
            "model": self.settings.video_model,
            "promptImage": photo_data_uri(photo, mime_type),
            "promptText": self.settings.video_prompt,
            "duration": self.settings.video_duration,
            "ratio": self.settings.video_ratio,
            "watermark": False,
        }

    # ── Backend calls ────────────────────────────────────────────────────

    async def submit(self, photo: bytes, mime_type: str = "image/jpeg") -> VideoJob:
        response = await request_with_backoff(
            self.client,
            "POST",
            self._url("image_to_video"),
            stage=STAGE,
            headers=self._headers(),
            json=self.build_payload(photo, mime_type),
        )
        data = json_body(response, STAGE)

        job_id = data.get("id")
        if not job_id:
            raise UpstreamError(f"video submit returned no job id: {data}", STAGE)

        logger.info(f"Video job submitted: job_id={job_id}")
        return VideoJob(job_id=str(job_id))

    async def read_status(self, job_id: str) -> dict:
        response = await request_with_backoff(
            self.client,
            "GET",
            self._url(f"tasks/{job_id}"),
            stage=STAGE,
            headers=self._headers(),
            retries=self.settings.read_retries,
            base_delay=self.settings.retry_base_delay,
        )
        return json_body(response, STAGE)

    def poller(self) -> JobPoller:
        return JobPoller(
            self.read_status,
            interval=self.settings.poll_interval,
            timeout=self.settings.poll_timeout,
            max_attempts=self.settings.max_poll_attempts,
            stage=STAGE,
        )

    # ── Stage entry point ────────────────────────────────────────────────

    async def generate(self, sport: str, photo: bytes, mime_type: str = "image/jpeg") -> bytes:
        """Animate `photo` into a short clip and return the mp4 bytes."""
        if not photo:
            raise ValidationError("photo must not be empty", STAGE)

        logger.info(f"Generating {self.settings.video_duration}s clip for '{sport}'")
        job = await self.submit(photo, mime_type)
        job = await self.poller().wait(job)

        if job.status == JobStatus.FAILED:
            raise UpstreamError(f"video job {job.job_id} failed: {job.failure}", STAGE)

        if not job.output_url:
            raise UpstreamError(f"job {job.job_id} succeeded but produced no output", STAGE)

        video = await download_bytes(
            self.client,
            job.output_url,
            stage=STAGE,
            timeout=self.settings.download_timeout,
            retries=self.settings.read_retries,
            base_delay=self.settings.retry_base_delay,
        )
        if not video:
            raise UpstreamError(f"video output at {job.output_url} is empty", STAGE)
        return video
