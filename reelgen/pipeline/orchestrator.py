"""
PipelineOrchestrator — turns (sport, photo) into three public artifact URLs.

Two independent chains, joined before returning:
  Narration: Script (Gemini) → upload → Voiceover (TTS, from script URL) → upload
  Video:     Image-to-video (Runway, submit + poll) → upload

A stage is one generator call plus its upload. The first fatal error from
either chain cancels the other and fails the whole run; already uploaded
temp/ objects are left for the bucket lifecycle policy to collect.
"""

import time
import asyncio
import logging
from typing import Awaitable, Callable, Optional, Union

import httpx

from .. import metrics
from ..config import Settings, get_settings
from .errors import PipelineError, PipelineTimeout, ValidationError
from .http import create_client
from .models import (
    Artifact,
    ArtifactKind,
    GenerationRequest,
    PipelineResult,
    PipelineStage,
    PipelineStatus,
    PipelineStatusResponse,
)
from .script_gen import ScriptGenerator
from .storage import ArtifactStore
from .video_gen import VideoGenerator
from .voiceover import VoiceoverGenerator

logger = logging.getLogger(__name__)

MAX_TRACKED_REQUESTS = 500

_STAGE_ARTIFACTS = {
    PipelineStage.SCRIPT: (ArtifactKind.SCRIPT, "script_url"),
    PipelineStage.VOICEOVER: (ArtifactKind.AUDIO, "voiceover_url"),
    PipelineStage.VIDEO: (ArtifactKind.VIDEO, "video_url"),
}


class PipelineOrchestrator:
    """
    Usage:
        orchestrator = PipelineOrchestrator(settings)

        # Blocking: wait for all three URLs
        result = await orchestrator.run("cricket", photo_bytes)

        # Fire-and-forget: poll get_status(request_id) afterwards
        status = orchestrator.submit("cricket", photo_bytes)

        await orchestrator.aclose()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        store: Optional[ArtifactStore] = None,
        client: Optional[httpx.AsyncClient] = None,
        script_generator: Optional[ScriptGenerator] = None,
        voiceover_generator: Optional[VoiceoverGenerator] = None,
        video_generator: Optional[VideoGenerator] = None,
    ):
        self.settings = settings or get_settings()
        self._owns_client = client is None
        self.client = client or create_client(self.settings.http_timeout)
        self.store = store or ArtifactStore(self.settings)
        self.script_generator = script_generator or ScriptGenerator(self.settings, self.client)
        self.voiceover_generator = voiceover_generator or VoiceoverGenerator(self.settings, self.client)
        self.video_generator = video_generator or VideoGenerator(self.settings, self.client)

        self._jobs: dict[str, PipelineStatusResponse] = {}
        self._background: set[asyncio.Task] = set()

    async def aclose(self):
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        if self._owns_client:
            await self.client.aclose()

    # ── Status tracking ──────────────────────────────────────────────────

    def get_status(self, request_id: str) -> Optional[PipelineStatusResponse]:
        """Progress of a request handled by this process, if still tracked."""
        return self._jobs.get(request_id)

    def _update_status(self, request_id: str, **changes):
        current = self._jobs.get(request_id)
        if current is None:
            current = PipelineStatusResponse(request_id=request_id, status=PipelineStatus.QUEUED)
            self._evict_finished()
        self._jobs[request_id] = current.model_copy(update=changes)

    def _evict_finished(self):
        """Drop the oldest finished requests once the map is full; in-flight ones stay."""
        excess = len(self._jobs) - MAX_TRACKED_REQUESTS + 1
        if excess <= 0:
            return
        finished = [
            rid for rid, status in self._jobs.items()
            if status.status in (PipelineStatus.COMPLETED, PipelineStatus.FAILED)
        ]
        for rid in finished[:excess]:
            del self._jobs[rid]

    def _complete_stage(self, request_id: str, stage: PipelineStage, url: str):
        current = self._jobs.get(request_id) or PipelineStatusResponse(
            request_id=request_id, status=PipelineStatus.RUNNING
        )
        _, field = _STAGE_ARTIFACTS[stage]
        self._update_status(
            request_id,
            completed_stages=[*current.completed_stages, stage],
            **{field: url},
        )

    # ── Request entry ────────────────────────────────────────────────────

    @staticmethod
    def validate(sport: str, photo: bytes):
        if not isinstance(sport, str) or not sport.strip():
            raise ValidationError("sport must be a non-empty string")
        if not photo:
            raise ValidationError("photo must not be empty")

    def create_request(
        self, sport: str, photo: bytes, photo_mime_type: str = "image/jpeg"
    ) -> GenerationRequest:
        """Validate input and mint the request id that names every artifact."""
        self.validate(sport, photo)
        return GenerationRequest.create(sport, photo, photo_mime_type)

    async def run(
        self, sport: str, photo: bytes, photo_mime_type: str = "image/jpeg"
    ) -> PipelineResult:
        """Run the full pipeline and return the three artifact URLs."""
        request = self.create_request(sport, photo, photo_mime_type)
        return await self.execute(request)

    def submit(
        self, sport: str, photo: bytes, photo_mime_type: str = "image/jpeg"
    ) -> PipelineStatusResponse:
        """Start the pipeline in the background; validation errors still raise here."""
        request = self.create_request(sport, photo, photo_mime_type)
        self._update_status(request.request_id, status=PipelineStatus.QUEUED)

        task = asyncio.create_task(
            self._run_background(request), name=f"pipeline-{request.request_id}"
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return self._jobs[request.request_id]

    async def _run_background(self, request: GenerationRequest):
        try:
            await self.execute(request)
        except PipelineError:
            # Already logged and recorded in the status map by execute()
            pass

    # ── Execution ────────────────────────────────────────────────────────

    async def execute(self, request: GenerationRequest) -> PipelineResult:
        rid = request.request_id
        self._update_status(rid, status=PipelineStatus.RUNNING)
        metrics.inc_counter("pipeline.started")
        metrics.add_gauge("pipeline.active", 1)
        logger.info(f"[{rid}] Pipeline started for sport='{request.sport}' ({len(request.photo)} byte photo)")
        started = time.perf_counter()

        try:
            try:
                script_url, voiceover_url, video_url = await asyncio.wait_for(
                    self._run_chains(request), timeout=self.settings.pipeline_timeout
                )
            except asyncio.TimeoutError as e:
                raise PipelineTimeout(
                    f"pipeline exceeded {self.settings.pipeline_timeout:.0f}s budget"
                ) from e
        except PipelineError as e:
            logger.error(f"[{rid}] Pipeline failed ({e.kind}): {e}", exc_info=True)
            metrics.inc_counter(f"pipeline.failed.{e.kind}")
            metrics.record_error(e.stage or "pipeline", e.kind, str(e), rid)
            self._update_status(rid, status=PipelineStatus.FAILED, error_kind=e.kind, error=str(e))
            raise
        except Exception as e:
            logger.error(f"[{rid}] Pipeline crashed: {e}", exc_info=True)
            metrics.inc_counter("pipeline.failed.internal")
            self._update_status(rid, status=PipelineStatus.FAILED, error_kind="internal", error=str(e))
            raise
        finally:
            metrics.add_gauge("pipeline.active", -1)
            metrics.record_latency("pipeline", (time.perf_counter() - started) * 1000)

        self._update_status(rid, status=PipelineStatus.COMPLETED)
        metrics.inc_counter("pipeline.completed")
        logger.info(f"[{rid}] Pipeline complete")

        return PipelineResult(
            request_id=rid,
            script_url=script_url,
            voiceover_url=voiceover_url,
            video_url=video_url,
        )

    async def _run_chains(self, request: GenerationRequest) -> tuple[str, str, str]:
        if not self.settings.parallel_stages:
            script_url, voiceover_url = await self._narration_chain(request)
            video_url = await self._video_chain(request)
            return script_url, voiceover_url, video_url

        narration = asyncio.create_task(
            self._narration_chain(request), name=f"narration-{request.request_id}"
        )
        video = asyncio.create_task(
            self._video_chain(request), name=f"video-{request.request_id}"
        )
        chains = (narration, video)

        try:
            done, _ = await asyncio.wait(chains, return_when=asyncio.FIRST_EXCEPTION)
            for chain in chains:
                if chain in done and chain.exception() is not None:
                    raise chain.exception()
        finally:
            for chain in chains:
                if not chain.done():
                    chain.cancel()
            await asyncio.gather(*chains, return_exceptions=True)

        script_url, voiceover_url = narration.result()
        return script_url, voiceover_url, video.result()

    async def _narration_chain(self, request: GenerationRequest) -> tuple[str, str]:
        script_url = await self._run_stage(
            request,
            PipelineStage.SCRIPT,
            lambda: self.script_generator.generate(request.sport),
        )
        # The script must be durably stored before synthesis reads it back
        voiceover_url = await self._run_stage(
            request,
            PipelineStage.VOICEOVER,
            lambda: self.voiceover_generator.synthesize(script_url),
        )
        return script_url, voiceover_url

    async def _video_chain(self, request: GenerationRequest) -> str:
        return await self._run_stage(
            request,
            PipelineStage.VIDEO,
            lambda: self.video_generator.generate(
                request.sport, request.photo, request.photo_mime_type
            ),
        )

    async def _run_stage(
        self,
        request: GenerationRequest,
        stage: PipelineStage,
        produce: Callable[[], Awaitable[Union[bytes, str]]],
    ) -> str:
        """Run one generator, upload its output, return the public URL."""
        rid = request.request_id
        kind, _ = _STAGE_ARTIFACTS[stage]
        logger.info(f"[{rid}] {stage.value}: generating")

        try:
            with metrics.timed(f"stage.{stage.value}"):
                content = await produce()
                artifact = Artifact.for_request(kind, rid, content)
                stored = await self.store.upload_artifact(artifact)
        except PipelineError as e:
            if not e.stage:
                e.stage = stage.value
            metrics.inc_counter(f"stage.{stage.value}.failed")
            raise

        metrics.inc_counter(f"stage.{stage.value}.completed")
        self._complete_stage(rid, stage, stored.url)
        logger.info(f"[{rid}] {stage.value}: stored {stored.name} ({stored.size} bytes) → {stored.url}")
        return stored.url
