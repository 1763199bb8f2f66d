"""
Highlight Reel Pipeline

Turns a sport name and a photo into three public artifacts:
  Narration — Script (Gemini) → Voiceover (Google TTS, read back from the stored script)
  Video     — Runway image-to-video, submit + bounded poll
Every artifact is uploaded to temp/ in the bucket as soon as it exists.
"""

from .errors import PipelineError, ValidationError, UpstreamError, PipelineTimeout
from .models import GenerationRequest, PipelineResult, PipelineStatus
from .orchestrator import PipelineOrchestrator
from .routes import pipeline_router
from .storage import ArtifactStore

__all__ = [
    "PipelineOrchestrator",
    "ArtifactStore",
    "pipeline_router",
    "GenerationRequest",
    "PipelineResult",
    "PipelineStatus",
    "PipelineError",
    "ValidationError",
    "UpstreamError",
    "PipelineTimeout",
]
