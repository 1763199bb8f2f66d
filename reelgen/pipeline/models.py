"""
Data models and enums for the highlight reel pipeline.
"""

import time
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ── Artifacts ────────────────────────────────────────────────────────────────

class ArtifactKind(str, Enum):
    SCRIPT = "script"
    AUDIO = "audio"
    VIDEO = "video"

    @property
    def extension(self) -> str:
        return _ARTIFACT_FORMATS[self][0]

    @property
    def mime_type(self) -> str:
        return _ARTIFACT_FORMATS[self][1]


_ARTIFACT_FORMATS = {
    ArtifactKind.SCRIPT: ("txt", "text/plain"),
    ArtifactKind.AUDIO: ("mp3", "audio/mpeg"),
    ArtifactKind.VIDEO: ("mp4", "video/mp4"),
}


class StorageCategory(str, Enum):
    TEMP = "temp"  # intermediate pipeline outputs
    REEL = "reel"  # curated / published reels

    @property
    def prefix(self) -> str:
        return f"{self.value}/"


@dataclass(frozen=True)
class Artifact:
    name: str
    mime_type: str
    content: Union[bytes, str]
    category: StorageCategory = StorageCategory.TEMP

    @classmethod
    def for_request(
        cls,
        kind: ArtifactKind,
        request_id: str,
        content: Union[bytes, str],
        category: StorageCategory = StorageCategory.TEMP,
    ) -> "Artifact":
        """Build the artifact named `{kind}-{request_id}.{ext}`."""
        return cls(
            name=artifact_name(kind, request_id),
            mime_type=kind.mime_type,
            content=content,
            category=category,
        )

    @property
    def size(self) -> int:
        if isinstance(self.content, str):
            return len(self.content.encode("utf-8"))
        return len(self.content)


def artifact_name(kind: ArtifactKind, request_id: str) -> str:
    return f"{kind.value}-{request_id}.{kind.extension}"


@dataclass(frozen=True)
class StoredAsset:
    """Acknowledgement that an artifact is persisted and publicly readable."""
    name: str
    url: str
    size: int


# ── Requests ─────────────────────────────────────────────────────────────────

def new_request_id() -> str:
    """Millisecond timestamp plus a random suffix, unique across concurrent requests."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"


@dataclass(frozen=True)
class GenerationRequest:
    sport: str
    photo: bytes
    request_id: str
    photo_mime_type: str = "image/jpeg"

    @classmethod
    def create(cls, sport: str, photo: bytes, photo_mime_type: str = "image/jpeg") -> "GenerationRequest":
        return cls(
            sport=sport.strip(),
            photo=photo,
            request_id=new_request_id(),
            photo_mime_type=photo_mime_type or "image/jpeg",
        )


# ── Results ──────────────────────────────────────────────────────────────────

class PipelineResult(BaseModel):
    """URLs of the three persisted artifacts. Only built on success."""

    model_config = ConfigDict(populate_by_name=True)

    request_id: str = Field(alias="requestId")
    script_url: str = Field(alias="scriptURL")
    voiceover_url: str = Field(alias="voiceoverURL")
    video_url: str = Field(alias="videoURL")


# ── Pipeline Status ──────────────────────────────────────────────────────────

class PipelineStatus(str, Enum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class PipelineStage(str, Enum):
    SCRIPT = "script"
    VOICEOVER = "voiceover"
    VIDEO = "video"


class PipelineStatusResponse(BaseModel):
    request_id: str
    status: PipelineStatus
    completed_stages: list[PipelineStage] = Field(default_factory=list)
    script_url: Optional[str] = None
    voiceover_url: Optional[str] = None
    video_url: Optional[str] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None


# ── API Request / Response Models ────────────────────────────────────────────

class GenerateVideoRequest(BaseModel):
    """Body posted by the create page."""
    sports: str = Field(..., description="Sport name, e.g. 'cricket'")
    photo: str = Field(..., description="Photo as base64 or a data: URI")


class GenerateVideoResponse(BaseModel):
    status: int
    data: dict = Field(default_factory=dict)
    errors: dict = Field(default_factory=dict)


class ReelsResponse(BaseModel):
    status: int = 200
    data: dict = Field(default_factory=dict)
    errors: dict = Field(default_factory=dict)
