"""
Pytest configuration and fixtures for the reel pipeline tests.

Backends are served by one httpx.MockTransport handler (FakeBackends) and
the bucket by an in-memory S3 stand-in (FakeS3). Public storage URLs are
routed back to FakeS3, so an artifact URL only resolves once it has been
uploaded.
"""
import base64
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from reelgen import metrics
from reelgen.config import Settings
from reelgen.pipeline.http import create_client
from reelgen.pipeline.orchestrator import PipelineOrchestrator
from reelgen.pipeline.storage import ArtifactStore

BUCKET = "highlights"
STORAGE_HOST = "storage.googleapis.com"
OUTPUT_URL = "https://cdn/example.mp4"
SCRIPT_TEXT = "Cricket began in southern England and grew into a global obsession."


class FakeS3:
    """Just enough of the boto3 S3 client for ArtifactStore."""

    def __init__(self):
        self.objects: dict[str, dict] = {}
        self.put_calls: list[dict] = []
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def put_object(self, **kwargs):
        self.put_calls.append(kwargs)
        self._clock += timedelta(seconds=1)
        self.objects[kwargs["Key"]] = {**kwargs, "LastModified": self._clock}
        return {"ETag": '"fake"'}

    def list_objects_v2(self, Bucket, Prefix=""):
        contents = [
            {"Key": key, "LastModified": obj["LastModified"]}
            for key, obj in self.objects.items()
            if key.startswith(Prefix)
        ]
        return {"Contents": contents} if contents else {}


class FakeBackends:
    """Gemini, Text-to-Speech, Runway, the output CDN and public storage in one handler."""

    def __init__(self, s3: FakeS3):
        self.s3 = s3
        self.script_text = SCRIPT_TEXT
        self.script_status = 200
        self.script_body = None
        self.audio = b"ID3\x04fake-mp3-audio"
        self.tts_status = 200
        self.tts_body = None
        self.job_id = "42"
        self.statuses = ["RUNNING", "RUNNING", "SUCCEEDED"]
        self.output = [OUTPUT_URL]
        self.failure = "Content moderation rejected the input"
        self.video = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 2048
        self.video_fetch_status = 200
        self.requests: list[httpx.Request] = []
        self.script_fetches: list[tuple[str, int]] = []
        self.submitted_payloads: list[dict] = []

    # ── Call accounting ──────────────────────────────────────────────────

    def count(self, method: str, fragment: str) -> int:
        return sum(
            1 for r in self.requests
            if r.method == method and fragment in str(r.url)
        )

    @property
    def status_queries(self) -> int:
        return self.count("GET", f"/tasks/{self.job_id}")

    @property
    def output_fetches(self) -> int:
        return self.count("GET", OUTPUT_URL)

    @property
    def backend_calls(self) -> int:
        return len(self.requests)

    # ── Handler ──────────────────────────────────────────────────────────

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)

        if ":generateContent" in url:
            if self.script_status != 200:
                return httpx.Response(self.script_status, json={"error": {"message": "boom"}})
            if self.script_body is not None:
                return httpx.Response(200, json=self.script_body)
            parts = [{"text": self.script_text}] if self.script_text else []
            return httpx.Response(200, json={"candidates": [{"content": {"parts": parts}}]})

        if url.endswith("/text:synthesize") or "/text:synthesize?" in url:
            if self.tts_status != 200:
                return httpx.Response(self.tts_status, json={"error": "tts down"})
            if self.tts_body is not None:
                return httpx.Response(200, json=self.tts_body)
            encoded = base64.b64encode(self.audio).decode("ascii")
            return httpx.Response(200, json={"audioContent": encoded})

        if request.url.path.endswith("/image_to_video"):
            self.submitted_payloads.append(json.loads(request.content))
            return httpx.Response(200, json={"id": self.job_id})

        if request.url.path.endswith(f"/tasks/{self.job_id}"):
            status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
            record = {"id": self.job_id, "status": status}
            if status == "SUCCEEDED":
                record["output"] = self.output
            if status == "FAILED":
                record["failure"] = self.failure
                record["failureCode"] = "SAFETY"
            return httpx.Response(200, json=record)

        if url == OUTPUT_URL:
            if self.video_fetch_status != 200:
                return httpx.Response(self.video_fetch_status)
            return httpx.Response(200, content=self.video)

        if request.url.host == STORAGE_HOST:
            key = request.url.path.removeprefix(f"/{BUCKET}/")
            obj = self.s3.objects.get(key)
            if obj is None:
                self.script_fetches.append((key, 404))
                return httpx.Response(404, text="NoSuchKey")
            self.script_fetches.append((key, 200))
            return httpx.Response(
                200, content=obj["Body"], headers={"Content-Type": obj["ContentType"]}
            )

        return httpx.Response(404, text=f"unrouted {request.method} {url}")


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def settings():
    return Settings(
        gemini_api_key="test-gemini-key",
        tts_api_key="test-tts-key",
        runway_api_key="test-runway-key",
        bucket_name=BUCKET,
        storage_access_key_id="GOOG-test",
        storage_secret_access_key="secret",
        poll_interval=0.0,
        poll_timeout=5.0,
        retry_base_delay=0.0,
        pipeline_timeout=10.0,
    )


@pytest.fixture
def fake_s3():
    return FakeS3()


@pytest.fixture
def backends(fake_s3):
    return FakeBackends(fake_s3)


@pytest.fixture
def http_client(backends):
    return create_client(timeout=5.0, transport=httpx.MockTransport(backends.handler))


@pytest.fixture
def store(settings, fake_s3):
    return ArtifactStore(settings, s3_client=fake_s3)


@pytest.fixture
def orchestrator(settings, store, http_client):
    return PipelineOrchestrator(settings, store=store, client=http_client)


@pytest.fixture
def sample_photo():
    """~17KB of JPEG-looking bytes."""
    return b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x42" * (17 * 1024) + b"\xff\xd9"
