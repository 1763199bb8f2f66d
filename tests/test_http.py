"""
Tests for the retrying HTTP helpers.
"""
import httpx
import pytest

from reelgen.pipeline.errors import PipelineTimeout, UpstreamError
from reelgen.pipeline.http import create_client, download_bytes, request_with_backoff


def scripted_client(*responses):
    """Client whose transport answers with `responses` in order."""
    queue = list(responses)
    seen = []

    def handler(request):
        seen.append(request)
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    return create_client(transport=httpx.MockTransport(handler)), seen


class TestRequestWithBackoff:

    @pytest.mark.asyncio
    async def test_retries_gateway_errors_then_succeeds(self):
        client, seen = scripted_client(
            httpx.Response(503),
            httpx.Response(429, headers={"Retry-After": "0"}),
            httpx.Response(200, json={"ok": True}),
        )

        response = await request_with_backoff(
            client, "GET", "https://api.test/status", stage="video", retries=2, base_delay=0
        )

        assert response.json() == {"ok": True}
        assert len(seen) == 3

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        client, seen = scripted_client(httpx.Response(400, text="bad"))

        with pytest.raises(UpstreamError) as exc_info:
            await request_with_backoff(
                client, "GET", "https://api.test/status", stage="video", retries=3, base_delay=0
            )

        assert exc_info.value.status_code == 400
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self):
        client, seen = scripted_client(httpx.Response(502), httpx.Response(502))

        with pytest.raises(UpstreamError) as exc_info:
            await request_with_backoff(
                client, "GET", "https://api.test/status", stage="video", retries=1, base_delay=0
            )

        assert exc_info.value.status_code == 502
        assert len(seen) == 2

    @pytest.mark.asyncio
    async def test_transport_error_becomes_upstream_error(self):
        client, _ = scripted_client(httpx.ConnectError("refused"))

        with pytest.raises(UpstreamError, match="refused"):
            await request_with_backoff(client, "POST", "https://api.test/submit", stage="video")

    @pytest.mark.asyncio
    async def test_read_timeout_becomes_pipeline_timeout(self):
        client, _ = scripted_client(httpx.ReadTimeout("slow"))

        with pytest.raises(PipelineTimeout):
            await request_with_backoff(client, "GET", "https://api.test/status", stage="video")


class TestDownloadBytes:

    @pytest.mark.asyncio
    async def test_accumulates_body(self):
        client, _ = scripted_client(httpx.Response(200, content=b"x" * 5000))

        data = await download_bytes(client, "https://cdn/v.mp4", stage="video")

        assert data == b"x" * 5000

    @pytest.mark.asyncio
    async def test_non_2xx_is_fatal(self):
        client, seen = scripted_client(httpx.Response(404))

        with pytest.raises(UpstreamError) as exc_info:
            await download_bytes(client, "https://cdn/v.mp4", stage="video", retries=2, base_delay=0)

        assert exc_info.value.status_code == 404
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_retries_transient_fetch_errors(self):
        client, seen = scripted_client(httpx.Response(503), httpx.Response(200, content=b"mp4"))

        data = await download_bytes(client, "https://cdn/v.mp4", stage="video", retries=1, base_delay=0)

        assert data == b"mp4"
        assert len(seen) == 2
