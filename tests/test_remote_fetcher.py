"""Tests for the remote fetcher using httpx.MockTransport."""

import httpx
import pytest

from video_processor.exceptions import FetchError
from video_processor.services.remote_fetcher import RemoteFetcher

VIDEO_BYTES = b"explainer-video-content" * 1000


def _fetcher(handler, **kwargs) -> RemoteFetcher:
    return RemoteFetcher(transport=httpx.MockTransport(handler), timeout_s=5, **kwargs)


class TestRemoteFetcher:
    @pytest.mark.asyncio
    async def test_downloads_body_to_destination(self, tmp_path):
        dest = tmp_path / "explainer.mp4"
        fetcher = _fetcher(lambda request: httpx.Response(200, content=VIDEO_BYTES))

        result = await fetcher.fetch("https://cdn.test/video.mp4", dest)

        assert result == dest
        assert dest.read_bytes() == VIDEO_BYTES

    @pytest.mark.asyncio
    async def test_follows_single_redirect(self, tmp_path):
        """302 once, then 200: the final body is written."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            if request.url.path == "/start":
                return httpx.Response(302, headers={"Location": "/final.mp4"})
            return httpx.Response(200, content=VIDEO_BYTES)

        dest = tmp_path / "explainer.mp4"
        await _fetcher(handler).fetch("https://cdn.test/start", dest)

        assert seen == ["https://cdn.test/start", "https://cdn.test/final.mp4"]
        assert dest.read_bytes() == VIDEO_BYTES

    @pytest.mark.asyncio
    async def test_follows_301_to_other_host(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "old.test":
                return httpx.Response(301, headers={"Location": "https://new.test/v.mp4"})
            return httpx.Response(200, content=b"moved")

        dest = tmp_path / "v.mp4"
        await _fetcher(handler).fetch("https://old.test/v.mp4", dest)

        assert dest.read_bytes() == b"moved"

    @pytest.mark.asyncio
    async def test_redirect_loop_is_bounded(self, tmp_path):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url)
            return httpx.Response(302, headers={"Location": "/loop"})

        dest = tmp_path / "loop.mp4"
        with pytest.raises(FetchError) as exc_info:
            await _fetcher(handler, max_redirects=5).fetch("https://cdn.test/loop", dest)

        assert "too many redirects" in exc_info.value.message
        assert len(calls) == 6
        assert not dest.exists()

    @pytest.mark.asyncio
    async def test_redirect_without_location_fails(self, tmp_path):
        dest = tmp_path / "x.mp4"
        with pytest.raises(FetchError) as exc_info:
            await _fetcher(lambda r: httpx.Response(302)).fetch("https://cdn.test/x", dest)
        assert exc_info.value.status == 302

    @pytest.mark.asyncio
    async def test_non_2xx_raises_and_leaves_no_file(self, tmp_path):
        dest = tmp_path / "missing.mp4"
        dest.write_bytes(b"stale partial")

        with pytest.raises(FetchError) as exc_info:
            await _fetcher(lambda r: httpx.Response(404, text="nope")).fetch("https://cdn.test/x", dest)

        assert exc_info.value.status == 404
        assert exc_info.value.message == "Download failed: 404"
        assert not dest.exists()

    @pytest.mark.asyncio
    async def test_network_error_raises_fetch_error(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        dest = tmp_path / "x.mp4"
        with pytest.raises(FetchError):
            await _fetcher(handler).fetch("https://cdn.test/x", dest)
        assert not dest.exists()

    @pytest.mark.asyncio
    async def test_unwritable_destination_raises_fetch_error(self, tmp_path):
        dest = tmp_path / "no-such-dir" / "x.mp4"
        with pytest.raises(FetchError):
            await _fetcher(lambda r: httpx.Response(200, content=b"x")).fetch("https://cdn.test/x", dest)
