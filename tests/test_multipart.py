"""Tests for the streaming multipart/form-data encoder."""

import pytest

from video_processor.services.multipart import MultipartFormEncoder, iter_file

FILE_BYTES = bytes(range(256)) * 1024


@pytest.fixture
def upload_file(tmp_path):
    path = tmp_path / "merged.mp4"
    path.write_bytes(FILE_BYTES)
    return path


async def _collect(encoder: MultipartFormEncoder, chunk_size: int = 4096) -> bytes:
    return b"".join([chunk async for chunk in encoder.iter_body(chunk_size)])


class TestMultipartFormEncoder:
    @pytest.mark.asyncio
    async def test_content_length_matches_streamed_body(self, upload_file):
        encoder = MultipartFormEncoder({"policy": "p", "signature": "s"}, "k", "video/mp4", upload_file)

        body = await _collect(encoder)

        assert len(body) == encoder.content_length
        assert encoder.headers["Content-Length"] == str(len(body))

    @pytest.mark.asyncio
    async def test_part_order(self, upload_file):
        """Signer fields, key, Content-Type, file, closing boundary."""
        encoder = MultipartFormEncoder(
            {"policy": "p", "signature": "s"}, "k", "video/mp4", upload_file, boundary="BOUNDARY"
        )

        body = await _collect(encoder)

        expected_preamble = (
            b'--BOUNDARY\r\nContent-Disposition: form-data; name="policy"\r\n\r\np\r\n'
            b'--BOUNDARY\r\nContent-Disposition: form-data; name="signature"\r\n\r\ns\r\n'
            b'--BOUNDARY\r\nContent-Disposition: form-data; name="key"\r\n\r\nk\r\n'
            b'--BOUNDARY\r\nContent-Disposition: form-data; name="Content-Type"\r\n\r\nvideo/mp4\r\n'
            b'--BOUNDARY\r\nContent-Disposition: form-data; name="file"; filename="video.mp4"\r\n'
            b"Content-Type: video/mp4\r\n\r\n"
        )
        assert body == expected_preamble + FILE_BYTES + b"\r\n--BOUNDARY--\r\n"

    def test_signer_field_order_is_preserved(self, upload_file):
        fields = [("x-amz-signature", "3"), ("policy", "1"), ("x-amz-date", "2")]
        encoder = MultipartFormEncoder(fields, "k", "video/mp4", upload_file, boundary="B")

        preamble = encoder.preamble.decode()

        positions = [preamble.index(f'name="{name}"') for name, _ in fields]
        assert positions == sorted(positions)
        assert preamble.index('name="x-amz-date"') < preamble.index('name="key"')

    def test_headers(self, upload_file):
        encoder = MultipartFormEncoder({}, "k", "video/mp4", upload_file, boundary="B")

        assert encoder.headers["Content-Type"] == "multipart/form-data; boundary=B"
        assert encoder.content_length == len(encoder.preamble) + len(FILE_BYTES) + len(encoder.epilogue)

    def test_default_boundary_is_unique(self, upload_file):
        a = MultipartFormEncoder({}, "k", "video/mp4", upload_file)
        b = MultipartFormEncoder({}, "k", "video/mp4", upload_file)
        assert a.boundary != b.boundary
        assert a.boundary.startswith("----FormBoundary")


@pytest.mark.asyncio
async def test_iter_file_chunks(upload_file):
    chunks = [chunk async for chunk in iter_file(upload_file, chunk_size=1000)]

    assert all(len(c) <= 1000 for c in chunks)
    assert b"".join(chunks) == FILE_BYTES
