"""Streaming multipart/form-data encoder for presigned POST uploads.

The body layout is fixed: signer fields in the order supplied, then ``key``,
then ``Content-Type``, then the file part, then the closing boundary. The
length is known before the first byte is sent so the request never falls
back to chunked transfer encoding.
"""

import os
import uuid
from collections.abc import AsyncIterator, Iterable, Mapping
from pathlib import Path

CRLF = "\r\n"
DEFAULT_CHUNK_SIZE = 64 * 1024


class MultipartFormEncoder:
    def __init__(
        self,
        fields: Mapping[str, str] | Iterable[tuple[str, str]],
        object_key: str,
        content_type: str,
        file_path: str | Path,
        boundary: str | None = None,
        filename: str = "video.mp4",
    ) -> None:
        items = fields.items() if isinstance(fields, Mapping) else fields
        self.fields: list[tuple[str, str]] = [(str(k), str(v)) for k, v in items]
        self.object_key = object_key
        self.file_content_type = content_type
        self.file_path = Path(file_path)
        self.filename = filename
        self.boundary = boundary or f"----FormBoundary{uuid.uuid4().hex}"
        self.file_size = os.path.getsize(self.file_path)
        self._preamble = self._build_preamble()
        self._epilogue = f"{CRLF}--{self.boundary}--{CRLF}".encode("utf-8")

    def _text_part(self, name: str, value: str) -> str:
        return (
            f"--{self.boundary}{CRLF}"
            f'Content-Disposition: form-data; name="{name}"{CRLF}{CRLF}'
            f"{value}{CRLF}"
        )

    def _build_preamble(self) -> bytes:
        parts = [self._text_part(name, value) for name, value in self.fields]
        parts.append(self._text_part("key", self.object_key))
        parts.append(self._text_part("Content-Type", self.file_content_type))
        parts.append(
            f"--{self.boundary}{CRLF}"
            f'Content-Disposition: form-data; name="file"; filename="{self.filename}"{CRLF}'
            f"Content-Type: {self.file_content_type}{CRLF}{CRLF}"
        )
        return "".join(parts).encode("utf-8")

    @property
    def preamble(self) -> bytes:
        return self._preamble

    @property
    def epilogue(self) -> bytes:
        return self._epilogue

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    @property
    def content_length(self) -> int:
        return len(self._preamble) + self.file_size + len(self._epilogue)

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": self.content_type,
            "Content-Length": str(self.content_length),
        }

    async def iter_body(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        """Yield the body; the file is read from disk chunk by chunk."""
        yield self._preamble
        async for chunk in iter_file(self.file_path, chunk_size):
            yield chunk
        yield self._epilogue


async def iter_file(path: str | Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Yield a file's bytes without loading it whole."""
    with open(path, "rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            yield chunk
