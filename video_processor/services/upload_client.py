"""Upload a local file to an object store through a presigned target."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import httpx

from video_processor.config import get_settings
from video_processor.exceptions import UploadError
from video_processor.services.multipart import MultipartFormEncoder, iter_file
from video_processor.services.scratch import file_size_mb

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = frozenset({200, 201, 204})


@dataclass
class UploadTarget:
    """Presigned destination issued by the signing authority.

    ``fields`` are opaque and forwarded verbatim, in order.
    """

    url: str
    fields: dict[str, str] = field(default_factory=dict)
    object_key: str | None = None
    method: Literal["POST", "PUT"] = "POST"

    @property
    def is_form(self) -> bool:
        return self.method == "POST"


class UploadClient:
    def __init__(
        self,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.timeout_s = settings.upload_timeout_s if timeout_s is None else timeout_s
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport)

    async def _send(self, method: str, url: str, headers: dict[str, str], content) -> None:
        try:
            async with self._client() as client:
                response = await client.request(method, url, headers=headers, content=content)
        except httpx.HTTPError as e:
            logger.error(f"[UPLOAD] {method} {url} failed: {e}")
            raise UploadError(f"Upload failed: {e}") from e

        if response.status_code not in SUCCESS_STATUSES:
            logger.error(f"[UPLOAD] {method} rejected: {response.status_code} - {response.text}")
            raise UploadError(status=response.status_code, body=response.text)

    async def upload_multipart_form(
        self,
        target_url: str,
        form_fields: dict[str, str],
        object_key: str,
        file_path: str | Path,
        content_type: str = "video/mp4",
    ) -> None:
        """POST the file as multipart/form-data after the signed fields.

        Raises:
            UploadError: On transport failure or a status outside 200/201/204
        """
        encoder = MultipartFormEncoder(form_fields, object_key, content_type, file_path)
        logger.info(f"[UPLOAD] Uploading {file_size_mb(file_path):.2f} MB via POST...")
        await self._send("POST", target_url, encoder.headers, encoder.iter_body())
        logger.info("[UPLOAD] POST upload complete!")

    async def upload_put(
        self,
        target_url: str,
        file_path: str | Path,
        content_type: str = "video/mp4",
    ) -> None:
        """PUT the file as the raw request body.

        Raises:
            UploadError: On transport failure or a status outside 200/201/204
        """
        headers = {
            "Content-Type": content_type,
            "Content-Length": str(os.path.getsize(file_path)),
        }
        logger.info(f"[UPLOAD] Uploading {file_size_mb(file_path):.2f} MB via PUT...")
        await self._send("PUT", target_url, headers, iter_file(file_path))
        logger.info("[UPLOAD] PUT upload complete!")

    async def upload(self, target: UploadTarget, file_path: str | Path, content_type: str = "video/mp4") -> None:
        """Upload using whichever mode the target was issued for."""
        if target.is_form:
            if not target.object_key:
                raise UploadError("Upload target has no object key")
            await self.upload_multipart_form(target.url, target.fields, target.object_key, file_path, content_type)
        else:
            await self.upload_put(target.url, file_path, content_type)
