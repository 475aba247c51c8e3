"""Tekmetric REST client.

Covers the four calls the service makes: issuing a presigned upload target,
updating an inspection task, searching repair orders and listing a repair
order's inspections. All calls authenticate with ``x-auth-token``.
"""

import json
import logging
from typing import Any

import httpx

from video_processor.config import get_settings
from video_processor.exceptions import UploadTargetError, UpstreamError
from video_processor.services.upload_client import UploadTarget

logger = logging.getLogger(__name__)

RATINGS: dict[str, tuple[int, str]] = {
    "GOOD": (1, "Good"),
    "MAYRQRATTN": (2, "May Require Attention"),
    "RQRSATTN": (3, "Requires Immediate Attention"),
}
DEFAULT_RATING = "RQRSATTN"


def build_task_update(
    task_id: int,
    rating: str | None = None,
    task_name: str | None = None,
    description: str | None = None,
    task_data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the inspection task PUT body.

    Unknown or missing ratings fall back to "Requires Immediate Attention".
    """
    task = task_data or {}
    code = rating if rating in RATINGS else DEFAULT_RATING
    rating_id, rating_name = RATINGS[code]
    return {
        "id": int(task_id),
        "name": task_name or task.get("name") or "Inspection Item",
        "inspectionRating": {"id": rating_id, "code": code, "name": rating_name},
        "finding": description or "",
        "inspectionGroup": task.get("group") or "",
        "groupSortOrder": task.get("groupSortOrder") or 0,
        "reported": True,
        "externalImages": task.get("externalImages") or [],
        "inspectionTaskId": task.get("inspectionTaskId"),
    }


def parse_upload_target(payload: Any) -> UploadTarget:
    """Pick the upload mode from a create-video-upload-url response.

    ``data[0].s3`` means a presigned form POST keyed by ``data[0].path``;
    a bare ``data[0].url`` (or ``uploadUrl``) means a direct PUT.
    """
    data = payload.get("data") if isinstance(payload, dict) else None
    entry = data[0] if isinstance(data, list) and data else None
    if not isinstance(entry, dict):
        raise UploadTargetError(f"Invalid response structure: {json.dumps(payload)[:300]}")

    s3 = entry.get("s3")
    if isinstance(s3, dict) and s3.get("url"):
        fields = s3.get("fields") or {}
        # Form uploads name the object through the "key" field
        if not isinstance(fields, dict) or not entry.get("path"):
            raise UploadTargetError(f"Invalid response structure: {json.dumps(payload)[:300]}")
        return UploadTarget(
            url=s3["url"],
            fields={str(k): str(v) for k, v in fields.items()},
            object_key=entry["path"],
            method="POST",
        )

    put_url = entry.get("url") or entry.get("uploadUrl")
    if put_url:
        return UploadTarget(url=put_url, object_key=entry.get("path"), method="PUT")

    raise UploadTargetError(f"Invalid response structure: {json.dumps(payload)[:300]}")


class TekmetricClient:
    def __init__(
        self,
        base_url: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (settings.tm_api_base if base_url is None else base_url).rstrip("/")
        self.timeout_s = settings.http_timeout_s if timeout_s is None else timeout_s
        self._transport = transport

    def _client(self, token: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_s,
            transport=self._transport,
            headers={
                "x-auth-token": token,
                "accept": "application/json",
                "content-type": "application/json",
            },
        )

    async def create_upload_target(
        self,
        token: str,
        shop_id: int,
        ro_id: int,
        inspection_id: int,
        task_id: int,
        filename: str,
        mimetype: str = "video/mp4",
    ) -> UploadTarget:
        """Request a presigned upload target for one task video.

        Raises:
            UploadTargetError: On transport failure, non-2xx, or an
                unrecognised response shape
        """
        body = {
            "files": [{"name": filename, "mimetype": mimetype}],
            "shopId": int(shop_id),
            "repairOrderId": int(ro_id),
            "roInspectionId": int(inspection_id),
            "roInspectionTaskId": int(task_id),
        }
        try:
            async with self._client(token) as client:
                response = await client.post("/media/create-video-upload-url", json=body)
        except httpx.HTTPError as e:
            logger.error(f"[video] Presigned URL request failed: {e}")
            raise UploadTargetError(f"Failed to get presigned URL: {e}") from e

        logger.info(f"   TM API status: {response.status_code}")
        if not 200 <= response.status_code < 300:
            raise UploadTargetError(status=response.status_code, body=response.text)

        try:
            payload = response.json()
        except ValueError as e:
            raise UploadTargetError(
                f"Presigned URL response is not JSON: {response.text[:300]}",
                status=response.status_code,
                body=response.text,
            ) from e

        target = parse_upload_target(payload)
        logger.info(f"   Upload target: {target.method} {target.url}")
        logger.info(f"   Object key: {target.object_key}")
        return target

    async def update_inspection_task(
        self,
        token: str,
        shop_id: int,
        ro_id: int,
        inspection_id: int,
        task_id: int,
        payload: dict[str, Any],
    ) -> httpx.Response:
        """PUT the task update. Transport errors propagate as httpx.HTTPError."""
        path = f"/api/shop/{shop_id}/repair-orders/{ro_id}/inspections/{inspection_id}/tasks/{task_id}"
        async with self._client(token) as client:
            return await client.put(path, json=payload)

    async def _get_json(self, token: str, path: str, params: dict | None, error_code: str) -> Any:
        try:
            async with self._client(token) as client:
                response = await client.get(path, params=params)
        except httpx.HTTPError as e:
            logger.error(f"[inspections] TM request failed: {e}")
            raise UpstreamError(error_code, None, message=f"TM API request failed: {e}") from e
        if response.status_code != 200:
            logger.error(f"[inspections] TM request failed: {response.status_code} - {response.text}")
            raise UpstreamError(error_code, response.status_code, response.text)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(error_code, 502, response.text) from e

    async def search_repair_orders(self, token: str, shop_id: str | int, ro_number: str) -> list[dict]:
        """Search repair orders; returns the ``content`` page.

        Raises:
            UpstreamError: RO_SEARCH_FAILED on a transport error or non-200 answer
        """
        data = await self._get_json(
            token,
            f"/api/shop/{shop_id}/repair-orders",
            {"search": str(ro_number), "size": 10},
            "RO_SEARCH_FAILED",
        )
        content = data.get("content") if isinstance(data, dict) else None
        return content or []

    async def get_inspections(self, token: str, shop_id: str | int, ro_id: str | int) -> list[dict]:
        """List a repair order's inspections; a single object is wrapped.

        Raises:
            UpstreamError: INSPECTIONS_FETCH_FAILED on a transport error or
                non-200 answer
        """
        data = await self._get_json(
            token,
            f"/api/shop/{shop_id}/repair-orders/{ro_id}/inspections",
            None,
            "INSPECTIONS_FETCH_FAILED",
        )
        if data is None:
            return []
        return data if isinstance(data, list) else [data]
