"""Explainer video catalogue lookup (Supabase REST)."""

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from video_processor.config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class ExplainerVideo:
    id: str
    file_url: str
    name: str | None = None


class ExplainerLookup(Protocol):
    async def lookup(self, explainer_id: str) -> ExplainerVideo | None: ...


class SupabaseExplainerLookup:
    """Resolves an explainer id to its source URL.

    Every failure mode collapses to ``None``: a missing explainer never
    fails a request on its own.
    """

    def __init__(
        self,
        url: str | None = None,
        anon_key: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.url = (settings.supabase_url if url is None else url).rstrip("/")
        self.anon_key = settings.supabase_anon_key if anon_key is None else anon_key
        self.timeout_s = settings.http_timeout_s if timeout_s is None else timeout_s
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.url and self.anon_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport)

    async def lookup(self, explainer_id: str) -> ExplainerVideo | None:
        if not self.configured:
            logger.warning("[video] Supabase not configured, skipping explainer lookup")
            return None

        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.url}/rest/v1/explainer_videos",
                    params={"id": f"eq.{explainer_id}", "select": "file_url,name"},
                    headers={
                        "apikey": self.anon_key,
                        "Authorization": f"Bearer {self.anon_key}",
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"[video] Explainer lookup failed for {explainer_id}: {e}")
            return None

        if response.status_code != 200:
            logger.error(f"[video] Explainer lookup returned {response.status_code} for {explainer_id}")
            return None

        try:
            rows = response.json()
        except ValueError:
            logger.error(f"[video] Explainer lookup returned invalid JSON for {explainer_id}")
            return None

        if not isinstance(rows, list) or not rows or not isinstance(rows[0], dict):
            logger.info(f"[video] Explainer video not found: {explainer_id}")
            return None

        row = rows[0]
        if not row.get("file_url"):
            logger.info(f"[video] Explainer video {explainer_id} has no file_url")
            return None

        return ExplainerVideo(id=str(explainer_id), file_url=row["file_url"], name=row.get("name"))
