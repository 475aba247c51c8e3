"""Download a remote video into a local scratch path."""

import logging
from pathlib import Path
from urllib.parse import urljoin

import httpx

from video_processor.config import get_settings
from video_processor.exceptions import FetchError

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = frozenset({301, 302})
_CHUNK_SIZE = 1024 * 1024


class RemoteFetcher:
    """GETs a URL and streams the body to disk.

    Redirects are followed by hand so the hop count stays bounded.
    """

    def __init__(
        self,
        timeout_s: float | None = None,
        max_redirects: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.timeout_s = settings.http_timeout_s if timeout_s is None else timeout_s
        self.max_redirects = settings.download_max_redirects if max_redirects is None else max_redirects
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout_s,
            follow_redirects=False,
            transport=self._transport,
        )

    async def fetch(self, url: str, dest_path: str | Path) -> Path:
        """Download ``url`` to ``dest_path``.

        Returns:
            The destination path

        Raises:
            FetchError: On network failure, a non-2xx terminal status, too
                many redirects, or a local write error. The partial file is
                removed first.
        """
        dest = Path(dest_path)
        try:
            async with self._client() as client:
                await self._fetch_following(client, url, dest)
        except FetchError:
            dest.unlink(missing_ok=True)
            raise
        except httpx.HTTPError as e:
            dest.unlink(missing_ok=True)
            logger.error(f"[FETCH] Network error for {url}: {e}")
            raise FetchError(f"Download failed: {e}", url=url) from e
        except OSError as e:
            dest.unlink(missing_ok=True)
            logger.error(f"[FETCH] Could not write {dest}: {e}")
            raise FetchError(f"Download failed writing {dest.name}: {e}", url=url) from e
        return dest

    async def _fetch_following(self, client: httpx.AsyncClient, url: str, dest: Path) -> None:
        current = url
        for _ in range(self.max_redirects + 1):
            async with client.stream("GET", current) as response:
                if response.status_code in REDIRECT_STATUSES:
                    location = response.headers.get("location")
                    if not location:
                        raise FetchError(
                            f"Download failed: {response.status_code} without Location",
                            url=current,
                            status=response.status_code,
                        )
                    current = urljoin(str(response.url), location)
                    logger.info(f"[FETCH] Redirect {response.status_code} -> {current}")
                    continue

                if not 200 <= response.status_code < 300:
                    logger.error(f"[FETCH] {current} returned {response.status_code}")
                    raise FetchError(url=current, status=response.status_code)

                with open(dest, "wb") as f:
                    async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                        f.write(chunk)
                return

        raise FetchError(f"Download failed: too many redirects (>{self.max_redirects})", url=url)
