"""Cache backend for a plain HTTP object store.

Entries are addressed as ``{base_url}/{key}``: ``GET`` restores, ``PUT``
saves, and a 404 is a cache miss.
Transfers are streamed in both directions.
"""

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import quote

import httpx

from depbuild.errors import CacheMissError, CacheSaveError

logger = logging.getLogger(__name__)

# Timeout for cache transfers (seconds)
TRANSFER_TIMEOUT = 600

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB


class HttpCacheBackend:
    """CacheBackend talking to an HTTP object store via httpx."""

    def __init__(
        self,
        base_url: str,
        client: httpx.Client | None = None,
        timeout: float = TRANSFER_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client()
        self.timeout = timeout

    def url_for(self, key: str) -> str:
        """Return the URL of the entry for ``key``."""
        return f"{self.base_url}/{quote(key, safe='@')}"

    def _download(self, key: str, destination: Path) -> int:
        url = self.url_for(key)
        tmp_path = destination.with_name(destination.name + ".part")
        with self.client.stream("GET", url, timeout=self.timeout) as response:
            if response.status_code == httpx.codes.NOT_FOUND:
                raise CacheMissError(key)
            response.raise_for_status()

            destination.parent.mkdir(parents=True, exist_ok=True)
            total_bytes = 0
            try:
                with tmp_path.open("wb") as f:
                    for chunk in response.iter_bytes(DOWNLOAD_CHUNK_SIZE):
                        f.write(chunk)
                        total_bytes += len(chunk)
                tmp_path.replace(destination)
            finally:
                tmp_path.unlink(missing_ok=True)
        return total_bytes

    def restore(self, key: str, destination: Path) -> bool:
        try:
            size = self._download(key, destination)
        except CacheMissError as e:
            logger.info("%s", e)
            return False
        except httpx.HTTPStatusError as e:
            logger.warning(
                "HTTP error restoring %s: %d %s",
                key,
                e.response.status_code,
                e.response.reason_phrase,
            )
            return False
        except (httpx.RequestError, OSError) as e:
            logger.warning("Failed to restore %s: %s", key, e)
            return False

        destination.chmod(0o755)
        logger.info("Restored %s (%d bytes) from %s", destination, size, self.base_url)
        return True

    def _upload(self, key: str, source: Path) -> None:
        url = self.url_for(key)
        try:
            size = source.stat().st_size
            with source.open("rb") as f:
                response = self.client.put(
                    url,
                    content=f,
                    headers={"Content-Length": str(size)},
                    timeout=self.timeout,
                )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise CacheSaveError(
                key, f"HTTP {e.response.status_code} from {url}"
            ) from e
        except (httpx.RequestError, OSError) as e:
            raise CacheSaveError(key, str(e)) from e

    def save(self, key: str, source: Path) -> bool:
        try:
            self._upload(key, source)
        except CacheSaveError as e:
            logger.warning("%s", e)
            return False

        logger.info("Saved %s to %s", source, self.url_for(key))
        return True

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self.client.close()


__all__ = ["DOWNLOAD_CHUNK_SIZE", "TRANSFER_TIMEOUT", "HttpCacheBackend"]
