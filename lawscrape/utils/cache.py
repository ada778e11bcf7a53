"""HTTP response caching for pipeline downloads."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from pathlib import Path

import httpx

from ..errors import DownloadFailure
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_TTL = 7 * 24 * 3600  # 7 days
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class HttpCache:
    """Disk-backed HTTP response cache with rate limiting.

    Args:
        cache_dir: Directory for cached responses.
        ttl: Time-to-live in seconds for cached responses. Zero disables reads.
        rate_limiter: Optional rate limiter for requests.
        user_agent: User-Agent header sent with every request.
        client: Optional pre-built httpx client (tests pass a MockTransport).
    """

    def __init__(
        self,
        cache_dir: Path,
        ttl: int = DEFAULT_TTL,
        rate_limiter: RateLimiter | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        client: httpx.Client | None = None,
    ):
        self.cache_dir = cache_dir
        self.ttl = ttl
        self.rate_limiter = rate_limiter or RateLimiter()
        self.user_agent = user_agent
        self.client = client or httpx.Client(follow_redirects=True)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _cache_key(self, url: str) -> str:
        return hashlib.sha256(url.encode()).hexdigest()

    def _cache_path(self, url: str, suffix: str = ".body") -> Path:
        return self.cache_dir / f"{self._cache_key(url)}{suffix}"

    def _meta_path(self, url: str) -> Path:
        return self.cache_dir / f"{self._cache_key(url)}.meta.json"

    def _is_fresh(self, url: str, body_path: Path) -> bool:
        meta_path = self._meta_path(url)
        if not meta_path.exists() or not body_path.exists():
            return False
        meta = json.loads(meta_path.read_text(encoding="utf-8"))
        if time.time() - meta.get("timestamp", 0) > self.ttl:
            logger.debug("Cache expired for %s", url)
            return False
        return True

    def _write_meta(self, url: str, status_code: int) -> None:
        meta = {"url": url, "timestamp": time.time(), "status_code": status_code}
        self._meta_path(url).write_text(json.dumps(meta), encoding="utf-8")

    def _get(self, url: str, timeout: float, **kwargs) -> httpx.Response:
        self.rate_limiter.wait()
        headers = {"User-Agent": self.user_agent, **kwargs.pop("headers", {})}
        try:
            response = self.client.get(url, timeout=timeout, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise DownloadFailure(f"GET {url} failed: {e}", context=url) from e
        return response

    def fetch(self, url: str, **kwargs) -> str:
        """Fetch URL with caching and rate limiting.

        Args:
            url: URL to fetch.
            **kwargs: Additional arguments passed to httpx.Client.get().

        Returns:
            Response body as string.

        Raises:
            DownloadFailure: On transport errors or non-2xx responses.
        """
        cache_path = self._cache_path(url)
        if self._is_fresh(url, cache_path):
            logger.debug("Cache hit for %s", url)
            return cache_path.read_text(encoding="utf-8")

        logger.info("Fetching %s", url)
        response = self._get(url, kwargs.pop("timeout", 60), **kwargs)

        body = response.text
        cache_path.write_text(body, encoding="utf-8")
        self._write_meta(url, response.status_code)
        return body

    def fetch_json(self, url: str, **kwargs):
        """Fetch URL and decode the body as JSON."""
        body = self.fetch(url, **kwargs)
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise DownloadFailure(f"Response from {url} is not JSON: {e}", context=url) from e

    def fetch_bytes(self, url: str, **kwargs) -> bytes:
        """Fetch URL and return raw bytes (for binary downloads).

        Results are cached as files with .bin extension.
        """
        bin_path = self._cache_path(url, ".bin")
        if self._is_fresh(url, bin_path):
            logger.debug("Cache hit (binary) for %s", url)
            return bin_path.read_bytes()

        logger.info("Fetching (binary) %s", url)
        response = self._get(url, kwargs.pop("timeout", 120), **kwargs)

        bin_path.write_bytes(response.content)
        self._write_meta(url, response.status_code)
        return response.content

    def close(self) -> None:
        self.client.close()
