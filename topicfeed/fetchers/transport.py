"""HTTP transport: direct request first, then an ordered chain of proxies."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

import httpx

from topicfeed.config import DEFAULT_PROXIES
from topicfeed.errors import FetchError

logger = logging.getLogger(__name__)

_HEADERS = {
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml, application/json",
    "Accept-Language": "en-US,en;q=0.9",
}


def proxy_url(template: str, url: str) -> str:
    """Substitute the percent-encoded target URL into a proxy template."""
    encoded = quote(url, safe="")
    if "{url}" in template:
        return template.replace("{url}", encoded)
    return template + encoded


class Transport:
    """Fetch a URL body as text, falling back through proxies.

    Each candidate (the direct URL, then every proxy in order) is tried
    exactly once per call. There are no retries and no backoff.
    """

    def __init__(
        self,
        proxies: Optional[list[str]] = None,
        timeout: float = 15,
        client: Optional[httpx.Client] = None,
    ):
        self.proxies = list(DEFAULT_PROXIES if proxies is None else proxies)
        self.timeout = timeout
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    def candidates(self, url: str) -> list[str]:
        return [url] + [proxy_url(p, url) for p in self.proxies]

    def fetch_text(self, url: str) -> str:
        attempts: list[str] = []
        last_error = ""
        for i, candidate in enumerate(self.candidates(url)):
            attempts.append(candidate)
            # Feed Accept headers only on the direct request
            headers = _HEADERS if i == 0 else {"User-Agent": _HEADERS["User-Agent"]}
            try:
                resp = self.client.get(candidate, headers=headers, timeout=self.timeout)
            except httpx.HTTPError as e:
                last_error = f"{type(e).__name__}: {e}"
                logger.debug(f"  [Fetch] {candidate} failed: {last_error}")
                continue

            if resp.is_success:
                if i > 0:
                    logger.info(f"  [Fetch] {url} fetched via proxy #{i}")
                return resp.text

            last_error = f"HTTP {resp.status_code}"
            logger.debug(f"  [Fetch] {candidate} returned {last_error}")

        raise FetchError(
            f"Failed to fetch feed. The URL may be invalid or blocked. ({last_error})",
            attempts=attempts,
        )

    def close(self):
        if self._owns_client:
            self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
