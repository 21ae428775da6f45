"""
Stream liveness verification.

Probes stream URLs with a lightweight HEAD request and caches the outcome,
positive or negative, so the same URL is not probed again within the TTL.
"""
import asyncio
import logging
from typing import Iterable, Optional, Protocol

import httpx

from iptv_addon.config import Settings
from iptv_addon.services.cache import CacheStore, verify_key

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Web0S; Linux/SmartTV) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/79.0.3945.79 Safari/537.36 DMOST/2.0.0 (; LGE; webOSTV; WEBOS6.3.2 03.34.95; W6_lm21a;)"
)


class Probeable(Protocol):
    url: str
    user_agent: Optional[str]
    referrer: Optional[str]


class StreamVerifier:
    """Checks that stream URLs answer, with cached results."""

    def __init__(
        self,
        settings: Settings,
        cache: CacheStore,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.cache = cache
        self._transport = transport
        self._stats = {
            "probes": 0,
            "working": 0,
            "failed": 0,
        }
        if self.proxy_kind:
            logger.info(f"Stream verification routed through {self.proxy_kind} proxy")

    @property
    def proxy_kind(self) -> Optional[str]:
        """"SOCKS" or "HTTP" depending on the proxy URL scheme, None without a proxy."""
        proxy_url = self.settings.proxy_url
        if not proxy_url:
            return None
        return "SOCKS" if proxy_url.startswith("socks") else "HTTP"

    def get_stats(self) -> dict:
        return dict(self._stats)

    def _build_headers(self, user_agent: Optional[str], referrer: Optional[str]) -> dict:
        headers = {
            "User-Agent": user_agent or DEFAULT_USER_AGENT,
            "Accept": "*/*",
        }
        if referrer:
            headers["Referer"] = referrer
        return headers

    def _probe_transport(self) -> httpx.AsyncBaseTransport:
        """Injected transport, or one routed through the configured proxy."""
        if self._transport is not None:
            return self._transport
        # httpx picks the SOCKS or HTTP proxy implementation from the URL scheme
        return httpx.AsyncHTTPTransport(
            proxy=self.settings.proxy_url or None,
            verify=False,  # Many IPTV hosts serve bad certificates
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.fetch_timeout_seconds),
            follow_redirects=True,
            transport=self._probe_transport(),
        )

    async def _probe(self, url: str, user_agent: Optional[str], referrer: Optional[str]) -> bool:
        """Probe one URL. Any failure is reported as False."""
        self._stats["probes"] += 1
        headers = self._build_headers(user_agent, referrer)
        try:
            async with self._client() as client:
                response = await client.head(url, headers=headers)

                # Some servers don't support HEAD
                if response.status_code == 405:
                    response = await client.get(url, headers={**headers, "Range": "bytes=0-0"})

                alive = response.is_success
                if not alive:
                    logger.info(f"Stream URL verification failed for {url}: HTTP {response.status_code}")
        except httpx.TimeoutException:
            logger.info(f"Stream URL verification timed out for {url}")
            alive = False
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.info(f"Stream URL verification failed for {url}: {e}")
            alive = False
        except Exception as e:
            logger.warning(f"Stream URL verification error for {url}: {e}")
            alive = False

        self._stats["working" if alive else "failed"] += 1
        return alive

    async def verify(self, url: str, user_agent: Optional[str] = None, referrer: Optional[str] = None) -> bool:
        """Return whether ``url`` is reachable, probing only on a cache miss."""
        return await self.cache.populate(
            verify_key(url),
            self.settings.verify_ttl_seconds,
            lambda: self._probe(url, user_agent, referrer),
        )

    async def verify_many(self, streams: Iterable[Probeable]) -> dict[str, bool]:
        """Verify a batch of streams with bounded concurrency. Returns url -> result."""
        unique: dict[str, Probeable] = {}
        for stream in streams:
            unique.setdefault(stream.url, stream)

        semaphore = asyncio.Semaphore(max(1, self.settings.verify_concurrency))

        async def verify_with_sem(stream: Probeable) -> bool:
            async with semaphore:
                return await self.verify(stream.url, stream.user_agent, stream.referrer)

        results = await asyncio.gather(*[verify_with_sem(s) for s in unique.values()])
        working = sum(1 for r in results if r)
        logger.info(f"Verification batch complete: {working}/{len(results)} working")
        return dict(zip(unique.keys(), results))
