"""
HTTPS probes against customer hosts: verification file fetch and the
reachability check used by health reports.
"""

import asyncio
import logging
import time
from typing import Optional

import aiohttp

from ..errors import ProviderError
from .base import FileProbe, HttpProbe

logger = logging.getLogger("chop_domains.providers.web")

# Verification files are tiny; anything bigger is not ours
MAX_FILE_BYTES = 4096


class WebProber:
    """Outbound HTTP client with an explicit per-request timeout."""

    def __init__(self, timeout: float = 10.0, user_agent: str = "chop-domains/0.1"):
        self.timeout = timeout
        self.user_agent = user_agent
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"User-Agent": self.user_agent},
            )
        return self._session

    async def fetch_file(self, hostname: str, path: str) -> FileProbe:
        """
        GET https://{hostname}{path}.

        Any HTTP status is a result; connection failures and timeouts raise
        ProviderError.
        """
        url = f"https://{hostname}{path}"
        session = self._get_session()
        try:
            async with session.get(url, allow_redirects=True) as response:
                raw = await response.content.read(MAX_FILE_BYTES)
                body = raw.decode("utf-8", errors="replace")
                return FileProbe(status_code=response.status, body=body)
        except asyncio.TimeoutError:
            raise ProviderError(f"Fetching {url} timed out after {self.timeout}s")
        except aiohttp.ClientError as e:
            raise ProviderError(f"Fetching {url} failed: {e}")

    async def probe(self, hostname: str) -> HttpProbe:
        """GET https://{hostname}/ and time it. A dead host is a result."""
        url = f"https://{hostname}/"
        session = self._get_session()
        started = time.perf_counter()
        try:
            async with session.get(url, allow_redirects=False) as response:
                elapsed_ms = (time.perf_counter() - started) * 1000
                return HttpProbe(
                    reachable=True,
                    status_code=response.status,
                    response_ms=round(elapsed_ms, 1),
                    headers={k: v for k, v in response.headers.items()},
                )
        except asyncio.TimeoutError:
            logger.info(f"HTTPS probe of {hostname} timed out")
            return HttpProbe(reachable=False, error=f"timed out after {self.timeout}s")
        except aiohttp.ClientError as e:
            logger.info(f"HTTPS probe of {hostname} failed: {e}")
            return HttpProbe(reachable=False, error=str(e))

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
