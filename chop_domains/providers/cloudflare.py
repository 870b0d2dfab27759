"""
Cloudflare-backed provider for custom domains.

DNS records and certificate packs live in the Cloudflare zone configured for
the service; public resolution and HTTPS probes go through PublicResolver and
WebProber.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiohttp

from ..errors import ProviderError
from .base import (
    CertificateInfo,
    DomainProvider,
    FileProbe,
    HttpProbe,
    ProviderRecord,
)
from .resolver import PublicResolver
from .web import WebProber

logger = logging.getLogger("chop_domains.providers.cloudflare")


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable Cloudflare timestamp: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _to_record(data: Dict[str, Any]) -> ProviderRecord:
    return ProviderRecord(
        id=str(data.get("id", "")),
        type=data.get("type", ""),
        name=data.get("name", ""),
        content=data.get("content", ""),
        ttl=data.get("ttl", 1),
        proxied=data.get("proxied", False),
        priority=data.get("priority"),
    )


def _to_certificate(pack: Dict[str, Any]) -> CertificateInfo:
    """Flatten a certificate pack into the newest certificate it holds."""
    certificates = pack.get("certificates") or []
    newest = max(
        certificates,
        key=lambda c: c.get("expires_on") or "",
        default={},
    )
    return CertificateInfo(
        status=pack.get("status", "unknown"),
        issuer=newest.get("issuer") or pack.get("certificate_authority"),
        valid_from=_parse_time(newest.get("uploaded_on")),
        valid_to=_parse_time(newest.get("expires_on")),
        auto_renewal=pack.get("type") in ("advanced", "universal"),
        pack_id=pack.get("id"),
    )


class CloudflareProvider(DomainProvider):
    """Talks to the Cloudflare v4 API for one zone."""

    def __init__(
        self,
        api_token: str,
        zone_id: str,
        base_url: str = "https://api.cloudflare.com/client/v4",
        timeout: float = 10.0,
        resolver: Optional[PublicResolver] = None,
        prober: Optional[WebProber] = None,
    ):
        self.api_token = api_token
        self.zone_id = zone_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.resolver = resolver or PublicResolver(timeout=timeout)
        self.prober = prober or WebProber(timeout=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={
                    "Authorization": f"Bearer {self.api_token}",
                    "Content-Type": "application/json",
                },
            )
        return self._session

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make a request to the Cloudflare API and return its `result`."""
        url = f"{self.base_url}/zones/{self.zone_id}{endpoint}"
        session = self._get_session()
        try:
            async with session.request(
                method, url, params=params, json=json_body
            ) as response:
                try:
                    payload = await response.json(content_type=None)
                except ValueError:
                    payload = None
                status = response.status
        except asyncio.TimeoutError:
            raise ProviderError(
                f"Cloudflare {method} {endpoint} timed out after {self.timeout}s"
            )
        except aiohttp.ClientError as e:
            raise ProviderError(f"Cloudflare {method} {endpoint} failed: {e}")

        if not isinstance(payload, dict):
            raise ProviderError(
                f"Cloudflare {method} {endpoint} returned an unreadable response "
                f"(HTTP {status})"
            )

        if status >= 400 or not payload.get("success", False):
            errors = payload.get("errors") or []
            message = errors[0].get("message") if errors else "Unknown error"
            logger.error(f"Cloudflare API error on {method} {endpoint}: {message}")
            raise ProviderError(f"Cloudflare API error: {message}")

        return payload.get("result")

    # ── DNS records ──────────────────────────────────────────────────

    async def _list_records(self, hostname: str, rdtype: str) -> List[ProviderRecord]:
        result = await self._request(
            "GET", "/dns_records", params={"type": rdtype, "name": hostname}
        )
        return [_to_record(r) for r in result or []]

    async def list_txt_records(self, hostname: str) -> List[ProviderRecord]:
        return await self._list_records(hostname, "TXT")

    async def list_cname_records(self, hostname: str) -> List[ProviderRecord]:
        return await self._list_records(hostname, "CNAME")

    async def create_dns_record(
        self,
        type: str,
        name: str,
        content: str,
        ttl: int = 3600,
        priority: Optional[int] = None,
        proxied: bool = False,
    ) -> ProviderRecord:
        body = {
            "type": type,
            "name": name,
            "content": content,
            "ttl": ttl,
            "proxied": proxied,
        }
        if priority is not None:
            body["priority"] = priority
        result = await self._request("POST", "/dns_records", json_body=body)
        logger.info(f"Created {type} record {name} at Cloudflare")
        return _to_record(result)

    async def delete_dns_record(self, record_id: str) -> None:
        await self._request("DELETE", f"/dns_records/{record_id}")
        logger.info(f"Deleted Cloudflare DNS record {record_id}")

    # ── Certificates ─────────────────────────────────────────────────

    async def _find_pack(self, hostname: str) -> Optional[Dict[str, Any]]:
        packs = await self._request(
            "GET", "/ssl/certificate_packs", params={"status": "all"}
        )
        matching = [p for p in packs or [] if hostname in (p.get("hosts") or [])]
        if not matching:
            return None
        # Prefer the most recently expiring pack when several cover the host
        return max(
            matching,
            key=lambda p: max(
                (c.get("expires_on") or "" for c in p.get("certificates") or []),
                default="",
            ),
        )

    async def request_certificate(self, hostname: str) -> CertificateInfo:
        result = await self._request(
            "POST",
            "/ssl/certificate_packs/order",
            json_body={
                "hosts": [hostname],
                "type": "advanced",
                "validation_method": "txt",
                "validity_days": 90,
                "certificate_authority": "lets_encrypt",
            },
        )
        logger.info(f"Ordered certificate for {hostname}")
        return _to_certificate(result or {})

    async def renew_certificate(self, hostname: str) -> CertificateInfo:
        pack = await self._find_pack(hostname)
        if pack is None:
            return await self.request_certificate(hostname)

        # Restarting validation re-issues the pack
        result = await self._request("PATCH", f"/ssl/certificate_packs/{pack['id']}")
        logger.info(f"Restarted certificate pack {pack['id']} for {hostname}")
        return _to_certificate(result or pack)

    async def get_certificate(self, hostname: str) -> Optional[CertificateInfo]:
        pack = await self._find_pack(hostname)
        return _to_certificate(pack) if pack else None

    async def enforce_https(self, hostname: str) -> None:
        await self._request(
            "PATCH", "/settings/always_use_https", json_body={"value": "on"}
        )
        logger.info(f"Enabled Always Use HTTPS for {hostname}")

    # ── Live probes ──────────────────────────────────────────────────

    async def resolve_host(self, hostname: str) -> List[str]:
        return await self.resolver.resolve(hostname)

    async def fetch_verification_file(self, hostname: str, path: str) -> FileProbe:
        return await self.prober.fetch_file(hostname, path)

    async def probe_https(self, hostname: str) -> HttpProbe:
        return await self.prober.probe(hostname)

    async def close(self) -> None:
        """Close HTTP sessions."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
        await self.prober.close()
