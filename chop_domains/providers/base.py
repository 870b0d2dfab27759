"""
Provider interface: the only boundary that talks to the DNS/TLS provider,
public DNS and the customer's web server.

Implementations raise ProviderError for any network, timeout or API failure.
A negative answer (no records, NXDOMAIN) is a normal result, not an error.
"""

import abc
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


@dataclass
class ProviderRecord:
    """A DNS record as the provider reports it."""

    id: str
    type: str
    name: str
    content: str
    ttl: int = 1
    proxied: bool = False
    priority: Optional[int] = None


@dataclass
class CertificateInfo:
    """Certificate state for a hostname as reported by the provider."""

    status: str
    issuer: Optional[str] = None
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    auto_renewal: bool = False
    pack_id: Optional[str] = None


@dataclass
class FileProbe:
    """Result of fetching the verification file from the customer's host."""

    status_code: int
    body: str


@dataclass
class HttpProbe:
    """Result of a single HTTPS GET against the customer's host."""

    reachable: bool
    status_code: Optional[int] = None
    response_ms: Optional[float] = None
    headers: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None

    def header(self, name: str) -> Optional[str]:
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return None


class DomainProvider(abc.ABC):
    """Injectable boundary to the DNS/TLS provider and live probes."""

    @abc.abstractmethod
    async def list_txt_records(self, hostname: str) -> List[ProviderRecord]:
        """TXT records the provider holds for hostname."""

    @abc.abstractmethod
    async def list_cname_records(self, hostname: str) -> List[ProviderRecord]:
        """CNAME records the provider holds for hostname."""

    @abc.abstractmethod
    async def create_dns_record(
        self,
        type: str,
        name: str,
        content: str,
        ttl: int = 3600,
        priority: Optional[int] = None,
        proxied: bool = False,
    ) -> ProviderRecord:
        """Create a record at the provider and return it with its id."""

    @abc.abstractmethod
    async def delete_dns_record(self, record_id: str) -> None:
        """Remove a record from the provider."""

    @abc.abstractmethod
    async def request_certificate(self, hostname: str) -> CertificateInfo:
        """Order a certificate for hostname."""

    @abc.abstractmethod
    async def renew_certificate(self, hostname: str) -> CertificateInfo:
        """Renew (or re-order) the certificate for hostname."""

    @abc.abstractmethod
    async def get_certificate(self, hostname: str) -> Optional[CertificateInfo]:
        """Current certificate for hostname, or None if there is none."""

    @abc.abstractmethod
    async def enforce_https(self, hostname: str) -> None:
        """Redirect plain HTTP to HTTPS for hostname."""

    @abc.abstractmethod
    async def resolve_host(self, hostname: str) -> List[str]:
        """Addresses hostname resolves to in public DNS; empty if none."""

    @abc.abstractmethod
    async def fetch_verification_file(self, hostname: str, path: str) -> FileProbe:
        """GET https://{hostname}{path}."""

    @abc.abstractmethod
    async def probe_https(self, hostname: str) -> HttpProbe:
        """GET https://{hostname}/ and measure it; never raises for a dead host."""

    async def close(self) -> None:
        """Release network resources."""
