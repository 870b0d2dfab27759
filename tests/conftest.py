"""
Pytest configuration for Chop Domains tests.
"""

import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
import pytest_asyncio

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set test environment variables
os.environ["CHOP_DOMAINS_DEBUG"] = "true"
os.environ["CHOP_DOMAINS_AUTH_SECRET"] = "test-secret-that-is-long-enough-for-hs256-signing"

from chop_domains.errors import ProviderError  # noqa: E402
from chop_domains.providers.base import (  # noqa: E402
    CertificateInfo,
    DomainProvider,
    FileProbe,
    HttpProbe,
    ProviderRecord,
)

TEST_SECRET = os.environ["CHOP_DOMAINS_AUTH_SECRET"]

SECURE_HEADERS = {
    "Strict-Transport-Security": "max-age=31536000",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
}


class FakeProvider(DomainProvider):
    """
    In-process provider.

    Tests seed records, certificates and probe results directly; `errors`
    maps a method name to the ProviderError it should raise. When `gate` is
    set, certificate requests block on it after signalling `started`.
    """

    def __init__(self):
        self.txt_records: Dict[str, List[ProviderRecord]] = {}
        self.cname_records: Dict[str, List[ProviderRecord]] = {}
        self.created: Dict[str, ProviderRecord] = {}
        self.deleted: List[str] = []
        self.certificates: Dict[str, CertificateInfo] = {}
        self.issue_status = "active"
        self.addresses: Dict[str, List[str]] = {}
        self.files: Dict[str, FileProbe] = {}
        self.probes: Dict[str, HttpProbe] = {}
        self.errors: Dict[str, ProviderError] = {}
        self.calls: List[tuple] = []
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()
        self._next_id = 1

    def _enter(self, name: str, *args):
        self.calls.append((name,) + args)
        if name in self.errors:
            raise self.errors[name]

    def called(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def add_txt(self, hostname: str, content: str):
        self.txt_records.setdefault(hostname, []).append(
            ProviderRecord(id=f"txt-{hostname}", type="TXT", name=hostname, content=content)
        )

    def add_cname(self, hostname: str, target: str):
        self.cname_records.setdefault(hostname, []).append(
            ProviderRecord(id=f"cname-{hostname}", type="CNAME", name=hostname, content=target)
        )

    async def list_txt_records(self, hostname):
        self._enter("list_txt_records", hostname)
        return list(self.txt_records.get(hostname, []))

    async def list_cname_records(self, hostname):
        self._enter("list_cname_records", hostname)
        return list(self.cname_records.get(hostname, []))

    async def create_dns_record(
        self, type, name, content, ttl=3600, priority=None, proxied=False
    ):
        self._enter("create_dns_record", type, name, content)
        record = ProviderRecord(
            id=f"rec-{self._next_id}",
            type=type,
            name=name,
            content=content,
            ttl=ttl,
            proxied=proxied,
            priority=priority,
        )
        self._next_id += 1
        self.created[record.id] = record
        return record

    async def delete_dns_record(self, record_id):
        self._enter("delete_dns_record", record_id)
        self.created.pop(record_id, None)
        self.deleted.append(record_id)

    async def _issue(self, name: str, hostname: str) -> CertificateInfo:
        self._enter(name, hostname)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        now = datetime.now(timezone.utc)
        info = CertificateInfo(
            status=self.issue_status,
            issuer="Let's Encrypt",
            valid_from=now,
            valid_to=now + timedelta(days=90),
            auto_renewal=True,
            pack_id=f"pack-{hostname}",
        )
        self.certificates[hostname] = info
        return info

    async def request_certificate(self, hostname):
        return await self._issue("request_certificate", hostname)

    async def renew_certificate(self, hostname):
        return await self._issue("renew_certificate", hostname)

    async def get_certificate(self, hostname):
        self._enter("get_certificate", hostname)
        return self.certificates.get(hostname)

    async def enforce_https(self, hostname):
        self._enter("enforce_https", hostname)

    async def resolve_host(self, hostname):
        self._enter("resolve_host", hostname)
        return list(self.addresses.get(hostname, []))

    async def fetch_verification_file(self, hostname, path):
        self._enter("fetch_verification_file", hostname, path)
        return self.files.get(hostname, FileProbe(status_code=404, body=""))

    async def probe_https(self, hostname):
        self._enter("probe_https", hostname)
        return self.probes.get(
            hostname,
            HttpProbe(
                reachable=True,
                status_code=200,
                response_ms=85.0,
                headers=dict(SECURE_HEADERS),
            ),
        )

    def make_healthy(self, hostname: str, token: str = "token"):
        """Seed everything a healthy, active domain reports."""
        now = datetime.now(timezone.utc)
        self.addresses[hostname] = ["203.0.113.10"]
        self.add_txt(hostname, token)
        self.certificates[hostname] = CertificateInfo(
            status="active",
            issuer="Let's Encrypt",
            valid_from=now - timedelta(days=10),
            valid_to=now + timedelta(days=80),
            auto_renewal=True,
        )


@pytest.fixture
def test_settings(tmp_path):
    """Provide test settings backed by a temporary database."""
    from chop_domains.config import Settings
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        auth_secret=TEST_SECRET,
        debug=False,
    )


@pytest.fixture
def provider():
    """Provide a fake DNS/TLS provider."""
    return FakeProvider()


@pytest_asyncio.fixture
async def sessionmaker(tmp_path):
    """Provide a session factory over a fresh SQLite file."""
    from chop_domains.db import create_engine, create_sessionmaker, init_models

    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'domains.db'}")
    await init_models(engine)
    yield create_sessionmaker(engine)
    await engine.dispose()


@pytest.fixture
def registry(sessionmaker):
    """Provide a domain registry."""
    from chop_domains.domains.registry import DomainRegistry
    return DomainRegistry(sessionmaker)


@pytest.fixture
def dns_records(sessionmaker, provider):
    from chop_domains.domains.dns_records import DnsRecordStore
    return DnsRecordStore(sessionmaker, provider)


@pytest.fixture
def certificates(registry, provider):
    from chop_domains.domains.ssl import CertificateManager
    return CertificateManager(registry, provider, timeout=5.0)


@pytest.fixture
def verification(registry, provider, certificates):
    from chop_domains.domains.verification import VerificationEngine
    return VerificationEngine(registry, provider, certificates)


@pytest.fixture
def health(registry, provider):
    from chop_domains.domains.health import HealthMonitor
    return HealthMonitor(registry, provider)


@pytest.fixture
def token_verifier():
    from chop_domains.auth import TokenVerifier
    return TokenVerifier(TEST_SECRET)


@pytest.fixture
def auth_headers(token_verifier):
    """Bearer headers for the default test owner."""
    return {"Authorization": f"Bearer {token_verifier.issue('owner-1')}"}


@pytest_asyncio.fixture
async def client(test_settings, provider):
    """Provide an HTTP client bound to a running app."""
    from httpx import ASGITransport, AsyncClient

    from chop_domains.main import create_app

    app = create_app(settings=test_settings, provider=provider)
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
