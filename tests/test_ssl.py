"""
Tests for the certificate lifecycle.
"""

import asyncio

import pytest

from chop_domains.domains.models import CertificateStatus
from chop_domains.domains.ssl import CertificateManager, map_provider_status
from chop_domains.errors import (
    CertificateOperationInProgress,
    DomainNotFound,
    DomainNotVerified,
    ProviderError,
)


async def _verified_domain(registry, hostname="tls.example.com"):
    domain = await registry.add("owner-1", hostname)
    await registry.mark_verified(domain.id, "owner-1")
    return await registry.get(domain.id, "owner-1")


class TestStatusMapping:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("active", CertificateStatus.ACTIVE),
            ("ACTIVE", CertificateStatus.ACTIVE),
            ("initializing", CertificateStatus.INITIALIZING),
            ("pending_validation", CertificateStatus.INITIALIZING),
            ("expired", CertificateStatus.EXPIRED),
            ("deleted", CertificateStatus.INACTIVE),
            ("validation_timed_out", CertificateStatus.FAILED),
            (None, None),
            ("", None),
        ],
    )
    def test_map_provider_status(self, raw, expected):
        assert map_provider_status(raw) == expected


class TestInitialize:
    @pytest.mark.asyncio
    async def test_initialize_activates(self, registry, certificates, provider):
        domain = await _verified_domain(registry)

        outcome = await certificates.initialize(domain)

        assert outcome == CertificateStatus.ACTIVE
        stored = await registry.get(domain.id, "owner-1")
        assert stored.certificate_status == CertificateStatus.ACTIVE
        assert provider.called("enforce_https") == 1
        assert provider.called("request_certificate") == 1

    @pytest.mark.asyncio
    async def test_force_ssl_disabled_skips_https_rule(self, registry, certificates, provider):
        domain = await _verified_domain(registry)
        await registry.update(domain.id, "owner-1", {"settings": {"force_ssl": False}})

        await certificates.initialize(domain)

        assert provider.called("enforce_https") == 0
        assert provider.called("request_certificate") == 1

    @pytest.mark.asyncio
    async def test_unverified_domain_rejected(self, registry, certificates, provider):
        domain = await registry.add("owner-1", "tls.example.com")

        with pytest.raises(DomainNotVerified):
            await certificates.initialize(domain)
        assert provider.called("request_certificate") == 0
        stored = await registry.get(domain.id, "owner-1")
        assert stored.certificate_status == CertificateStatus.PENDING

    @pytest.mark.asyncio
    async def test_persists_initializing_before_calling_out(
        self, registry, certificates, provider
    ):
        domain = await _verified_domain(registry)
        provider.gate = asyncio.Event()

        task = asyncio.create_task(certificates.initialize(domain))
        await provider.started.wait()

        stored = await registry.get(domain.id, "owner-1")
        assert stored.certificate_status == CertificateStatus.INITIALIZING

        provider.gate.set()
        assert await task == CertificateStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_second_call_while_running_is_rejected(
        self, registry, certificates, provider
    ):
        domain = await _verified_domain(registry)
        provider.gate = asyncio.Event()

        task = asyncio.create_task(certificates.initialize(domain))
        await provider.started.wait()

        with pytest.raises(CertificateOperationInProgress):
            await certificates.initialize(domain)

        provider.gate.set()
        await task
        assert provider.called("request_certificate") == 1

    @pytest.mark.asyncio
    async def test_concurrent_initialize_has_one_winner(
        self, registry, certificates, provider
    ):
        domain = await _verified_domain(registry)

        results = await asyncio.gather(
            certificates.initialize(domain),
            certificates.initialize(domain),
            return_exceptions=True,
        )

        rejected = [r for r in results if isinstance(r, CertificateOperationInProgress)]
        assert len(rejected) == 1
        assert CertificateStatus.ACTIVE in results
        assert provider.called("request_certificate") == 1

    @pytest.mark.asyncio
    async def test_provider_failure_persists_failed(self, registry, certificates, provider):
        domain = await _verified_domain(registry)
        provider.errors["request_certificate"] = ProviderError("rate limited")

        with pytest.raises(ProviderError):
            await certificates.initialize(domain)

        stored = await registry.get(domain.id, "owner-1")
        assert stored.certificate_status == CertificateStatus.FAILED

    @pytest.mark.asyncio
    async def test_failed_can_be_retried(self, registry, certificates, provider):
        domain = await _verified_domain(registry)
        provider.errors["request_certificate"] = ProviderError("rate limited")
        with pytest.raises(ProviderError):
            await certificates.initialize(domain)

        del provider.errors["request_certificate"]
        assert await certificates.initialize(domain) == CertificateStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_timeout_persists_failed(self, registry, provider):
        manager = CertificateManager(registry, provider, timeout=0.05)
        domain = await _verified_domain(registry)
        provider.gate = asyncio.Event()

        with pytest.raises(ProviderError):
            await manager.initialize(domain)

        stored = await registry.get(domain.id, "owner-1")
        assert stored.certificate_status == CertificateStatus.FAILED

    @pytest.mark.asyncio
    async def test_pending_at_provider_stays_initializing(
        self, registry, certificates, provider
    ):
        domain = await _verified_domain(registry)
        provider.issue_status = "pending_validation"

        outcome = await certificates.initialize(domain)

        assert outcome == CertificateStatus.INITIALIZING
        stored = await registry.get(domain.id, "owner-1")
        assert stored.certificate_status == CertificateStatus.INITIALIZING


class TestRenew:
    @pytest.mark.asyncio
    async def test_renew_active(self, registry, certificates, provider):
        domain = await _verified_domain(registry)
        await certificates.initialize(domain)

        outcome = await certificates.renew(domain.id, "owner-1")

        assert outcome == CertificateStatus.ACTIVE
        assert provider.called("renew_certificate") == 1

    @pytest.mark.asyncio
    async def test_renew_failure_marks_failed(self, registry, certificates, provider):
        domain = await _verified_domain(registry)
        await certificates.initialize(domain)
        provider.errors["renew_certificate"] = ProviderError("upstream 500")

        with pytest.raises(ProviderError):
            await certificates.renew(domain.id, "owner-1")

        stored = await registry.get(domain.id, "owner-1")
        assert stored.certificate_status == CertificateStatus.FAILED

    @pytest.mark.asyncio
    async def test_renew_unknown_domain(self, certificates):
        with pytest.raises(DomainNotFound):
            await certificates.renew(404, "owner-1")

    @pytest.mark.asyncio
    async def test_renew_unverified(self, registry, certificates):
        domain = await registry.add("owner-1", "tls.example.com")

        with pytest.raises(DomainNotVerified):
            await certificates.renew(domain.id, "owner-1")

    @pytest.mark.asyncio
    async def test_renew_while_initializing(self, registry, certificates):
        domain = await _verified_domain(registry)
        await registry.transition_certificate(
            domain.id, [CertificateStatus.PENDING], CertificateStatus.INITIALIZING
        )

        with pytest.raises(CertificateOperationInProgress):
            await certificates.renew(domain.id, "owner-1")


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_settles_initializing(self, registry, certificates, provider):
        domain = await _verified_domain(registry)
        provider.issue_status = "pending_validation"
        await certificates.initialize(domain)

        provider.certificates[domain.hostname].status = "active"
        assert await certificates.refresh(domain.id, "owner-1") == CertificateStatus.ACTIVE

        stored = await registry.get(domain.id, "owner-1")
        assert stored.certificate_status == CertificateStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_refresh_without_certificate_keeps_status(self, registry, certificates):
        domain = await _verified_domain(registry)

        assert await certificates.refresh(domain.id, "owner-1") == CertificateStatus.PENDING

    @pytest.mark.asyncio
    async def test_refresh_unverified_does_not_call_provider(
        self, registry, certificates, provider
    ):
        domain = await registry.add("owner-1", "tls.example.com")

        assert await certificates.refresh(domain.id, "owner-1") == CertificateStatus.PENDING
        assert provider.called("get_certificate") == 0

    @pytest.mark.asyncio
    async def test_refresh_fails_abandoned_initializing(self, registry, certificates, provider):
        domain = await _verified_domain(registry)
        # Left behind by a process that died before ordering the certificate
        await registry.transition_certificate(
            domain.id, [CertificateStatus.PENDING], CertificateStatus.INITIALIZING
        )

        assert await certificates.refresh(domain.id, "owner-1") == CertificateStatus.FAILED
        stored = await registry.get(domain.id, "owner-1")
        assert stored.certificate_status == CertificateStatus.FAILED

        assert await certificates.renew(domain.id, "owner-1") == CertificateStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_refresh_leaves_running_operation_alone(
        self, registry, certificates, provider
    ):
        domain = await _verified_domain(registry)
        provider.gate = asyncio.Event()

        task = asyncio.create_task(certificates.initialize(domain))
        await provider.started.wait()

        assert await certificates.refresh(domain.id, "owner-1") == CertificateStatus.INITIALIZING
        assert provider.called("get_certificate") == 0
        stored = await registry.get(domain.id, "owner-1")
        assert stored.certificate_status == CertificateStatus.INITIALIZING

        provider.gate.set()
        assert await task == CertificateStatus.ACTIVE
        assert domain.id not in certificates._in_flight
