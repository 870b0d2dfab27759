"""
Certificate lifecycle for verified custom domains.

Status moves PENDING -> INITIALIZING -> ACTIVE | FAILED. The move into
INITIALIZING is a compare-and-set persisted before the provider is called, so
at most one certificate operation runs per domain and a crash mid-call leaves
INITIALIZING behind instead of a silent PENDING; refresh later settles it
from the provider, or moves it to FAILED when no certificate was ordered.
"""

import asyncio
import logging
from typing import Optional, Set

from ..errors import (
    CertificateOperationInProgress,
    DomainNotFound,
    DomainNotVerified,
    ProviderError,
)
from ..providers.base import CertificateInfo, DomainProvider
from .models import CertificateStatus, Domain
from .registry import DomainRegistry

logger = logging.getLogger("chop_domains.ssl")

INITIALIZE_FROM = (CertificateStatus.PENDING, CertificateStatus.FAILED)
RENEW_FROM = tuple(s for s in CertificateStatus if s != CertificateStatus.INITIALIZING)


def map_provider_status(status: Optional[str]) -> Optional[CertificateStatus]:
    """Translate a provider certificate status; None if there is nothing to map."""
    if not status:
        return None
    status = status.lower()
    if status == "active":
        return CertificateStatus.ACTIVE
    if status == "initializing" or status.startswith("pending"):
        return CertificateStatus.INITIALIZING
    if status == "expired":
        return CertificateStatus.EXPIRED
    if status in ("deleted", "inactive"):
        return CertificateStatus.INACTIVE
    return CertificateStatus.FAILED


class CertificateManager:
    """Drives a domain's certificate status through the provider."""

    def __init__(
        self,
        registry: DomainRegistry,
        provider: DomainProvider,
        timeout: float = 15.0,
    ):
        self.registry = registry
        self.provider = provider
        self.timeout = timeout
        # Domain ids whose INITIALIZING state is owned by a call in this process
        self._in_flight: Set[int] = set()

    async def initialize(self, domain: Domain) -> CertificateStatus:
        """
        Request the first certificate for a freshly verified domain.

        Raises DomainNotVerified, CertificateOperationInProgress, or
        ProviderError (after persisting FAILED).
        """
        settings = await self.registry.get_settings(domain.id)
        force_ssl = settings.force_ssl if settings else True

        async def _issue() -> CertificateInfo:
            if force_ssl:
                await self.provider.enforce_https(domain.hostname)
            return await self.provider.request_certificate(domain.hostname)

        await self._begin(domain, INITIALIZE_FROM)
        logger.info(f"Initializing certificate for {domain.hostname}")
        return await self._run(domain, _issue)

    async def renew(self, domain_id: int, owner_id: str) -> CertificateStatus:
        """Renew the certificate for an owner's verified domain."""
        domain = await self.registry.get(domain_id, owner_id)
        if domain is None:
            raise DomainNotFound()

        await self._begin(domain, RENEW_FROM)
        logger.info(f"Renewing certificate for {domain.hostname}")
        return await self._run(
            domain, lambda: self.provider.renew_certificate(domain.hostname)
        )

    async def refresh(self, domain_id: int, owner_id: str) -> CertificateStatus:
        """
        Sync the stored status with the provider's view.

        Used to settle INITIALIZING once the provider finishes issuing, or
        after a crash left the operation unresolved. An INITIALIZING domain
        with no certificate at the provider never got its order placed and
        is moved to FAILED so it can be retried. Domains with an operation
        running in this process are left to that operation.
        """
        domain = await self.registry.get(domain_id, owner_id)
        if domain is None:
            raise DomainNotFound()
        if not domain.is_verified or domain.id in self._in_flight:
            return domain.certificate_status

        stored = domain.certificate_status
        info = await self._call(lambda: self.provider.get_certificate(domain.hostname))
        observed = map_provider_status(info.status) if info else None
        if observed is None and stored == CertificateStatus.INITIALIZING:
            observed = CertificateStatus.FAILED
        if observed is None or observed == stored:
            return stored

        if await self.registry.transition_certificate(domain.id, [stored], observed):
            logger.info(
                f"Certificate for {domain.hostname} synced: "
                f"{stored.value} -> {observed.value}"
            )
            return observed

        current = await self.registry.get(domain_id, owner_id)
        return current.certificate_status if current else observed

    async def _begin(self, domain: Domain, allowed) -> None:
        """Guarded move into INITIALIZING."""
        if not domain.is_verified:
            raise DomainNotVerified(f"Domain {domain.hostname} is not verified")

        if not await self.registry.transition_certificate(
            domain.id, allowed, CertificateStatus.INITIALIZING
        ):
            current = await self.registry.get(domain.id, domain.owner_id)
            state = current.certificate_status.value if current else "unknown"
            raise CertificateOperationInProgress(
                f"Certificate for {domain.hostname} cannot start from {state}"
            )
        self._in_flight.add(domain.id)

    async def _call(self, factory):
        try:
            return await asyncio.wait_for(factory(), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise ProviderError(f"Certificate provider timed out after {self.timeout}s")

    async def _run(self, domain: Domain, factory) -> CertificateStatus:
        """Call the provider and settle the INITIALIZING state we own."""
        try:
            try:
                info = await self._call(factory)
            except ProviderError as e:
                logger.error(f"Certificate request for {domain.hostname} failed: {e}")
                await self._finish(domain, CertificateStatus.FAILED)
                raise

            outcome = map_provider_status(info.status) or CertificateStatus.FAILED
            if outcome == CertificateStatus.INITIALIZING:
                # Provider is still validating; a later refresh settles it
                logger.info(f"Certificate for {domain.hostname} pending at provider")
                return outcome

            await self._finish(domain, outcome)
            return outcome
        finally:
            self._in_flight.discard(domain.id)

    async def _finish(self, domain: Domain, target: CertificateStatus) -> None:
        if not await self.registry.transition_certificate(
            domain.id, [CertificateStatus.INITIALIZING], target
        ):
            logger.warning(
                f"Certificate for {domain.hostname} changed while the operation "
                f"ran; {target.value} not applied"
            )
