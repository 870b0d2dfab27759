"""
Ownership verification for custom domains.
"""

import logging

from ..errors import (
    CertificateOperationInProgress,
    DomainNotFound,
    ProviderError,
    VerificationProbeFailed,
)
from ..providers.base import DomainProvider
from .models import Domain, VerificationMethod
from .registry import DomainRegistry
from .ssl import CertificateManager

logger = logging.getLogger("chop_domains.verification")


def _unquote(value: str) -> str:
    # Providers may return TXT content wrapped in quotes
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


class VerificationEngine:
    """
    Runs a single ownership probe per call.

    A challenge that does not match returns False; a probe that could not run
    raises VerificationProbeFailed. Retry cadence is the caller's concern.
    """

    def __init__(
        self,
        registry: DomainRegistry,
        provider: DomainProvider,
        certificates: CertificateManager,
        cname_target: str = "verify.chop-url.com",
        file_path: str = "/.well-known/chop-verify.txt",
    ):
        self.registry = registry
        self.provider = provider
        self.certificates = certificates
        self.cname_target = cname_target.lower().rstrip(".")
        self.file_path = file_path

    async def verify(self, domain_id: int, owner_id: str) -> bool:
        domain = await self.registry.get(domain_id, owner_id)
        if domain is None:
            raise DomainNotFound()

        if domain.is_verified:
            return True

        try:
            verified = await self._probe(domain)
        except ProviderError as e:
            logger.warning(f"Verification probe for {domain.hostname} failed: {e}")
            raise VerificationProbeFailed(
                f"Could not check {domain.verification_method.value} challenge "
                f"for {domain.hostname}: {e.message}"
            )

        if not verified:
            logger.info(
                f"Verification for {domain.hostname} "
                f"({domain.verification_method.value}) did not match yet"
            )
            return False

        await self.registry.mark_verified(domain.id, owner_id)
        logger.info(f"Domain verified: {domain.hostname}")

        domain = await self.registry.get(domain_id, owner_id)
        if domain is None:
            raise DomainNotFound()

        # Verification and the first certificate request are one user action.
        # Provider failures are already persisted as FAILED by the manager.
        try:
            await self.certificates.initialize(domain)
        except (ProviderError, CertificateOperationInProgress) as e:
            logger.warning(
                f"Certificate initialization for {domain.hostname} did not complete: {e}"
            )
        return True

    async def _probe(self, domain: Domain) -> bool:
        method = domain.verification_method
        if method == VerificationMethod.DNS_TXT:
            records = await self.provider.list_txt_records(domain.hostname)
            return any(
                _unquote(r.content) == domain.verification_token for r in records
            )

        if method == VerificationMethod.DNS_CNAME:
            records = await self.provider.list_cname_records(domain.hostname)
            return any(
                r.content.strip().lower().rstrip(".") == self.cname_target
                for r in records
            )

        if method == VerificationMethod.FILE:
            probe = await self.provider.fetch_verification_file(
                domain.hostname, self.file_path
            )
            return probe.status_code == 200 and probe.body.strip() == domain.verification_token

        raise VerificationProbeFailed(f"Unsupported verification method: {method}")

    def instructions(self, domain: Domain) -> dict:
        """Return human-readable instructions for the domain's challenge."""
        method = domain.verification_method
        hostname = domain.hostname

        if method == VerificationMethod.DNS_CNAME:
            return {
                "method": method.value,
                "instructions": (
                    f"Add a CNAME record for {hostname} pointing to "
                    f"{self.cname_target}"
                ),
                "record_type": "CNAME",
                "record_name": hostname,
                "record_value": self.cname_target,
            }
        if method == VerificationMethod.FILE:
            url = f"https://{hostname}{self.file_path}"
            return {
                "method": method.value,
                "instructions": (
                    f"Serve a text file at {url} containing only: "
                    f"{domain.verification_token}"
                ),
                "url": url,
                "file_content": domain.verification_token,
            }
        return {
            "method": method.value,
            "instructions": (
                f"Add a TXT record at {hostname} with value: "
                f"{domain.verification_token}"
            ),
            "record_type": "TXT",
            "record_name": hostname,
            "record_value": domain.verification_token,
        }
