"""
Domain registry: ownership-scoped CRUD for domains and their settings.

All writes to Domain, DomainSettings and DnsRecord rows made on behalf of a
domain go through this class. Hostname uniqueness and certificate state
transitions are enforced by the database, not by read-then-write checks.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..errors import DomainNotFound, HostnameConflict, InvalidHostname, InvalidRequest
from .models import (
    CertificateStatus,
    DnsRecord,
    Domain,
    DomainSettings,
    RedirectMode,
    VerificationMethod,
    generate_verification_token,
)

logger = logging.getLogger("chop_domains.registry")

# Valid domain pattern: allows subdomains of any depth
_DOMAIN_RE = re.compile(
    r"^(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+"
    r"[a-zA-Z]{2,}$"
)

_SETTINGS_FIELDS = ("redirect_mode", "custom_nameservers", "force_ssl")


def normalize_hostname(hostname: str) -> str:
    """Lower-case and validate a hostname, raising InvalidHostname."""
    if not isinstance(hostname, str):
        raise InvalidHostname("Hostname must be a string")
    candidate = hostname.strip().rstrip(".").lower()
    if len(candidate) > 253 or not _DOMAIN_RE.match(candidate):
        raise InvalidHostname(f"Invalid hostname: {hostname!r}")
    return candidate


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _coerce(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidRequest(f"Invalid {enum_cls.__name__}: {value!r}")


class DomainRegistry:
    """
    Source of truth for custom domains.

    Every public lookup is scoped by (domain_id, owner_id); a domain owned by
    someone else is indistinguishable from one that does not exist.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker,
        token_prefix: str = "chop-verify-",
    ):
        self._sessionmaker = sessionmaker
        self.token_prefix = token_prefix

    async def add(
        self,
        owner_id: str,
        hostname: str,
        settings: Optional[dict] = None,
        verification_method: VerificationMethod = VerificationMethod.DNS_TXT,
    ) -> Domain:
        """
        Register a custom domain together with its settings row.

        Raises InvalidHostname for malformed names and HostnameConflict when
        any owner already holds the hostname.
        """
        hostname = normalize_hostname(hostname)
        settings = dict(settings or {})
        unknown = set(settings) - set(_SETTINGS_FIELDS)
        if unknown:
            raise InvalidRequest(f"Unknown settings: {', '.join(sorted(unknown))}")

        domain = Domain(
            owner_id=owner_id,
            hostname=hostname,
            is_verified=False,
            verification_token=generate_verification_token(self.token_prefix),
            verification_method=_coerce(VerificationMethod, verification_method),
            certificate_status=CertificateStatus.PENDING,
            is_active=False,
        )

        async with self._sessionmaker() as session:
            async with session.begin():
                session.add(domain)
                try:
                    await session.flush()
                except IntegrityError:
                    raise HostnameConflict(f"Domain {hostname} is already registered")
                session.add(self._build_settings(domain.id, settings))

        logger.info(f"Registered domain: {hostname} (id={domain.id}) for owner {owner_id}")
        return domain

    @staticmethod
    def _build_settings(domain_id: int, values: dict) -> DomainSettings:
        row = DomainSettings(
            domain_id=domain_id,
            redirect_mode=RedirectMode.PROXY,
            force_ssl=True,
        )
        if values.get("redirect_mode") is not None:
            row.redirect_mode = _coerce(RedirectMode, values["redirect_mode"])
        if "custom_nameservers" in values:
            row.custom_nameservers = values["custom_nameservers"]
        if values.get("force_ssl") is not None:
            row.force_ssl = bool(values["force_ssl"])
        return row

    async def get(self, domain_id: int, owner_id: str) -> Optional[Domain]:
        """Get a domain by id for its owner."""
        async with self._sessionmaker() as session:
            return await self._load(session, domain_id, owner_id)

    @staticmethod
    async def _load(session, domain_id: int, owner_id: str) -> Optional[Domain]:
        result = await session.execute(
            select(Domain).where(Domain.id == domain_id, Domain.owner_id == owner_id)
        )
        return result.scalar_one_or_none()

    async def get_with_settings(
        self, domain_id: int, owner_id: str
    ) -> Optional[Tuple[Domain, DomainSettings]]:
        async with self._sessionmaker() as session:
            result = await session.execute(
                select(Domain, DomainSettings)
                .join(DomainSettings, DomainSettings.domain_id == Domain.id)
                .where(Domain.id == domain_id, Domain.owner_id == owner_id)
            )
            row = result.one_or_none()
            if row is None:
                return None
            return row[0], row[1]

    async def get_settings(self, domain_id: int) -> Optional[DomainSettings]:
        """Settings for a domain already resolved for its owner."""
        async with self._sessionmaker() as session:
            result = await session.execute(
                select(DomainSettings).where(DomainSettings.domain_id == domain_id)
            )
            return result.scalar_one_or_none()

    async def list_for_owner(self, owner_id: str) -> List[Domain]:
        """List all domains for an owner, newest first."""
        async with self._sessionmaker() as session:
            result = await session.execute(
                select(Domain)
                .where(Domain.owner_id == owner_id)
                .order_by(Domain.created_at.desc(), Domain.id.desc())
            )
            return list(result.scalars().all())

    async def update(
        self, domain_id: int, owner_id: str, patch: dict
    ) -> Optional[Domain]:
        """
        Apply a partial update.

        Accepted keys: verification_method (only while unverified), is_active
        and a nested "settings" dict. Returns None when the domain is not
        found for this owner.
        """
        patch = dict(patch)
        settings_patch = patch.pop("settings", None) or {}
        unknown = set(patch) - {"verification_method", "is_active"}
        unknown |= set(settings_patch) - set(_SETTINGS_FIELDS)
        if unknown:
            raise InvalidRequest(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        async with self._sessionmaker() as session:
            async with session.begin():
                domain = await self._load(session, domain_id, owner_id)
                if domain is None:
                    return None

                method = patch.get("verification_method")
                if method is not None:
                    method = _coerce(VerificationMethod, method)
                    if domain.is_verified and method != domain.verification_method:
                        raise InvalidRequest(
                            "Verification method cannot change after verification"
                        )
                    domain.verification_method = method
                if patch.get("is_active") is not None:
                    domain.is_active = bool(patch["is_active"])

                if settings_patch:
                    result = await session.execute(
                        select(DomainSettings).where(DomainSettings.domain_id == domain.id)
                    )
                    row = result.scalar_one()
                    if settings_patch.get("redirect_mode") is not None:
                        row.redirect_mode = _coerce(RedirectMode, settings_patch["redirect_mode"])
                    if "custom_nameservers" in settings_patch:
                        row.custom_nameservers = settings_patch["custom_nameservers"]
                    if settings_patch.get("force_ssl") is not None:
                        row.force_ssl = bool(settings_patch["force_ssl"])

                domain.updated_at = _utc_now()

        logger.info(f"Updated domain: {domain.hostname}")
        return domain

    async def delete(self, domain_id: int, owner_id: str) -> List[DnsRecord]:
        """
        Delete a domain, its settings and all of its DNS records atomically.

        Returns the removed DNS records so their provider-side copies can be
        released by the caller.
        """
        async with self._sessionmaker() as session:
            async with session.begin():
                domain = await self._load(session, domain_id, owner_id)
                if domain is None:
                    raise DomainNotFound()

                result = await session.execute(
                    select(DnsRecord).where(DnsRecord.domain_id == domain.id)
                )
                records = list(result.scalars().all())

                await session.execute(
                    delete(DnsRecord).where(DnsRecord.domain_id == domain.id)
                )
                await session.execute(
                    delete(DomainSettings).where(DomainSettings.domain_id == domain.id)
                )
                await session.execute(delete(Domain).where(Domain.id == domain.id))

        logger.info(
            f"Deleted domain: {domain.hostname} with {len(records)} DNS records"
        )
        return records

    async def mark_verified(self, domain_id: int, owner_id: str) -> bool:
        """Persist a successful ownership challenge."""
        async with self._sessionmaker() as session:
            async with session.begin():
                result = await session.execute(
                    update(Domain)
                    .where(Domain.id == domain_id, Domain.owner_id == owner_id)
                    .values(is_verified=True, updated_at=_utc_now())
                    .execution_options(synchronize_session=False)
                )
        return result.rowcount == 1

    async def transition_certificate(
        self,
        domain_id: int,
        expected: Iterable[CertificateStatus],
        target: CertificateStatus,
    ) -> bool:
        """
        Compare-and-set the certificate status.

        The row only changes when its current status is one of `expected`;
        returns whether this call won the transition.
        """
        expected = [CertificateStatus(s) for s in expected]
        async with self._sessionmaker() as session:
            async with session.begin():
                result = await session.execute(
                    update(Domain)
                    .where(
                        Domain.id == domain_id,
                        Domain.certificate_status.in_(expected),
                    )
                    .values(certificate_status=target, updated_at=_utc_now())
                    .execution_options(synchronize_session=False)
                )
        changed = result.rowcount == 1
        if changed:
            logger.info(f"Domain {domain_id} certificate -> {target.value}")
        else:
            logger.debug(
                f"Domain {domain_id} certificate -> {target.value} rejected, "
                f"expected one of {[s.value for s in expected]}"
            )
        return changed

    async def record_health_check(self, domain_id: int, checked_at: datetime) -> None:
        async with self._sessionmaker() as session:
            async with session.begin():
                await session.execute(
                    update(Domain)
                    .where(Domain.id == domain_id)
                    .values(last_health_check_at=checked_at)
                    .execution_options(synchronize_session=False)
                )
