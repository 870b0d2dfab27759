"""
DNS record store: local mirror of the records a domain has at the provider.

The local store is authoritative and push-only: records are created at the
provider first and only then stored, so every stored row has a provider copy.
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..errors import (
    DnsRecordNotFound,
    DomainNotFound,
    DomainNotVerified,
    InvalidRequest,
    ProviderError,
)
from ..providers.base import DomainProvider
from .models import DnsRecord, DnsRecordType, Domain

logger = logging.getLogger("chop_domains.dns_records")


class DnsRecordStore:
    """Ownership-scoped CRUD for a domain's DNS records."""

    def __init__(self, sessionmaker: async_sessionmaker, provider: DomainProvider):
        self._sessionmaker = sessionmaker
        self.provider = provider

    async def _owned_domain(self, session, domain_id: int, owner_id: str) -> Domain:
        result = await session.execute(
            select(Domain).where(Domain.id == domain_id, Domain.owner_id == owner_id)
        )
        domain = result.scalar_one_or_none()
        if domain is None:
            raise DomainNotFound()
        return domain

    @staticmethod
    def _validate(record: dict) -> dict:
        try:
            rtype = DnsRecordType(record.get("type"))
        except ValueError:
            raise InvalidRequest(f"Unsupported record type: {record.get('type')!r}")

        name = (record.get("name") or "").strip().rstrip(".").lower()
        content = (record.get("content") or "").strip()
        if not name or not content:
            raise InvalidRequest("Record name and content are required")

        priority = record.get("priority")
        if priority is not None and rtype != DnsRecordType.MX:
            raise InvalidRequest("Priority is only valid for MX records")
        if rtype == DnsRecordType.MX and priority is None:
            priority = 10

        ttl = record.get("ttl")
        if ttl is None:
            ttl = 3600
        if not isinstance(ttl, int) or ttl < 1:
            raise InvalidRequest("TTL must be a positive integer")

        return {
            "type": rtype,
            "name": name,
            "content": content,
            "ttl": ttl,
            "priority": priority,
            "proxied": bool(record.get("proxied", False)),
        }

    async def _check_name(self, session, domain: Domain, name: str) -> None:
        """
        Records live in the shared zone, so a name must sit at or under the
        domain's own hostname and not under another registered domain.
        """
        if not domain.is_verified:
            raise DomainNotVerified(
                f"Domain {domain.hostname} must be verified before adding DNS records"
            )
        if name != domain.hostname and not name.endswith(f".{domain.hostname}"):
            raise InvalidRequest(
                f"Record name {name} is outside of domain {domain.hostname}"
            )

        # Every suffix of name that is more specific than the domain itself
        labels = name.split(".")
        depth = len(domain.hostname.split("."))
        narrower = [".".join(labels[i:]) for i in range(len(labels) - depth)]
        if not narrower:
            return
        result = await session.execute(
            select(Domain.hostname).where(
                Domain.hostname.in_(narrower), Domain.id != domain.id
            )
        )
        claimed = result.scalars().first()
        if claimed is not None:
            raise InvalidRequest(
                f"Record name {name} belongs to another registered domain ({claimed})"
            )

    async def add(self, domain_id: int, owner_id: str, record: dict) -> DnsRecord:
        """Push a record to the provider, then mirror it locally."""
        values = self._validate(record)

        async with self._sessionmaker() as session:
            domain = await self._owned_domain(session, domain_id, owner_id)
            await self._check_name(session, domain, values["name"])

        remote = await self.provider.create_dns_record(
            type=values["type"].value,
            name=values["name"],
            content=values["content"],
            ttl=values["ttl"],
            priority=values["priority"],
            proxied=values["proxied"],
        )

        row = DnsRecord(domain_id=domain_id, provider_record_id=remote.id, **values)
        try:
            async with self._sessionmaker() as session:
                async with session.begin():
                    # Domain may have been deleted while the provider call ran
                    await self._owned_domain(session, domain_id, owner_id)
                    session.add(row)
        except Exception:
            logger.warning(
                f"Storing {values['type'].value} record {values['name']} failed, "
                f"removing provider copy {remote.id}"
            )
            try:
                await self.provider.delete_dns_record(remote.id)
            except ProviderError as e:
                logger.error(
                    f"Could not remove orphaned provider record {remote.id}: {e}"
                )
            raise

        logger.info(
            f"Added {row.type.value} record {row.name} to domain {domain_id}"
        )
        return row

    async def list(self, domain_id: int, owner_id: str) -> List[DnsRecord]:
        async with self._sessionmaker() as session:
            await self._owned_domain(session, domain_id, owner_id)
            result = await session.execute(
                select(DnsRecord)
                .where(DnsRecord.domain_id == domain_id)
                .order_by(DnsRecord.id)
            )
            return list(result.scalars().all())

    async def get(
        self, record_id: int, domain_id: int, owner_id: str
    ) -> Optional[DnsRecord]:
        async with self._sessionmaker() as session:
            await self._owned_domain(session, domain_id, owner_id)
            result = await session.execute(
                select(DnsRecord).where(
                    DnsRecord.id == record_id, DnsRecord.domain_id == domain_id
                )
            )
            return result.scalar_one_or_none()

    async def delete(self, record_id: int, domain_id: int, owner_id: str) -> None:
        """Remove a record from the provider, then from the local mirror."""
        record = await self.get(record_id, domain_id, owner_id)
        if record is None:
            raise DnsRecordNotFound()

        if record.provider_record_id:
            await self.provider.delete_dns_record(record.provider_record_id)

        async with self._sessionmaker() as session:
            async with session.begin():
                await session.execute(delete(DnsRecord).where(DnsRecord.id == record.id))
        logger.info(f"Deleted {record.type.value} record {record.name} from domain {domain_id}")

    async def release(self, records: Iterable[DnsRecord]) -> None:
        """
        Best-effort removal of provider copies after their domain was deleted.

        The local rows are already gone; failures are logged per record.
        """
        for record in records:
            if not record.provider_record_id:
                continue
            try:
                await self.provider.delete_dns_record(record.provider_record_id)
            except ProviderError as e:
                logger.warning(
                    f"Could not release provider record {record.provider_record_id} "
                    f"({record.type.value} {record.name}): {e}"
                )
