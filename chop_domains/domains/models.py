"""
Custom domain data model for Chop Domains.
"""

import enum
import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from ..db.base import Base


class VerificationMethod(str, enum.Enum):
    DNS_TXT = "DNS_TXT"
    DNS_CNAME = "DNS_CNAME"
    FILE = "FILE"


class CertificateStatus(str, enum.Enum):
    PENDING = "PENDING"
    INITIALIZING = "INITIALIZING"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"
    INACTIVE = "INACTIVE"


class RedirectMode(str, enum.Enum):
    PROXY = "PROXY"
    REDIRECT = "REDIRECT"


class DnsRecordType(str, enum.Enum):
    A = "A"
    AAAA = "AAAA"
    CNAME = "CNAME"
    TXT = "TXT"
    MX = "MX"
    NS = "NS"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_verification_token(prefix: str = "chop-verify-") -> str:
    """Fresh, unguessable challenge token. Never reused across domains."""
    return f"{prefix}{secrets.token_urlsafe(24)}"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class Domain(Base):
    """A custom hostname owned by one account."""

    __tablename__ = "domains"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(128), nullable=False, index=True)
    hostname = Column(String(253), nullable=False)
    is_verified = Column(Boolean, nullable=False, default=False)
    verification_token = Column(String(128), nullable=False)
    verification_method = Column(
        Enum(VerificationMethod, native_enum=False, length=16),
        nullable=False,
        default=VerificationMethod.DNS_TXT,
    )
    certificate_status = Column(
        Enum(CertificateStatus, native_enum=False, length=16),
        nullable=False,
        default=CertificateStatus.PENDING,
    )
    is_active = Column(Boolean, nullable=False, default=False)
    last_health_check_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utc_now, onupdate=_utc_now
    )

    __table_args__ = (UniqueConstraint("hostname", name="uq_domains_hostname"),)

    def to_api_response(self) -> dict:
        """Convert to API response, hiding the token once verified."""
        resp = {
            "id": self.id,
            "owner_id": self.owner_id,
            "hostname": self.hostname,
            "is_verified": self.is_verified,
            "verification_method": self.verification_method.value,
            "certificate_status": self.certificate_status.value,
            "is_active": self.is_active,
            "last_health_check_at": _iso(self.last_health_check_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if not self.is_verified:
            resp["verification_token"] = self.verification_token
        return resp

    def __repr__(self) -> str:
        return (
            f"<Domain(id={self.id}, hostname={self.hostname!r}, "
            f"certificate_status={self.certificate_status})>"
        )


class DomainSettings(Base):
    """Per-domain serving options, exactly one row per Domain."""

    __tablename__ = "domain_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain_id = Column(
        Integer,
        ForeignKey("domains.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    redirect_mode = Column(
        Enum(RedirectMode, native_enum=False, length=16),
        nullable=False,
        default=RedirectMode.PROXY,
    )
    custom_nameservers = Column(Text, nullable=True)
    force_ssl = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utc_now, onupdate=_utc_now
    )

    def to_api_response(self) -> dict:
        return {
            "redirect_mode": self.redirect_mode.value,
            "custom_nameservers": self.custom_nameservers,
            "force_ssl": self.force_ssl,
        }


class DnsRecord(Base):
    """Local mirror of a DNS record pushed to the provider for a Domain."""

    __tablename__ = "domain_dns_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain_id = Column(
        Integer,
        ForeignKey("domains.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type = Column(Enum(DnsRecordType, native_enum=False, length=8), nullable=False)
    name = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    ttl = Column(Integer, nullable=False, default=3600)
    priority = Column(Integer, nullable=True)  # MX only
    proxied = Column(Boolean, nullable=False, default=False)
    provider_record_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utc_now, onupdate=_utc_now
    )

    def to_api_response(self) -> dict:
        return {
            "id": self.id,
            "domain_id": self.domain_id,
            "type": self.type.value,
            "name": self.name,
            "content": self.content,
            "ttl": self.ttl,
            "priority": self.priority,
            "proxied": self.proxied,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
