"""Custom domain management for Chop Domains."""

from .dns_records import DnsRecordStore
from .health import HealthMonitor, HealthReport
from .models import (
    CertificateStatus,
    DnsRecord,
    DnsRecordType,
    Domain,
    DomainSettings,
    RedirectMode,
    VerificationMethod,
)
from .registry import DomainRegistry, normalize_hostname
from .ssl import CertificateManager
from .verification import VerificationEngine

__all__ = [
    "CertificateManager",
    "CertificateStatus",
    "DnsRecord",
    "DnsRecordStore",
    "DnsRecordType",
    "Domain",
    "DomainRegistry",
    "DomainSettings",
    "HealthMonitor",
    "HealthReport",
    "RedirectMode",
    "VerificationEngine",
    "VerificationMethod",
    "normalize_hostname",
]
