"""
Health reports for custom domains.

A report is derived on every call from live probes; only the check time and
a corrected certificate status are written back to the registry. Values the
service does not measure (uptime ratio, TLS grade) are reported as None.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from ..errors import DomainNotFound, ProviderError
from ..providers.base import CertificateInfo, DomainProvider, HttpProbe
from .models import CertificateStatus, Domain
from .registry import DomainRegistry
from .ssl import map_provider_status

logger = logging.getLogger("chop_domains.health")

SECURITY_HEADERS = (
    "X-Content-Type-Options",
    "X-Frame-Options",
    "X-XSS-Protection",
    "Content-Security-Policy",
)

CRITICAL_CERTIFICATE_STATES = (CertificateStatus.FAILED, CertificateStatus.EXPIRED)


@dataclass
class HealthIssue:
    category: str  # dns | ssl | response | security
    severity: str  # warning | error
    message: str
    recommendation: Optional[str] = None


@dataclass
class CertificateMetrics:
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    issuer: Optional[str] = None
    auto_renewal: bool = False
    days_to_expiry: Optional[int] = None


@dataclass
class PerformanceMetrics:
    response_ms: Optional[float] = None
    status_code: Optional[int] = None
    uptime_ratio: Optional[float] = None
    last_downtime: Optional[datetime] = None


@dataclass
class SecurityMetrics:
    hsts: Optional[bool] = None
    security_headers: Optional[bool] = None
    grade: Optional[str] = None


@dataclass
class HealthMetrics:
    certificate: CertificateMetrics = field(default_factory=CertificateMetrics)
    performance: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    security: SecurityMetrics = field(default_factory=SecurityMetrics)


@dataclass
class HealthReport:
    domain_id: int
    hostname: str
    status: str  # healthy | issues | critical
    dns_status: str  # ok | issues | unreachable
    certificate_status: CertificateStatus
    checked_at: datetime
    metrics: HealthMetrics
    issues: List[HealthIssue] = field(default_factory=list)

    def to_api_response(self) -> dict:
        data = asdict(self)
        data["certificate_status"] = self.certificate_status.value
        data["checked_at"] = self.checked_at.isoformat()
        cert = data["metrics"]["certificate"]
        for key in ("valid_from", "valid_to"):
            if cert[key] is not None:
                cert[key] = cert[key].isoformat()
        perf = data["metrics"]["performance"]
        if perf["last_downtime"] is not None:
            perf["last_downtime"] = perf["last_downtime"].isoformat()
        return data


class HealthMonitor:
    """Composes DNS, certificate and reachability signals into one report."""

    def __init__(
        self,
        registry: DomainRegistry,
        provider: DomainProvider,
        certificate_warning_days: int = 30,
        slow_response_ms: int = 1000,
    ):
        self.registry = registry
        self.provider = provider
        self.certificate_warning_days = certificate_warning_days
        self.slow_response_ms = slow_response_ms

    async def check(self, domain_id: int, owner_id: str) -> HealthReport:
        domain = await self.registry.get(domain_id, owner_id)
        if domain is None:
            raise DomainNotFound()

        now = datetime.now(timezone.utc)
        metrics = HealthMetrics()
        issues: List[HealthIssue] = []

        dns_status, dns_issue = await self._check_dns(domain)
        if dns_issue:
            issues.append(dns_issue)

        certificate_status, ssl_issue = await self._check_certificate(
            domain, now, metrics.certificate
        )
        if ssl_issue:
            issues.append(ssl_issue)

        probe = await self._probe(domain)
        response_issue = self._check_response(probe, now, metrics.performance)
        if response_issue:
            issues.append(response_issue)

        security_issue = self._check_security(probe, metrics.security)
        if security_issue:
            issues.append(security_issue)

        await self.registry.record_health_check(domain.id, now)

        if dns_status == "unreachable" or certificate_status in CRITICAL_CERTIFICATE_STATES:
            status = "critical"
        elif issues:
            status = "issues"
        else:
            status = "healthy"

        logger.info(
            f"Health check for {domain.hostname}: {status} "
            f"(dns={dns_status}, certificate={certificate_status.value}, "
            f"issues={len(issues)})"
        )
        return HealthReport(
            domain_id=domain.id,
            hostname=domain.hostname,
            status=status,
            dns_status=dns_status,
            certificate_status=certificate_status,
            checked_at=now,
            metrics=metrics,
            issues=issues,
        )

    async def _check_dns(self, domain: Domain):
        try:
            addresses = await self.provider.resolve_host(domain.hostname)
        except ProviderError as e:
            return "unreachable", HealthIssue(
                category="dns",
                severity="error",
                message=f"DNS lookup failed: {e.message}",
                recommendation="Check that your nameservers are responding",
            )

        if not addresses:
            return "unreachable", HealthIssue(
                category="dns",
                severity="error",
                message=f"{domain.hostname} does not resolve",
                recommendation="Add the A/AAAA or CNAME record for your domain",
            )

        try:
            txt = await self.provider.list_txt_records(domain.hostname)
            cname = await self.provider.list_cname_records(domain.hostname)
        except ProviderError as e:
            return "issues", HealthIssue(
                category="dns",
                severity="warning",
                message=f"Could not read provider DNS configuration: {e.message}",
            )

        if not txt and not cname:
            return "issues", HealthIssue(
                category="dns",
                severity="warning",
                message="DNS records are not properly configured",
                recommendation="Please verify your DNS configuration and add required records",
            )
        return "ok", None

    async def _check_certificate(
        self, domain: Domain, now: datetime, metrics: CertificateMetrics
    ):
        stored = domain.certificate_status
        try:
            info: Optional[CertificateInfo] = await self.provider.get_certificate(
                domain.hostname
            )
        except ProviderError as e:
            return stored, HealthIssue(
                category="ssl",
                severity="error",
                message=f"Could not read certificate status: {e.message}",
            )

        observed = None
        if info is not None:
            metrics.valid_from = info.valid_from
            metrics.valid_to = info.valid_to
            metrics.issuer = info.issuer
            metrics.auto_renewal = info.auto_renewal
            observed = map_provider_status(info.status)
            if info.valid_to is not None:
                metrics.days_to_expiry = (info.valid_to - now).days
                if info.valid_to <= now:
                    observed = CertificateStatus.EXPIRED

        current = await self._reconcile(domain, stored, observed)

        if current != CertificateStatus.ACTIVE:
            return current, HealthIssue(
                category="ssl",
                severity="error",
                message=f"SSL certificate is not active ({current.value})",
                recommendation="Request a new SSL certificate or check the configuration",
            )
        if (
            metrics.days_to_expiry is not None
            and metrics.days_to_expiry < self.certificate_warning_days
        ):
            return current, HealthIssue(
                category="ssl",
                severity="warning",
                message=f"SSL certificate will expire in {metrics.days_to_expiry} days",
                recommendation="Consider renewing the SSL certificate",
            )
        return current, None

    async def _reconcile(
        self,
        domain: Domain,
        stored: CertificateStatus,
        observed: Optional[CertificateStatus],
    ) -> CertificateStatus:
        """
        Persist drift between the stored and observed certificate status.

        INITIALIZING belongs to the running certificate operation; only that
        operation or CertificateManager.refresh may move it.
        """
        if observed is None or observed == stored or not domain.is_verified:
            return stored
        if stored == CertificateStatus.INITIALIZING:
            return stored

        if await self.registry.transition_certificate(domain.id, [stored], observed):
            logger.warning(
                f"Certificate drift for {domain.hostname}: "
                f"{stored.value} -> {observed.value}"
            )
            return observed

        # Lost the race to another writer; report what is stored now
        current = await self.registry.get(domain.id, domain.owner_id)
        return current.certificate_status if current else stored

    async def _probe(self, domain: Domain) -> HttpProbe:
        try:
            return await self.provider.probe_https(domain.hostname)
        except ProviderError as e:
            return HttpProbe(reachable=False, error=e.message)

    def _check_response(
        self, probe: HttpProbe, now: datetime, metrics: PerformanceMetrics
    ) -> Optional[HealthIssue]:
        metrics.response_ms = probe.response_ms
        metrics.status_code = probe.status_code

        if not probe.reachable:
            metrics.last_downtime = now
            return HealthIssue(
                category="response",
                severity="error",
                message=f"Site is not reachable over HTTPS: {probe.error}",
                recommendation="Check that your server is online and serving HTTPS",
            )
        if probe.status_code is not None and probe.status_code >= 500:
            metrics.last_downtime = now
            return HealthIssue(
                category="response",
                severity="error",
                message=f"Site responded with HTTP {probe.status_code}",
                recommendation="Check your server logs for errors",
            )
        if probe.response_ms is not None and probe.response_ms > self.slow_response_ms:
            return HealthIssue(
                category="response",
                severity="warning",
                message="High response time detected",
                recommendation="Consider optimizing your server configuration",
            )
        return None

    def _check_security(
        self, probe: HttpProbe, metrics: SecurityMetrics
    ) -> Optional[HealthIssue]:
        if not probe.reachable:
            # Nothing to inspect; left as not measured
            return None

        metrics.hsts = probe.header("Strict-Transport-Security") is not None
        metrics.security_headers = any(
            probe.header(name) is not None for name in SECURITY_HEADERS
        )

        missing = []
        if not metrics.hsts:
            missing.append("HSTS is not enabled")
        if not metrics.security_headers:
            missing.append("No security headers are set")
        if not missing:
            return None
        return HealthIssue(
            category="security",
            severity="warning",
            message="; ".join(missing),
            recommendation="Enable HSTS and send standard security headers",
        )
