"""
Error taxonomy for custom domain operations.

Every error carries an HTTP status and a stable machine-readable code so the
API layer can translate it without inspecting messages.
"""


class DomainServiceError(Exception):
    """Base class for all expected domain service failures."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class InvalidHostname(DomainServiceError):
    status_code = 400
    code = "invalid_hostname"


class InvalidRequest(DomainServiceError):
    status_code = 400
    code = "invalid_request"


class HostnameConflict(DomainServiceError):
    status_code = 409
    code = "hostname_conflict"


class DomainNotFound(DomainServiceError):
    """Also raised for domains owned by someone else."""

    status_code = 404
    code = "domain_not_found"

    def __init__(self, message: str = "Domain not found"):
        super().__init__(message)


class DnsRecordNotFound(DomainNotFound):
    code = "dns_record_not_found"

    def __init__(self, message: str = "DNS record not found"):
        super().__init__(message)


class DomainNotVerified(DomainServiceError):
    status_code = 409
    code = "domain_not_verified"


class VerificationProbeFailed(DomainServiceError):
    """The challenge could not be checked; distinct from a negative result."""

    status_code = 502
    code = "verification_probe_failed"


class CertificateOperationInProgress(DomainServiceError):
    status_code = 409
    code = "certificate_operation_in_progress"


class ProviderError(DomainServiceError):
    """Any failure talking to the DNS/TLS provider or probing the host."""

    status_code = 502
    code = "provider_error"


class InternalError(DomainServiceError):
    status_code = 500
    code = "internal_error"
