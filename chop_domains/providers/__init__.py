"""DNS/TLS provider boundary for Chop Domains."""

from .base import (
    CertificateInfo,
    DomainProvider,
    FileProbe,
    HttpProbe,
    ProviderRecord,
)
from .cloudflare import CloudflareProvider
from .resolver import PublicResolver
from .web import WebProber

__all__ = [
    "CertificateInfo",
    "CloudflareProvider",
    "DomainProvider",
    "FileProbe",
    "HttpProbe",
    "ProviderRecord",
    "PublicResolver",
    "WebProber",
]
