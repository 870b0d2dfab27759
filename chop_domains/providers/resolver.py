"""
Public DNS lookups for custom domains.
"""

import logging
from typing import List

import dns.asyncresolver
import dns.exception
import dns.resolver

from ..errors import ProviderError

logger = logging.getLogger("chop_domains.providers.resolver")


class PublicResolver:
    """Resolves hostnames through the system's recursive resolvers."""

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    def _get_resolver(self) -> dns.asyncresolver.Resolver:
        resolver = dns.asyncresolver.Resolver()
        resolver.timeout = self.timeout
        resolver.lifetime = self.timeout
        return resolver

    async def resolve(self, hostname: str) -> List[str]:
        """
        Return the A and AAAA addresses for hostname.

        NXDOMAIN and empty answers yield an empty list; timeouts and server
        failures raise ProviderError.
        """
        hostname = hostname.lower().rstrip(".")
        resolver = self._get_resolver()
        addresses: List[str] = []

        for rdtype in ("A", "AAAA"):
            try:
                answers = await resolver.resolve(hostname, rdtype)
            except dns.resolver.NXDOMAIN:
                logger.debug(f"{hostname} does not exist (NXDOMAIN)")
                return []
            except dns.resolver.NoAnswer:
                continue
            except dns.exception.Timeout:
                raise ProviderError(f"DNS lookup for {hostname} timed out")
            except dns.exception.DNSException as e:
                raise ProviderError(f"DNS lookup for {hostname} failed: {e}")
            addresses.extend(str(rdata) for rdata in answers)

        return addresses
