"""
Bearer token verification for Chop Domains.

Tokens are HS256 JWTs issued by the account service; the `sub` claim carries
the owner id that scopes every domain operation.
"""

import logging
import time
from typing import Any, Dict, Optional

from jose import JWTError, jwt

logger = logging.getLogger("chop_domains.jwt_verifier")


class TokenVerifier:
    """Verifies signed bearer tokens and extracts the owner id."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        clock_skew_seconds: int = 60,
    ):
        """
        Initialize verifier.

        Args:
            secret: Shared signing secret
            algorithm: JWT signing algorithm
            clock_skew_seconds: Allowed clock skew for expiration
        """
        self.secret = secret
        self.algorithm = algorithm
        self.clock_skew = clock_skew_seconds

    def verify(self, token: str) -> Dict[str, Any]:
        """
        Verify a JWT and return its claims.

        Raises:
            ValueError: If the signature, expiry or `sub` claim is invalid
        """
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"verify_aud": False, "leeway": self.clock_skew},
            )
        except JWTError as e:
            raise ValueError(f"Token verification failed: {e}")

        sub = claims.get("sub")
        if not sub:
            raise ValueError("Missing required claim: sub")

        logger.debug(f"Token verified for owner: {sub}")
        return claims

    def owner_id(self, token: str) -> str:
        return str(self.verify(token)["sub"])

    def issue(self, owner_id: str, expires_in: Optional[int] = 3600) -> str:
        """Sign a token for an owner; used by tooling and tests."""
        now = int(time.time())
        claims: Dict[str, Any] = {"sub": owner_id, "iat": now}
        if expires_in is not None:
            claims["exp"] = now + expires_in
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)
