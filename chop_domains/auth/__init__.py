"""Authentication module for Chop Domains."""

from .jwt_verifier import TokenVerifier

__all__ = ["TokenVerifier"]
