"""Chop Domains: custom domain management for Chop short links."""

__version__ = "0.1.0"
