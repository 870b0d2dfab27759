"""HTTP API for Chop Domains."""
