"""Gatekeeper: an OAuth2 authorization server core with a FastAPI token endpoint."""

__version__ = "0.1.0"
