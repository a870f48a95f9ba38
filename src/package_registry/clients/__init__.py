"""Clients for external services queried by the registry."""

from package_registry.clients.cranlogs import CranlogsClient
from package_registry.clients.http import HttpClient

__all__ = ["CranlogsClient", "HttpClient"]
