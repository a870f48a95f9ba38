"""Ingestion of package versions and documentation topics.

This package contains the entity resolver, the two ingestors and the
dispatcher that unifies direct and queue-delivered submissions.
"""

from package_registry.ingestion.dispatcher import (
    IngestionDispatcher,
    IngestionRequest,
    TopicRequest,
    VersionRequest,
    build_request,
)
from package_registry.ingestion.entities import EntityResolver
from package_registry.ingestion.topic import TopicIngestor
from package_registry.ingestion.version import VersionIngestor

__all__ = [
    "EntityResolver",
    "IngestionDispatcher",
    "IngestionRequest",
    "TopicIngestor",
    "TopicRequest",
    "VersionIngestor",
    "VersionRequest",
    "build_request",
]
