"""Single entry point for both ingestion delivery paths.

Direct submissions and queue deliveries are turned into a typed request
first; each request variant maps to exactly one ingestor, so both paths
share the same validation and conflict semantics.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

from package_registry.errors import ValidationError
from package_registry.ingestion.topic import TopicIngestor
from package_registry.ingestion.version import VersionIngestor
from package_registry.models import PackageVersion, Topic
from package_registry.store import RegistryStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VersionRequest:
    """Request to ingest a DESCRIPTION manifest."""

    payload: Any


@dataclass(frozen=True)
class TopicRequest:
    """Request to ingest an Rd topic for a given package version."""

    payload: Any
    package_name: str
    package_version: str


IngestionRequest = Union[VersionRequest, TopicRequest]


def build_request(type_tag: str, payload: Any) -> IngestionRequest:
    """Turn a type tag and payload into a typed ingestion request.

    Topic payloads name their owning version in a nested
    ``{"package": {"package": ..., "version": ...}}`` structure.

    Raises:
        ValidationError: If the tag is unknown or the topic payload does
            not name its package version.
    """
    if type_tag == "version":
        return VersionRequest(payload=payload)

    if type_tag == "topic":
        package = payload.get("package") if isinstance(payload, Mapping) else None
        if not isinstance(package, Mapping):
            raise ValidationError.for_field("package", "is required")
        package_name = package.get("package")
        package_version = package.get("version")
        errors = [
            {"field": f"package.{key}", "message": "is required"}
            for key, value in (("package", package_name), ("version", package_version))
            if not isinstance(value, str) or not value
        ]
        if errors:
            raise ValidationError("Invalid topic message", errors=errors)
        return TopicRequest(payload=payload, package_name=package_name, package_version=package_version)

    logger.warning("Rejected ingestion request with type %r", type_tag)
    raise ValidationError("Invalid type", errors=[{"field": "type", "message": "Invalid type"}])


class IngestionDispatcher:
    """Route ingestion requests to the version or topic ingestor.

    Attributes:
        version_ingestor: Handles ``version`` requests.
        topic_ingestor: Handles ``topic`` requests.
    """

    TYPES = ("topic", "version")

    def __init__(self, version_ingestor: VersionIngestor, topic_ingestor: TopicIngestor) -> None:
        self.version_ingestor = version_ingestor
        self.topic_ingestor = topic_ingestor

    @classmethod
    def from_store(cls, store: RegistryStore) -> "IngestionDispatcher":
        """Build a dispatcher whose ingestors share one store."""
        return cls(VersionIngestor(store), TopicIngestor(store))

    def dispatch(self, type_tag: str, payload: Any) -> Union[PackageVersion, Topic]:
        """Ingest a payload according to its declared type.

        Args:
            type_tag: Either "version" or "topic".
            payload: Manifest input for versions; Rd fields plus the nested
                package reference for topics.

        Returns:
            The created PackageVersion or Topic.

        Raises:
            ValidationError: On an unknown type tag (no write happens) or
                invalid payload.
            ConflictError: On redelivery of an already ingested document.
            NotFoundError: If a topic targets an unknown package version.
        """
        return self.ingest(build_request(type_tag, payload))

    def ingest(self, request: IngestionRequest) -> Union[PackageVersion, Topic]:
        """Execute a typed ingestion request."""
        if isinstance(request, TopicRequest):
            return self.topic_ingestor.create(
                request.payload, request.package_name, request.package_version
            )
        return self.version_ingestor.create(request.payload)
