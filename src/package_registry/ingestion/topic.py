"""Ingestion of documentation topics from Rd files.

A topic belongs to one package version and is identified within it by
its ``\\name``. Re-delivering the same topic fails with ConflictError,
which keeps queue redelivery idempotent without explicit deduplication.
"""

import json
import logging
from collections.abc import Mapping
from typing import Any, Optional, Union

from package_registry.errors import ConflictError, NotFoundError, ValidationError
from package_registry.models import Topic
from package_registry.parsers.rd import LIST_SECTIONS, TEXT_SECTIONS, RdParser
from package_registry.reader import VERSION_COLUMNS, version_from_row
from package_registry.store import RegistryStore

logger = logging.getLogger(__name__)

REQUIRED_TOPIC_FIELDS = ("name", "title")

TopicInput = Union[str, Mapping[str, Any]]


class TopicIngestor:
    """Create topics attached to existing package versions.

    Attributes:
        store: Registry store to write to.
        parser: Rd parser used for raw text input.
    """

    def __init__(self, store: RegistryStore, parser: Optional[RdParser] = None) -> None:
        self.store = store
        self.parser = parser or RdParser()

    def create(self, rd_input: TopicInput, package_name: str, package_version: str) -> Topic:
        """Ingest a topic for the given package version.

        Args:
            rd_input: Raw Rd text, or an already parsed field mapping.
            package_name: Name of the owning package.
            package_version: Version string of the owning package version.

        Returns:
            The persisted Topic.

        Raises:
            ValidationError: If the input is malformed or incomplete.
            NotFoundError: If the package version does not exist.
            ConflictError: If the version already has a topic with this name.
            InternalError: On any other store failure.
        """
        topic = self.build_topic(rd_input)
        identity = {"package_name": package_name, "version": package_version, "topic": topic.name}

        with self.store.transaction(identity=identity) as conn:
            row = conn.execute(
                f"SELECT {VERSION_COLUMNS} FROM package_versions v "
                "WHERE v.package_name = ? AND v.version = ?",
                (package_name, package_version),
            ).fetchone()
            if row is None:
                logger.warning("Topic %s targets unknown version %s %s",
                               topic.name, package_name, package_version)
                raise NotFoundError(
                    f"Version {package_version} of {package_name} not found",
                    identity={"package_name": package_name, "version": package_version},
                )

            owner = version_from_row(row)
            version_id = owner.id
            duplicate = conn.execute(
                "SELECT id FROM topics WHERE package_version_id = ? AND name = ?",
                (version_id, topic.name),
            ).fetchone()
            if duplicate is not None:
                logger.warning("Topic %s already exists for %s %s",
                               topic.name, package_name, package_version)
                raise ConflictError(
                    f"Topic {topic.name} already exists for {package_name} {package_version}",
                    identity=identity,
                )

            cursor = conn.execute(
                """
                INSERT INTO topics
                (package_version_id, name, title, description, usage, details, value,
                 examples, note, author, references_text, seealso, aliases, keywords, arguments)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    version_id,
                    topic.name,
                    topic.title,
                    topic.description,
                    topic.usage,
                    topic.details,
                    topic.value,
                    topic.examples,
                    topic.note,
                    topic.author,
                    topic.references,
                    topic.seealso,
                    json.dumps(topic.aliases),
                    json.dumps(topic.keywords),
                    json.dumps(topic.arguments),
                ),
            )

        topic.id = cursor.lastrowid
        topic.package_version_id = version_id
        topic.package_version = owner
        logger.info("Ingested topic %s for %s %s", topic.name, package_name, package_version)
        return topic

    def build_topic(self, rd_input: TopicInput) -> Topic:
        """Parse and validate topic input without touching the store.

        Args:
            rd_input: Raw Rd text or parsed field mapping. Unknown keys of a
                mapping are ignored.

        Returns:
            Unsaved Topic.

        Raises:
            ParseError: If raw Rd text is malformed.
            ValidationError: If required fields are missing or mistyped.
        """
        if isinstance(rd_input, str):
            fields: Mapping[str, Any] = self.parser.parse(rd_input)
        elif isinstance(rd_input, Mapping):
            fields = rd_input
        else:
            raise ValidationError.for_field("input", "expected Rd text or a mapping")

        errors = []
        for name in REQUIRED_TOPIC_FIELDS:
            value = fields.get(name)
            if not isinstance(value, str) or not value.strip():
                errors.append({"field": name, "message": "is required"})

        values: dict[str, Any] = {}
        for name in TEXT_SECTIONS:
            value = fields.get(name)
            if value is not None and not isinstance(value, str):
                errors.append({"field": name, "message": "must be a string"})
            elif value is not None:
                values[name] = value.strip()

        for name in (*LIST_SECTIONS.values(), "arguments"):
            value = fields.get(name, [])
            if not isinstance(value, list) or not all(
                isinstance(item, dict if name == "arguments" else str) for item in value
            ):
                errors.append({"field": name, "message": "must be a list"})
            else:
                values[name] = list(value)

        if errors:
            logger.warning("Rejected topic input: %s", errors)
            raise ValidationError("Invalid topic", errors=errors)

        return Topic(**values)
