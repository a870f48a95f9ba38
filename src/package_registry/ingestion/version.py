"""Ingestion of package versions from DESCRIPTION manifests.

The ingestor validates the whole manifest up front, then writes the
package, collaborators, dependencies and the version row in one
transaction. A (package_name, version) pair can only ever be ingested
once; a second attempt fails with ConflictError instead of overwriting.
"""

import json
import logging
import re
import sqlite3
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, Optional, Union

from package_registry.errors import ConflictError, ValidationError
from package_registry.ingestion.entities import EntityResolver
from package_registry.models import PackageVersion, VersionManifest
from package_registry.parsers.description import DescriptionParser
from package_registry.store import RegistryStore

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("PackageName", "Title", "Version", "Maintainer", "Description", "License")

# Alternative spellings accepted for canonical field names
FIELD_ALIASES = {"Package": "PackageName", "Imports": "Import"}

DEPENDENCY_FIELDS = {
    "Depends": "depends",
    "Import": "imports",
    "Suggests": "suggests",
    "Enhances": "enhances",
}

# R package names: letters, digits and dots, starting with a letter
PACKAGE_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9.]*[A-Za-z0-9]$")

# R versions: at least two integers separated by '.' or '-'
VERSION_PATTERN = re.compile(r"^\d+([.-]\d+)+$")

STRING_FIELDS = REQUIRED_FIELDS + tuple(DEPENDENCY_FIELDS) + ("Date", "URL", "Copyright", "Author")

ManifestInput = Union[str, Mapping[str, Any]]


class VersionIngestor:
    """Create package versions from DESCRIPTION manifests.

    Attributes:
        store: Registry store to write to.
        parser: DESCRIPTION parser used for raw text and list fields.
    """

    def __init__(
        self,
        store: RegistryStore,
        parser: Optional[DescriptionParser] = None,
    ) -> None:
        self.store = store
        self.parser = parser or DescriptionParser()

    def create(self, manifest_input: ManifestInput) -> PackageVersion:
        """Ingest a manifest as a new package version.

        Args:
            manifest_input: Raw DESCRIPTION text, or an already parsed
                field mapping such as a queue message body.

        Returns:
            The persisted PackageVersion.

        Raises:
            ValidationError: If a required field is missing or malformed.
            ConflictError: If the (package_name, version) pair already exists.
            InternalError: On any other store failure.
        """
        manifest = self.build_manifest(manifest_input)
        identity = {"package_name": manifest.package_name, "version": manifest.version}

        with self.store.transaction(identity=identity) as conn:
            existing = conn.execute(
                "SELECT id FROM package_versions WHERE package_name = ? AND version = ?",
                (manifest.package_name, manifest.version),
            ).fetchone()
            if existing is not None:
                logger.warning(
                    "Version %s %s already exists", manifest.package_name, manifest.version
                )
                raise ConflictError(
                    f"Version {manifest.version} of {manifest.package_name} already exists",
                    identity=identity,
                )
            version = self._insert(conn, manifest)

        logger.info("Ingested %s %s", version.package_name, version.version)
        return version

    def build_manifest(self, manifest_input: ManifestInput) -> VersionManifest:
        """Parse and validate a manifest without touching the store.

        Every problem found is reported at once in a single ValidationError.

        Args:
            manifest_input: Raw DESCRIPTION text or parsed field mapping.

        Returns:
            Validated VersionManifest.

        Raises:
            ParseError: If raw text has malformed block syntax.
            ValidationError: If fields are missing or malformed.
        """
        if isinstance(manifest_input, str):
            raw_fields: Mapping[str, Any] = self.parser.parse(manifest_input)
        elif isinstance(manifest_input, Mapping):
            raw_fields = manifest_input
        else:
            raise ValidationError.for_field("input", "expected DESCRIPTION text or a mapping")

        fields, errors = self._normalize(raw_fields)

        for name in REQUIRED_FIELDS:
            if not fields.get(name):
                errors.append({"field": name, "message": "is required"})

        package_name = fields.get("PackageName", "")
        if package_name and not PACKAGE_NAME_PATTERN.match(package_name):
            errors.append({"field": "PackageName", "message": f"invalid package name {package_name!r}"})

        version = fields.get("Version", "")
        if version and not VERSION_PATTERN.match(version):
            errors.append({"field": "Version", "message": f"invalid version {version!r}"})

        maintainers = self.parser.parse_person_list(fields.get("Maintainer"))
        if fields.get("Maintainer"):
            if len(maintainers) != 1:
                errors.append({"field": "Maintainer", "message": "must name exactly one person"})
            elif maintainers[0].email is None:
                errors.append({"field": "Maintainer", "message": "email is required"})

        release_date = None
        if fields.get("Date"):
            try:
                release_date = datetime.fromisoformat(fields["Date"])
            except ValueError:
                errors.append({"field": "Date", "message": f"invalid ISO 8601 date {fields['Date']!r}"})
            else:
                if release_date.tzinfo is None:
                    release_date = release_date.replace(tzinfo=UTC)

        dependencies = {}
        for field_name, kind in DEPENDENCY_FIELDS.items():
            try:
                dependencies[kind] = self.parser.parse_package_list(fields.get(field_name), field_name)
            except ValidationError as e:
                errors.extend(e.errors)

        if errors:
            logger.warning("Rejected manifest for %r: %s", package_name or None, errors)
            raise ValidationError("Invalid manifest", errors=errors)

        return VersionManifest(
            package_name=package_name,
            version=version,
            title=fields["Title"],
            description=fields["Description"],
            license=fields["License"],
            maintainer=maintainers[0],
            release_date=release_date,
            urls=self.parser.parse_url_list(fields.get("URL")),
            copyright=fields.get("Copyright") or None,
            authors=self.parser.parse_person_list(fields.get("Author")),
            dependencies=dependencies,
        )

    @staticmethod
    def _normalize(raw_fields: Mapping[str, Any]) -> tuple[dict[str, str], list[dict[str, str]]]:
        """Resolve field aliases and reject non-string values."""
        fields: dict[str, str] = {}
        errors: list[dict[str, str]] = []
        for key, value in raw_fields.items():
            name = FIELD_ALIASES.get(key, key)
            if name in fields and name != key:
                # Canonical spelling wins over its alias
                continue
            if value is None:
                continue
            if not isinstance(value, str):
                if name in STRING_FIELDS:
                    errors.append({"field": name, "message": "must be a string"})
                continue
            fields[name] = value.strip()
        return fields, errors

    def _insert(self, conn: sqlite3.Connection, manifest: VersionManifest) -> PackageVersion:
        """Write the version and everything it references.

        Must run inside the caller's transaction.
        """
        resolver = EntityResolver(conn)
        package = resolver.resolve_package(manifest.package_name)
        maintainer = resolver.resolve_collaborator(manifest.maintainer)
        authors = resolver.resolve_collaborators(manifest.authors)
        dependencies = {
            kind: list(zip(specs, resolver.resolve_dependency_packages(s.name for s in specs)))
            for kind, specs in manifest.dependencies.items()
        }
        release_date = manifest.release_date or datetime.now(UTC)

        cursor = conn.execute(
            """
            INSERT INTO package_versions
            (package_id, package_name, version, title, description, license,
             maintainer_id, release_date, url, copyright)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                package.id,
                manifest.package_name,
                manifest.version,
                manifest.title,
                manifest.description,
                manifest.license,
                maintainer.id,
                release_date.astimezone(UTC).isoformat(),
                json.dumps(manifest.urls),
                manifest.copyright,
            ),
        )
        version_id = cursor.lastrowid

        conn.executemany(
            """
            INSERT INTO version_authors (version_id, collaborator_id, position)
            VALUES (?, ?, ?)
            """,
            [(version_id, author.id, position) for position, author in enumerate(authors)],
        )
        conn.executemany(
            """
            INSERT INTO version_dependencies
            (version_id, package_id, kind, version_constraint, position)
            VALUES (?, ?, ?, ?, ?)
            """,
            [
                (version_id, dep_package.id, kind, spec.constraint, position)
                for kind, pairs in dependencies.items()
                for position, (spec, dep_package) in enumerate(pairs)
            ],
        )

        return PackageVersion(
            id=version_id,
            package_id=package.id,
            package_name=manifest.package_name,
            version=manifest.version,
            title=manifest.title,
            description=manifest.description,
            license=manifest.license,
            maintainer_id=maintainer.id,
            release_date=release_date,
            url=list(manifest.urls),
            copyright=manifest.copyright,
        )
