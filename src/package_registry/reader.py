"""Retrieval of fully joined package versions.

The reader fetches a version with all of its relations, then computes the
average review rating with a second, separate query. The two steps are
not isolated from concurrent writes: a review inserted in between may or
may not be reflected in the rating.
"""

import json
import logging
import sqlite3
from datetime import datetime
from typing import Optional

from package_registry.models import (
    Collaborator,
    Dependency,
    EnrichedVersion,
    Package,
    PackageVersion,
    Review,
    Topic,
    User,
)
from package_registry.store import RegistryStore

logger = logging.getLogger(__name__)

VERSION_COLUMNS = """
    v.id, v.package_id, v.package_name, v.version, v.title, v.description,
    v.license, v.maintainer_id, v.release_date, v.url, v.copyright
"""


def version_from_row(row: sqlite3.Row) -> PackageVersion:
    """Build a PackageVersion from a row selected with VERSION_COLUMNS."""
    return PackageVersion(
        id=row["id"],
        package_id=row["package_id"],
        package_name=row["package_name"],
        version=row["version"],
        title=row["title"],
        description=row["description"],
        license=row["license"],
        maintainer_id=row["maintainer_id"],
        release_date=datetime.fromisoformat(row["release_date"]),
        url=json.loads(row["url"]),
        copyright=row["copyright"],
    )


def topic_from_row(row: sqlite3.Row, package_version: Optional[PackageVersion] = None) -> Topic:
    """Build a Topic from a ``topics`` row."""
    return Topic(
        id=row["id"],
        package_version_id=row["package_version_id"],
        name=row["name"],
        title=row["title"],
        description=row["description"],
        usage=row["usage"],
        details=row["details"],
        value=row["value"],
        examples=row["examples"],
        note=row["note"],
        author=row["author"],
        references=row["references_text"],
        seealso=row["seealso"],
        aliases=json.loads(row["aliases"]),
        keywords=json.loads(row["keywords"]),
        arguments=json.loads(row["arguments"]),
        package_version=package_version,
    )


class VersionReader:
    """Read package versions joined with their relations.

    Attributes:
        store: Registry store to read from.
        populate_limit: Maximum number of sibling versions and of topics
            included in a result.
    """

    DEFAULT_POPULATE_LIMIT = 30

    def __init__(self, store: RegistryStore, populate_limit: int = DEFAULT_POPULATE_LIMIT) -> None:
        self.store = store
        self.populate_limit = populate_limit

    def find_by_name_version(self, package_name: str, version: str) -> Optional[EnrichedVersion]:
        """Fetch a version by its (package_name, version) identity.

        Args:
            package_name: Name of the package.
            version: Version string.

        Returns:
            EnrichedVersion with ``rating`` set to the mean review rating,
            or left as None when the version has no reviews. None if no
            version matches, in which case no rating query is issued.

        Raises:
            InternalError: On store failure.
        """
        enriched = self._fetch(package_name, version)
        if enriched is None:
            logger.debug("Version %s %s not found", package_name, version)
            return None

        enriched.rating = self.average_rating(enriched.version.id)
        return enriched

    def average_rating(self, version_id: int) -> Optional[float]:
        """Return the mean rating of a version's reviews, or None without reviews."""
        with self.store.connect() as conn:
            row = conn.execute(
                """
                SELECT AVG(rating) AS rating
                FROM reviews
                WHERE reviewable_id = ? AND reviewable = 'version'
                GROUP BY reviewable_id
                """,
                (version_id,),
            ).fetchone()

        if row is None:
            return None
        return float(row["rating"])

    def _fetch(self, package_name: str, version: str) -> Optional[EnrichedVersion]:
        with self.store.connect() as conn:
            row = conn.execute(
                f"""
                SELECT {VERSION_COLUMNS},
                       p.name AS p_name,
                       m.name AS m_name, m.email AS m_email
                FROM package_versions v
                JOIN packages p ON p.id = v.package_id
                JOIN collaborators m ON m.id = v.maintainer_id
                WHERE v.package_name = ? AND v.version = ?
                """,
                (package_name, version),
            ).fetchone()
            if row is None:
                return None

            package_version = version_from_row(row)
            return EnrichedVersion(
                version=package_version,
                package=Package(id=package_version.package_id, name=row["p_name"]),
                maintainer=Collaborator(
                    id=package_version.maintainer_id, name=row["m_name"], email=row["m_email"]
                ),
                authors=self._authors(conn, package_version.id),
                dependencies=self._dependencies(conn, package_version.id),
                sibling_versions=self._siblings(conn, package_version.package_id),
                topics=self._topics(conn, package_version),
                reviews=self._reviews(conn, package_version.id),
            )

    def _authors(self, conn: sqlite3.Connection, version_id: int) -> list[Collaborator]:
        rows = conn.execute(
            """
            SELECT c.id, c.name, c.email
            FROM version_authors a
            JOIN collaborators c ON c.id = a.collaborator_id
            WHERE a.version_id = ?
            ORDER BY a.position
            """,
            (version_id,),
        ).fetchall()
        return [Collaborator(id=r["id"], name=r["name"], email=r["email"]) for r in rows]

    def _dependencies(self, conn: sqlite3.Connection, version_id: int) -> list[Dependency]:
        rows = conn.execute(
            """
            SELECT p.id, p.name, d.kind, d.version_constraint
            FROM version_dependencies d
            JOIN packages p ON p.id = d.package_id
            WHERE d.version_id = ?
            ORDER BY CASE d.kind
                WHEN 'depends' THEN 0 WHEN 'imports' THEN 1
                WHEN 'suggests' THEN 2 ELSE 3 END,
                d.position
            """,
            (version_id,),
        ).fetchall()
        return [
            Dependency(
                package=Package(id=r["id"], name=r["name"]),
                kind=r["kind"],
                constraint=r["version_constraint"],
            )
            for r in rows
        ]

    def _siblings(self, conn: sqlite3.Connection, package_id: int) -> list[PackageVersion]:
        rows = conn.execute(
            f"""
            SELECT {VERSION_COLUMNS}
            FROM package_versions v
            WHERE v.package_id = ?
            ORDER BY v.release_date DESC, v.id DESC
            LIMIT ?
            """,
            (package_id, self.populate_limit),
        ).fetchall()
        return [version_from_row(r) for r in rows]

    def _topics(self, conn: sqlite3.Connection, package_version: PackageVersion) -> list[Topic]:
        rows = conn.execute(
            """
            SELECT * FROM topics
            WHERE package_version_id = ?
            ORDER BY name
            LIMIT ?
            """,
            (package_version.id, self.populate_limit),
        ).fetchall()
        return [topic_from_row(r, package_version) for r in rows]

    def _reviews(self, conn: sqlite3.Connection, version_id: int) -> list[Review]:
        # Only the public identity of the reviewing user is selected.
        rows = conn.execute(
            """
            SELECT r.id, r.rating, r.text, r.reviewable, r.reviewable_id,
                   u.id AS user_id, u.username
            FROM reviews r
            LEFT JOIN users u ON u.id = r.user_id
            WHERE r.reviewable = 'version' AND r.reviewable_id = ?
            ORDER BY r.created_at, r.id
            """,
            (version_id,),
        ).fetchall()
        return [
            Review(
                id=r["id"],
                rating=r["rating"],
                text=r["text"],
                reviewable=r["reviewable"],
                reviewable_id=r["reviewable_id"],
                user=User(id=r["user_id"], username=r["username"]) if r["user_id"] is not None else None,
            )
            for r in rows
        ]
