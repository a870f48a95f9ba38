"""Get-or-create resolution of the entities a manifest refers to.

The resolver works on a connection that already holds an open
transaction, so every row it creates is committed or rolled back together
with the package version that references it.
"""

import logging
import sqlite3
from collections.abc import Iterable
from typing import Optional

from package_registry.errors import InternalError
from package_registry.models import Collaborator, Package, Person
from package_registry.store import is_unique_violation

logger = logging.getLogger(__name__)


class EntityResolver:
    """Resolve packages and collaborators by natural identity.

    Lookups never deduplicate across calls: resolving the same person twice
    returns the same collaborator twice.

    Attributes:
        conn: Connection with an open write transaction.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def resolve_package(self, name: str) -> Package:
        """Get or create the package with the given name.

        Args:
            name: Package name.

        Returns:
            The existing or newly created Package.
        """
        package = self._find_package(name)
        if package is not None:
            return package

        if self._insert("INSERT INTO packages (name) VALUES (?)", (name,)):
            logger.debug("Created package %s", name)

        package = self._find_package(name)
        if package is None:
            raise InternalError()
        return package

    def resolve_collaborator(self, person: Person) -> Collaborator:
        """Get or create the collaborator with the person's (name, email) identity.

        Args:
            person: Parsed person.

        Returns:
            The existing or newly created Collaborator.
        """
        collaborator = self._find_collaborator(person)
        if collaborator is not None:
            return collaborator

        if self._insert(
            "INSERT INTO collaborators (name, email) VALUES (?, ?)",
            (person.name, person.email),
        ):
            logger.debug("Created collaborator %s <%s>", person.name, person.email)

        collaborator = self._find_collaborator(person)
        if collaborator is None:
            raise InternalError()
        return collaborator

    def resolve_collaborators(self, persons: Iterable[Person]) -> list[Collaborator]:
        """Resolve persons to collaborators, preserving order and repeats."""
        return [self.resolve_collaborator(person) for person in persons]

    def resolve_dependency_packages(self, names: Iterable[str]) -> list[Package]:
        """Resolve package names to packages, creating missing ones.

        No check is made that a referenced package has a published version.
        """
        return [self.resolve_package(name) for name in names]

    def _find_package(self, name: str) -> Optional[Package]:
        row = self.conn.execute(
            "SELECT id, name FROM packages WHERE name = ?", (name,)
        ).fetchone()
        if row is None:
            return None
        return Package(id=row["id"], name=row["name"])

    def _find_collaborator(self, person: Person) -> Optional[Collaborator]:
        row = self.conn.execute(
            "SELECT id, name, email FROM collaborators WHERE name = ? AND email IS ?",
            (person.name, person.email),
        ).fetchone()
        if row is None:
            return None
        return Collaborator(id=row["id"], name=row["name"], email=row["email"])

    def _insert(self, sql: str, params: tuple) -> bool:
        """Attempt an insert that may lose a race against another writer.

        A unique violation means the row was created concurrently; it is
        rolled back to a savepoint so the enclosing transaction stays usable
        and the caller re-fetches.

        Returns:
            True if this call created the row, False if it already existed.
        """
        self.conn.execute("SAVEPOINT get_or_create")
        try:
            self.conn.execute(sql, params)
        except sqlite3.IntegrityError as e:
            self.conn.execute("ROLLBACK TO get_or_create")
            self.conn.execute("RELEASE get_or_create")
            if not is_unique_violation(e):
                raise
            logger.debug("Row created concurrently, re-fetching: %s", params)
            return False
        self.conn.execute("RELEASE get_or_create")
        return True
