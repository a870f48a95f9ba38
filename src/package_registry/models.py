"""Core data models for package_registry.

This module defines the records persisted by the registry (packages,
versions, collaborators, topics, reviews), the validated manifest structs
produced by the parsers, and the enriched version document served by the
read path.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional
from urllib.parse import quote

DEPENDENCY_KINDS = ("depends", "imports", "suggests", "enhances")


def package_uri(package_name: str) -> str:
    """Return the resource path of a package."""
    return f"/packages/{quote(package_name, safe='')}"


def version_uri(package_name: str, version: str) -> str:
    """Return the resource path of a package version.

    This is also the location reported after a successful ingestion.
    """
    return f"{package_uri(package_name)}/versions/{quote(version, safe='')}"


def topic_uri(package_name: str, version: str, topic_name: str) -> str:
    """Return the resource path of a topic."""
    return f"{version_uri(package_name, version)}/topics/{quote(topic_name, safe='')}"


@dataclass(frozen=True)
class Person:
    """A name with an optional email, as written in a manifest person list.

    Attributes:
        name: Display name with any email notation removed.
        email: Email address, or None when the entry carries none.
    """

    name: str
    email: Optional[str] = None


@dataclass(frozen=True)
class DependencySpec:
    """A package reference from a Depends/Imports/Suggests/Enhances field.

    Attributes:
        name: Referenced package name.
        constraint: Version constraint such as ``">= 1.0"``, if given.
    """

    name: str
    constraint: Optional[str] = None


@dataclass
class VersionManifest:
    """Validated content of a DESCRIPTION manifest.

    Built from the raw field map before any store access happens, so the
    ingestion code never touches untyped input.
    """

    package_name: str
    version: str
    title: str
    description: str
    license: str
    maintainer: Person
    release_date: Optional[datetime] = None
    urls: list[str] = field(default_factory=list)
    copyright: Optional[str] = None
    authors: list[Person] = field(default_factory=list)
    dependencies: dict[str, list[DependencySpec]] = field(default_factory=dict)


@dataclass
class Package:
    """A package, identified by its unique name."""

    id: int
    name: str

    @property
    def uri(self) -> str:
        return package_uri(self.name)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "uri": self.uri}


@dataclass
class Collaborator:
    """A person referenced as maintainer or author.

    Identity is the ``(name, email)`` pair; the email may be absent.
    """

    id: int
    name: str
    email: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email}


@dataclass
class Dependency:
    """A dependency edge from a package version to a package.

    Attributes:
        package: Target package.
        kind: One of ``depends``, ``imports``, ``suggests``, ``enhances``.
        constraint: Version constraint as written in the manifest.
    """

    package: Package
    kind: str
    constraint: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.package.name,
            "uri": self.package.uri,
            "kind": self.kind,
            "constraint": self.constraint,
        }


@dataclass
class PackageVersion:
    """A persisted package version.

    Attributes:
        id: Store identifier.
        package_id: Identifier of the owning package.
        package_name: Name of the owning package.
        version: Version string, unique per package.
        title: One-line title.
        description: Long description.
        license: License as written in the manifest.
        maintainer_id: Identifier of the maintainer collaborator.
        release_date: Release date, defaulted to ingestion time.
        url: Useful resource URLs.
        copyright: Copyright notice, if any.
    """

    id: int
    package_id: int
    package_name: str
    version: str
    title: str
    description: str
    license: str
    maintainer_id: int
    release_date: datetime
    url: list[str] = field(default_factory=list)
    copyright: Optional[str] = None

    @property
    def uri(self) -> str:
        return version_uri(self.package_name, self.version)

    @property
    def package_uri(self) -> str:
        return package_uri(self.package_name)

    @property
    def location(self) -> str:
        """Location reference of the version, as reported after creation."""
        return self.uri

    def summary(self) -> dict[str, Any]:
        """Return the short form used when a version is nested in another document."""
        return {
            "id": self.id,
            "package_name": self.package_name,
            "version": self.version,
            "title": self.title,
            "release_date": self.release_date.isoformat(),
            "uri": self.uri,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "uri": self.uri,
            "package_uri": self.package_uri,
            "id": self.id,
            "package_name": self.package_name,
            "version": self.version,
            "title": self.title,
            "description": self.description,
            "release_date": self.release_date.isoformat(),
            "license": self.license,
            "url": list(self.url),
            "copyright": self.copyright,
            "maintainer_id": self.maintainer_id,
        }


@dataclass
class Topic:
    """A documentation topic parsed from an Rd file.

    ``name`` is the topic identity within its package version.
    """

    name: str
    title: str
    description: Optional[str] = None
    usage: Optional[str] = None
    details: Optional[str] = None
    value: Optional[str] = None
    examples: Optional[str] = None
    note: Optional[str] = None
    author: Optional[str] = None
    references: Optional[str] = None
    seealso: Optional[str] = None
    aliases: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    arguments: list[dict[str, str]] = field(default_factory=list)
    id: Optional[int] = None
    package_version_id: Optional[int] = None
    package_version: Optional[PackageVersion] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "package_version_id": self.package_version_id,
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "usage": self.usage,
            "details": self.details,
            "value": self.value,
            "examples": self.examples,
            "note": self.note,
            "author": self.author,
            "references": self.references,
            "seealso": self.seealso,
            "aliases": list(self.aliases),
            "keywords": list(self.keywords),
            "arguments": [dict(arg) for arg in self.arguments],
        }
        if self.package_version is not None:
            pv = self.package_version
            data["uri"] = topic_uri(pv.package_name, pv.version, self.name)
            data["package_version"] = pv.summary()
        return data


@dataclass
class User:
    """Public identity of a user. No other user field ever leaves the store."""

    id: int
    username: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "username": self.username}


@dataclass
class Review:
    """A review of a reviewable subject (here always a package version)."""

    id: int
    rating: float
    reviewable: str
    reviewable_id: int
    text: Optional[str] = None
    user: Optional[User] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "rating": self.rating,
            "text": self.text,
            "reviewable": self.reviewable,
            "reviewable_id": self.reviewable_id,
            "user": self.user.to_dict() if self.user else None,
        }


@dataclass
class EnrichedVersion:
    """A package version joined with all of its relations.

    Attributes:
        version: The version record itself.
        package: Owning package.
        maintainer: Maintainer collaborator.
        authors: Author collaborators in manifest order.
        dependencies: Dependency edges in manifest order.
        sibling_versions: Versions of the same package (capped).
        topics: Documentation topics (capped).
        reviews: Reviews with their authors' public identity.
        rating: Mean review rating, or None when there are no reviews.
    """

    version: PackageVersion
    package: Package
    maintainer: Collaborator
    authors: list[Collaborator] = field(default_factory=list)
    dependencies: list[Dependency] = field(default_factory=list)
    sibling_versions: list[PackageVersion] = field(default_factory=list)
    topics: list[Topic] = field(default_factory=list)
    reviews: list[Review] = field(default_factory=list)
    rating: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        """Render the document; ``rating`` is omitted when there are no reviews."""
        data = self.version.to_dict()
        data["maintainer"] = self.maintainer.to_dict()
        data["authors"] = [author.to_dict() for author in self.authors]
        data["dependencies"] = [dep.to_dict() for dep in self.dependencies]
        data["package"] = {
            **self.package.to_dict(),
            "versions": [sibling.summary() for sibling in self.sibling_versions],
        }
        data["topics"] = [topic.to_dict() for topic in self.topics]
        data["reviews"] = [review.to_dict() for review in self.reviews]
        if self.rating is not None:
            data["rating"] = self.rating
        return data
