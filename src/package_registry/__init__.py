"""Package Registry - metadata registry for R packages.

This package ingests DESCRIPTION manifests and Rd documentation topics into
a relational store and serves fully joined, rating-augmented views of
package versions.
"""

__version__ = "0.1.0"
__author__ = "Package Registry Contributors"

from package_registry.errors import (
    ConflictError,
    InternalError,
    NotFoundError,
    ParseError,
    RegistryError,
    ValidationError,
)
from package_registry.models import (
    Collaborator,
    Dependency,
    EnrichedVersion,
    Package,
    PackageVersion,
    Person,
    Review,
    Topic,
)

__all__ = [
    "__version__",
    "Collaborator",
    "ConflictError",
    "Dependency",
    "EnrichedVersion",
    "InternalError",
    "NotFoundError",
    "Package",
    "PackageVersion",
    "ParseError",
    "Person",
    "RegistryError",
    "Review",
    "Topic",
    "ValidationError",
]
