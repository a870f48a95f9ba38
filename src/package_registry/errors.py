"""Error taxonomy shared by the ingestion and retrieval paths.

Every failure that leaves the registry core is one of the classes below.
Callers map them onto transport status codes through the ``status``
attribute and render them with ``to_dict()``.
"""

from typing import Any, Optional


class RegistryError(Exception):
    """Base class for all registry errors.

    Attributes:
        message: Human-readable summary.
        status: Transport-level status code equivalent.
    """

    status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        """Return a serialisable description of the error."""
        return {"error": type(self).__name__, "message": self.message}


class ValidationError(RegistryError):
    """A required field is missing or a field value is malformed.

    Attributes:
        errors: List of ``{"field": ..., "message": ...}`` entries.
    """

    status = 400

    def __init__(
        self,
        message: str,
        errors: Optional[list[dict[str, str]]] = None,
    ) -> None:
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        """Build an error describing a single offending field."""
        return cls(f"{field}: {message}", errors=[{"field": field, "message": message}])

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = list(self.errors)
        return data


class ParseError(ValidationError):
    """The raw input does not follow the expected block syntax.

    Attributes:
        line: 1-based line number of the offending line, when known.
    """

    def __init__(self, message: str, line: Optional[int] = None) -> None:
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message, errors=[{"field": "input", "message": message}])
        self.line = line


class ConflictError(RegistryError):
    """A uniqueness invariant would be violated.

    Attributes:
        identity: Natural identity of the conflicting record.
    """

    status = 409

    def __init__(self, message: str, identity: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.identity = identity or {}

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["identity"] = dict(self.identity)
        return data


class NotFoundError(RegistryError):
    """A referenced package version does not exist."""

    status = 404

    def __init__(self, message: str, identity: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.identity = identity or {}

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["identity"] = dict(self.identity)
        return data


class InternalError(RegistryError):
    """A store or transport failure that could not be classified.

    The original exception is chained as ``__cause__`` for logging, but the
    rendered message never includes its details.
    """

    status = 500

    def __init__(self, message: str = "Internal error") -> None:
        super().__init__(message)
