"""Base interface for input parsers.

Parsers turn the raw documents submitted to the registry (DESCRIPTION
manifests, Rd documentation files) into plain field mappings that the
ingestors validate and persist.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any


class BaseParser(ABC):
    """Abstract base class for document parsers.

    Parsers only deal with syntax. They never touch the store and never
    decide whether a document is complete; that is left to the ingestors.
    """

    @abstractmethod
    def parse(self, text: str) -> dict[str, Any]:
        """Parse raw document text into a field mapping.

        Args:
            text: Raw document content.

        Returns:
            Mapping of field name to parsed value.

        Raises:
            ParseError: If the document syntax is malformed.
        """
        ...

    def parse_file(self, path: Path) -> dict[str, Any]:
        """Read and parse a document from disk.

        Args:
            path: Path to the document.

        Returns:
            Mapping of field name to parsed value.

        Raises:
            FileNotFoundError: If the file does not exist.
            ParseError: If the document syntax is malformed.
        """
        if not path.exists():
            raise FileNotFoundError(f"{self.source_name} file not found: {path}")
        return self.parse(path.read_text(encoding="utf-8"))

    @classmethod
    @abstractmethod
    def can_handle(cls, path: Path) -> bool:
        """Check if this parser can handle the given file.

        Args:
            path: Path to check.

        Returns:
            True if this parser can process the file, False otherwise.
        """
        ...

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Return a human-readable name for the document format.

        Returns:
            Name like "DESCRIPTION" or "Rd".
        """
        ...

    @property
    @abstractmethod
    def message_type(self) -> str:
        """Return the ingestion type tag for documents of this format.

        Returns:
            Either "version" or "topic".
        """
        ...
