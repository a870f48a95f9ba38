"""Parsers for the documents accepted by the registry.

This module provides parsers for DESCRIPTION manifests and Rd
documentation files, plus a helper that picks the right one for a file.
"""

from pathlib import Path

from package_registry.parsers.base import BaseParser
from package_registry.parsers.description import DescriptionParser
from package_registry.parsers.rd import RdParser

__all__ = [
    "BaseParser",
    "DescriptionParser",
    "RdParser",
    "get_parser",
]

# Registry of available parsers in priority order
_PARSERS: list[type[BaseParser]] = [
    DescriptionParser,
    RdParser,
]


def get_parser(path: Path) -> BaseParser:
    """Get the appropriate parser for a given file path.

    Args:
        path: Path to a DESCRIPTION or Rd file.

    Returns:
        Parser instance for the given file.

    Raises:
        ValueError: If no parser can handle the given file.
    """
    for parser_cls in _PARSERS:
        if parser_cls.can_handle(path):
            return parser_cls()

    raise ValueError(
        f"No parser available for '{path.name}'. "
        f"Supported files: DESCRIPTION, *.Rd"
    )
