"""Parser for DESCRIPTION manifests.

A DESCRIPTION file is a single Debian-control style record: ``Field: value``
lines, with continuation lines indented by whitespace. Besides the block
parser this module provides the helpers that split the list-valued fields
(persons, package references, URLs) into structured values.
"""

import logging
import re
from pathlib import Path
from typing import Optional

from package_registry.errors import ParseError, ValidationError
from package_registry.models import DependencySpec, Person
from package_registry.parsers.base import BaseParser

logger = logging.getLogger(__name__)

# Matches: Field-Name: value
FIELD_PATTERN = re.compile(r"^([^\s:][^:]*):(.*)$")

EMAIL = r"[^@\s<>()]+@[^@\s<>()]+"

# Email notations in priority order: <email>x</email>, <x>, (x)
TAG_EMAIL_PATTERN = re.compile(rf"<email>\s*({EMAIL})\s*</email>", re.IGNORECASE)
ANGLE_EMAIL_PATTERN = re.compile(rf"<\s*({EMAIL})\s*>")
PAREN_EMAIL_PATTERN = re.compile(rf"\(\s*({EMAIL})\s*\)")

# R role annotations such as [aut, cre]
ROLE_PATTERN = re.compile(r"\[[^\]]*\]")

# Matches: pkgname or pkgname (>= 1.0)
PACKAGE_REF_PATTERN = re.compile(r"^([A-Za-z][A-Za-z0-9._]*)\s*(?:\(\s*([^()]*?)\s*\))?$")

# Not a package, only the interpreter requirement
R_PSEUDO_PACKAGE = "R"

PERSON_BRACKETS = {"(": ")", "<": ">", "[": "]"}
PACKAGE_BRACKETS = {"(": ")", "[": "]"}


def split_top_level(
    raw: str,
    brackets: dict[str, str] = PERSON_BRACKETS,
    separator: str = ",",
) -> list[str]:
    """Split on ``separator`` ignoring occurrences inside brackets.

    Args:
        raw: Raw field value.
        brackets: Mapping of opening to closing bracket characters.
        separator: Single separator character.

    Returns:
        Stripped, non-empty parts in input order.
    """
    parts: list[str] = []
    expected: list[str] = []
    current: list[str] = []
    for char in raw:
        if expected and char == expected[-1]:
            expected.pop()
        elif char in brackets and (not expected or expected[-1] != ">"):
            expected.append(brackets[char])
        if char == separator and not expected:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return [part.strip() for part in parts if part.strip()]


def parse_person(entry: str) -> Optional[Person]:
    """Parse a single person entry.

    Recognises ``Name <email>``, ``Name (email)`` and
    ``Name <email>addr</email>``. A parenthetical that is not an email
    address stays part of the name.

    Args:
        entry: One entry of a person list.

    Returns:
        Person, or None if the entry holds neither a name nor an email.
    """
    text = ROLE_PATTERN.sub("", entry)
    email: Optional[str] = None
    for pattern in (TAG_EMAIL_PATTERN, ANGLE_EMAIL_PATTERN, PAREN_EMAIL_PATTERN):
        match = pattern.search(text)
        if match:
            email = match.group(1)
            text = text[: match.start()] + text[match.end() :]
            break

    name = " ".join(text.split())
    if not name and not email:
        return None
    return Person(name=name or email, email=email)


class DescriptionParser(BaseParser):
    """Parser for DESCRIPTION manifests.

    ``parse`` returns the raw field map. The list-valued fields are split
    by ``parse_person_list``, ``parse_package_list`` and ``parse_url_list``.
    """

    @classmethod
    def can_handle(cls, path: Path) -> bool:
        """Check if this parser can handle the given file.

        Args:
            path: Path to check.

        Returns:
            True if the file is named "DESCRIPTION", False otherwise.
        """
        return path.name == "DESCRIPTION"

    @property
    def source_name(self) -> str:
        return "DESCRIPTION"

    @property
    def message_type(self) -> str:
        return "version"

    def parse(self, text: str) -> dict[str, str]:
        """Parse a DESCRIPTION block into a field map.

        Continuation lines are joined to the previous field with a newline;
        a continuation consisting of a single ``.`` stands for an empty line.
        Blank lines are ignored.

        Args:
            text: Raw DESCRIPTION content.

        Returns:
            Mapping of field name to stripped raw value, in input order.

        Raises:
            ParseError: On a line that is neither a field nor a continuation,
                a continuation before the first field, or a repeated field.
        """
        fields: dict[str, str] = {}
        current: Optional[str] = None

        for line_num, line in enumerate(text.lstrip("\ufeff").splitlines(), start=1):
            if not line.strip():
                continue

            if line[0] in " \t":
                if current is None:
                    raise ParseError("continuation line before any field", line_num)
                value = line.strip()
                if value == ".":
                    value = ""
                fields[current] = f"{fields[current]}\n{value}" if fields[current] else value
                continue

            match = FIELD_PATTERN.match(line)
            if not match:
                raise ParseError(f"expected 'Field: value', got {line.strip()!r}", line_num)

            key = match.group(1).strip()
            if any(char.isspace() for char in key):
                raise ParseError(f"invalid field name {key!r}", line_num)
            if key in fields:
                raise ParseError(f"duplicate field {key!r}", line_num)

            fields[key] = match.group(2).strip()
            current = key

        logger.debug("Parsed DESCRIPTION with %d field(s)", len(fields))
        return fields

    def parse_person_list(self, raw: Optional[str]) -> list[Person]:
        """Split a comma-separated person list.

        Commas inside brackets do not split, so ``Jane Doe [aut, cre]``
        stays one entry. Repeated persons are preserved.

        Args:
            raw: Raw field value; None or blank yields an empty list.

        Returns:
            Persons in input order.
        """
        if not raw or not raw.strip():
            return []

        persons = []
        for entry in split_top_level(raw):
            person = parse_person(entry)
            if person is None:
                logger.debug("Skipping empty person entry: %r", entry)
                continue
            persons.append(person)
        return persons

    def parse_package_list(self, raw: Optional[str], field: str) -> list[DependencySpec]:
        """Split a comma-separated package reference list.

        Args:
            raw: Raw field value; None or blank yields an empty list.
            field: Field name, used in error reports.

        Returns:
            Package references in input order, without the ``R`` entry.

        Raises:
            ValidationError: If an entry is not a valid package reference.
        """
        if not raw or not raw.strip():
            return []

        specs = []
        for entry in split_top_level(raw, brackets=PACKAGE_BRACKETS):
            match = PACKAGE_REF_PATTERN.match(" ".join(entry.split()))
            if not match:
                raise ValidationError.for_field(field, f"invalid package reference {entry!r}")
            name, constraint = match.group(1), match.group(2) or None
            if name == R_PSEUDO_PACKAGE:
                continue
            specs.append(DependencySpec(name=name, constraint=constraint))
        return specs

    def parse_url_list(self, raw: Optional[str]) -> list[str]:
        """Split a URL field on commas and whitespace."""
        if not raw:
            return []
        return [url for url in re.split(r"[,\s]+", raw) if url]
