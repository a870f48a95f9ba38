"""Parser for Rd documentation files.

An Rd file is a sequence of top-level macros such as ``\\name{...}`` or
``\\title{...}``. This parser extracts the sections the registry stores as
a topic, matching braces while honouring ``\\{``, ``\\}`` escapes and ``%``
comments.
"""

import logging
import re
import textwrap
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from package_registry.errors import ParseError
from package_registry.parsers.base import BaseParser

logger = logging.getLogger(__name__)

MACRO_PATTERN = re.compile(r"\\([A-Za-z]+)")

# Sections stored verbatim as text
TEXT_SECTIONS = (
    "name",
    "title",
    "description",
    "usage",
    "details",
    "value",
    "examples",
    "note",
    "author",
    "references",
    "seealso",
)

# Repeatable sections collected into lists
LIST_SECTIONS = {"alias": "aliases", "keyword": "keywords"}

# Sections whose whitespace is collapsed to a single line
INLINE_SECTIONS = {"name", "title"}


def _strip_comments(text: str) -> str:
    """Remove ``%`` comments, keeping line breaks so offsets map to lines."""
    lines = []
    for line in text.splitlines():
        escaped = False
        for index, char in enumerate(line):
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == "%":
                line = line[:index]
                break
        lines.append(line)
    return "\n".join(lines)


def _line_of(text: str, pos: int) -> int:
    return text.count("\n", 0, pos) + 1


def _read_group(text: str, start: int) -> tuple[str, int]:
    """Read a brace group starting at ``text[start] == "{"``.

    Returns:
        Tuple of (group content, position after the closing brace).

    Raises:
        ParseError: If the group is not closed.
    """
    depth = 0
    pos = start
    while pos < len(text):
        char = text[pos]
        if char == "\\" and pos + 1 < len(text):
            pos += 2
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start + 1 : pos], pos + 1
        pos += 1
    raise ParseError("unbalanced braces", _line_of(text, start))


def _iter_macros(text: str) -> Iterator[tuple[str, list[str], int]]:
    """Yield ``(macro, brace groups, position)`` for each top-level macro.

    Text between macros is skipped. A stray closing brace is an error.
    """
    pos = 0
    while pos < len(text):
        char = text[pos]
        if char == "}":
            raise ParseError("unexpected closing brace", _line_of(text, pos))
        if char == "{":
            # Bare group outside any macro
            _, pos = _read_group(text, pos)
            continue
        if char != "\\":
            pos += 1
            continue

        match = MACRO_PATTERN.match(text, pos)
        if not match:
            # Escaped character such as \% or \{
            pos += 2
            continue

        macro_pos = pos
        pos = match.end()
        groups = []
        while pos < len(text) and text[pos] == "{":
            content, pos = _read_group(text, pos)
            groups.append(content)
        yield match.group(1), groups, macro_pos


def _clean(content: str, inline: bool = False) -> str:
    if inline:
        return " ".join(content.split())
    return textwrap.dedent(content.strip("\n")).strip()


class RdParser(BaseParser):
    """Parser for Rd documentation files.

    The parsed mapping holds one key per text section present in the file,
    plus ``aliases``, ``keywords`` and ``arguments`` lists (always present,
    possibly empty).
    """

    @classmethod
    def can_handle(cls, path: Path) -> bool:
        """Check if this parser can handle the given file.

        Args:
            path: Path to check.

        Returns:
            True if the file has an ``.Rd`` extension, False otherwise.
        """
        return path.suffix.lower() == ".rd"

    @property
    def source_name(self) -> str:
        return "Rd"

    @property
    def message_type(self) -> str:
        return "topic"

    def parse(self, text: str) -> dict[str, Any]:
        """Parse Rd content into topic fields.

        Args:
            text: Raw Rd content.

        Returns:
            Mapping of topic field name to value.

        Raises:
            ParseError: On unbalanced braces or a repeated single section.
        """
        source = _strip_comments(text)
        fields: dict[str, Any] = {"aliases": [], "keywords": [], "arguments": []}

        for macro, groups, pos in _iter_macros(source):
            if not groups:
                continue
            if macro in LIST_SECTIONS:
                fields[LIST_SECTIONS[macro]].append(_clean(groups[0], inline=True))
            elif macro == "arguments":
                fields["arguments"].extend(self._parse_arguments(groups[0]))
            elif macro in TEXT_SECTIONS:
                if macro in fields:
                    raise ParseError(f"duplicate \\{macro} section", _line_of(source, pos))
                fields[macro] = _clean(groups[0], inline=macro in INLINE_SECTIONS)
            else:
                logger.debug("Ignoring Rd section \\%s", macro)

        return fields

    def _parse_arguments(self, content: str) -> list[dict[str, str]]:
        """Extract ``\\item{name}{description}`` entries from an arguments block."""
        arguments = []
        for macro, groups, _ in _iter_macros(content):
            if macro == "item" and len(groups) >= 2:
                arguments.append(
                    {
                        "name": _clean(groups[0], inline=True),
                        "description": _clean(groups[1], inline=True),
                    }
                )
        return arguments
