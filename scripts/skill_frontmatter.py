#!/usr/bin/env python3
"""
Skill Collection Validation - Frontmatter Parser

Extracts the YAML header block from a SKILL.md document. The block must open
on the very first line with ``---`` and close with the next ``---`` line.
Parsing is permissive about keys (unknown keys are kept) but strict about
syntax: malformed YAML, duplicate keys, and non-mapping headers are rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import yaml
from yaml.constructor import ConstructorError
from skill_validation_common import IssueCode

DELIMITER = "---"


class FrontmatterError(Exception):
    """Frontmatter could not be extracted or parsed.

    Attributes:
        code: One of MissingFrontmatter, UnterminatedFrontmatter, MalformedFrontmatter
        message: Human-readable reason
        line: 1-based document line the problem was detected at, if known
    """

    def __init__(self, code: IssueCode, message: str, line: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.line = line


@dataclass(frozen=True)
class Frontmatter:
    """Parsed header block of a skill document."""

    data: dict[str, Any] = field(default_factory=dict)
    body: str = ""
    body_start_line: int = 1

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def __contains__(self, key: object) -> bool:
        return key in self.data

    @property
    def metadata(self) -> dict[str, Any] | None:
        """The nested ``metadata`` mapping, or None when absent or not a mapping."""
        value = self.data.get("metadata")
        return value if isinstance(value, dict) else None


class UniqueKeySafeLoader(yaml.SafeLoader):
    """SafeLoader that refuses mappings with repeated keys.

    PyYAML silently keeps the last value for a duplicated key; a skill header
    with two ``name:`` lines is almost always an editing mistake.
    """

    def construct_mapping(self, node: yaml.MappingNode, deep: bool = False) -> dict[Any, Any]:
        self.flatten_mapping(node)
        seen: set[Any] = set()
        for key_node, _value_node in node.value:
            key = self.construct_object(key_node, deep=deep)
            try:
                duplicate = key in seen
            except TypeError:
                # unhashable keys are reported by the base constructor
                continue
            if duplicate:
                raise ConstructorError(
                    "while constructing a mapping",
                    node.start_mark,
                    f"found duplicate key '{key}'",
                    key_node.start_mark,
                )
            seen.add(key)
        return super().construct_mapping(node, deep=deep)


def _is_delimiter(line: str) -> bool:
    return line.rstrip() == DELIMITER


def _describe_yaml_error(exc: yaml.YAMLError) -> tuple[str, int | None]:
    """Return (reason, 0-based line inside the block) for a PyYAML error."""
    problem = getattr(exc, "problem", None)
    context = getattr(exc, "context", None)
    mark = getattr(exc, "problem_mark", None) or getattr(exc, "context_mark", None)

    if problem:
        reason = f"{problem} ({context})" if context else problem
    else:
        reason = str(exc).splitlines()[0] if str(exc) else type(exc).__name__

    return reason, (mark.line if mark is not None else None)


def parse_frontmatter(content: str) -> Frontmatter:
    """Parse the YAML frontmatter of a skill document.

    Args:
        content: Full text of the document

    Returns:
        Frontmatter with the parsed mapping and the body that follows it

    Raises:
        FrontmatterError: With code MissingFrontmatter when line 1 is not ``---``,
            UnterminatedFrontmatter when no closing ``---`` exists, and
            MalformedFrontmatter when the block is not a valid YAML mapping.
    """
    lines = content.splitlines(keepends=True)

    if not lines or not _is_delimiter(lines[0]):
        message = "Document does not start with a '---' frontmatter delimiter"
        if lines and lines[0].startswith("\ufeff"):
            message += " (file starts with a UTF-8 BOM)"
        raise FrontmatterError(IssueCode.MISSING_FRONTMATTER, message, 1)

    closing = next((i for i in range(1, len(lines)) if _is_delimiter(lines[i])), None)
    if closing is None:
        raise FrontmatterError(
            IssueCode.UNTERMINATED_FRONTMATTER,
            "Frontmatter opened on line 1 is never closed with '---'",
            1,
        )

    block = "".join(lines[1:closing])
    try:
        data = yaml.load(block, Loader=UniqueKeySafeLoader)  # noqa: S506 -- SafeLoader subclass
    except yaml.YAMLError as exc:
        reason, block_line = _describe_yaml_error(exc)
        # block line 0 is document line 2
        line = block_line + 2 if block_line is not None else None
        raise FrontmatterError(IssueCode.MALFORMED_FRONTMATTER, f"Invalid YAML frontmatter: {reason}", line) from exc
    except (ValueError, TypeError) as exc:
        # constructor failures such as 2024-13-45 or !!int abc carry no mark
        raise FrontmatterError(IssueCode.MALFORMED_FRONTMATTER, f"Invalid YAML frontmatter: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise FrontmatterError(
            IssueCode.MALFORMED_FRONTMATTER,
            f"Frontmatter must be a key-value mapping, got {type(data).__name__}",
            2,
        )

    return Frontmatter(data=data, body="".join(lines[closing + 1 :]), body_start_line=closing + 2)
