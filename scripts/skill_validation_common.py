#!/usr/bin/env python3
"""
Skill Collection Validation - Common Module

Shared validation infrastructure for the skill collection validators.
This module contains:
- Type definitions (Severity, IssueCode, ValidationIssue, ValidationReport)
- Common constants (line limits, required fields, name/version patterns)
- Utility functions (sorting, colour formatting, exit codes)

All individual validators should import from this module to ensure consistency.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

# =============================================================================
# Exit Codes
# =============================================================================

EXIT_OK = 0  # No errors (warnings allowed unless --strict)
EXIT_FAILED = 1  # Errors found, or warnings under --strict
EXIT_USAGE = 2  # Bad invocation, no report produced

# =============================================================================
# Common Constants
# =============================================================================

# Primary document every skill directory must carry (case-sensitive)
SKILL_DOC_NAME = "SKILL.md"

# Auxiliary directories scanned (shallow) inside each skill
SCRIPTS_DIR = "scripts"
REFERENCES_DIR = "references"
AUXILIARY_DIRS = (SCRIPTS_DIR, REFERENCES_DIR)

# Maximum non-blank line counts
MAX_SKILL_LINES = 500
MAX_REFERENCE_LINES = 200

# Frontmatter keys every skill must declare, in reporting order
REQUIRED_FIELDS = ("name", "description", "license")

MAX_SKILL_NAME_LENGTH = 64

# Script extensions that must start with an interpreter directive
SCRIPT_EXTENSIONS = {".sh", ".bash", ".zsh", ".py", ".rb", ".pl", ".js", ".mjs", ".ts"}

# Directories to skip when scanning the skills root
SKIP_DIRS = {
    "__pycache__",
    "node_modules",
    ".git",
    ".venv",
    ".pytest_cache",
    ".ruff_cache",
    ".mypy_cache",
}

# Kebab-case skill names: lowercase alphanumerics separated by single hyphens
NAME_PATTERN = re.compile(r"^[a-z][a-z0-9]*(-[a-z0-9]+)*$")

# Semantic-version-like strings: 1.2, 1.2.3, 1.2.3-beta.1, 1.2.3+build
VERSION_PATTERN = re.compile(r"^\d+\.\d+(\.\d+)?([-+][0-9A-Za-z.-]+)?$")

# Environment variable that overrides the default skills root
ROOT_ENV_VAR = "SKILL_VALIDATOR_ROOT"
DEFAULT_ROOT = "skills"

# =============================================================================
# Type Definitions
# =============================================================================


class Severity(str, Enum):
    """Issue severity. Only ERROR fails a run, unless --strict is given."""

    ERROR = "error"
    WARNING = "warning"


class IssueCode(str, Enum):
    """Rule identifiers.

    Declaration order is the reporting order within a single skill: scan and
    parse failures first, then the structural rules.
    """

    MISSING_SKILL_DOC = "MissingSkillDoc"
    UNREADABLE_FILE = "UnreadableFile"
    MISSING_FRONTMATTER = "MissingFrontmatter"
    UNTERMINATED_FRONTMATTER = "UnterminatedFrontmatter"
    MALFORMED_FRONTMATTER = "MalformedFrontmatter"
    MISSING_REQUIRED_FIELD = "MissingRequiredField"
    NAME_MISMATCH = "NameMismatch"
    INVALID_NAME = "InvalidName"
    NO_TRIGGER_PHRASE = "NoTriggerPhrase"
    DOCUMENT_TOO_LONG = "DocumentTooLong"
    REFERENCE_TOO_LONG = "ReferenceTooLong"
    BROKEN_REFERENCE = "BrokenReference"
    MISSING_VERSION = "MissingVersion"
    INVALID_VERSION = "InvalidVersion"
    SCRIPT_MISSING_SHEBANG = "ScriptMissingShebang"

    @property
    def severity(self) -> Severity:
        """Fixed severity for this code."""
        return CODE_SEVERITY[self]

    @property
    def order(self) -> int:
        """Position of this code in the reporting order."""
        return _CODE_ORDER[self]


CODE_SEVERITY: dict[IssueCode, Severity] = {
    IssueCode.MISSING_SKILL_DOC: Severity.ERROR,
    IssueCode.UNREADABLE_FILE: Severity.ERROR,
    IssueCode.MISSING_FRONTMATTER: Severity.ERROR,
    IssueCode.UNTERMINATED_FRONTMATTER: Severity.ERROR,
    IssueCode.MALFORMED_FRONTMATTER: Severity.ERROR,
    IssueCode.MISSING_REQUIRED_FIELD: Severity.ERROR,
    IssueCode.NAME_MISMATCH: Severity.ERROR,
    IssueCode.INVALID_NAME: Severity.ERROR,
    IssueCode.NO_TRIGGER_PHRASE: Severity.WARNING,
    IssueCode.DOCUMENT_TOO_LONG: Severity.WARNING,
    IssueCode.REFERENCE_TOO_LONG: Severity.WARNING,
    IssueCode.BROKEN_REFERENCE: Severity.ERROR,
    IssueCode.MISSING_VERSION: Severity.WARNING,
    IssueCode.INVALID_VERSION: Severity.WARNING,
    IssueCode.SCRIPT_MISSING_SHEBANG: Severity.WARNING,
}

_CODE_ORDER: dict[IssueCode, int] = {code: index for index, code in enumerate(IssueCode)}

# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class ValidationIssue:
    """Single detected violation.

    Attributes:
        skill: Skill directory name the issue belongs to
        code: Rule that was violated
        message: Human-readable description of the problem
        file: Optional file path, relative to the skill directory
        line: Optional 1-based line number in the file
    """

    skill: str
    code: IssueCode
    message: str
    file: str | None = None
    line: int | None = None

    @property
    def severity(self) -> Severity:
        return self.code.severity

    @property
    def location(self) -> str | None:
        """Render file and line as ``file:line`` (or just ``file``)."""
        if self.file is None:
            return None
        if self.line is not None:
            return f"{self.file}:{self.line}"
        return self.file

    def to_dict(self) -> dict[str, str | None]:
        """Convert to dictionary for JSON serialization."""
        return {
            "skill": self.skill,
            "severity": self.severity.value,
            "code": self.code.value,
            "message": self.message,
            "location": self.location,
        }


@dataclass
class IssueCollector:
    """Accumulates issues for one skill without failing fast."""

    skill: str
    issues: list[ValidationIssue] = field(default_factory=list)

    def add(self, code: IssueCode, message: str, file: str | None = None, line: int | None = None) -> None:
        """Add an issue for this collector's skill."""
        self.issues.append(ValidationIssue(self.skill, code, message, file, line))

    def extend(self, issues: list[ValidationIssue] | tuple[ValidationIssue, ...]) -> None:
        self.issues.extend(issues)

    def sorted_issues(self) -> list[ValidationIssue]:
        """Issues in reporting order (stable within one code)."""
        return sort_issues(self.issues)


@dataclass(frozen=True)
class ValidationReport:
    """Complete, immutable result of one validation run.

    Attributes:
        issues: All issues, ordered by skill name then rule order
        skills: Names of the skill directories examined, sorted
    """

    issues: tuple[ValidationIssue, ...] = ()
    skills: tuple[str, ...] = ()

    @property
    def packages_checked(self) -> int:
        return len(self.skills)

    @property
    def errors(self) -> int:
        return sum(1 for i in self.issues if i.severity is Severity.ERROR)

    @property
    def warnings(self) -> int:
        return sum(1 for i in self.issues if i.severity is Severity.WARNING)

    @property
    def packages_with_errors(self) -> int:
        return len({i.skill for i in self.issues if i.severity is Severity.ERROR})

    @property
    def passed(self) -> bool:
        """True when no errors exist. Warnings never fail a normal run."""
        return self.errors == 0

    @property
    def passed_strict(self) -> bool:
        """True when no errors and no warnings exist (--strict mode)."""
        return not self.issues

    def exit_code(self, strict: bool = False) -> int:
        """Get the process exit code for this report."""
        ok = self.passed_strict if strict else self.passed
        return EXIT_OK if ok else EXIT_FAILED

    def issues_for(self, skill: str) -> list[ValidationIssue]:
        return [i for i in self.issues if i.skill == skill]

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for JSON serialization."""
        return {
            "issues": [i.to_dict() for i in self.issues],
            "summary": {
                "errors": self.errors,
                "warnings": self.warnings,
                "packages_with_errors": self.packages_with_errors,
            },
        }


# =============================================================================
# Utility Functions
# =============================================================================


def sort_issues(issues: list[ValidationIssue] | tuple[ValidationIssue, ...]) -> list[ValidationIssue]:
    """Sort issues by rule order. Python's sort is stable, so emission order
    is preserved among issues sharing a code."""
    return sorted(issues, key=lambda i: i.code.order)


def is_valid_kebab_case(name: str) -> bool:
    """Check if name follows kebab-case convention."""
    return bool(NAME_PATTERN.match(name))


def count_non_blank_lines(text: str) -> int:
    """Count lines containing anything other than whitespace."""
    return sum(1 for line in text.splitlines() if line.strip())


# =============================================================================
# Color Formatting (for terminal output)
# =============================================================================

# ANSI color codes
COLORS = {
    "ERROR": "\033[91m",  # Red
    "WARNING": "\033[93m",  # Yellow
    "OK": "\033[92m",  # Green
    "RESET": "\033[0m",  # Reset
    "BOLD": "\033[1m",  # Bold
}


def colorize(text: str, level: str, enabled: bool = True) -> str:
    """Apply color to text based on level."""
    if not enabled:
        return text
    color = COLORS.get(level, "")
    return f"{color}{text}{COLORS['RESET']}"


def format_issue(issue: ValidationIssue, color: bool = False) -> str:
    """Format a single issue as ``SEVERITY: [skill] Code: message (location)``."""
    tag = issue.severity.value.upper()
    parts = [f"{colorize(tag, tag, color)}: [{issue.skill}] {issue.code.value}: {issue.message}"]

    location = issue.location
    if location:
        parts.append(f" ({location})")

    return "".join(parts)
