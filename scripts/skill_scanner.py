#!/usr/bin/env python3
"""
Skill Collection Validation - Document Scanner

Walks a skills root and discovers one SkillPackage per immediate
subdirectory. Only reads the file system; nothing is created or modified.

Layout expected for each skill:
    <root>/<skill-name>/SKILL.md
    <root>/<skill-name>/scripts/*      (optional, shallow)
    <root>/<skill-name>/references/*   (optional, shallow)
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from skill_validation_common import (
    AUXILIARY_DIRS,
    REFERENCES_DIR,
    SCRIPTS_DIR,
    SKILL_DOC_NAME,
    SKIP_DIRS,
    IssueCode,
    ValidationIssue,
)


@dataclass(frozen=True)
class SkillPackage:
    """One skill directory, immutable for the run.

    Attributes:
        name: Directory name
        path: Skill directory
        document_path: SKILL.md path, or None when the directory has none
        auxiliary_files: Files under scripts/ and references/, relative to
            the skill directory with forward slashes, sorted
        scan_issues: Issues raised while scanning this directory
    """

    name: str
    path: Path
    document_path: Path | None
    auxiliary_files: tuple[str, ...] = ()
    scan_issues: tuple[ValidationIssue, ...] = ()

    @property
    def has_document(self) -> bool:
        return self.document_path is not None

    @property
    def script_files(self) -> tuple[str, ...]:
        return tuple(f for f in self.auxiliary_files if f.startswith(f"{SCRIPTS_DIR}/"))

    @property
    def reference_files(self) -> tuple[str, ...]:
        return tuple(f for f in self.auxiliary_files if f.startswith(f"{REFERENCES_DIR}/"))


def should_skip_dir(path: Path) -> bool:
    """Check if directory should be skipped during scanning.

    Args:
        path: Path to check

    Returns:
        True for hidden directories and tool caches
    """
    return path.name in SKIP_DIRS or path.name.startswith(".")


def _list_aux_dir(skill_path: Path, dir_name: str, issues: list[ValidationIssue]) -> list[str]:
    aux_dir = skill_path / dir_name
    if not aux_dir.is_dir():
        return []

    try:
        entries = sorted(aux_dir.iterdir(), key=lambda p: p.name)
    except OSError as e:
        issues.append(
            ValidationIssue(
                skill_path.name,
                IssueCode.UNREADABLE_FILE,
                f"Cannot list {dir_name}/: {e.strerror or e}",
                f"{dir_name}/",
            )
        )
        return []

    return [f"{dir_name}/{entry.name}" for entry in entries if entry.is_file()]


def scan_package(skill_path: Path) -> SkillPackage:
    """Build a SkillPackage for a single skill directory.

    SKILL.md presence is decided from the directory listing so that a
    ``skill.md`` does not satisfy the check on case-insensitive file systems.
    """
    name = skill_path.name
    issues: list[ValidationIssue] = []

    try:
        entries = {entry.name for entry in skill_path.iterdir()}
    except OSError as e:
        issue = ValidationIssue(name, IssueCode.UNREADABLE_FILE, f"Cannot list skill directory: {e.strerror or e}")
        return SkillPackage(name, skill_path, None, scan_issues=(issue,))

    if SKILL_DOC_NAME not in entries:
        message = f"{SKILL_DOC_NAME} not found (required)"
        lowercase = [e for e in entries if e.lower() == SKILL_DOC_NAME.lower()]
        if lowercase:
            message += f"; found '{lowercase[0]}', the name is case-sensitive"
        issue = ValidationIssue(name, IssueCode.MISSING_SKILL_DOC, message, SKILL_DOC_NAME)
        return SkillPackage(name, skill_path, None, scan_issues=(issue,))

    auxiliary: list[str] = []
    for dir_name in AUXILIARY_DIRS:
        auxiliary.extend(_list_aux_dir(skill_path, dir_name, issues))

    return SkillPackage(
        name=name,
        path=skill_path,
        document_path=skill_path / SKILL_DOC_NAME,
        auxiliary_files=tuple(sorted(auxiliary)),
        scan_issues=tuple(issues),
    )


def discover_skill_dirs(root: Path) -> list[Path]:
    """Get skill directories under the root, sorted by name.

    Args:
        root: Skills root directory

    Returns:
        Immediate, non-hidden subdirectories in code-point order of their names

    Raises:
        OSError: If the root itself cannot be listed
    """
    return sorted(
        (p for p in root.iterdir() if p.is_dir() and not should_skip_dir(p)),
        key=lambda p: p.name,
    )


def scan_skills_root(root: Path) -> list[SkillPackage]:
    """Scan every skill directory under root."""
    return [scan_package(skill_dir) for skill_dir in discover_skill_dirs(root)]
