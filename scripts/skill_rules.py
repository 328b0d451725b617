#!/usr/bin/env python3
"""
Skill Collection Validation - Rule Engine

Applies the structural rules to one SkillPackage. Rules are independent: a
failing rule never prevents another from running, and every violation is
collected before the package's issues are returned in rule order.

Rules (in reporting order):
    MissingRequiredField  - name, description or license absent (Error)
    NameMismatch          - frontmatter name differs from directory name (Error)
    InvalidName           - name is not kebab-case (Error)
    NoTriggerPhrase       - description has no quoted phrase or phrase list (Warning)
    DocumentTooLong       - SKILL.md exceeds 500 non-blank lines (Warning)
    ReferenceTooLong      - a references/ file exceeds 200 non-blank lines (Warning)
    BrokenReference       - a link into references/ or scripts/ does not resolve (Error)
    MissingVersion        - metadata.version absent (Warning)
    InvalidVersion        - metadata.version is not semver-like (Warning)
    ScriptMissingShebang  - a script under scripts/ lacks a #! line (Warning)
"""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from pathlib import PurePath, PurePosixPath
from urllib.parse import unquote

from skill_frontmatter import Frontmatter, FrontmatterError, parse_frontmatter
from skill_scanner import SkillPackage
from skill_validation_common import (
    AUXILIARY_DIRS,
    MAX_REFERENCE_LINES,
    MAX_SKILL_LINES,
    MAX_SKILL_NAME_LENGTH,
    REQUIRED_FIELDS,
    SCRIPT_EXTENSIONS,
    SKILL_DOC_NAME,
    VERSION_PATTERN,
    IssueCode,
    IssueCollector,
    ValidationIssue,
    count_non_blank_lines,
    is_valid_kebab_case,
)

# =============================================================================
# Regex Patterns
# =============================================================================

# Inline links and images: [text](target) or [text](<target> "title")
LINK_PATTERN = re.compile(r"\[[^\]]*\]\(\s*(<[^>]*>|[^)\s]+)(?:\s+(?:\"[^\"]*\"|'[^']*'|\([^)]*\)))?\s*\)")

# Reference-style link definitions: [id]: target
LINK_DEFINITION_PATTERN = re.compile(r"^\s{0,3}\[[^\]]+\]:\s*(<[^>]*>|\S+)")

# Bare path mentions such as `references/api.md` or scripts/run.sh
MENTION_PATTERN = re.compile(r"(?<![\w/.-])((?:\./)?(?:references|scripts)/[\w.][\w./-]*)")

HEADING_PATTERN = re.compile(r"^\s{0,3}(#{1,6})\s+(.*?)\s*#*\s*$")
FENCE_PATTERN = re.compile(r"^\s{0,3}(`{3,}|~{3,})")
REFERENCES_HEADING = re.compile(r"^references\b", re.IGNORECASE)

# Anything with a URI scheme (http:, https:, mailto:, file:, ...)
SCHEME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:")

# Quoted trigger phrases: "x", 'x', curly quotes, `x`
QUOTED_PATTERN = re.compile(r"\"[^\"\n]+\"|“[^”\n]+”|‘[^’\n]+’|`[^`\n]+`|(?<!\w)'[^'\n]+'(?!\w)")

TRAILING_PUNCTUATION = ".,;:!?)"


@dataclass(frozen=True)
class Reference:
    """A link target found in SKILL.md."""

    target: str
    line: int


# =============================================================================
# Helpers
# =============================================================================


def _key_line(text: str, key: str, frontmatter: Frontmatter) -> int | None:
    """Find the document line declaring a top-level frontmatter key."""
    pattern = re.compile(rf"^{re.escape(key)}\s*:")
    for number, line in enumerate(text.splitlines()[1 : frontmatter.body_start_line - 2], start=2):
        if pattern.match(line):
            return number
    return None


def _read_text(package: SkillPackage, rel_path: str, collector: IssueCollector) -> str | None:
    """Read a UTF-8 file of the package, recording UnreadableFile on OSError."""
    try:
        return (package.path / rel_path).read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        collector.add(IssueCode.UNREADABLE_FILE, f"File is not valid UTF-8: {e.reason}", rel_path)
    except OSError as e:
        collector.add(IssueCode.UNREADABLE_FILE, f"Cannot read file: {e.strerror or e}", rel_path)
    return None


def normalize_target(target: str) -> str | None:
    """Reduce a link target to a skill-relative POSIX path.

    Returns None for external URLs, pure anchors and empty targets.
    """
    target = target.strip()
    if target.startswith("<") and target.endswith(">"):
        target = target[1:-1].strip()
    if not target or target.startswith("#") or SCHEME_PATTERN.match(target):
        return None

    target = target.split("#", 1)[0].split("?", 1)[0]
    target = unquote(target).replace("\\", "/")
    if not target:
        return None

    while target.startswith("./"):
        target = target[2:]
    return target


def _points_into_aux_dir(target: str) -> bool:
    parts = PurePosixPath(target).parts
    return bool(parts) and parts[0] in AUXILIARY_DIRS


def extract_references(text: str, start_line: int = 1) -> list[Reference]:
    """Collect references from a Markdown document.

    Inline links into references/ or scripts/ count anywhere. Inside a section
    headed "References", every local link and every bare references/ or
    scripts/ path mention counts. Fenced code blocks are skipped.

    Args:
        text: Full document text
        start_line: First line to scan (1-based), to skip the frontmatter

    Returns:
        References in document order
    """
    references: list[Reference] = []
    seen: set[tuple[str, int]] = set()
    fence: str | None = None
    section_level: int | None = None

    for number, line in enumerate(text.splitlines(), start=1):
        if number < start_line:
            continue

        fence_match = FENCE_PATTERN.match(line)
        if fence is not None:
            if fence_match and fence_match.group(1)[0] == fence[0] and len(fence_match.group(1)) >= len(fence):
                fence = None
            continue
        if fence_match:
            fence = fence_match.group(1)
            continue

        heading = HEADING_PATTERN.match(line)
        if heading:
            level = len(heading.group(1))
            if section_level is not None and level <= section_level:
                section_level = None
            if REFERENCES_HEADING.match(heading.group(2).strip()):
                section_level = level
            continue

        in_section = section_level is not None
        links = list(LINK_PATTERN.finditer(line))
        definition = LINK_DEFINITION_PATTERN.match(line)
        if definition:
            links.append(definition)
        link_spans = [m.span() for m in links]
        targets = [m.group(1) for m in links]

        for raw in targets:
            target = normalize_target(raw)
            if target is None:
                continue
            if (in_section or _points_into_aux_dir(target)) and (target, number) not in seen:
                seen.add((target, number))
                references.append(Reference(target, number))

        if in_section:
            for mention in MENTION_PATTERN.finditer(line):
                # link targets were already taken whole; a mention inside one is a fragment
                if any(start <= mention.start() < end for start, end in link_spans):
                    continue
                target = normalize_target(mention.group(1).rstrip(TRAILING_PUNCTUATION))
                if target and (target, number) not in seen:
                    seen.add((target, number))
                    references.append(Reference(target, number))

    return references


def resolve_reference(target: str, package: SkillPackage) -> str | None:
    """Check a normalized target against the package's auxiliary files.

    Returns:
        None when the target resolves, otherwise the reason it does not
    """
    if target.startswith("/") or PurePath(target).is_absolute():
        return "absolute paths are not allowed"
    if ".." in PurePosixPath(target).parts:
        return "path escapes the skill directory"

    normalized = posixpath.normpath(target)
    if normalized in package.auxiliary_files:
        return None
    if normalized in AUXILIARY_DIRS and any(f.startswith(f"{normalized}/") for f in package.auxiliary_files):
        return None
    return "file not found"


def has_trigger_phrase(description: str) -> bool:
    """True when the description quotes a phrase or lists comma-separated phrases."""
    if QUOTED_PATTERN.search(description):
        return True
    segments = [s.strip() for s in description.split(",")]
    return sum(1 for s in segments if s) >= 2


# =============================================================================
# Frontmatter Rules
# =============================================================================


def check_required_fields(frontmatter: Frontmatter, collector: IssueCollector) -> None:
    """Rule: name, description and license must be present and non-empty."""
    for key in REQUIRED_FIELDS:
        value = frontmatter.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            state = "empty" if key in frontmatter else "missing"
            collector.add(
                IssueCode.MISSING_REQUIRED_FIELD,
                f"Required frontmatter field '{key}' is {state}",
                SKILL_DOC_NAME,
            )


def check_name_matches_directory(
    frontmatter: Frontmatter, skill_dir_name: str, text: str, collector: IssueCollector
) -> None:
    """Rule: frontmatter name must equal the directory name exactly."""
    name = frontmatter.get("name")
    if not isinstance(name, str) or not name.strip():
        return

    if name != skill_dir_name:
        collector.add(
            IssueCode.NAME_MISMATCH,
            f"Skill name '{name}' does not match directory name '{skill_dir_name}'",
            SKILL_DOC_NAME,
            _key_line(text, "name", frontmatter),
        )


def check_name_format(frontmatter: Frontmatter, text: str, collector: IssueCollector) -> None:
    """Rule: name must be a kebab-case string of at most 64 characters."""
    if "name" not in frontmatter or frontmatter.get("name") is None:
        return

    name = frontmatter.get("name")
    line = _key_line(text, "name", frontmatter)

    if not isinstance(name, str):
        collector.add(
            IssueCode.INVALID_NAME,
            f"'name' must be a string, got {type(name).__name__}",
            SKILL_DOC_NAME,
            line,
        )
        return

    if not name.strip():
        return

    if len(name) > MAX_SKILL_NAME_LENGTH:
        collector.add(
            IssueCode.INVALID_NAME,
            f"Skill name exceeds {MAX_SKILL_NAME_LENGTH} characters ({len(name)} chars)",
            SKILL_DOC_NAME,
            line,
        )
    if not is_valid_kebab_case(name):
        collector.add(
            IssueCode.INVALID_NAME,
            f"Skill name must be kebab-case (lowercase letters, digits, single hyphens): '{name}'",
            SKILL_DOC_NAME,
            line,
        )


def check_trigger_phrase(frontmatter: Frontmatter, text: str, collector: IssueCollector) -> None:
    """Rule: description should name the phrases that activate the skill."""
    description = frontmatter.get("description")
    if not isinstance(description, str) or not description.strip():
        return

    if not has_trigger_phrase(description):
        collector.add(
            IssueCode.NO_TRIGGER_PHRASE,
            "Description has no quoted trigger phrase or comma-separated phrase list",
            SKILL_DOC_NAME,
            _key_line(text, "description", frontmatter),
        )


def check_version(frontmatter: Frontmatter, text: str, collector: IssueCollector) -> None:
    """Rules: metadata.version should exist and look like a semantic version."""
    if "metadata" in frontmatter and frontmatter.metadata is None and frontmatter.get("metadata") is not None:
        collector.add(
            IssueCode.MISSING_VERSION,
            f"'metadata' must be a mapping with a 'version' key, got {type(frontmatter.get('metadata')).__name__}",
            SKILL_DOC_NAME,
            _key_line(text, "metadata", frontmatter),
        )
        return

    metadata = frontmatter.metadata or {}
    if metadata.get("version") is None:
        collector.add(IssueCode.MISSING_VERSION, "'metadata.version' is not set", SKILL_DOC_NAME)
        return

    version = metadata["version"]
    if not isinstance(version, str) or not VERSION_PATTERN.match(version):
        shown = version if isinstance(version, str) else f"{version!r} ({type(version).__name__}, quote it)"
        collector.add(
            IssueCode.INVALID_VERSION,
            f"'metadata.version' is not a semantic version string: {shown}",
            SKILL_DOC_NAME,
            _key_line(text, "metadata", frontmatter),
        )


# =============================================================================
# Document, Reference and Script Rules
# =============================================================================


def check_document_length(text: str, collector: IssueCollector) -> None:
    """Rule: SKILL.md should stay within MAX_SKILL_LINES non-blank lines."""
    count = count_non_blank_lines(text)
    if count > MAX_SKILL_LINES:
        collector.add(
            IssueCode.DOCUMENT_TOO_LONG,
            f"{SKILL_DOC_NAME} has {count} non-blank lines (limit {MAX_SKILL_LINES}); "
            "move detail into references/",
            SKILL_DOC_NAME,
        )


def check_reference_lengths(package: SkillPackage, collector: IssueCollector) -> None:
    """Rule: each text file under references/ should stay within MAX_REFERENCE_LINES."""
    for rel_path in package.reference_files:
        try:
            raw = (package.path / rel_path).read_bytes()
        except OSError as e:
            collector.add(IssueCode.UNREADABLE_FILE, f"Cannot read file: {e.strerror or e}", rel_path)
            continue

        try:
            content = raw.decode("utf-8")
        except UnicodeDecodeError:
            # binary asset (image, archive); line limits do not apply
            continue

        count = count_non_blank_lines(content)
        if count > MAX_REFERENCE_LINES:
            collector.add(
                IssueCode.REFERENCE_TOO_LONG,
                f"Reference file has {count} non-blank lines (limit {MAX_REFERENCE_LINES})",
                rel_path,
            )


def check_references(
    package: SkillPackage, text: str, frontmatter: Frontmatter | None, collector: IssueCollector
) -> None:
    """Rule: every reference in SKILL.md must resolve to an auxiliary file."""
    start_line = frontmatter.body_start_line if frontmatter is not None else 1

    for ref in extract_references(text, start_line):
        reason = resolve_reference(ref.target, package)
        if reason is None:
            continue
        collector.add(
            IssueCode.BROKEN_REFERENCE,
            f"Reference '{ref.target}' does not resolve ({reason})",
            SKILL_DOC_NAME,
            ref.line,
        )


def check_script_shebangs(package: SkillPackage, collector: IssueCollector) -> None:
    """Rule: recognized scripts must begin with an interpreter directive."""
    for rel_path in package.script_files:
        if PurePosixPath(rel_path).suffix.lower() not in SCRIPT_EXTENSIONS:
            continue
        try:
            with (package.path / rel_path).open("rb") as f:
                first_line = f.readline()
        except OSError as e:
            collector.add(IssueCode.UNREADABLE_FILE, f"Cannot read file: {e.strerror or e}", rel_path)
            continue

        if not first_line.startswith(b"#!"):
            collector.add(
                IssueCode.SCRIPT_MISSING_SHEBANG,
                "Script lacks an interpreter line (e.g. #!/usr/bin/env bash)",
                rel_path,
                1,
            )


# =============================================================================
# Entry Points
# =============================================================================


def run_rules(package: SkillPackage, frontmatter: Frontmatter | None, text: str | None) -> list[ValidationIssue]:
    """Apply every rule to a package whose document has been read.

    Args:
        package: Package under validation
        frontmatter: Parsed frontmatter, or None when parsing failed
        text: Full SKILL.md text, or None when it could not be read

    Returns:
        Issues in rule order
    """
    collector = IssueCollector(package.name)

    if frontmatter is not None and text is not None:
        check_required_fields(frontmatter, collector)
        check_name_matches_directory(frontmatter, package.name, text, collector)
        check_name_format(frontmatter, text, collector)
        check_trigger_phrase(frontmatter, text, collector)

    if text is not None:
        check_document_length(text, collector)

    check_reference_lengths(package, collector)

    if text is not None:
        check_references(package, text, frontmatter, collector)

    if frontmatter is not None and text is not None:
        check_version(frontmatter, text, collector)

    check_script_shebangs(package, collector)

    return collector.sorted_issues()


def check_package(package: SkillPackage) -> list[ValidationIssue]:
    """Validate one scanned package end to end.

    A package without SKILL.md yields only its MissingSkillDoc issue.
    """
    collector = IssueCollector(package.name)
    collector.extend(package.scan_issues)

    if not package.has_document:
        return collector.sorted_issues()

    text = _read_text(package, SKILL_DOC_NAME, collector)

    frontmatter: Frontmatter | None = None
    if text is not None:
        try:
            frontmatter = parse_frontmatter(text)
        except FrontmatterError as e:
            collector.add(e.code, e.message, SKILL_DOC_NAME, e.line)

    collector.extend(run_rules(package, frontmatter, text))
    return collector.sorted_issues()
