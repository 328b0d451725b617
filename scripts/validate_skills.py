#!/usr/bin/env python3
"""
Skill Collection Validation - Collection Validator

Validates every skill directory under a skills root: frontmatter, naming,
trigger phrases, line budgets, reference links and script shebangs.

Usage:
    uv run python scripts/validate_skills.py
    uv run python scripts/validate_skills.py path/to/skills/ --strict
    uv run python scripts/validate_skills.py path/to/skills/ --format json
    uv run python scripts/validate_skills.py path/to/skills/ --jobs 4 --verbose

Environment:
    SKILL_VALIDATOR_ROOT  Default skills root when no path is given (else ./skills)
    NO_COLOR              Disable colours in --color auto mode

Exit codes:
    0 - No errors (warnings allowed unless --strict)
    1 - Errors found (or warnings under --strict)
    2 - Usage error (root missing or not a directory)
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from skill_rules import check_package
from skill_scanner import SkillPackage, scan_skills_root
from skill_validation_common import (
    DEFAULT_ROOT,
    EXIT_USAGE,
    ROOT_ENV_VAR,
    Severity,
    ValidationIssue,
    ValidationReport,
    colorize,
    format_issue,
)


def aggregate(packages: list[SkillPackage], results: list[list[ValidationIssue]]) -> ValidationReport:
    """Concatenate per-package issues into one report, ordered by skill name.

    Args:
        packages: Scanned packages
        results: Issues for each package, index-aligned with packages

    Returns:
        ValidationReport independent of the order results were produced in
    """
    ordered = sorted(zip(packages, results), key=lambda pair: pair[0].name)
    issues = tuple(issue for _package, package_issues in ordered for issue in package_issues)
    return ValidationReport(issues=issues, skills=tuple(package.name for package, _issues in ordered))


def validate_skills_root(root: Path, jobs: int = 1) -> ValidationReport:
    """Validate all skills under root.

    Args:
        root: Skills root directory (must exist)
        jobs: Worker threads; packages are independent, output order is fixed

    Returns:
        ValidationReport for the whole collection
    """
    packages = scan_skills_root(root)

    if jobs > 1 and len(packages) > 1:
        with ThreadPoolExecutor(max_workers=jobs) as executor:
            # map() yields in submission order regardless of completion order
            results = list(executor.map(check_package, packages))
    else:
        results = [check_package(package) for package in packages]

    return aggregate(packages, results)


def use_color(mode: str, stream: object = None) -> bool:
    """Decide whether to emit ANSI colours for --color mode."""
    if mode == "always":
        return True
    if mode == "never":
        return False
    stream = stream if stream is not None else sys.stdout
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty()) and "NO_COLOR" not in os.environ


def skill_status(report: ValidationReport, skill: str) -> str:
    issues = report.issues_for(skill)
    if any(i.severity is Severity.ERROR for i in issues):
        return "FAIL"
    if issues:
        return "WARN"
    return "OK"


def format_text(
    report: ValidationReport,
    strict: bool = False,
    color: bool = False,
    verbose: bool = False,
) -> str:
    """Render the report as text, one line per issue plus a summary line.

    Args:
        report: The validation report to render
        strict: Whether warnings fail the run
        color: Colour severity tags with ANSI codes
        verbose: Append a per-skill status list
    """
    lines = [format_issue(issue, color) for issue in report.issues]

    if verbose and report.skills:
        if lines:
            lines.append("")
        lines.append("Skills:")
        for skill in report.skills:
            status = skill_status(report, skill)
            level = {"FAIL": "ERROR", "WARN": "WARNING"}.get(status, "OK")
            lines.append(f"  {colorize(status.ljust(4), level, color)} {skill}")

    passed = report.passed_strict if strict else report.passed
    verdict = colorize("PASSED", "OK", color) if passed else colorize("FAILED", "ERROR", color)
    if lines:
        lines.append("")
    lines.append(
        f"Checked {report.packages_checked} skill(s): "
        f"{report.errors} error(s), {report.warnings} warning(s) "
        f"in {report.packages_with_errors} package(s) with errors - {verdict}"
    )
    return "\n".join(lines)


def format_json(report: ValidationReport) -> str:
    """Render the report as a single JSON object."""
    return json.dumps(report.to_dict(), indent=2)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="validate-skills",
        description="Validate a collection of agent skill directories",
    )
    parser.add_argument(
        "root",
        nargs="?",
        default=os.environ.get(ROOT_ENV_VAR, DEFAULT_ROOT),
        help=f"Skills root directory (default: ${ROOT_ENV_VAR} or ./{DEFAULT_ROOT})",
    )
    parser.add_argument("--strict", action="store_true", help="Strict mode - warnings also fail validation")
    parser.add_argument(
        "--format",
        choices=("text", "json"),
        default="text",
        help="Output format (default: text)",
    )
    parser.add_argument(
        "--jobs",
        "-j",
        type=int,
        default=1,
        help="Check skills in parallel with N threads (output order is unchanged)",
    )
    parser.add_argument(
        "--color",
        choices=("auto", "always", "never"),
        default="auto",
        help="Colour severity tags in text output (default: auto)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="List every skill with its status in text output",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for CLI.

    Returns:
        Exit code (0=passed, 1=failed, 2=usage error)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.jobs < 1:
        parser.error("--jobs must be at least 1")

    root = Path(args.root)

    if not root.exists():
        print(f"Error: {root} does not exist", file=sys.stderr)
        return EXIT_USAGE

    if not root.is_dir():
        print(f"Error: {root} is not a directory", file=sys.stderr)
        return EXIT_USAGE

    try:
        report = validate_skills_root(root, jobs=args.jobs)
    except OSError as e:
        print(f"Error: cannot read {root}: {e.strerror or e}", file=sys.stderr)
        return EXIT_USAGE

    if args.format == "json":
        print(format_json(report))
    else:
        print(format_text(report, strict=args.strict, color=use_color(args.color), verbose=args.verbose))

    return report.exit_code(strict=args.strict)


if __name__ == "__main__":
    sys.exit(main())
