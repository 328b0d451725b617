#!/usr/bin/env python3
"""Tests for validate_skills.py - report aggregation and the CLI."""

import json
import subprocess
import sys
from pathlib import Path

import pytest
from skill_fixtures import DEFAULT_FILES, make_skill, make_valid_skill, render_skill_md
from skill_rules import check_package
from skill_scanner import scan_skills_root
from skill_validation_common import (
    EXIT_FAILED,
    EXIT_OK,
    EXIT_USAGE,
    ROOT_ENV_VAR,
    IssueCode,
    ValidationIssue,
    ValidationReport,
    format_issue,
)
from validate_skills import aggregate, format_json, format_text, main, validate_skills_root

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
SCRIPT_PATH = PROJECT_ROOT / "scripts" / "validate_skills.py"


def run_validator(*args: str) -> subprocess.CompletedProcess[str]:
    """Run validate_skills.py with given args and return result."""
    cmd = [sys.executable, str(SCRIPT_PATH)] + list(args)
    return subprocess.run(cmd, capture_output=True, text=True, timeout=30)


def warning_only_skill(root: Path, name: str = "web-perf") -> Path:
    """A skill whose only issue is a MissingVersion warning."""
    return make_skill(root, name, render_skill_md(name=name, version=None), DEFAULT_FILES)


def mixed_collection(root: Path) -> None:
    """Several skills covering errors, warnings and a clean package."""
    make_valid_skill(root, "clean")
    make_skill(root, "foo", render_skill_md(name="bar"), DEFAULT_FILES)
    make_skill(root, "no-doc", files={"references/a.md": "a\n"})
    warning_only_skill(root, "warn-only")
    make_skill(root, "bare", "# No header\n\n[x](references/x.md)\n")


class TestReport:
    """ValidationReport summary and serialization."""

    def _report(self) -> ValidationReport:
        return ValidationReport(
            issues=(
                ValidationIssue("a", IssueCode.NAME_MISMATCH, "mismatch", "SKILL.md", 2),
                ValidationIssue("a", IssueCode.MISSING_VERSION, "no version", "SKILL.md"),
                ValidationIssue("b", IssueCode.BROKEN_REFERENCE, "broken", "SKILL.md", 9),
                ValidationIssue("c", IssueCode.MISSING_SKILL_DOC, "missing"),
            ),
            skills=("a", "b", "c", "d"),
        )

    def test_summary_counts(self) -> None:
        report = self._report()
        assert (report.errors, report.warnings, report.packages_with_errors) == (3, 1, 3)
        assert report.packages_checked == 4
        assert not report.passed
        assert report.exit_code() == EXIT_FAILED

    def test_warnings_pass_unless_strict(self) -> None:
        report = ValidationReport(issues=(ValidationIssue("a", IssueCode.DOCUMENT_TOO_LONG, "long", "SKILL.md"),))
        assert report.passed
        assert not report.passed_strict
        assert report.exit_code() == EXIT_OK
        assert report.exit_code(strict=True) == EXIT_FAILED

    def test_to_dict_shape(self) -> None:
        data = self._report().to_dict()
        assert data["summary"] == {"errors": 3, "warnings": 1, "packages_with_errors": 3}
        assert data["issues"][0] == {
            "skill": "a",
            "severity": "error",
            "code": "NameMismatch",
            "message": "mismatch",
            "location": "SKILL.md:2",
        }
        assert data["issues"][3]["location"] is None

    def test_format_issue(self) -> None:
        issue = ValidationIssue("foo", IssueCode.NAME_MISMATCH, "names differ", "SKILL.md", 2)
        assert format_issue(issue) == "ERROR: [foo] NameMismatch: names differ (SKILL.md:2)"
        bare = ValidationIssue("foo", IssueCode.MISSING_SKILL_DOC, "missing")
        assert format_issue(bare) == "ERROR: [foo] MissingSkillDoc: missing"

    def test_format_issue_color(self) -> None:
        issue = ValidationIssue("foo", IssueCode.MISSING_VERSION, "no version", "SKILL.md")
        assert format_issue(issue, color=True).startswith("\033[93mWARNING\033[0m: [foo]")


class TestAggregation:
    """Deterministic ordering across packages."""

    def test_order_independent_of_input_order(self, skills_root: Path) -> None:
        """Shuffled package/result pairs produce the same report."""
        mixed_collection(skills_root)
        packages = scan_skills_root(skills_root)
        results = [check_package(p) for p in packages]
        forward = aggregate(packages, results)
        backward = aggregate(packages[::-1], results[::-1])
        assert forward == backward
        assert forward.skills == ("bare", "clean", "foo", "no-doc", "warn-only")

    def test_packages_in_name_order(self, skills_root: Path) -> None:
        mixed_collection(skills_root)
        report = validate_skills_root(skills_root)
        skills_in_order = [i.skill for i in report.issues]
        assert skills_in_order == sorted(skills_in_order)

    def test_missing_doc_reports_single_issue(self, skills_root: Path) -> None:
        mixed_collection(skills_root)
        report = validate_skills_root(skills_root)
        assert [i.code for i in report.issues_for("no-doc")] == [IssueCode.MISSING_SKILL_DOC]
        assert report.issues_for("clean") == []

    def test_parallel_matches_sequential(self, skills_root: Path) -> None:
        mixed_collection(skills_root)
        sequential = validate_skills_root(skills_root, jobs=1)
        parallel = validate_skills_root(skills_root, jobs=4)
        assert format_json(parallel) == format_json(sequential)

    def test_idempotent(self, skills_root: Path) -> None:
        """Two runs over an unchanged tree render byte-identical reports."""
        mixed_collection(skills_root)
        first = validate_skills_root(skills_root)
        second = validate_skills_root(skills_root)
        assert format_text(first) == format_text(second)
        assert format_json(first) == format_json(second)


class TestMain:
    """In-process CLI behavior."""

    def test_clean_collection(self, skills_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
        make_valid_skill(skills_root)
        assert main([str(skills_root), "--color", "never"]) == EXIT_OK
        out = capsys.readouterr().out
        assert out == "Checked 1 skill(s): 0 error(s), 0 warning(s) in 0 package(s) with errors - PASSED\n"

    def test_name_mismatch_fails(self, skills_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
        make_skill(skills_root, "foo", render_skill_md(name="bar"), DEFAULT_FILES)
        assert main([str(skills_root), "--color", "never"]) == EXIT_FAILED
        lines = capsys.readouterr().out.splitlines()
        assert lines[0] == "ERROR: [foo] NameMismatch: Skill name 'bar' does not match directory name 'foo' (SKILL.md:2)"
        assert lines[-1].endswith("- FAILED")

    def test_strict_flag(self, skills_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """Warnings alone pass normally and fail under --strict."""
        warning_only_skill(skills_root)
        assert main([str(skills_root)]) == EXIT_OK
        assert main([str(skills_root), "--strict"]) == EXIT_FAILED
        out = capsys.readouterr().out
        assert "WARNING: [web-perf] MissingVersion: 'metadata.version' is not set (SKILL.md)" in out

    def test_document_too_long_is_warning_only(self, skills_root: Path) -> None:
        content = render_skill_md() + "".join(f"Step {i}\n" for i in range(600))
        make_skill(skills_root, "web-perf", content, DEFAULT_FILES)
        assert main([str(skills_root)]) == EXIT_OK
        assert main([str(skills_root), "--strict"]) == EXIT_FAILED

    def test_json_format(self, skills_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
        mixed_collection(skills_root)
        assert main([str(skills_root), "--format", "json"]) == EXIT_FAILED
        data = json.loads(capsys.readouterr().out)
        assert set(data) == {"issues", "summary"}
        assert data["summary"]["errors"] == sum(1 for i in data["issues"] if i["severity"] == "error")
        assert {i["code"] for i in data["issues"] if i["skill"] == "bare"} == {"MissingFrontmatter", "BrokenReference"}

    def test_unconvertible_header_value_is_reported(
        self, skills_root: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """An impossible date fails its own package; the rest of the run is reported."""
        make_valid_skill(skills_root, "aaa")
        content = render_skill_md().replace("license: MIT\n", "license: MIT\nupdated: 2024-13-45\n")
        make_skill(skills_root, "web-perf", content, DEFAULT_FILES)
        make_skill(skills_root, "zzz", render_skill_md(name="other"), DEFAULT_FILES)
        assert main([str(skills_root), "--format", "json"]) == EXIT_FAILED
        data = json.loads(capsys.readouterr().out)
        assert [(i["skill"], i["code"]) for i in data["issues"]] == [
            ("web-perf", "MalformedFrontmatter"),
            ("zzz", "NameMismatch"),
        ]
        assert data["issues"][0]["location"] == "SKILL.md"
        assert data["summary"]["packages_with_errors"] == 2

    def test_verbose_lists_skills(self, skills_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
        mixed_collection(skills_root)
        main([str(skills_root), "--verbose", "--color", "never"])
        out = capsys.readouterr().out
        assert "  OK   clean" in out
        assert "  FAIL foo" in out
        assert "  WARN warn-only" in out

    def test_missing_root(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main([str(tmp_path / "nope")]) == EXIT_USAGE
        captured = capsys.readouterr()
        assert "does not exist" in captured.err
        assert captured.out == ""

    def test_root_is_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        target = tmp_path / "skills.txt"
        target.write_text("not a dir\n")
        assert main([str(target)]) == EXIT_USAGE
        assert "not a directory" in capsys.readouterr().err

    def test_root_from_environment(
        self, skills_root: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        make_skill(skills_root, "foo", render_skill_md(name="bar"), DEFAULT_FILES)
        monkeypatch.setenv(ROOT_ENV_VAR, str(skills_root))
        assert main([]) == EXIT_FAILED
        assert "[foo] NameMismatch" in capsys.readouterr().out

    def test_default_root_is_skills_dir(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.delenv(ROOT_ENV_VAR, raising=False)
        monkeypatch.chdir(tmp_path)
        make_valid_skill(tmp_path / "skills")
        assert main([]) == EXIT_OK

    def test_invalid_jobs(self, skills_root: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([str(skills_root), "--jobs", "0"])
        assert exc_info.value.code == EXIT_USAGE


class TestCLI:
    """Running the script as a subprocess."""

    def test_help_flag(self) -> None:
        """--help prints usage information and exits 0."""
        result = run_validator("--help")
        assert result.returncode == 0
        assert "--strict" in result.stdout

    def test_unknown_flag_is_usage_error(self) -> None:
        result = run_validator("--unknown-flag-xyz")
        assert result.returncode == EXIT_USAGE

    def test_bad_format_is_usage_error(self, skills_root: Path) -> None:
        result = run_validator(str(skills_root), "--format=xml")
        assert result.returncode == EXIT_USAGE

    def test_end_to_end(self, skills_root: Path) -> None:
        mixed_collection(skills_root)
        result = run_validator(str(skills_root), "--format=json")
        assert result.returncode == EXIT_FAILED
        data = json.loads(result.stdout)
        assert data["summary"]["packages_with_errors"] == 3

    def test_missing_root_exit_code(self, tmp_path: Path) -> None:
        result = run_validator(str(tmp_path / "missing"))
        assert result.returncode == EXIT_USAGE
        assert "does not exist" in result.stderr
