"""Shared fixtures for the skill validator tests."""

from pathlib import Path

import pytest


@pytest.fixture
def skills_root(tmp_path: Path) -> Path:
    """An empty skills/ directory."""
    root = tmp_path / "skills"
    root.mkdir()
    return root
