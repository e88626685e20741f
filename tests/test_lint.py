"""Tests for code quality: ruff lint and format checks."""

import pathlib
import subprocess

import pytest


@pytest.fixture(scope="module")
def project_root():
    """Get project root directory."""
    return str(pathlib.Path(__file__).parent.parent)


def test_ruff_check(project_root):
    """Package code passes ruff lint checks."""
    result = subprocess.run(
        ["ruff", "check", "escrow_auth/"],
        cwd=project_root,
        capture_output=True,
        text=True,
    )
    assert result.returncode == 0, f"ruff check failed:\n{result.stdout}\n{result.stderr}"


def test_ruff_format(project_root):
    """Package code is properly formatted per ruff."""
    result = subprocess.run(
        ["ruff", "format", "--check", "escrow_auth/"],
        cwd=project_root,
        capture_output=True,
        text=True,
    )
    assert result.returncode == 0, f"ruff format check failed:\n{result.stdout}\n{result.stderr}"
