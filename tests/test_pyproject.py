"""Tests for pyproject.toml configuration."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

if sys.version_info >= (3, 11):
    import tomllib
else:
    tomllib = pytest.importorskip("tomli")

PROJECT_ROOT = Path(__file__).parent.parent


@pytest.fixture(scope="module")
def pyproject() -> dict:
    with (PROJECT_ROOT / "pyproject.toml").open("rb") as f:
        return tomllib.load(f)


class TestPyproject:

    def test_project_metadata(self, pyproject):
        project = pyproject["project"]
        assert project["name"] == "podcraft"
        assert project["requires-python"] == ">=3.10"

    def test_version_matches_package(self, pyproject):
        import podcraft

        assert pyproject["project"]["version"] == podcraft.__version__

    @pytest.mark.parametrize("dep", [
        "fastapi", "uvicorn", "pydantic", "python-multipart", "pyyaml", "numpy",
        "soundfile", "google-genai", "httpx", "tenacity", "pypdf", "prometheus-client",
    ])
    def test_runtime_dependencies(self, pyproject, dep):
        names = [d.split(">=")[0].split("[")[0].strip().lower() for d in pyproject["project"]["dependencies"]]
        assert dep in names

    def test_test_extra(self, pyproject):
        test_deps = pyproject["project"]["optional-dependencies"]["test"]
        assert any(d.startswith("pytest") for d in test_deps)

    def test_cli_entry_point(self, pyproject):
        assert pyproject["project"]["scripts"]["podcraft"] == "podcraft.cli:main"

    def test_src_layout(self, pyproject):
        assert pyproject["tool"]["setuptools"]["packages"]["find"]["where"] == ["src"]
        assert (PROJECT_ROOT / "src" / "podcraft" / "__init__.py").exists()
