"""Smoke test: verify the imageclass_views package is importable."""

import tomllib
from pathlib import Path

import imageclass_views

PYPROJECT = Path(__file__).resolve().parent.parent / "pyproject.toml"


def test_package_version() -> None:
    """Package must declare a __version__ string."""
    assert isinstance(imageclass_views.__version__, str)
    assert imageclass_views.__version__ == "0.1.0"


def test_project_metadata_matches_package() -> None:
    """pyproject metadata agrees with the package and points at real files."""
    project = tomllib.loads(PYPROJECT.read_text())["project"]
    assert project["version"] == imageclass_views.__version__
    readme = project.get("readme")
    if readme is not None:
        assert readme.endswith((".md", ".rst", ".txt"))
        assert (PYPROJECT.parent / readme).is_file()
