"""Tests for pyproject.toml configuration."""

import unittest
from pathlib import Path

import tomllib

PYPROJECT_PATH = Path(__file__).parent.parent / "pyproject.toml"


class TestPyprojectConfig(unittest.TestCase):
    """Test pyproject.toml configuration."""

    def setUp(self) -> None:
        """Load pyproject.toml."""
        with open(PYPROJECT_PATH, "rb") as f:
            self.pyproject_data = tomllib.load(f)

    def test_minimal_python_version(self) -> None:
        """Test that the minimal Python version requirement is 3.10."""
        requires_python = self.pyproject_data["project"]["requires-python"]

        self.assertEqual(requires_python, ">=3.10", f"Expected minimal Python version to be >=3.10, got {requires_python}")

    def test_console_script(self) -> None:
        """Test that the anywhere-agent command points at the CLI."""
        scripts = self.pyproject_data["project"]["scripts"]

        self.assertEqual(scripts["anywhere-agent"], "anywhere_agent.cli:main")

    def test_version_matches_package(self) -> None:
        """Test that the packaged version matches the one the CLI reports."""
        from anywhere_agent import __version__

        self.assertEqual(self.pyproject_data["project"]["version"], __version__)


if __name__ == "__main__":
    unittest.main()
