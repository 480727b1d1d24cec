"""Fixtures for integration tests that spawn real processes."""

import sys
from pathlib import Path

import pytest

FAKE_SERVER_SOURCE = Path(__file__).parent / "fake_elasticsearch.py"


@pytest.fixture
def fake_binary(temp_dir) -> Path:
    """Executable fake search server running under the current interpreter."""
    binary = temp_dir / "bin" / "elasticsearch"
    binary.parent.mkdir(parents=True)
    binary.write_text(f"#!{sys.executable}\n" + FAKE_SERVER_SOURCE.read_text())
    binary.chmod(0o755)
    return binary
