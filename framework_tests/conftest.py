"""Test configuration and fixtures for framework tests."""

import shutil
import tempfile
from pathlib import Path

import pytest

from elastic_memory_server.core.types import TimeoutConfig


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp(prefix="esms_test_"))
    try:
        yield temp_path
    finally:
        if temp_path.exists():
            shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def fast_timeouts():
    """Timeouts small enough for tests that exhaust them on purpose."""
    return TimeoutConfig(
        probe_interval=0.01,
        probe_max_attempts=5,
        probe_request_timeout=0.5,
        shutdown_graceful=0.2,
        shutdown_force=0.2,
    )
