"""
Pytest configuration and fixtures for framework unit tests.
No real server processes are spawned or signalled here.
"""

import asyncio
import signal
from typing import Any, Dict, Generator, List
from unittest.mock import patch

import pytest

from elastic_memory_server.core.log import reset_logging


class FakeProcess:
    """Stand-in for asyncio.subprocess.Process that the test drives by hand."""

    def __init__(self, pid: int = 4242, exit_on_signal: bool = True) -> None:
        self.pid = pid
        self.returncode = None
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.signals: List[int] = []
        self._exit_on_signal = exit_on_signal
        self._exited = asyncio.Event()

    def write_stdout(self, text: str) -> None:
        self.stdout.feed_data(text.encode())

    def write_stderr(self, text: str) -> None:
        self.stderr.feed_data(text.encode())

    def exit(self, code: int = 0) -> None:
        if self._exited.is_set():
            return
        if self.returncode is None:
            self.returncode = code
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._exited.set()

    def exit_leaving_pipes_open(self, code: int) -> None:
        """Exit while a descendant keeps stdout and stderr open."""
        self.returncode = code

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode

    def send_signal(self, sig: int) -> None:
        self.signals.append(sig)
        if self._exit_on_signal or sig == signal.SIGKILL:
            self.exit(-sig)

    def terminate(self) -> None:
        self.send_signal(signal.SIGTERM)

    def kill(self) -> None:
        self.send_signal(signal.SIGKILL)


@pytest.fixture
def fake_process():
    """Factory for FakeProcess objects; call it inside a running event loop."""
    return FakeProcess


@pytest.fixture(autouse=True)
def cleanup_logging() -> Generator[None, None, None]:
    """Drop handlers configured by a test."""
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def patch_dangerous_operations() -> Generator[Dict[str, Any], None, None]:
    """Patch process-group signalling and process-tree inspection.

    ``os.killpg`` raises ProcessLookupError so signal_process_group falls
    back to ``process.send_signal``, which fake processes record.
    """
    with (
        patch("os.killpg", side_effect=ProcessLookupError) as mock_killpg,
        patch("psutil.Process") as mock_psutil_process,
    ):
        mock_psutil_instance = mock_psutil_process.return_value
        mock_psutil_instance.children.return_value = []
        mock_psutil_instance.pid = 4242

        yield {
            "killpg": mock_killpg,
            "psutil_process": mock_psutil_process,
        }
