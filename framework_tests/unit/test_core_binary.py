"""Tests for server binary resolution."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from elastic_memory_server.core.binary import SystemBinaryResolver, is_executable
from elastic_memory_server.core.errors import BinaryNotFoundError
from elastic_memory_server.core.types import InstanceConfig


def _make_executable(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\nexit 0\n")
    path.chmod(0o755)
    return path


class TestIsExecutable:
    """Test executable detection."""

    def test_executable_file(self, temp_dir) -> None:
        """Test a chmod +x file is executable."""
        assert is_executable(_make_executable(temp_dir / "es"))

    def test_plain_file(self, temp_dir) -> None:
        """Test a non-executable file is rejected."""
        path = temp_dir / "es"
        path.write_text("data")
        path.chmod(0o644)
        assert not is_executable(path)

    def test_directory(self, temp_dir) -> None:
        """Test directories are rejected."""
        assert not is_executable(temp_dir)


class TestSystemBinaryResolver:
    """Test lookup order of SystemBinaryResolver."""

    def setup_method(self) -> None:
        """Set up test environment."""
        self.resolver = SystemBinaryResolver()

    @pytest.mark.asyncio
    async def test_configured_binary(self, temp_dir) -> None:
        """Test explicit binary wins."""
        binary = _make_executable(temp_dir / "custom-es")
        resolved = await self.resolver.resolve(InstanceConfig(binary=binary))
        assert resolved == binary

    @pytest.mark.asyncio
    async def test_configured_binary_missing_has_no_fallback(self, temp_dir) -> None:
        """Test an unusable explicit binary fails even if PATH has one."""
        with patch("shutil.which", return_value="/usr/bin/elasticsearch") as mock_which:
            with pytest.raises(BinaryNotFoundError) as exc_info:
                await self.resolver.resolve(InstanceConfig(binary=temp_dir / "missing"))

        assert exc_info.value.searched == [str(temp_dir / "missing")]
        mock_which.assert_not_called()

    @pytest.mark.asyncio
    async def test_binary_on_path(self) -> None:
        """Test PATH lookup."""
        with patch("shutil.which", return_value="/usr/share/es/bin/elasticsearch"):
            resolved = await self.resolver.resolve(InstanceConfig())
        assert resolved == Path("/usr/share/es/bin/elasticsearch")

    @pytest.mark.asyncio
    async def test_binary_from_es_home(self, temp_dir) -> None:
        """Test ES_HOME fallback."""
        binary = _make_executable(temp_dir / "bin" / "elasticsearch")
        with (
            patch("shutil.which", return_value=None),
            patch.dict(os.environ, {"ES_HOME": str(temp_dir)}),
        ):
            resolved = await self.resolver.resolve(InstanceConfig())
        assert resolved == binary

    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        """Test failure lists searched locations."""
        env = {k: v for k, v in os.environ.items() if k != "ES_HOME"}
        with (
            patch("shutil.which", return_value=None),
            patch.dict(os.environ, env, clear=True),
        ):
            with pytest.raises(BinaryNotFoundError) as exc_info:
                await self.resolver.resolve(InstanceConfig())
        assert exc_info.value.searched == ["PATH:elasticsearch"]
