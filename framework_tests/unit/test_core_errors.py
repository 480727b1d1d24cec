"""Tests for error hierarchy and exception handling."""

import pytest

from elastic_memory_server.core.errors import (
    ElasticMemoryServerError,
    ConfigurationError,
    BinaryResolutionError,
    BinaryNotFoundError,
    LaunchError,
    SpawnError,
    PrematureExitError,
    ReadinessTimeoutError,
    ServerStateError,
    AlreadyStartedError,
    NetworkError,
    FilesystemError,
)


class TestBaseError:
    """Test base ElasticMemoryServerError class."""

    def test_basic_error_creation(self) -> None:
        """Test basic error creation."""
        error = ElasticMemoryServerError("Test error")
        assert str(error) == "Test error"
        assert error.message == "Test error"
        assert error.details == {}

    def test_error_with_details(self) -> None:
        """Test error creation with details."""
        details = {"port": 9200, "context": "test"}
        error = ElasticMemoryServerError("Test error", details)
        assert error.details == details

    def test_error_inheritance(self) -> None:
        """Test that all custom errors inherit from ElasticMemoryServerError."""
        for cls in (
            ConfigurationError,
            BinaryResolutionError,
            LaunchError,
            ServerStateError,
            NetworkError,
            FilesystemError,
        ):
            assert issubclass(cls, ElasticMemoryServerError)


class TestLaunchErrors:
    """Test launch failure errors."""

    def test_launch_error_family(self) -> None:
        """Spawn, premature exit and timeout are all launch errors."""
        assert issubclass(SpawnError, LaunchError)
        assert issubclass(PrematureExitError, LaunchError)
        assert issubclass(ReadinessTimeoutError, LaunchError)

    def test_premature_exit_error(self) -> None:
        """Test PrematureExitError carries exit details."""
        error = PrematureExitError(
            "exited", exit_code=-9, signal=9, stderr_tail=["OutOfMemoryError"]
        )
        assert error.exit_code == -9
        assert error.signal == 9
        assert error.stderr_tail == ["OutOfMemoryError"]

    def test_premature_exit_error_defaults(self) -> None:
        """Test PrematureExitError optional fields."""
        error = PrematureExitError("exited", exit_code=1)
        assert error.signal is None
        assert error.stderr_tail == []

    def test_readiness_timeout_error(self) -> None:
        """Test ReadinessTimeoutError carries budget."""
        error = ReadinessTimeoutError("timeout", timeout=30.0, attempts=150)
        assert error.timeout == 30.0
        assert error.attempts == 150

    def test_launch_errors_catchable_as_base(self) -> None:
        """Test launch errors can be caught by the base class."""
        with pytest.raises(LaunchError):
            raise ReadinessTimeoutError("timeout", timeout=1.0, attempts=5)


class TestOtherErrors:
    """Test resolution and state errors."""

    def test_binary_not_found_error(self) -> None:
        """Test BinaryNotFoundError records searched locations."""
        error = BinaryNotFoundError("missing", searched=["PATH:elasticsearch"])
        assert isinstance(error, BinaryResolutionError)
        assert error.searched == ["PATH:elasticsearch"]
        assert BinaryNotFoundError("missing").searched == []

    def test_already_started_error(self) -> None:
        """Test AlreadyStartedError is a state error."""
        error = AlreadyStartedError("already started", {"uri": "http://127.0.0.1:9200"})
        assert isinstance(error, ServerStateError)
        assert error.details["uri"] == "http://127.0.0.1:9200"
