"""Tests for port management."""

import socket
import threading
from unittest.mock import patch

import pytest

from elastic_memory_server.core.errors import NetworkError
from elastic_memory_server.utils.ports import PortManager, get_port_manager


class TestPortManager:
    """Test PortManager basic functionality."""

    def test_allocate_port(self):
        """Test port allocation."""
        pm = PortManager()
        port = pm.allocate_port()
        assert 0 < port < 65536
        assert pm.is_allocated(port)

    def test_allocate_preferred_port(self):
        """Test preferred port allocation when it is free."""
        pm = PortManager()
        free_port = PortManager()._ephemeral_port()
        port = pm.allocate_port(preferred=free_port)
        assert port == free_port

    def test_preferred_port_busy_falls_back(self):
        """Test a busy preferred port silently yields another free port."""
        pm = PortManager()
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
            busy.bind(("127.0.0.1", 0))
            busy.listen(1)
            busy_port = busy.getsockname()[1]

            port = pm.allocate_port(preferred=busy_port)

        assert port != busy_port
        assert pm.is_allocated(port)

    def test_preferred_port_already_reserved(self):
        """Test a port reserved here is not handed out twice."""
        pm = PortManager()
        first = pm.allocate_port()
        second = pm.allocate_port(preferred=first)
        assert second != first

    def test_release_port(self):
        """Test port release."""
        pm = PortManager()
        port = pm.allocate_port()
        pm.release_port(port)
        assert not pm.is_allocated(port)

    def test_release_unknown_port(self):
        """Test releasing an unknown port is harmless."""
        PortManager().release_port(1)

    def test_no_duplicate_allocation(self):
        """Test that allocated ports aren't reallocated."""
        pm = PortManager()
        ports = {pm.allocate_port() for _ in range(20)}
        assert len(ports) == 20, "All ports should be unique"

    def test_thread_safety(self):
        """Test concurrent allocation."""
        pm = PortManager()
        ports = []
        errors = []

        def allocate():
            try:
                ports.append(pm.allocate_port())
            except NetworkError as e:
                errors.append(e)

        threads = [threading.Thread(target=allocate) for _ in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert not errors
        assert len(set(ports)) == 20

    def test_exhaustion(self):
        """Test NetworkError when the OS keeps returning reserved ports."""
        pm = PortManager()
        pm._allocated.add(40000)
        with patch.object(pm, "_ephemeral_port", return_value=40000):
            with pytest.raises(NetworkError, match="Could not allocate"):
                pm.allocate_port()

    def test_bind_failure(self):
        """Test NetworkError when no socket can be bound."""
        pm = PortManager(host="203.0.113.1")
        with pytest.raises(NetworkError, match="ephemeral"):
            pm._ephemeral_port()


class TestSharedPortManager:
    """Test the process-wide port manager."""

    def test_singleton(self):
        """Test the same manager is returned every time."""
        assert get_port_manager() is get_port_manager()
