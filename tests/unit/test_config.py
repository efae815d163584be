"""
Unit tests for server configuration.
"""

import logging
import socket

import pytest

from restshell.config import DEFAULT_ADDRESS, ServerConfig, configure_logging
from restshell.core.socket_server import SocketServer


class TestServerConfig:

    def test_defaults(self):
        config = ServerConfig()

        assert config.address == DEFAULT_ADDRESS == ":8082"
        assert config.host == ""
        assert config.port == 8082
        assert config.shutdown_timeout == 30.0
        assert config.access_log is True
        config.validate()

    def test_host_and_port(self):
        config = ServerConfig(address="127.0.0.1:9000")

        assert config.host == "127.0.0.1"
        assert config.port == 9000

    def test_ipv6_host(self):
        config = ServerConfig(address="[::1]:9000")

        assert config.host == "::1"
        assert config.port == 9000
        assert config.family == socket.AF_INET6

    @pytest.mark.parametrize("address", [":8082", "127.0.0.1:8082", "localhost:8082"])
    def test_ipv4_family(self, address):
        assert ServerConfig(address=address).family == socket.AF_INET

    @pytest.mark.skipif(not socket.has_ipv6, reason="no IPv6 support")
    def test_ipv6_listener_binds(self):
        listener = SocketServer(ServerConfig(address="[::1]:0"))
        try:
            host, port = listener.bind()
        except OSError as e:
            pytest.skip(f"IPv6 loopback unavailable: {e}")
        try:
            assert host == "::1"
            assert port > 0
            with socket.create_connection(("::1", port), timeout=2):
                pass
        finally:
            listener.close()

    @pytest.mark.parametrize("address", ["localhost", "127.0.0.1:http", ""])
    def test_invalid_address(self, address):
        with pytest.raises(ValueError):
            ServerConfig(address=address).port

    @pytest.mark.parametrize("overrides", [
        {"address": ":70000"},
        {"buffer_size": 512},
        {"backlog": 0},
        {"timeout": 0},
        {"keep_alive_timeout": -1},
        {"shutdown_timeout": 0},
        {"shutdown_timeout": -5},
        {"max_request_size": 0},
        {"log_level": "CHATTY"},
    ])
    def test_validate_rejects(self, overrides):
        with pytest.raises(ValueError):
            ServerConfig(**overrides).validate()

    def test_validate_allows_no_timeout(self):
        ServerConfig(timeout=None).validate()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("REST_ADDR", "127.0.0.1:9100")
        monkeypatch.setenv("REST_SHUTDOWN_TIMEOUT", "2.5")
        monkeypatch.setenv("REST_TIMEOUT", "12")
        monkeypatch.setenv("REST_LOG_LEVEL", "debug")

        config = ServerConfig.from_env()

        assert config.port == 9100
        assert config.shutdown_timeout == 2.5
        assert config.timeout == 12.0
        assert config.log_level == "debug"
        config.validate()

    def test_from_env_defaults(self, monkeypatch):
        for name in ("REST_ADDR", "REST_SHUTDOWN_TIMEOUT", "REST_TIMEOUT", "REST_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        config = ServerConfig.from_env()

        assert config.address == DEFAULT_ADDRESS
        assert config.shutdown_timeout == 30.0


class TestConfigureLogging:

    def test_sets_package_level(self):
        logger = logging.getLogger("restshell")
        previous = logger.level
        try:
            configure_logging("debug")
            assert logger.level == logging.DEBUG

            configure_logging("WARNING")
            assert logger.level == logging.WARNING
        finally:
            logger.setLevel(previous)
