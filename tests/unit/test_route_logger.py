"""
Unit tests for startup route logging.
"""

import logging

import pytest

from restshell.http.route_logger import StartupError, log_route, log_routes
from restshell.http.router import Router
from restshell.http.response import HTTPResponse


def ok(request):
    return HTTPResponse(body=b"ok")


class TestLogRoutes:

    def test_one_line_per_route(self, caplog):
        router = Router()
        router.add_route("/ping", ok, method="GET")
        router.group("/api/v1").add_route("/users", ok, method="POST")
        router.add_route("/files/*filepath", ok)

        with caplog.at_level(logging.INFO, logger="restshell"):
            log_routes(router)

        assert [r.getMessage() for r in caplog.records] == [
            "👉 GET /ping",
            "👉 ANY /files/*filepath",
            "👉 POST /api/v1/users",
        ]
        assert all(r.levelno == logging.INFO for r in caplog.records)

    def test_empty_router_logs_nothing(self, caplog):
        with caplog.at_level(logging.INFO, logger="restshell"):
            log_routes(Router())

        assert caplog.records == []

    def test_router_unchanged(self):
        router = Router()
        router.add_route("/ping", ok, method="GET")
        before = router.routes()

        log_routes(router)

        assert router.routes() == before
        assert router.match("GET", "/ping") is not None

    def test_walk_failure_becomes_startup_error(self, monkeypatch):
        router = Router()
        router.add_route("/ping", ok, method="GET")

        def broken(method, path, handler, middlewares):
            raise RuntimeError("sink closed")

        monkeypatch.setattr("restshell.http.route_logger.log_route", broken)

        with pytest.raises(StartupError) as exc_info:
            log_routes(router)

        assert str(exc_info.value).startswith("⚠️  Logging err:")
        assert "sink closed" in str(exc_info.value)


class TestLogRoute:

    def test_ignores_handler_and_chain(self, caplog):
        with caplog.at_level(logging.INFO, logger="restshell"):
            log_route("DELETE", "/users/:id", None, [])

        assert caplog.records[0].getMessage() == "👉 DELETE /users/:id"
