"""
Shared fixtures for monitor tests.

Dependencies are probed through an ``httpx.MockTransport`` whose responses
are looked up by host, so no test touches the network.
"""

from __future__ import annotations

from typing import Callable, Dict

import httpx
import pytest

from gateway_monitor.config.loader import MonitorSettings
from gateway_monitor.config.models import DependencyTarget, HealthPolicy
from gateway_monitor.context import create_context

SERVICE_NAMES = ("auth", "financial", "subsidy", "insurance")


def dependency(name: str, critical: bool = False) -> DependencyTarget:
    return DependencyTarget(name=name, url=f"http://{name}.test", critical=critical)


def host_transport(responses: Dict[str, Callable[[httpx.Request], httpx.Response]]) -> httpx.MockTransport:
    """Route each request to the handler registered for its host."""

    def handler(request: httpx.Request) -> httpx.Response:
        host = request.url.host.split(".")[0]
        if host not in responses:
            raise httpx.ConnectError("Name or service not known", request=request)
        return responses[host](request)

    return httpx.MockTransport(handler)


def ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"status": "healthy"})


def server_error(request: httpx.Request) -> httpx.Response:
    return httpx.Response(500, json={"status": "error"})


def timeout(request: httpx.Request) -> httpx.Response:
    raise httpx.ReadTimeout("timed out", request=request)


@pytest.fixture
def dependencies():
    return [dependency(name) for name in SERVICE_NAMES]


@pytest.fixture
def settings(dependencies):
    return MonitorSettings(
        poll_interval_ms=60000,
        check_timeout_ms=500,
        version="9.9.9",
        policy=HealthPolicy(),
        dependencies=dependencies,
    )


@pytest.fixture
def context(settings):
    """Context whose dependencies all answer healthy."""
    transport = host_transport({name: ok for name in SERVICE_NAMES})
    ctx = create_context(settings, transport=transport)
    yield ctx
    ctx.shutdown()


@pytest.fixture
def app(context):
    pytest.importorskip("flask")
    from gateway_monitor.server.app import create_app

    app = create_app(context)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()
