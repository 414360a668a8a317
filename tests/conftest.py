"""Shared pytest fixtures for ngrok wrapper tests."""

import json
import os
import threading
from unittest.mock import Mock

import httpx
import pytest
import structlog

from ngrok_wrapper.config import RetryPolicy


class FakeControlApi:
    """In-memory stand-in for the agent's control API.

    ``failures`` maps a tunnel name to the number of requests for it that
    should fail with HTTP 500 before one succeeds.
    """

    def __init__(self, failures: dict[str, int] | None = None, barrier=None):
        self.failures = dict(failures or {})
        self.barrier = barrier
        self.requests: list[httpx.Request] = []
        self._lock = threading.Lock()

    def _should_fail(self, name: str) -> bool:
        with self._lock:
            remaining = self.failures.get(name, 0)
            if remaining > 0:
                self.failures[name] = remaining - 1
                return True
            return False

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)

        if request.method == "POST":
            body = json.loads(request.content)
            name = body["name"]
        else:
            name = request.url.path.rsplit("/", 1)[-1]

        if self.barrier is not None:
            self.barrier.wait(timeout=5)

        if self._should_fail(name):
            return httpx.Response(500, text=f"tunnel {name} failed")

        if request.method == "POST":
            return httpx.Response(
                201,
                json={
                    "name": name,
                    "proto": body["proto"],
                    "public_url": f"{body['proto']}://{name}.ngrok.example",
                },
            )
        if request.method == "DELETE":
            return httpx.Response(204)
        return httpx.Response(200, json={"tunnels": [], "uri": "/api/tunnels"})

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))

    def count(self, method: str) -> int:
        return len([r for r in self.requests if r.method == method])


@pytest.fixture
def control_api():
    """Fake control API that always succeeds unless configured otherwise."""
    return FakeControlApi()


@pytest.fixture
def fast_retry():
    """Retry policy with no delay so tests run instantly."""
    return RetryPolicy(max_retries=100, delay=0.0)


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays."""
    return Mock()


@pytest.fixture
def temp_binary(tmp_path):
    """Create an executable stand-in for the agent binary."""
    binary_path = tmp_path / "ngrok"
    binary_path.write_text("#!/bin/sh\necho ngrok\n")
    os.chmod(binary_path, 0o755)
    return str(binary_path)


@pytest.fixture
def mock_process():
    """Create a mock Popen object for a running agent."""
    process = Mock()
    process.pid = 4242
    process.poll.return_value = None
    process.wait.return_value = 0
    process.stdout = Mock()
    return process


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset structlog after each test so cached loggers don't leak between tests."""
    yield
    structlog.reset_defaults()
