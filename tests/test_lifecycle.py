"""Tests for TunnelLifecycleClient against a fake control API."""

import json

import httpx
import pytest
from structlog.testing import capture_logs

from conftest import FakeControlApi
from ngrok_wrapper.common.exceptions import TunnelApiError
from ngrok_wrapper.config import RetryPolicy
from ngrok_wrapper.tunnels.lifecycle import TunnelLifecycleClient
from ngrok_wrapper.tunnels.models import Protocol, Tunnel


def make_tunnel(name="web", proto=Protocol.HTTP, address="127.0.0.1:4040"):
    return Tunnel(proto=proto, name=name, local_address=address)


def make_client(api, retry, sleep, log_api=False):
    return TunnelLifecycleClient(
        "127.0.0.1:4040",
        retry=retry,
        log_api=log_api,
        http_client=api.client(),
        sleep=sleep,
    )


def failing_client(handler, retry, sleep):
    return TunnelLifecycleClient(
        "127.0.0.1:4040",
        retry=retry,
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=sleep,
    )


class TestCreate:
    """Creating tunnels"""

    def test_create_posts_body_and_records_public_url(
        self, control_api, fast_retry, no_sleep
    ):
        tunnel = make_tunnel()
        client = make_client(control_api, fast_retry, no_sleep)

        client.create(tunnel)

        assert tunnel.is_created is True
        assert tunnel.remote_address == "http://web.ngrok.example"
        request = control_api.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "http://127.0.0.1:4040/api/tunnels"
        assert json.loads(request.content) == {
            "addr": "127.0.0.1:4040",
            "proto": "http",
            "name": "web",
            "inspect": False,
            "auth": "",
            "bind_tls": True,
        }

    def test_create_sleeps_before_every_attempt(self, fast_retry, no_sleep):
        api = FakeControlApi(failures={"web": 2})
        client = make_client(api, RetryPolicy(delay=1.0), no_sleep)

        client.create(make_tunnel())

        assert api.count("POST") == 3
        assert no_sleep.call_count == 3
        no_sleep.assert_called_with(1.0)

    def test_create_succeeds_after_three_server_errors(self, fast_retry, no_sleep):
        api = FakeControlApi(failures={"web": 3})
        tunnel = make_tunnel()

        make_client(api, fast_retry, no_sleep).create(tunnel)

        assert api.count("POST") == 4
        assert tunnel.is_created is True

    def test_create_gives_up_after_101_attempts(self, fast_retry, no_sleep):
        api = FakeControlApi(failures={"web": 1000})
        tunnel = make_tunnel()

        with pytest.raises(TunnelApiError) as exc_info:
            make_client(api, fast_retry, no_sleep).create(tunnel)

        assert api.count("POST") == 101
        assert exc_info.value.attempts == 101
        assert exc_info.value.status_code == 500
        assert exc_info.value.body == "tunnel web failed"
        assert tunnel.is_created is False
        assert tunnel.remote_address == ""

    def test_create_retries_transport_errors(self, fast_retry, no_sleep):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(201, json={"public_url": "tcp://0.tcp.ngrok.io:1"})

        tunnel = make_tunnel(proto=Protocol.TCP)
        failing_client(handler, fast_retry, no_sleep).create(tunnel)

        assert len(calls) == 3
        assert tunnel.remote_address == "tcp://0.tcp.ngrok.io:1"

    def test_create_transport_error_exhausted(self, no_sleep):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = failing_client(handler, RetryPolicy(max_retries=2, delay=0), no_sleep)

        with pytest.raises(TunnelApiError, match="connection refused") as exc_info:
            client.create(make_tunnel())
        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    def test_invalid_json_is_retried(self, fast_retry, no_sleep):
        responses = [
            httpx.Response(201, text="not json"),
            httpx.Response(201, json={"name": "web"}),
            httpx.Response(201, json={"public_url": "https://web.ngrok.example"}),
        ]

        tunnel = make_tunnel()
        failing_client(lambda r: responses.pop(0), fast_retry, no_sleep).create(tunnel)

        assert responses == []
        assert tunnel.remote_address == "https://web.ngrok.example"

    def test_failed_attempts_logged_as_warning_with_log_api(self, no_sleep):
        api = FakeControlApi(failures={"web": 1})
        client = make_client(api, RetryPolicy(delay=0), no_sleep, log_api=True)

        with capture_logs() as logs:
            client.create(make_tunnel())

        failures = [e for e in logs if e["event"] == "Tunnel create attempt failed"]
        assert len(failures) == 1
        assert failures[0]["log_level"] == "warning"
        assert failures[0]["attempt"] == 1

    def test_auth_is_masked_in_logs(self, control_api, fast_retry, no_sleep):
        tunnel = Tunnel(
            proto=Protocol.HTTP, name="web", local_address="80", auth="user:secret"
        )
        client = make_client(control_api, fast_retry, no_sleep)

        with capture_logs() as logs:
            client.create(tunnel)

        assert "user:secret" not in repr(logs)

    def test_non_string_public_url_is_retried(self, fast_retry, no_sleep):
        responses = [
            httpx.Response(201, json={"public_url": 12345}),
            httpx.Response(201, json={"public_url": ["https://web.ngrok.example"]}),
            httpx.Response(201, json={"public_url": "https://web.ngrok.example"}),
        ]

        tunnel = make_tunnel()
        failing_client(lambda r: responses.pop(0), fast_retry, no_sleep).create(tunnel)

        assert responses == []
        assert tunnel.remote_address == "https://web.ngrok.example"

    def test_policy_without_attempts_raises_api_error(self, control_api, no_sleep):
        policy = RetryPolicy.model_construct(
            max_retries=-1, delay=0.0, request_timeout=1.0
        )
        tunnel = make_tunnel()

        with pytest.raises(TunnelApiError, match="No create attempt") as exc_info:
            make_client(control_api, policy, no_sleep).create(tunnel)

        assert exc_info.value.attempts == 0
        assert control_api.requests == []
        assert tunnel.is_created is False


class TestDestroy:
    """Closing tunnels"""

    def test_destroy_deletes_by_name(self, control_api, fast_retry, no_sleep):
        tunnel = make_tunnel()
        client = make_client(control_api, fast_retry, no_sleep)
        client.create(tunnel)

        client.destroy(tunnel)

        request = control_api.requests[-1]
        assert request.method == "DELETE"
        assert str(request.url) == "http://127.0.0.1:4040/api/tunnels/web"
        assert tunnel.is_created is False
        assert tunnel.remote_address == ""

    def test_destroy_delays_only_between_attempts(self, no_sleep):
        api = FakeControlApi(failures={"web": 2})
        tunnel = make_tunnel()
        tunnel.mark_created("https://web.ngrok.example")

        make_client(api, RetryPolicy(delay=0.5), no_sleep).destroy(tunnel)

        assert api.count("DELETE") == 3
        assert no_sleep.call_count == 2
        assert tunnel.is_created is False

    def test_destroy_gives_up_after_101_attempts(self, fast_retry, no_sleep):
        api = FakeControlApi(failures={"web": 1000})
        tunnel = make_tunnel()
        tunnel.mark_created("https://web.ngrok.example")

        with pytest.raises(TunnelApiError) as exc_info:
            make_client(api, fast_retry, no_sleep).destroy(tunnel)

        assert api.count("DELETE") == 101
        assert exc_info.value.attempts == 101
        assert tunnel.is_created is True
        assert tunnel.remote_address == "https://web.ngrok.example"


class TestListTunnels:
    def test_list_tunnels(self, no_sleep, fast_retry):
        payload = {"tunnels": [{"name": "web", "public_url": "https://x"}]}
        client = failing_client(
            lambda r: httpx.Response(200, json=payload), fast_retry, no_sleep
        )

        assert client.list_tunnels() == payload["tunnels"]

    def test_list_tunnels_error(self, no_sleep, fast_retry):
        client = failing_client(
            lambda r: httpx.Response(502, text="bad gateway"), fast_retry, no_sleep
        )

        with pytest.raises(TunnelApiError, match="bad gateway"):
            client.list_tunnels()


class TestClientResources:
    def test_owned_client_is_closed(self):
        client = TunnelLifecycleClient("127.0.0.1:4040")
        with client:
            pass
        assert client._http.is_closed

    def test_borrowed_client_is_left_open(self, control_api):
        http_client = control_api.client()
        with TunnelLifecycleClient("127.0.0.1:4040", http_client=http_client):
            pass
        assert not http_client.is_closed
