import json

import httpx
import pytest
import respx
from httpx import Response
from idprov.clients.base import BaseHTTPClient, PermanentHTTPError, RetryableHTTPError
from idprov.clients.keystone import KeystoneAdminClient
from idprov.core.errors import RemoteCallError

BASE = "http://192.168.124.81:35357/v2.0"


def _client(**kwargs):
    kwargs.setdefault("backoff_factor", 0)
    return KeystoneAdminClient("192.168.124.81", 35357, "admin-token", **kwargs)


def test_base_client_retry_on_503():
    client = BaseHTTPClient("https://api.example.com", max_retries=2, backoff_factor=0)

    with respx.mock:
        route = respx.get("https://api.example.com/things")
        route.side_effect = [Response(503), Response(200, json={"ok": True})]

        assert client.get("/things") == {"ok": True}
        assert route.call_count == 2


def test_base_client_retries_exhausted():
    client = BaseHTTPClient("https://api.example.com", max_retries=2, backoff_factor=0)

    with respx.mock:
        route = respx.get("https://api.example.com/things").mock(return_value=Response(502))

        with pytest.raises(RetryableHTTPError):
            client.get("/things")

        assert route.call_count == 2


def test_base_client_permanent_error_no_retry():
    client = BaseHTTPClient("https://api.example.com", max_retries=3, backoff_factor=0)

    with respx.mock:
        route = respx.get("https://api.example.com/things").mock(return_value=Response(404))

        with pytest.raises(PermanentHTTPError) as exc:
            client.get("/things")

        assert exc.value.status_code == 404
        assert route.call_count == 1


def test_base_client_transport_error_retried():
    client = BaseHTTPClient("https://api.example.com", max_retries=2, backoff_factor=0)

    with respx.mock:
        route = respx.get("https://api.example.com/things")
        route.side_effect = [httpx.WriteError("broken pipe"), Response(200, json={"ok": True})]

        assert client.get("/things") == {"ok": True}
        assert route.call_count == 2


def test_base_client_post_not_retried():
    client = BaseHTTPClient("https://api.example.com", max_retries=3, backoff_factor=0)

    with respx.mock:
        route = respx.post("https://api.example.com/things").mock(return_value=Response(503))

        with pytest.raises(RetryableHTTPError):
            client.post("/things", json={"name": "x"})

        assert route.call_count == 1


def test_keystone_client_sends_admin_token():
    with respx.mock:
        route = respx.get(f"{BASE}/tenants").mock(return_value=Response(200, json={"tenants": []}))

        with _client() as client:
            assert client.find_tenant("admin") is None

        assert route.calls.last.request.headers["X-Auth-Token"] == "admin-token"


def test_keystone_client_find_by_name():
    with respx.mock:
        respx.get(f"{BASE}/OS-KSADM/roles").mock(
            return_value=Response(
                200, json={"roles": [{"id": "r1", "name": "admin"}, {"id": "r2", "name": "Member"}]}
            )
        )

        assert _client().find_role("Member") == {"id": "r2", "name": "Member"}


def test_keystone_client_create_user_payload():
    with respx.mock:
        route = respx.post(f"{BASE}/users").mock(
            return_value=Response(200, json={"user": {"id": "u1", "name": "crowbar"}})
        )

        user = _client().create_user("crowbar", "crowbar", "t1")

        body = json.loads(route.calls.last.request.content)
        assert body["user"]["tenantId"] == "t1"
        assert body["user"]["enabled"] is True
        assert user["id"] == "u1"


def test_keystone_client_grant_role_path():
    with respx.mock:
        route = respx.put(f"{BASE}/tenants/t1/users/u1/roles/OS-KSADM/r1").mock(return_value=Response(200))

        _client().grant_role("t1", "u1", "r1")

        assert route.called


def test_keystone_client_find_endpoint_by_service_and_region():
    with respx.mock:
        respx.get(f"{BASE}/endpoints").mock(
            return_value=Response(
                200,
                json={
                    "endpoints": [
                        {"id": "e1", "service_id": "s1", "region": "RegionTwo"},
                        {"id": "e2", "service_id": "s1", "region": "RegionOne"},
                    ]
                },
            )
        )

        assert _client().find_endpoint("s1", "RegionOne")["id"] == "e2"
        assert _client().find_endpoint("s2", "RegionOne") is None


def test_keystone_client_rejection_is_remote_call_error():
    with respx.mock:
        respx.post(f"{BASE}/tenants").mock(return_value=Response(401))

        with pytest.raises(RemoteCallError) as exc:
            _client().create_tenant("admin")

        assert exc.value.details["status"] == 401
        assert exc.value.details["tenant"] == "admin"


def test_keystone_client_unreachable_is_remote_call_error():
    with respx.mock:
        respx.get(f"{BASE}/users").mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(RemoteCallError):
            _client(max_retries=2).find_user("admin")


def test_keystone_client_protocol_error_is_remote_call_error():
    with respx.mock:
        route = respx.post(f"{BASE}/tenants").mock(side_effect=httpx.RemoteProtocolError("Server disconnected"))

        with pytest.raises(RemoteCallError):
            _client().create_tenant("admin")

        assert route.call_count == 1


def test_keystone_client_invalid_json_is_remote_call_error():
    with respx.mock:
        route = respx.get(f"{BASE}/tenants").mock(return_value=Response(200, text="<html>starting</html>"))

        with pytest.raises(RemoteCallError) as exc:
            _client().find_tenant("admin")

        assert exc.value.details["status"] == 200
        assert route.call_count == 1


class TestWakeup:
    """Tests for the bounded wakeup poll."""

    def test_wakeup_returns_once_reachable(self):
        """Test wakeup keeps polling until the API answers."""
        with respx.mock:
            route = respx.get(f"{BASE}/")
            route.side_effect = [
                httpx.ConnectError("refused"),
                httpx.ConnectError("refused"),
                Response(200, json={"version": {"id": "v2.0"}}),
            ]

            _client().wait_until_available(attempts=5, interval=0, timeout=10)

            assert route.call_count == 3

    def test_wakeup_gives_up_after_attempts(self):
        """Test an API that never answers fails the wakeup, bounded by attempts."""
        with respx.mock:
            route = respx.get(f"{BASE}/").mock(side_effect=httpx.ConnectError("refused"))

            with pytest.raises(RemoteCallError) as exc:
                _client().wait_until_available(attempts=3, interval=0, timeout=10)

            assert route.call_count == 3
            assert exc.value.details["attempts"] == 3

    def test_wakeup_counts_retryable_status_as_unavailable(self):
        """Test a 503 during startup is retried like a refused connection."""
        with respx.mock:
            route = respx.get(f"{BASE}/")
            route.side_effect = [Response(503), Response(200, json={})]

            _client().wait_until_available(attempts=3, interval=0, timeout=10)

            assert route.call_count == 2

    def test_wakeup_retries_dropped_connection(self):
        """Test a server closing the connection during startup is retried."""
        with respx.mock:
            route = respx.get(f"{BASE}/")
            route.side_effect = [httpx.RemoteProtocolError("Server disconnected"), Response(200, json={})]

            _client().wait_until_available(attempts=3, interval=0, timeout=10)

            assert route.call_count == 2
