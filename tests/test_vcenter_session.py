"""
Tests for the session-authenticated vCenter client.
"""

import asyncio
import base64

import httpx
import pytest

from vmfleet.vcenter.errors import (
    AuthMalformedResponseError,
    AuthRejectedError,
    AuthTransportError,
    NotConnectedError,
    SessionExpiredError,
    TransportError,
)
from vmfleet.vcenter.models import ConnectionConfig
from vmfleet.vcenter.session import SessionClient

from conftest import BASE_URL


class TestConnectionConfig:
    """Test base URL derivation."""

    def test_bare_host_gets_https(self):
        config = ConnectionConfig(host="10.0.0.5", username="u", password="p")
        assert config.base_url == "https://10.0.0.5"

    def test_port_is_appended(self):
        config = ConnectionConfig(host="vc.lab", username="u", password="p", port=8443)
        assert config.base_url == "https://vc.lab:8443"

    def test_url_is_kept(self):
        config = ConnectionConfig(host="https://vc.lab/", username="u", password="p")
        assert config.base_url == "https://vc.lab"

    def test_password_is_not_in_repr(self):
        config = ConnectionConfig(host="vc.lab", username="u", password="hunter2")
        assert "hunter2" not in repr(config)


class TestConnect:
    """Test session creation."""

    def test_port_given_twice_is_rejected(self):
        with pytest.raises(ValueError, match="Port given both"):
            ConnectionConfig(host="vc.lab:8443", username="u", password="p", port=443)
        with pytest.raises(ValueError, match="Port given both"):
            ConnectionConfig(host="https://vc.lab:443", username="u", password="p", port=8443)

    def test_port_in_host_is_kept(self):
        config = ConnectionConfig(host="vc.lab:8443", username="u", password="p")
        assert config.base_url == "https://vc.lab:8443"

    def test_timeouts_must_be_positive(self):
        with pytest.raises(ValueError):
            SessionClient(timeout_s=0)
        with pytest.raises(ValueError):
            SessionClient(auth_timeout_s=-1)

    def test_default_timeouts_are_seconds_scale(self):
        client = SessionClient()
        assert client.timeout_s >= 1
        assert client.auth_timeout_s >= 1

    @pytest.mark.asyncio
    async def test_connect_uses_basic_auth(self, connection_config, session_route):
        client = SessionClient()
        session = await client.connect(connection_config)

        assert session.token == "token-1"
        assert session.base_url == BASE_URL
        assert client.connected is True

        request = session_route.calls.last.request
        expected = base64.b64encode(b"administrator@vsphere.local:s3cret").decode()
        assert request.headers["Authorization"] == f"Basic {expected}"
        await client.close()

    @pytest.mark.asyncio
    async def test_authenticated_requests_carry_session_header(self, client, vcenter):
        route = vcenter.get("/api/vcenter/vm").mock(return_value=httpx.Response(200, json=[]))

        response = await client.request("GET", "/api/vcenter/vm")

        assert response.status_code == 200
        assert route.calls.last.request.headers["vmware-api-session-id"] == "token-1"

    @pytest.mark.asyncio
    async def test_connect_rejected(self, connection_config, session_route):
        session_route.mock(return_value=httpx.Response(401, json={"error_type": "UNAUTHENTICATED"}))
        client = SessionClient()

        with pytest.raises(AuthRejectedError) as exc_info:
            await client.connect(connection_config)

        assert exc_info.value.status_code == 401
        assert client.connected is False
        await client.close()

    @pytest.mark.asyncio
    async def test_connect_transport_failure(self, connection_config, session_route):
        session_route.mock(side_effect=httpx.ConnectError("connection refused"))
        client = SessionClient()

        with pytest.raises(AuthTransportError, match="Could not reach"):
            await client.connect(connection_config)
        await client.close()

    @pytest.mark.asyncio
    async def test_connect_timeout(self, connection_config, session_route):
        session_route.mock(side_effect=httpx.ConnectTimeout("timed out"))
        client = SessionClient(auth_timeout_s=2)

        with pytest.raises(AuthTransportError, match="Timed out"):
            await client.connect(connection_config)
        await client.close()

    @pytest.mark.asyncio
    async def test_connect_token_not_a_string(self, connection_config, session_route):
        session_route.mock(return_value=httpx.Response(201, json={"value": "token-1"}))
        client = SessionClient()

        with pytest.raises(AuthMalformedResponseError):
            await client.connect(connection_config)
        await client.close()

    @pytest.mark.asyncio
    async def test_connect_body_not_json(self, connection_config, session_route):
        session_route.mock(return_value=httpx.Response(201, text="<html>login</html>"))
        client = SessionClient()

        with pytest.raises(AuthMalformedResponseError):
            await client.connect(connection_config)
        await client.close()


class TestRequest:
    """Test authenticated request primitives."""

    @pytest.mark.asyncio
    async def test_request_before_connect(self):
        client = SessionClient()
        with pytest.raises(NotConnectedError):
            await client.request("GET", "/api/vcenter/vm")

    @pytest.mark.asyncio
    async def test_401_raises_session_expired_with_token(self, client, vcenter):
        vcenter.get("/api/vcenter/vm").mock(return_value=httpx.Response(401))

        with pytest.raises(SessionExpiredError) as exc_info:
            await client.request("GET", "/api/vcenter/vm")

        assert exc_info.value.token == "token-1"

    @pytest.mark.asyncio
    async def test_other_statuses_are_returned(self, client, vcenter):
        vcenter.get("/api/vcenter/vm").mock(return_value=httpx.Response(503))

        response = await client.request("GET", "/api/vcenter/vm")

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_timeout_is_flagged(self, client, vcenter):
        vcenter.get("/api/vcenter/vm").mock(side_effect=httpx.ReadTimeout("slow"))

        with pytest.raises(TransportError) as exc_info:
            await client.request("GET", "/api/vcenter/vm")

        assert exc_info.value.timed_out is True

    @pytest.mark.asyncio
    async def test_network_error_is_not_a_timeout(self, client, vcenter):
        vcenter.get("/api/vcenter/vm").mock(side_effect=httpx.ConnectError("reset"))

        with pytest.raises(TransportError) as exc_info:
            await client.request("GET", "/api/vcenter/vm")

        assert exc_info.value.timed_out is False

    @pytest.mark.asyncio
    async def test_no_automatic_retry(self, client, vcenter):
        route = vcenter.get("/api/vcenter/vm").mock(return_value=httpx.Response(500))

        await client.request("GET", "/api/vcenter/vm")

        assert route.call_count == 1


class TestReauthentication:
    """Test single-flight session refresh."""

    @pytest.mark.asyncio
    async def test_reauthenticate_replaces_token(self, client, session_route):
        session_route.mock(return_value=httpx.Response(201, json="token-2"))

        session = await client.reauthenticate("token-1")

        assert session.token == "token-2"
        assert client.reauth_count == 1

    @pytest.mark.asyncio
    async def test_already_refreshed_token_is_not_refreshed_again(self, client, session_route):
        session_route.mock(return_value=httpx.Response(201, json="token-2"))
        await client.reauthenticate("token-1")
        calls_before = session_route.call_count

        session = await client.reauthenticate("token-1")

        assert session.token == "token-2"
        assert session_route.call_count == calls_before

    @pytest.mark.asyncio
    async def test_concurrent_expiry_refreshes_once(self, client, session_route):
        session_route.mock(return_value=httpx.Response(201, json="token-2"))
        calls_before = session_route.call_count

        sessions = await asyncio.gather(*(client.reauthenticate("token-1") for _ in range(8)))

        assert {s.token for s in sessions} == {"token-2"}
        assert session_route.call_count == calls_before + 1
        assert client.reauth_count == 1

    @pytest.mark.asyncio
    async def test_rejected_relogin_is_not_repeated_for_same_token(self, client, session_route):
        session_route.mock(return_value=httpx.Response(401))
        calls_before = session_route.call_count

        results = await asyncio.gather(
            *(client.reauthenticate("token-1") for _ in range(8)), return_exceptions=True
        )

        assert all(isinstance(r, AuthRejectedError) for r in results)
        assert session_route.call_count == calls_before + 1
        assert client.reauth_count == 0

    @pytest.mark.asyncio
    async def test_failed_relogin_allows_a_fresh_attempt(self, client, session_route):
        session_route.mock(return_value=httpx.Response(401))
        with pytest.raises(AuthRejectedError):
            await client.reauthenticate("token-1")

        session_route.mock(return_value=httpx.Response(201, json="token-2"))
        with pytest.raises(AuthRejectedError):
            await client.reauthenticate("token-1")
        session = await client.reauthenticate()

        assert session.token == "token-2"

    @pytest.mark.asyncio
    async def test_reauthenticate_before_connect(self):
        client = SessionClient()
        with pytest.raises(NotConnectedError):
            await client.reauthenticate("token-1")


class TestLogout:
    """Test session teardown."""

    @pytest.mark.asyncio
    async def test_logout_deletes_session(self, client, vcenter):
        await client.logout()

        delete_route = vcenter.routes["logout"]
        assert delete_route.called
        assert delete_route.calls.last.request.headers["vmware-api-session-id"] == "token-1"
        assert client.connected is False

    @pytest.mark.asyncio
    async def test_logout_failure_is_not_fatal(self, client, vcenter):
        vcenter.routes["logout"].mock(side_effect=httpx.ConnectError("gone"))

        await client.logout()

        assert client.connected is False

    @pytest.mark.asyncio
    async def test_reconnect_logs_out_previous_session(self, client, vcenter, connection_config, session_route):
        session_route.mock(return_value=httpx.Response(201, json="token-2"))

        session = await client.connect(connection_config)

        delete_route = vcenter.routes["logout"]
        assert delete_route.call_count == 1
        assert delete_route.calls.last.request.headers["vmware-api-session-id"] == "token-1"
        assert session.token == "token-2"

    @pytest.mark.asyncio
    async def test_context_manager_closes(self, connection_config, session_route):
        async with SessionClient() as client:
            await client.connect(connection_config)
            assert client.connected
        assert client.connected is False
