"""
Unit tests for kanidm_unix_verify.transport.http module.

Tests header handling, session-affinity capture and status normalization.
"""

import json

import httpx
import pytest

from kanidm_unix_verify.core.exceptions import MalformedResponse, TransportError
from kanidm_unix_verify.transport.http import (
    SESSION_ID_HEADER,
    USER_AGENT,
    KanidmTransport,
    Session,
)
from tests.conftest import BASE_URL


def _transport_for(handler) -> KanidmTransport:
    return KanidmTransport(
        base_url=BASE_URL,
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


class TestSession:
    """Tests for Session state."""

    def test_initially_empty(self):
        session = Session()
        assert session.token is None
        assert session.session_id is None
        assert not session.is_authenticated

    def test_negotiation_boundaries_clear_session_id(self):
        session = Session(token="t", session_id="s")
        session.begin_negotiation()
        assert session.session_id is None
        session.session_id = "s2"
        session.end_negotiation()
        assert session.session_id is None
        assert session.token == "t"

    def test_repr_hides_secrets(self):
        assert "secret" not in repr(Session(token="secret", session_id="secret"))


class TestTransportConfiguration:
    """Tests for KanidmTransport construction."""

    def test_trailing_slash_stripped(self, fake_server):
        transport = KanidmTransport(base_url=BASE_URL + "/", http_client=fake_server.client())
        fake_server.queue_auth({"denied": "x"})
        transport.auth_post("/v1/auth", {})
        assert str(fake_server.requests[0].url) == BASE_URL + "/v1/auth"

    def test_rejects_non_http_url(self):
        with pytest.raises(ValueError):
            KanidmTransport(base_url="ldap://idm.example.com")

    def test_close_releases_client(self, transport):
        transport.close()
        assert transport.http_client is None

    def test_context_manager_closes(self, fake_server):
        with KanidmTransport(base_url=BASE_URL, http_client=fake_server.client()) as transport:
            pass
        assert transport.http_client is None

    def test_missing_ca_bundle_raises_transport_error(self, tmp_path):
        transport = KanidmTransport(base_url=BASE_URL, verify=str(tmp_path / "missing.pem"))
        with pytest.raises(TransportError) as exc_info:
            transport.post("/v1/auth", {})
        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, OSError)
        assert transport.http_client is None

    def test_unparsable_ca_bundle_raises_transport_error(self, tmp_path):
        bundle = tmp_path / "ca.pem"
        bundle.write_text("-----BEGIN CERTIFICATE-----\nnot base64\n-----END CERTIFICATE-----\n")
        transport = KanidmTransport(base_url=BASE_URL, verify=str(bundle))
        with pytest.raises(TransportError):
            transport.client


class TestAuthPost:
    """Tests for the negotiation POST."""

    def test_sends_json_body(self, transport, fake_server):
        fake_server.queue_auth({"denied": "x"})
        transport.auth_post("/v1/auth", {"step": {"begin": "anonymous"}})

        request = fake_server.requests[0]
        assert request.method == "POST"
        assert request.headers["content-type"] == "application/json"
        assert json.loads(request.content) == {"step": {"begin": "anonymous"}}
        assert request.headers["user-agent"] == USER_AGENT

    def test_no_credential_headers_initially(self, transport, fake_server):
        fake_server.queue_auth({"denied": "x"})
        transport.auth_post("/v1/auth", {})

        request = fake_server.requests[0]
        assert "authorization" not in request.headers
        assert SESSION_ID_HEADER not in request.headers

    def test_bearer_token_attached(self, transport, fake_server):
        transport.session.token = "tok-123"
        fake_server.queue_auth({"denied": "x"})
        transport.auth_post("/v1/auth", {})
        assert fake_server.requests[0].headers["authorization"] == "Bearer tok-123"

    def test_session_id_stored_and_echoed(self, transport, fake_server):
        fake_server.queue_auth({"choose": ["anonymous"]}, session_id="abc-123")
        fake_server.queue_auth({"continue": ["anonymous"]})

        transport.auth_post("/v1/auth", {})
        assert transport.session.session_id == "abc-123"

        transport.auth_post("/v1/auth", {})
        assert fake_server.requests[1].headers[SESSION_ID_HEADER] == "abc-123"

    def test_session_id_overwritten(self, transport, fake_server):
        fake_server.queue_auth({"choose": ["anonymous"]}, session_id="first")
        fake_server.queue_auth({"continue": ["anonymous"]}, session_id="second")
        transport.auth_post("/v1/auth", {})
        transport.auth_post("/v1/auth", {})
        assert transport.session.session_id == "second"

    def test_session_id_kept_when_absent(self, transport, fake_server):
        fake_server.queue_auth({"choose": ["anonymous"]}, session_id="first")
        fake_server.queue_auth({"continue": ["anonymous"]})
        transport.auth_post("/v1/auth", {})
        transport.auth_post("/v1/auth", {})
        assert transport.session.session_id == "first"

    def test_returns_decoded_body(self, transport, fake_server):
        fake_server.queue_auth({"success": "t"})
        payload = transport.auth_post("/v1/auth", {})
        assert payload["state"] == {"success": "t"}

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 500, 503])
    def test_non_200_raises_transport_error(self, transport, fake_server, status):
        fake_server.queue_auth({"success": "t"}, status=status)
        with pytest.raises(TransportError) as exc_info:
            transport.auth_post("/v1/auth", {})
        assert exc_info.value.status_code == status

    def test_non_200_does_not_store_session_id(self, transport, fake_server):
        fake_server.queue_auth({"denied": "x"}, session_id="abc", status=401)
        with pytest.raises(TransportError):
            transport.auth_post("/v1/auth", {})
        assert transport.session.session_id is None

    def test_non_200_body_not_interpreted(self):
        def handler(request):
            return httpx.Response(500, content=b"<html>oops</html>", request=request)

        with pytest.raises(TransportError) as exc_info:
            _transport_for(handler).auth_post("/v1/auth", {})
        assert not isinstance(exc_info.value, MalformedResponse)
        assert exc_info.value.status_code == 500

    def test_invalid_json_raises_malformed(self):
        def handler(request):
            return httpx.Response(200, content=b"not json", request=request)

        with pytest.raises(MalformedResponse):
            _transport_for(handler).auth_post("/v1/auth", {})

    def test_connection_error_raises_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError) as exc_info:
            _transport_for(handler).auth_post("/v1/auth", {})
        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    def test_non_ascii_session_id_rejected(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json={"state": {"choose": ["anonymous"]}},
                headers={SESSION_ID_HEADER: "s\u00e9ss".encode("utf-8")},
                request=request,
            )

        transport = _transport_for(handler)
        with pytest.raises(MalformedResponse):
            transport.auth_post("/v1/auth", {})
        assert transport.session.session_id is None

        with pytest.raises(MalformedResponse):
            transport.auth_post("/v1/auth", {})
        assert SESSION_ID_HEADER not in seen[1].headers


class TestPost:
    """Tests for the ordinary authenticated POST."""

    def test_never_sends_session_id(self, transport, fake_server):
        transport.session.token = "tok-123"
        transport.session.session_id = "stale"
        transport.post("/v1/account/bob/_unix/_auth", {"value": "pw"})

        request = fake_server.requests[0]
        assert SESSION_ID_HEADER not in request.headers
        assert request.headers["authorization"] == "Bearer tok-123"

    def test_never_captures_session_id(self, transport, fake_server):
        fake_server.unix_reply = (200, {"valid": True}, {SESSION_ID_HEADER: "new"})
        transport.post("/v1/account/bob/_unix/_auth", {"value": "pw"})
        assert transport.session.session_id is None

    def test_non_200_raises(self, transport, fake_server):
        fake_server.unix_reply = (403, {}, {})
        with pytest.raises(TransportError) as exc_info:
            transport.post("/v1/account/bob/_unix/_auth", {"value": "pw"})
        assert exc_info.value.status_code == 403

    def test_null_body(self, transport, fake_server):
        fake_server.unix_reply = (200, b"null", {})
        assert transport.post("/v1/account/bob/_unix/_auth", {"value": "pw"}) is None
