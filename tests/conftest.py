"""
Pytest configuration and shared fixtures for kanidm-unix-verify tests.
"""

import json
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest
import structlog

from kanidm_unix_verify.client import KanidmClient, create_kanidm_client
from kanidm_unix_verify.transport.http import SESSION_ID_HEADER, KanidmTransport


BASE_URL = "https://idm.example.com"

# (status, body, headers); body may be raw bytes
Reply = Tuple[int, Any, Dict[str, str]]


# =============================================================================
# FAKE SERVER
# =============================================================================


class FakeKanidmServer:
    """
    Scripted Kanidm server behind httpx.MockTransport.

    Negotiation replies are consumed in order from ``auth_replies``; the
    unix credential check always answers ``unix_reply``. Every request is
    recorded in ``requests``.
    """

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.auth_replies: List[Reply] = []
        self.unix_reply: Reply = (200, {"valid": True}, {})

    def queue_auth(self, state: Dict[str, Any], session_id: Optional[str] = None, status: int = 200) -> None:
        headers = {SESSION_ID_HEADER: session_id} if session_id is not None else {}
        self.auth_replies.append((status, {"sessionid": "00000000-0000-0000-0000-000000000001", "state": state}, headers))

    def queue_anonymous_flow(self, token: str = "tok-123", session_id: str = "sess-1") -> None:
        self.queue_auth({"choose": ["anonymous", "password"]}, session_id=session_id)
        self.queue_auth({"continue": ["anonymous"]}, session_id=session_id)
        self.queue_auth({"success": token})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/v1/auth":
            if not self.auth_replies:
                return httpx.Response(500, request=request)
            status, body, headers = self.auth_replies.pop(0)
        elif request.url.path.endswith("/_unix/_auth"):
            status, body, headers = self.unix_reply
        else:
            return httpx.Response(404, request=request)

        if isinstance(body, bytes):
            return httpx.Response(status, content=body, headers=headers, request=request)
        return httpx.Response(status, json=body, headers=headers, request=request)

    @property
    def auth_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/v1/auth"]

    @property
    def unix_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/_unix/_auth")]

    def steps(self) -> List[str]:
        """Step tags of every negotiation request, in order."""
        return [next(iter(json.loads(r.content)["step"])) for r in self.auth_requests]

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo any structlog configuration a test (e.g. the CLI) applied."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def fake_server() -> FakeKanidmServer:
    return FakeKanidmServer()


@pytest.fixture
def transport(fake_server: FakeKanidmServer) -> KanidmTransport:
    """Transport wired to the fake server."""
    return KanidmTransport(base_url=BASE_URL, http_client=fake_server.client())


@pytest.fixture
def kanidm_client(fake_server: FakeKanidmServer) -> KanidmClient:
    """Client wired to the fake server."""
    return create_kanidm_client(BASE_URL, http_client=fake_server.client())


@pytest.fixture
def authenticated_client(kanidm_client: KanidmClient, fake_server: FakeKanidmServer) -> KanidmClient:
    """Client that has completed the anonymous flow with token tok-123."""
    fake_server.queue_anonymous_flow()
    kanidm_client.auth_anonymous()
    return kanidm_client


# =============================================================================
# PYTEST MARKERS
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests requiring a real Kanidm server"
    )
