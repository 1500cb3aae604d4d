"""
kanidm-unix-verify HTTP Transport

JSON-over-HTTPS POST transport for the Kanidm REST API.

Two credential-bearing headers are managed here:
- Authorization: Bearer <token>, sent on every call once a token is held
- X-KANIDM-AUTH-SESSION-ID, echoed back during a negotiation so the server
  can pin successive steps to its in-progress state

Only ``auth_post`` takes part in session-affinity tracking. ``post`` sends
the bearer token alone and never reads the affinity header.
"""

from __future__ import annotations

import ssl
from typing import Any, Dict, List, Optional, Union

import attrs
import httpx
import structlog

from kanidm_unix_verify.core.exceptions import MalformedResponse, TransportError

logger = structlog.get_logger()


SESSION_ID_HEADER = "X-KANIDM-AUTH-SESSION-ID"
DEFAULT_TIMEOUT = 30.0
USER_AGENT = "kanidm-unix-verify/0.1.0"

JsonValue = Union[Dict[str, Any], List[Any], str, int, float, bool, None]


# =============================================================================
# SESSION
# =============================================================================


@attrs.define
class Session:
    """
    Mutable per-client credential state.

    Attributes:
        token: Bearer token issued by a successful negotiation
        session_id: Session-affinity identifier of the negotiation in progress
    """

    token: Optional[str] = attrs.field(default=None, repr=False)
    session_id: Optional[str] = attrs.field(default=None, repr=False)

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    def begin_negotiation(self) -> None:
        """Forget any affinity left over from an earlier negotiation."""
        self.session_id = None

    def end_negotiation(self) -> None:
        self.session_id = None


# =============================================================================
# TRANSPORT
# =============================================================================


@attrs.define
class KanidmTransport:
    """
    POST transport bound to one Kanidm server.

    Example:
        transport = KanidmTransport("https://idm.example.com")
        payload = transport.auth_post("/v1/auth", {"step": {...}})

    A prepared ``httpx.Client`` may be passed as ``http_client`` (tests use
    one built on ``httpx.MockTransport``). Otherwise a client is created
    lazily from ``timeout`` and ``verify``.
    """

    base_url: str = attrs.field(converter=lambda url: url.rstrip("/"))
    timeout: float = DEFAULT_TIMEOUT
    verify: Union[bool, str] = True
    http_client: Optional[httpx.Client] = None
    session: Session = attrs.Factory(Session)

    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    @base_url.validator
    def _check_base_url(self, attribute: attrs.Attribute, value: str) -> None:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"Base URL must be http(s), got {value!r}")

    @property
    def client(self) -> httpx.Client:
        """Get or create the underlying HTTP client."""
        if self.http_client is None:
            verify: Union[bool, ssl.SSLContext] = self.verify
            if isinstance(self.verify, str):
                try:
                    verify = ssl.create_default_context(cafile=self.verify)
                except (OSError, ssl.SSLError) as e:
                    self._logger.error("ca_bundle_unusable", ca_path=self.verify, error=str(e))
                    raise TransportError(f"Cannot load CA bundle {self.verify}: {e}") from e
            self.http_client = httpx.Client(
                timeout=self.timeout,
                verify=verify,
                headers={"User-Agent": USER_AGENT},
            )
        return self.http_client

    def close(self) -> None:
        if self.http_client is not None:
            self.http_client.close()
            self.http_client = None

    def __enter__(self) -> KanidmTransport:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def auth_post(self, dest: str, body: JsonValue) -> Any:
        """
        POST a negotiation step.

        Sends the held session-affinity identifier and, on HTTP 200, stores
        the one the server returns (if any) before decoding the body.

        Raises:
            TransportError: non-200 status or transport failure
            MalformedResponse: body is not JSON, or the returned
                session id is not ASCII and so could not be echoed unchanged
        """
        headers = self._auth_headers()
        if self.session.session_id is not None:
            headers[SESSION_ID_HEADER] = self.session.session_id

        response = self._send(dest, body, headers)

        session_id = response.headers.get(SESSION_ID_HEADER)
        if session_id is not None:
            if not session_id.isascii():
                raise MalformedResponse(f"{SESSION_ID_HEADER} header is not ASCII")
            self.session.session_id = session_id
            self._logger.debug("session_id_received", dest=dest)

        return self._decode(response)

    def post(self, dest: str, body: JsonValue) -> Any:
        """
        POST an ordinary authenticated call.

        Raises:
            TransportError: non-200 status or transport failure
            MalformedResponse: body is not JSON
        """
        response = self._send(dest, body, self._auth_headers())
        return self._decode(response)

    def _auth_headers(self) -> Dict[str, str]:
        headers = {"User-Agent": USER_AGENT}
        if self.session.token is not None:
            headers["Authorization"] = f"Bearer {self.session.token}"
        return headers

    def _send(self, dest: str, body: JsonValue, headers: Dict[str, str]) -> httpx.Response:
        url = f"{self.base_url}{dest}"
        try:
            response = self.client.post(url, json=body, headers=headers)
        except httpx.HTTPError as e:
            self._logger.error("request_failed", dest=dest, error=str(e))
            raise TransportError(f"Request to {dest} failed: {e}") from e

        self._logger.debug(
            "response_received",
            dest=dest,
            status=response.status_code,
            bearer=self.session.token is not None,
        )

        if response.status_code != httpx.codes.OK:
            self._logger.warning("unexpected_status", dest=dest, status=response.status_code)
            raise TransportError.from_status(response.status_code)

        return response

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponse(f"Response body is not valid JSON: {e}") from e
