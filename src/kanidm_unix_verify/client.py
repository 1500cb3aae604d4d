"""
kanidm-unix-verify Client

High-level Kanidm client combining the transport, the negotiator and the
credential verifier behind one object.

Example:
    with create_kanidm_client("https://idm.example.com") as client:
        client.auth_anonymous()
        token = client.idm_account_unix_cred_verify("bob", "hunter2")
        ok = token is not None and token.valid

One client holds one Session. Do not negotiate on the same client from
several threads at once; use one client per concurrent flow.
"""

from __future__ import annotations

from typing import Any, Optional, Union

import attrs
import httpx
import structlog

from kanidm_unix_verify.auth.negotiator import ANONYMOUS_USER, AuthNegotiator
from kanidm_unix_verify.auth.verifier import CredentialVerifier
from kanidm_unix_verify.core.types import AuthCredential, AuthMech, UnixUserToken
from kanidm_unix_verify.transport.http import DEFAULT_TIMEOUT, KanidmTransport

logger = structlog.get_logger()


@attrs.define
class KanidmClient:
    """
    Kanidm client bound to one server.

    Attributes:
        transport: Transport owning the Session (bearer token, session id)
        last_negotiation: Negotiator of the most recent attempt, kept for
            its state and transition trace
    """

    transport: KanidmTransport
    last_negotiation: Optional[AuthNegotiator] = None

    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    @property
    def token(self) -> Optional[str]:
        """Bearer token, once a negotiation succeeded."""
        return self.transport.session.token

    @property
    def is_authenticated(self) -> bool:
        return self.transport.session.is_authenticated

    def close(self) -> None:
        self.transport.close()

    def __enter__(self) -> KanidmClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def authenticate(
        self,
        username: str,
        mech: AuthMech,
        credential: AuthCredential,
    ) -> str:
        """
        Run one negotiation and return the issued bearer token.

        Raises:
            AuthenticationFailed: negotiation did not succeed
            TransportError: an HTTP round trip failed
        """
        negotiator = AuthNegotiator(self.transport)
        self.last_negotiation = negotiator
        return negotiator.negotiate(username, mech, credential)

    def auth_anonymous(self) -> None:
        """Establish an anonymous session."""
        self.authenticate(ANONYMOUS_USER, AuthMech.ANONYMOUS, AuthCredential.anonymous())

    def auth_simple_password(self, username: str, password: str) -> None:
        """Establish a session for ``username`` with the single-factor password mechanism."""
        self.authenticate(username, AuthMech.PASSWORD, AuthCredential.password(password))

    def idm_account_unix_cred_verify(
        self, account_id: str, credential: str
    ) -> Optional[UnixUserToken]:
        """
        Check an account's unix credential.

        Requires a prior successful negotiation on this client.
        """
        return CredentialVerifier(self.transport).verify(account_id, credential)

    def verify_unix_credential(self, account_id: str, credential: str) -> bool:
        """Boolean form of idm_account_unix_cred_verify; absent token means invalid."""
        return CredentialVerifier(self.transport).is_valid(account_id, credential)


def create_kanidm_client(
    base_url: str,
    timeout: float = DEFAULT_TIMEOUT,
    verify: Union[bool, str] = True,
    http_client: Optional[httpx.Client] = None,
) -> KanidmClient:
    """
    Create a Kanidm client.

    Args:
        base_url: Server URL, e.g. "https://idm.example.com"
        timeout: Per-request timeout in seconds
        verify: TLS verification flag or path to a CA bundle
        http_client: Prepared httpx.Client to use instead of building one

    Returns:
        KanidmClient with an empty Session
    """
    transport = KanidmTransport(
        base_url=base_url,
        timeout=timeout,
        verify=verify,
        http_client=http_client,
    )
    return KanidmClient(transport=transport)
