"""
kanidm-unix-verify Credential Verifier

Asks the directory whether an account's unix credential is valid.

Requires a bearer token from a completed negotiation. The call does not
take part in session-affinity tracking.
"""

from __future__ import annotations

from typing import Any, Optional
from urllib.parse import quote

import attrs
import structlog

from kanidm_unix_verify.core.exceptions import StateError
from kanidm_unix_verify.core.types import SingleStringRequest, UnixUserToken
from kanidm_unix_verify.transport.http import KanidmTransport

logger = structlog.get_logger()


def unix_auth_endpoint(account_id: str) -> str:
    """Path of the unix credential check for ``account_id``."""
    return f"/v1/account/{quote(account_id, safe='@')}/_unix/_auth"


@attrs.define
class CredentialVerifier:
    """
    Unix credential check against an authorized transport.

    Example:
        verifier = CredentialVerifier(transport)
        if verifier.is_valid("bob", "hunter2"):
            ...
    """

    transport: KanidmTransport
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def verify(self, account_id: str, credential: str) -> Optional[UnixUserToken]:
        """
        Submit ``credential`` for ``account_id``.

        Returns:
            The server's UnixUserToken, or None when it answered null

        Raises:
            StateError: no bearer token has been issued yet
            TransportError: non-200 status or transport failure
            MalformedResponse: body is not a token record
        """
        if not self.transport.session.is_authenticated:
            raise StateError("Credential verification requires a bearer token")
        if not account_id:
            raise ValueError("account_id must not be empty")

        payload = self.transport.post(
            unix_auth_endpoint(account_id),
            SingleStringRequest(value=credential).to_json(),
        )
        if payload is None:
            self._logger.info("unix_credential_checked", account=account_id, valid=False)
            return None

        token = UnixUserToken.from_json(payload)
        self._logger.info("unix_credential_checked", account=account_id, valid=token.valid)
        return token

    def is_valid(self, account_id: str, credential: str) -> bool:
        """True only when the server returned a token marked valid."""
        token = self.verify(account_id, credential)
        return token is not None and token.valid
