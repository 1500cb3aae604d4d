"""
kanidm-unix-verify Exception Types

Custom exceptions for transport, negotiation and configuration errors.
"""

from __future__ import annotations

from typing import Iterable, Optional


class KanidmAuthError(Exception):
    """Base exception for all kanidm-unix-verify errors."""

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class TransportError(KanidmAuthError):
    """
    HTTP exchange failed.

    Raised for any non-200 status (``status_code`` set) and for failures
    below HTTP such as connection or TLS errors (``status_code`` is None).
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message, code=status_code)

    @property
    def status_code(self) -> Optional[int]:
        return self.code

    @classmethod
    def from_status(cls, status_code: int) -> TransportError:
        return cls(f"Unexpected HTTP status {status_code}", status_code=status_code)


class MalformedResponse(TransportError):
    """
    Response body could not be decoded.

    Either not JSON at all or JSON of the wrong shape.
    """

    pass


class AuthenticationFailed(KanidmAuthError):
    """
    Negotiation did not end in an issued bearer token.

    Catch this to treat every negotiation failure alike; the subclasses
    below only add diagnostics.
    """

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message)


class UnexpectedState(AuthenticationFailed):
    """Server answered with a state that does not follow the previous step."""

    def __init__(self, expected: str, received: str) -> None:
        super().__init__(f"Expected {expected} state, server sent {received}")
        self.expected = expected
        self.received = received


class MechanismUnavailable(AuthenticationFailed):
    """The requested mechanism is not among those the server offered."""

    def __init__(self, mechanism: object, offered: Iterable[object]) -> None:
        self.mechanism = mechanism
        self.offered = frozenset(offered)
        names = ", ".join(sorted(str(m) for m in self.offered)) or "none"
        super().__init__(f"Mechanism {mechanism} not offered (offered: {names})")


class AuthenticationDenied(AuthenticationFailed):
    """Server explicitly denied the negotiation."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Authentication denied: {reason}")
        self.reason = reason


class StateError(KanidmAuthError):
    """
    Invalid state transition or call order.

    Raised when an operation is not valid in the client's current state,
    such as verifying a credential before a bearer token was issued.
    """

    pass


class InvariantViolation(KanidmAuthError):
    """
    A negotiation invariant was violated.

    Indicates the client's state machine reached a state it must never
    reach (for example SUCCESS without a token).
    """

    pass


class ConfigError(KanidmAuthError):
    """No usable client configuration could be loaded."""

    pass
