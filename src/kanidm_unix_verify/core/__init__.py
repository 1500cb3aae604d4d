"""
kanidm-unix-verify Core Module

Provides the wire types and abstractions shared by the transport and auth layers.

Components:
- types: Wire data model (mechanisms, steps, states, verification result)
- state_machine: Base state machine with invariant checking
- exceptions: Custom exception types
"""

from kanidm_unix_verify.core.types import (
    AuthAllowed,
    AuthCredential,
    AuthMech,
    AuthResponse,
    AuthState,
    Choose,
    Continue,
    Denied,
    Success,
    UnixUserToken,
)
from kanidm_unix_verify.core.state_machine import StateMachineBase, Transition
from kanidm_unix_verify.core.exceptions import (
    KanidmAuthError,
    TransportError,
    MalformedResponse,
    AuthenticationFailed,
    StateError,
)

__all__ = [
    # Types
    "AuthAllowed",
    "AuthCredential",
    "AuthMech",
    "AuthResponse",
    "AuthState",
    "Choose",
    "Continue",
    "Denied",
    "Success",
    "UnixUserToken",
    # State Machine
    "StateMachineBase",
    "Transition",
    # Exceptions
    "KanidmAuthError",
    "TransportError",
    "MalformedResponse",
    "AuthenticationFailed",
    "StateError",
]
