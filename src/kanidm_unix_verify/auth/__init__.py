"""
kanidm-unix-verify Auth Module

Components:
- negotiator: Authentication negotiation state machine
- verifier: Unix credential verification
- types: Negotiation states, context and events
"""

from kanidm_unix_verify.auth.negotiator import AuthNegotiator, NegotiationStateMachine
from kanidm_unix_verify.auth.types import NegotiationState, NegotiationContext
from kanidm_unix_verify.auth.verifier import CredentialVerifier

__all__ = [
    "AuthNegotiator",
    "NegotiationStateMachine",
    "NegotiationState",
    "NegotiationContext",
    "CredentialVerifier",
]
