"""
kanidm-unix-verify Negotiation Types

Client-side states, context and events of the authentication negotiation.
"""

from __future__ import annotations

from enum import Enum, auto
from typing import FrozenSet, Optional, Tuple, Union

import attrs
from attrs import field

from kanidm_unix_verify.core.types import (
    AuthAllowed,
    AuthMech,
    AuthState,
    Choose,
    Continue,
    Denied,
    Success,
)


# =============================================================================
# NEGOTIATION STATE MACHINE
# =============================================================================


class NegotiationState(Enum):
    """
    Client view of a negotiation.

    INIT -> CHOOSING -> CONTINUING -> SUCCESS, with DENIED reachable from
    any non-terminal state.
    """

    INIT = auto()
    CHOOSING = auto()
    CONTINUING = auto()
    SUCCESS = auto()
    DENIED = auto()

    @property
    def is_terminal(self) -> bool:
        return self in (NegotiationState.SUCCESS, NegotiationState.DENIED)


@attrs.define
class NegotiationContext:
    """Data gathered while negotiating."""

    username: str = ""
    mechanism: Optional[AuthMech] = None
    offered: FrozenSet[AuthMech] = frozenset()
    allowed: Tuple[AuthAllowed, ...] = ()
    token: Optional[str] = field(default=None, repr=False)
    denial_reason: str = ""


# =============================================================================
# EVENTS
# =============================================================================


@attrs.define(frozen=True, slots=True)
class ChooseReceived:
    mechs: FrozenSet[AuthMech]


@attrs.define(frozen=True, slots=True)
class ContinueReceived:
    allowed: Tuple[AuthAllowed, ...]


@attrs.define(frozen=True, slots=True)
class SuccessReceived:
    token: str = field(repr=False)


@attrs.define(frozen=True, slots=True)
class DeniedReceived:
    reason: str


NegotiationEvent = Union[ChooseReceived, ContinueReceived, SuccessReceived, DeniedReceived]


def event_for_state(state: AuthState) -> NegotiationEvent:
    """Map a server-reported state to the event it drives."""
    if isinstance(state, Choose):
        return ChooseReceived(mechs=state.mechs)
    if isinstance(state, Continue):
        return ContinueReceived(allowed=state.allowed)
    if isinstance(state, Denied):
        return DeniedReceived(reason=state.reason)
    if isinstance(state, Success):
        return SuccessReceived(token=state.token)
    raise TypeError(f"Unhandled auth state: {type(state).__name__}")
