"""
kanidm-unix-verify Authentication Negotiator

Drives the Kanidm authentication exchange over a KanidmTransport.

Every step is one POST to /v1/auth:
1. init2   -> server must answer choose(mechanisms)
2. begin   -> server must answer continue(challenges)
3. cred    -> server answers success(token) or denied(reason)

A single challenge round is supported. There is no retry and no
mechanism fallback: the first answer that does not fit the step aborts
the negotiation.
"""

from __future__ import annotations

from typing import Any, Dict, FrozenSet, Optional, Tuple

import attrs
import structlog
from returns.result import Failure

from kanidm_unix_verify.auth.types import (
    ChooseReceived,
    ContinueReceived,
    DeniedReceived,
    NegotiationContext,
    NegotiationState,
    SuccessReceived,
    event_for_state,
)
from kanidm_unix_verify.core.exceptions import (
    AuthenticationDenied,
    MechanismUnavailable,
    StateError,
    UnexpectedState,
)
from kanidm_unix_verify.core.state_machine import StateMachineBase, TransitionEntry
from kanidm_unix_verify.core.types import (
    AuthAllowed,
    AuthCredential,
    AuthMech,
    AuthRequest,
    AuthResponse,
    AuthState,
    AuthStep,
    BeginStep,
    Choose,
    Continue,
    CredStep,
    Denied,
    InitStep,
    Success,
)
from kanidm_unix_verify.transport.http import KanidmTransport

logger = structlog.get_logger()


AUTH_ENDPOINT = "/v1/auth"
ANONYMOUS_USER = "anonymous"


# =============================================================================
# NEGOTIATION STATE MACHINE
# =============================================================================


@attrs.define
class NegotiationStateMachine(
    StateMachineBase[NegotiationState, Any, NegotiationContext]
):
    """
    State machine for one negotiation.

    States:
    - INIT: nothing sent yet
    - CHOOSING: server offered mechanisms
    - CONTINUING: mechanism accepted, challenge pending
    - SUCCESS: bearer token issued
    - DENIED: server refused
    """

    def initial_state(self) -> NegotiationState:
        return NegotiationState.INIT

    def transition_table(
        self,
    ) -> Dict[Tuple[NegotiationState, type], TransitionEntry]:
        return {
            (NegotiationState.INIT, ChooseReceived): (
                NegotiationState.CHOOSING,
                self._handle_choose,
            ),
            (NegotiationState.CHOOSING, ContinueReceived): (
                NegotiationState.CONTINUING,
                self._handle_continue,
            ),
            (NegotiationState.CONTINUING, SuccessReceived): (
                NegotiationState.SUCCESS,
                self._handle_success,
            ),
            (NegotiationState.INIT, DeniedReceived): (
                NegotiationState.DENIED,
                self._handle_denied,
            ),
            (NegotiationState.CHOOSING, DeniedReceived): (
                NegotiationState.DENIED,
                self._handle_denied,
            ),
            (NegotiationState.CONTINUING, DeniedReceived): (
                NegotiationState.DENIED,
                self._handle_denied,
            ),
        }

    @staticmethod
    def _handle_choose(
        event: ChooseReceived, ctx: NegotiationContext
    ) -> NegotiationContext:
        return attrs.evolve(ctx, offered=event.mechs)

    @staticmethod
    def _handle_continue(
        event: ContinueReceived, ctx: NegotiationContext
    ) -> NegotiationContext:
        return attrs.evolve(ctx, allowed=event.allowed)

    @staticmethod
    def _handle_success(
        event: SuccessReceived, ctx: NegotiationContext
    ) -> NegotiationContext:
        return attrs.evolve(ctx, token=event.token)

    @staticmethod
    def _handle_denied(
        event: DeniedReceived, ctx: NegotiationContext
    ) -> NegotiationContext:
        return attrs.evolve(ctx, denial_reason=event.reason)


# =============================================================================
# NEGOTIATOR
# =============================================================================


@attrs.define
class AuthNegotiator:
    """
    Runs a single negotiation against the server behind ``transport``.

    A negotiator is good for one attempt; create a new one per attempt.
    On success the issued token is stored in ``transport.session`` so every
    later call through the same transport is authorized.

    Example:
        negotiator = AuthNegotiator(transport)
        negotiator.negotiate("anonymous", AuthMech.ANONYMOUS, AuthCredential.anonymous())
    """

    transport: KanidmTransport

    _state_machine: NegotiationStateMachine = attrs.Factory(
        lambda: NegotiationStateMachine(
            _state=NegotiationState.INIT,
            _context=NegotiationContext(),
        )
    )
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def __attrs_post_init__(self) -> None:
        self._state_machine.add_invariant(
            "token_only_on_success",
            self._token_only_on_success,
        )
        self._state_machine.add_invariant(
            "mechanism_was_offered",
            self._mechanism_was_offered,
        )

    @staticmethod
    def _token_only_on_success(
        state: NegotiationState, ctx: NegotiationContext
    ) -> bool:
        """Invariant: a token is held exactly when the negotiation succeeded."""
        return (state is NegotiationState.SUCCESS) == (ctx.token is not None)

    @staticmethod
    def _mechanism_was_offered(
        state: NegotiationState, ctx: NegotiationContext
    ) -> bool:
        """Invariant: a challenge is only answered for an offered mechanism."""
        if state in (NegotiationState.CONTINUING, NegotiationState.SUCCESS):
            return ctx.mechanism is not None and ctx.mechanism in ctx.offered
        return True

    @property
    def state(self) -> NegotiationState:
        """Current negotiation state."""
        return self._state_machine.state

    @property
    def context(self) -> NegotiationContext:
        """Current context (read-only)."""
        return self._state_machine.context

    @property
    def token(self) -> Optional[str]:
        """Bearer token (available after success)."""
        return self.context.token

    def get_trace(self) -> list:
        return self._state_machine.get_trace()

    def state_sequence(self) -> list:
        return self._state_machine.state_sequence()

    def export_trace_json(self) -> str:
        return self._state_machine.export_trace_json()

    def negotiate(
        self,
        username: str,
        mech: AuthMech,
        credential: AuthCredential,
    ) -> str:
        """
        Negotiate a bearer token for ``username`` using ``mech``.

        Args:
            username: Account to authenticate as
            mech: Mechanism to select from the offered set
            credential: Answer to the mechanism's challenge

        Returns:
            The issued bearer token (also stored in the transport session)

        Raises:
            AuthenticationFailed: the server's answer did not fit the step,
                the mechanism was not offered, or the server denied
            TransportError: an HTTP round trip failed
            StateError: this negotiator was already used
        """
        if self.state is not NegotiationState.INIT:
            raise StateError(f"Negotiator already used (state {self.state.name})")

        session = self.transport.session
        session.begin_negotiation()
        self._state_machine.update_context(username=username)
        self._logger.info("negotiation_started", username=username, mechanism=str(mech))

        try:
            offered = self._step_init(username)
            if mech not in offered:
                self._logger.warning(
                    "mechanism_unavailable",
                    username=username,
                    mechanism=str(mech),
                    offered=sorted(str(m) for m in offered),
                )
                raise MechanismUnavailable(mech, offered)

            self._state_machine.update_context(mechanism=mech)
            self._step_begin(mech)
            token = self._step_cred(credential)
        finally:
            session.end_negotiation()
            if not self.state.is_terminal:
                self._logger.info(
                    "negotiation_aborted",
                    username=username,
                    state=self.state.name,
                )

        session.token = token
        self._logger.info("negotiation_succeeded", username=username, mechanism=str(mech))
        return token

    def _step_init(self, username: str) -> FrozenSet[AuthMech]:
        state = self._send(InitStep(username=username))
        self._advance(state, Choose)
        return self.context.offered

    def _step_begin(self, mech: AuthMech) -> Tuple[AuthAllowed, ...]:
        state = self._send(BeginStep(mech))
        self._advance(state, Continue)
        return self.context.allowed

    def _step_cred(self, credential: AuthCredential) -> str:
        state = self._send(CredStep(credential))
        self._advance(state, Success)
        return self.context.token

    def _send(self, step: AuthStep) -> AuthState:
        payload = self.transport.auth_post(AUTH_ENDPOINT, AuthRequest(step).to_json())
        return AuthResponse.from_json(payload).state

    def _advance(self, state: AuthState, expected: type) -> None:
        """
        Feed the server's answer to the state machine.

        Raises UnexpectedState when the answer has no transition from the
        current state, AuthenticationDenied when it was a denial.
        """
        result = self._state_machine.process_event(event_for_state(state))
        if isinstance(result, Failure):
            self._logger.warning(
                "unexpected_auth_state",
                expected=expected.tag,
                received=state.tag,
                current_state=self.state.name,
            )
            raise UnexpectedState(expected.tag, state.tag)

        if isinstance(state, Denied):
            self._logger.warning(
                "authentication_denied",
                username=self.context.username,
                reason=state.reason,
            )
            raise AuthenticationDenied(state.reason)
