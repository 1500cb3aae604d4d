"""
kanidm-unix-verify Core Types

Wire data model for the Kanidm authentication and unix credential APIs.

Every request type knows how to render itself as JSON-ready data
(``to_json``) and every response type knows how to parse itself from
decoded JSON (``from_json``). Parsing is strict: an unknown mechanism name,
an unknown state tag or a field of the wrong type raises MalformedResponse.

Design Principles:
- Immutable: All types use frozen attrs
- Closed: AuthState and AuthStep are fixed unions of variants
- Quiet: tokens and passwords are excluded from repr
"""

from __future__ import annotations

from enum import Enum
from functools import total_ordering
from typing import Any, ClassVar, Dict, FrozenSet, Optional, Tuple, Type, TypeVar, Union

import attrs
from attrs import field, validators

from kanidm_unix_verify.core.exceptions import MalformedResponse

W = TypeVar("W", bound="_WireEnum")


# =============================================================================
# ENUMS
# =============================================================================


class _WireEnum(Enum):
    """Enum whose values are the lowercase names used on the wire."""

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_wire(cls: Type[W], value: Any) -> W:
        try:
            return cls(value)
        except (ValueError, TypeError):
            raise MalformedResponse(
                f"Unknown {cls.__name__} value: {value!r}"
            ) from None


@total_ordering
class AuthMech(_WireEnum):
    """
    Authentication mechanisms a server may offer for an account.

    Members compare in declaration order, weakest first.
    """

    ANONYMOUS = "anonymous"
    PASSWORD = "password"
    PASSWORD_BACKUP_CODE = "passwordbackupcode"
    PASSWORD_TOTP = "passwordmfa"
    PASSWORD_SECURITY_KEY = "passwordsecuritykey"
    PASSKEY = "passkey"

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, AuthMech):
            return NotImplemented
        names = type(self)._member_names_
        return names.index(self.name) < names.index(other.name)


class AuthAllowed(_WireEnum):
    """Challenges the server accepts within the chosen mechanism."""

    ANONYMOUS = "anonymous"
    BACKUP_CODE = "backupcode"
    PASSWORD = "password"
    TOTP = "totp"


class AuthIssueSession(_WireEnum):
    """Session artifact requested at initiation."""

    TOKEN = "token"


# =============================================================================
# CREDENTIALS
# =============================================================================


_CREDENTIAL_KINDS = (AuthAllowed.ANONYMOUS, AuthAllowed.PASSWORD, AuthAllowed.TOTP)


@attrs.define(frozen=True, slots=True)
class AuthCredential:
    """
    Credential submitted in answer to a challenge.

    Build with the ``anonymous``, ``password`` or ``totp`` constructors.

    Wire format:
        anonymous   -> "anonymous"
        password(s) -> {"password": s}
        totp(n)     -> {"totp": n}
    """

    kind: AuthAllowed = field(validator=validators.in_(_CREDENTIAL_KINDS))
    value: Union[str, int, None] = field(default=None, repr=False)

    def __attrs_post_init__(self) -> None:
        if self.kind is AuthAllowed.ANONYMOUS:
            if self.value is not None:
                raise ValueError("Anonymous credential carries no value")
        elif self.kind is AuthAllowed.PASSWORD:
            if not isinstance(self.value, str):
                raise ValueError("Password credential requires a string")
        elif not isinstance(self.value, int) or not 0 <= self.value < 2**32:
            raise ValueError("TOTP credential requires an unsigned 32-bit integer")

    @classmethod
    def anonymous(cls) -> AuthCredential:
        return cls(kind=AuthAllowed.ANONYMOUS)

    @classmethod
    def password(cls, password: str) -> AuthCredential:
        return cls(kind=AuthAllowed.PASSWORD, value=password)

    @classmethod
    def totp(cls, code: int) -> AuthCredential:
        return cls(kind=AuthAllowed.TOTP, value=code)

    def to_json(self) -> Union[str, Dict[str, Any]]:
        if self.kind is AuthAllowed.ANONYMOUS:
            return self.kind.value
        return {self.kind.value: self.value}


# =============================================================================
# REQUEST STEPS
# =============================================================================


@attrs.define(frozen=True, slots=True)
class InitStep:
    """
    Start a negotiation for ``username``.

    Always asks for a bearer token rather than a cookie.
    """

    username: str = field(validator=[validators.instance_of(str), validators.min_len(1)])
    issue: AuthIssueSession = AuthIssueSession.TOKEN
    privileged: bool = False

    def to_json(self) -> Dict[str, Any]:
        return {
            "init2": {
                "username": self.username,
                "issue": self.issue.value,
                "privileged": self.privileged,
            }
        }


@attrs.define(frozen=True, slots=True)
class BeginStep:
    """Select the mechanism to proceed with."""

    mech: AuthMech = field(validator=validators.instance_of(AuthMech))

    def to_json(self) -> Dict[str, Any]:
        return {"begin": self.mech.value}


@attrs.define(frozen=True, slots=True)
class CredStep:
    """Answer the current challenge."""

    credential: AuthCredential = field(validator=validators.instance_of(AuthCredential))

    def to_json(self) -> Dict[str, Any]:
        return {"cred": self.credential.to_json()}


AuthStep = Union[InitStep, BeginStep, CredStep]


@attrs.define(frozen=True, slots=True)
class AuthRequest:
    """Envelope POSTed to the negotiation endpoint."""

    step: AuthStep

    def to_json(self) -> Dict[str, Any]:
        return {"step": self.step.to_json()}


@attrs.define(frozen=True, slots=True)
class SingleStringRequest:
    """Body of the unix credential verification call."""

    value: str = field(repr=False)

    def to_json(self) -> Dict[str, Any]:
        return {"value": self.value}


# =============================================================================
# NEGOTIATION STATES (server reported)
# =============================================================================


@attrs.define(frozen=True, slots=True)
class Choose:
    """Intermediate: pick one of the offered mechanisms."""

    tag: ClassVar[str] = "choose"

    mechs: FrozenSet[AuthMech] = field(converter=frozenset)


@attrs.define(frozen=True, slots=True)
class Continue:
    """Intermediate: submit a credential matching one of ``allowed``."""

    tag: ClassVar[str] = "continue"

    allowed: Tuple[AuthAllowed, ...] = field(converter=tuple)


@attrs.define(frozen=True, slots=True)
class Denied:
    """Terminal failure with the server's reason."""

    tag: ClassVar[str] = "denied"

    reason: str


@attrs.define(frozen=True, slots=True)
class Success:
    """Terminal success carrying the issued bearer token."""

    tag: ClassVar[str] = "success"

    token: str = field(repr=False)


AuthState = Union[Choose, Continue, Denied, Success]


def _expect_list(value: Any, tag: str) -> list:
    if not isinstance(value, list):
        raise MalformedResponse(f"'{tag}' state must carry a list, got {type(value).__name__}")
    return value


def _expect_str(value: Any, tag: str) -> str:
    if not isinstance(value, str):
        raise MalformedResponse(f"'{tag}' state must carry a string, got {type(value).__name__}")
    return value


def parse_auth_state(data: Any) -> AuthState:
    """
    Parse the externally tagged ``state`` object of an auth response.

    Examples:
        {"choose": ["anonymous", "password"]} -> Choose({ANONYMOUS, PASSWORD})
        {"success": "tok"}                    -> Success("tok")
    """
    if not isinstance(data, dict) or len(data) != 1:
        raise MalformedResponse(f"State must be an object with one key, got {data!r}")

    tag, value = next(iter(data.items()))
    if tag == Choose.tag:
        return Choose(AuthMech.from_wire(m) for m in _expect_list(value, tag))
    if tag == Continue.tag:
        return Continue(AuthAllowed.from_wire(a) for a in _expect_list(value, tag))
    if tag == Denied.tag:
        return Denied(_expect_str(value, tag))
    if tag == Success.tag:
        return Success(_expect_str(value, tag))
    raise MalformedResponse(f"Unknown auth state: {tag!r}")


@attrs.define(frozen=True, slots=True)
class AuthResponse:
    """Decoded negotiation response."""

    state: AuthState
    sessionid: Optional[str] = None

    @classmethod
    def from_json(cls, data: Any) -> AuthResponse:
        if not isinstance(data, dict) or "state" not in data:
            raise MalformedResponse("Auth response has no 'state' field")
        sessionid = data.get("sessionid")
        if sessionid is not None and not isinstance(sessionid, str):
            raise MalformedResponse("Auth response 'sessionid' must be a string")
        return cls(state=parse_auth_state(data["state"]), sessionid=sessionid)


# =============================================================================
# VERIFICATION RESULT
# =============================================================================


@attrs.define(frozen=True, slots=True)
class UnixUserToken:
    """
    Result of a unix credential check.

    Only ``valid`` matters for the verdict; it defaults to False when the
    server omits it. The other fields are informational.
    """

    valid: bool = False
    name: Optional[str] = None
    spn: Optional[str] = None
    displayname: Optional[str] = None
    gidnumber: Optional[int] = None
    uuid: Optional[str] = None
    shell: Optional[str] = None

    @classmethod
    def from_json(cls, data: Any) -> UnixUserToken:
        if not isinstance(data, dict):
            raise MalformedResponse(
                f"Unix user token must be an object, got {type(data).__name__}"
            )
        valid = data.get("valid", False)
        if not isinstance(valid, bool):
            raise MalformedResponse("Unix user token 'valid' must be a boolean")
        gidnumber = data.get("gidnumber")
        if gidnumber is not None and (
            isinstance(gidnumber, bool) or not isinstance(gidnumber, int)
        ):
            raise MalformedResponse("Unix user token 'gidnumber' must be an integer")
        return cls(
            valid=valid,
            name=data.get("name"),
            spn=data.get("spn"),
            displayname=data.get("displayname"),
            gidnumber=gidnumber,
            uuid=data.get("uuid"),
            shell=data.get("shell"),
        )
