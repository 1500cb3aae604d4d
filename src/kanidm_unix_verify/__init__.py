"""
kanidm-unix-verify - Kanidm Unix Credential Verification

Client for the Kanidm authentication protocol, used to check a user's
unix password against the directory from host login hooks.

Flow:
- Negotiate an anonymous session (init2 -> begin -> cred) for a bearer token
- POST the user's credential to /v1/account/<id>/_unix/_auth
- Report the server's validity flag (absent means invalid)

Example Usage:
    from kanidm_unix_verify import create_kanidm_client

    with create_kanidm_client("https://idm.example.com") as client:
        client.auth_anonymous()
        if client.verify_unix_credential("bob", "hunter2"):
            print("valid")
"""

from kanidm_unix_verify.client import KanidmClient, create_kanidm_client
from kanidm_unix_verify.config import ClientConfig, load_config
from kanidm_unix_verify.core.types import AuthCredential, AuthMech, UnixUserToken
from kanidm_unix_verify.core.exceptions import (
    AuthenticationFailed,
    KanidmAuthError,
    TransportError,
)

__version__ = "0.1.0"

__all__ = [
    # Main API
    "KanidmClient",
    "create_kanidm_client",
    "ClientConfig",
    "load_config",
    # Types
    "AuthMech",
    "AuthCredential",
    "UnixUserToken",
    # Exceptions
    "KanidmAuthError",
    "AuthenticationFailed",
    "TransportError",
    # Metadata
    "__version__",
]
