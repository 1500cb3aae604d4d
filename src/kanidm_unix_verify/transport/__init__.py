"""
kanidm-unix-verify Transport Layer

HTTP transport for the Kanidm REST API.

Components:
- http: JSON POST transport and the per-client Session
"""

from kanidm_unix_verify.transport.http import KanidmTransport, Session, SESSION_ID_HEADER

__all__ = [
    "KanidmTransport",
    "Session",
    "SESSION_ID_HEADER",
]
