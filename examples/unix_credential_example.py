#!/usr/bin/env python3
"""
Unix Credential Verification Example

Demonstrates checking a user's unix password against a Kanidm server.

Steps:
1. Load the client configuration
2. Negotiate an anonymous session (bearer token)
3. Verify the user's credential
4. Inspect the negotiation trace

Usage:
    KANIDM_PASSWORD=... python unix_credential_example.py bob
"""

import json
import os
import sys

from kanidm_unix_verify import (
    AuthenticationFailed,
    TransportError,
    create_kanidm_client,
    load_config,
)


def main() -> int:
    """Verify the credential of the user named on the command line."""
    if len(sys.argv) != 2:
        print(f"usage: {sys.argv[0]} USERNAME", file=sys.stderr)
        return 2
    username = sys.argv[1]
    password = os.environ.get("KANIDM_PASSWORD", "")

    print("=" * 70)
    print("kanidm-unix-verify - Unix Credential Verification")
    print("=" * 70)
    print()

    # ==========================================================================
    # EXAMPLE 1: Load Configuration
    # ==========================================================================
    print("1. Load Configuration")
    print("-" * 40)

    config = load_config()
    print(f"   Server: {config.uri}")
    print(f"   TLS verify: {config.tls_verify}")
    print()

    with create_kanidm_client(config.uri, verify=config.tls_verify) as client:
        # ======================================================================
        # EXAMPLE 2: Anonymous Session
        # ======================================================================
        print("2. Anonymous Session")
        print("-" * 40)

        try:
            client.auth_anonymous()
        except AuthenticationFailed as e:
            print(f"   Negotiation failed: {e}")
            return 1
        except TransportError as e:
            print(f"   Server unreachable or refused (status {e.status_code}): {e}")
            return 1
        print(f"   Authenticated: {client.is_authenticated}")
        print()

        # ======================================================================
        # EXAMPLE 3: Verify Credential
        # ======================================================================
        print("3. Verify Credential")
        print("-" * 40)

        token = client.idm_account_unix_cred_verify(username, password)
        valid = token is not None and token.valid
        print(f"   {username}: {'VALID' if valid else 'INVALID'}")
        if token is not None and token.gidnumber is not None:
            print(f"   gidnumber: {token.gidnumber}, shell: {token.shell}")
        print()

        # ======================================================================
        # EXAMPLE 4: Negotiation Trace
        # ======================================================================
        print("4. Negotiation Trace")
        print("-" * 40)

        trace = json.loads(client.last_negotiation.export_trace_json())
        print(f"   States: {' -> '.join(trace['states'])}")
        print()

    return 0 if valid else 1


if __name__ == "__main__":
    sys.exit(main())
