"""
kanidm-unix-verify Command Line

    kanidm-unix-verify [-c CONFIG] [-v] USERNAME [PASSWORD]

Exits 0 when the directory confirms PASSWORD is a valid unix credential
for USERNAME, 1 otherwise (negative answer or any error). Meant to be
called from PAM hooks such as pam_exec.

When PASSWORD is not given it is taken from $KANIDM_PASSWORD, and failing
that read from the terminal without echo.
"""

from __future__ import annotations

import getpass
import logging
import os
import sys
from pathlib import Path
from typing import Optional

import click
import structlog

from kanidm_unix_verify import __version__
from kanidm_unix_verify.client import create_kanidm_client
from kanidm_unix_verify.config import load_config
from kanidm_unix_verify.core.exceptions import ConfigError, KanidmAuthError

logger = structlog.get_logger()


PASSWORD_ENV = "KANIDM_PASSWORD"

EXIT_VALID = 0
EXIT_FAILURE = 1


def configure_logging(verbose: bool = False) -> None:
    """Render structlog events to stderr; DEBUG when verbose, else WARNING."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.WARNING
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_password() -> str:
    """Password from the environment, else prompted for without echo."""
    password = os.environ.get(PASSWORD_ENV)
    if password is not None:
        return password
    return getpass.getpass("Password: ")


def run(
    username: str,
    password: Optional[str] = None,
    config_path: Optional[Path] = None,
) -> int:
    """
    Verify ``username``'s credential and return the process exit code.

    Every failure is reported on stderr and mapped to EXIT_FAILURE.
    """
    try:
        config = load_config(config_path)
        client = create_kanidm_client(config.uri, verify=config.tls_verify)
    except (ConfigError, ValueError) as e:
        click.echo(f"Failed to create client: {e}", err=True)
        return EXIT_FAILURE

    with client:
        if password is None:
            try:
                password = get_password()
            except EOFError:
                click.echo("Failed to read password", err=True)
                return EXIT_FAILURE

        try:
            client.auth_anonymous()
        except KanidmAuthError as e:
            click.echo(f"Failed to authenticate: {e}", err=True)
            return EXIT_FAILURE

        try:
            valid = client.verify_unix_credential(username, password)
        except (KanidmAuthError, ValueError) as e:
            click.echo(f"Failed to verify credential: {e}", err=True)
            return EXIT_FAILURE

    logger.debug("verification_finished", username=username, valid=valid)
    return EXIT_VALID if valid else EXIT_FAILURE


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Read only this config file instead of the default locations.",
)
@click.option("-v", "--verbose", is_flag=True, help="Log diagnostics to stderr.")
@click.argument("username")
@click.argument("password", required=False)
@click.version_option(version=__version__, prog_name="kanidm-unix-verify")
def main(
    config_path: Optional[Path],
    verbose: bool,
    username: str,
    password: Optional[str],
) -> None:
    """Check USERNAME's unix credential against a Kanidm server."""
    configure_logging(verbose)
    sys.exit(run(username, password, config_path))
