"""
kanidm-unix-verify Configuration

Locates and parses the Kanidm client configuration (TOML).

Search order when no explicit path is given:
1. /etc/kanidm/config
2. $HOME/.config/kanidm

Every readable file in that list is read and the last one wins, so a
per-user file overrides the system one. Only the keys below are used;
anything else in the file is ignored.

    uri = "https://idm.example.com"
    verify_ca = true                 # optional
    ca_path = "/etc/kanidm/ca.pem"   # optional
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import List, Optional, Union

import attrs
import structlog
from attrs import field, validators

from kanidm_unix_verify.core.exceptions import ConfigError

logger = structlog.get_logger()


DEFAULT_CONFIG_PATHS = ("/etc/kanidm/config",)


def config_paths() -> List[Path]:
    """Candidate config files, lowest precedence first."""
    paths = [Path(p) for p in DEFAULT_CONFIG_PATHS]
    home = os.environ.get("HOME")
    if home:
        paths.append(Path(home) / ".config" / "kanidm")
    return paths


@attrs.define(frozen=True, slots=True)
class ClientConfig:
    """
    Client settings.

    Attributes:
        uri: Base URL of the Kanidm server
        verify_ca: Verify the server certificate
        ca_path: PEM bundle to verify against instead of the system store
    """

    uri: str = field(validator=[validators.instance_of(str), validators.min_len(1)])
    verify_ca: bool = field(default=True, validator=validators.instance_of(bool))
    ca_path: Optional[str] = field(
        default=None, validator=validators.optional(validators.instance_of(str))
    )

    @property
    def tls_verify(self) -> Union[bool, str]:
        """Value for the HTTP client's ``verify`` setting."""
        if self.verify_ca and self.ca_path:
            return self.ca_path
        return self.verify_ca

    @classmethod
    def from_toml(cls, text: str, source: str = "<string>") -> ClientConfig:
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {source}: {e}") from e

        try:
            return cls(
                uri=data.get("uri"),
                verify_ca=data.get("verify_ca", True),
                ca_path=data.get("ca_path"),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration in {source}: {e}") from e


def load_config(path: Optional[Path] = None) -> ClientConfig:
    """
    Load the client configuration.

    Args:
        path: Read only this file instead of searching the default locations

    Raises:
        ConfigError: no readable file, or the chosen file is invalid
    """
    candidates = [path] if path is not None else config_paths()

    contents: Optional[str] = None
    source: Optional[Path] = None
    for candidate in candidates:
        try:
            text = candidate.read_text(encoding="utf-8")
        except OSError as e:
            logger.debug("config_unreadable", path=str(candidate), error=str(e))
            continue
        logger.debug("config_found", path=str(candidate))
        contents, source = text, candidate

    if contents is None:
        raise ConfigError(
            "Failed to find config file (tried: "
            + ", ".join(str(c) for c in candidates)
            + ")"
        )

    logger.info("using_config_file", path=str(source))
    return ClientConfig.from_toml(contents, source=str(source))
