"""Appliance credentials from explicit values, the environment or netrc."""
import logging
import netrc
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..chain.errors import ConfigError

logger = logging.getLogger(__name__)

PASSWORD_ENV = "DPCHAIN_PASSWORD"
NETRC_ENV = "DPCHAIN_NETRC"


@dataclass
class Credentials:
    """User name and password for HTTP Basic authentication."""
    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='****')"

    def as_tuple(self) -> tuple[str, str]:
        return self.username, self.password


def default_netrc_path() -> Path:
    """Netrc path from DPCHAIN_NETRC or ~/.netrc."""
    return Path(os.environ.get(NETRC_ENV, str(Path.home() / ".netrc")))


def from_netrc(host: str, netrc_path: Optional[str] = None) -> Optional[Credentials]:
    """Look up login and password for a host in a netrc file.

    Returns:
        Credentials, or None if the file or the host entry is missing
    """
    path = Path(netrc_path) if netrc_path else default_netrc_path()
    if not path.exists():
        logger.debug(f"No netrc file at {path}")
        return None
    try:
        entry = netrc.netrc(str(path)).authenticators(host)
    except (netrc.NetrcParseError, OSError) as e:
        logger.warning(f"Failed to read netrc file {path}: {e}")
        return None
    if entry is None:
        return None
    login, _, password = entry
    if not login or password is None:
        return None
    logger.debug(f"Credentials for {host} taken from {path}")
    return Credentials(login, password)


def resolve_credentials(
    host: Optional[str],
    username: Optional[str] = None,
    password: Optional[str] = None,
    netrc_path: Optional[str] = None,
) -> Credentials:
    """Resolve credentials for a host.

    Order: explicit username/password, then DPCHAIN_PASSWORD for the
    password, then the netrc entry for the host.

    Raises:
        ConfigError: if no complete credentials can be found
    """
    if password is None:
        password = os.environ.get(PASSWORD_ENV) or None
    if username and password is not None:
        return Credentials(username, password)

    if host:
        found = from_netrc(host, netrc_path)
        if found is not None:
            if username and username != found.username:
                logger.warning(
                    f"netrc login '{found.username}' for {host} differs from userName '{username}'"
                )
            return found

    raise ConfigError(
        f"No credentials for host '{host}': set userName/userPassword, "
        f"{PASSWORD_ENV}, or add a netrc entry"
    )
