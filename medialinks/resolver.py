"""
Hostname resolution used to validate submitted media urls.
"""

import asyncio
import logging
import socket
from typing import Optional
from urllib import parse as urlparse

logger = logging.getLogger(__name__)


class ResolutionError(Exception):
    """The hostname could not be resolved."""


def extract_hostname(url: str) -> Optional[str]:
    """Return the hostname part of a url, or None when it has none."""
    try:
        parsed = urlparse.urlparse(url)
    except ValueError:
        return None
    hostname = parsed.hostname or ""
    return hostname or None


class HostResolver:
    """Resolves hostnames through the event loop's getaddrinfo."""

    async def resolve(self, hostname: str) -> list[str]:
        """
        Resolve a hostname to its addresses.

        Raises:
            ResolutionError: if the lookup fails
        """
        logger.debug(f"Resolving hostname: {hostname}")
        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
        except (OSError, UnicodeError) as e:
            logger.info(f"Hostname {hostname} did not resolve: {e}")
            raise ResolutionError(str(e)) from e

        # Deduplicate while keeping resolver order
        addresses = list(dict.fromkeys(info[4][0] for info in infos))
        logger.debug(f"Hostname {hostname} resolved to {len(addresses)} address(es)")
        return addresses
