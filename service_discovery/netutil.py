"""Local address helpers."""

import socket
from typing import Optional

LINK_LOCAL_PREFIX = "169.254."


def get_local_ipv4() -> Optional[str]:
    """Find an IPv4 address of this host to advertise.

    Prefers non-link-local addresses from the host's name resolution, then
    falls back to any IPv4 address found.

    Returns:
        The address, or None if none can be determined.
    """
    try:
        _, _, addresses = socket.gethostbyname_ex(socket.gethostname())
    except OSError:
        return None

    for address in addresses:
        if not address.startswith(LINK_LOCAL_PREFIX) and not address.startswith("127."):
            return address
    for address in addresses:
        if not address.startswith(LINK_LOCAL_PREFIX):
            return address
    return addresses[0] if addresses else None
