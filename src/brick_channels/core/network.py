"""Local network address discovery."""

import ipaddress
import logging
import socket

logger = logging.getLogger(__name__)

LOOPBACK = "127.0.0.1"


def _usable(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False
    return ip.version == 4 and not (ip.is_loopback or ip.is_link_local or ip.is_unspecified)


def _probe_default_route() -> str:
    # Connecting a UDP socket sends nothing; it only selects the outbound interface
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.connect(("10.255.255.255", 1))
        return sock.getsockname()[0]


def _hostname_addresses():
    hostname = socket.gethostname()
    for info in socket.getaddrinfo(hostname, None, socket.AF_INET):
        yield info[4][0]


def get_local_ip() -> str:
    """Get the first LAN-reachable IPv4 address, falling back to loopback."""
    try:
        address = _probe_default_route()
        if _usable(address):
            return address
    except OSError as e:
        logger.debug("Default route probe failed: %s", e)

    try:
        for address in _hostname_addresses():
            if _usable(address):
                return address
    except OSError as e:
        logger.debug("Hostname resolution failed: %s", e)

    return LOOPBACK
