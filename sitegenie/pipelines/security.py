"""URL safety checks for user-submitted crawl targets.

A chatbot is created from whatever URL a user pastes in, and the scraper
fetches it from inside our network. Before anything is fetched the target
must be plain http(s), must not name the local machine or an internal
service port, and must not point (directly or through DNS) at private
address space.
"""

import ipaddress
import socket
import logging
from typing import Set
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

BLOCKED_NETWORKS = tuple(ipaddress.ip_network(cidr) for cidr in (
    '0.0.0.0/8',
    '10.0.0.0/8',
    '127.0.0.0/8',
    '169.254.0.0/16',   # link-local, includes cloud metadata
    '172.16.0.0/12',
    '192.168.0.0/16',
    '224.0.0.0/4',
    '240.0.0.0/4',
    '::1/128',
    'fc00::/7',
    'fe80::/10',
))

# ssh, telnet, smtp, dns, and common database/cache ports
BLOCKED_PORTS = frozenset({22, 23, 25, 53, 3306, 3389, 5432, 6379, 9200, 11211, 27017})

ALLOWED_SCHEMES = frozenset({'http', 'https'})

LOCAL_HOSTNAMES = frozenset({'localhost', 'localhost.localdomain', 'local', '0'})


class UnsafeURLError(Exception):
    """Raised when a submitted URL must not be fetched."""


def is_private_ip(ip_str: str) -> bool:
    """True for addresses in a blocked network; unparseable input counts as private."""
    try:
        address = ipaddress.ip_address(ip_str)
    except ValueError:
        return True
    return any(address in network for network in BLOCKED_NETWORKS)


def resolve_hostname(hostname: str) -> Set[str]:
    """Resolve ``hostname`` and return its addresses, refusing private ones."""
    try:
        results = socket.getaddrinfo(hostname, None)
    except socket.gaierror as e:
        raise UnsafeURLError(f"Failed to resolve hostname {hostname}: {e}") from e

    addresses = {sockaddr[0] for *_, sockaddr in results}
    private = sorted(a for a in addresses if is_private_ip(a))
    if private:
        raise UnsafeURLError(f"Hostname {hostname} resolves to private IP(s): {private}")
    return addresses


def _check_host(hostname: str, resolve_dns: bool) -> None:
    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        # a name, not a literal address
        if resolve_dns:
            resolve_hostname(hostname)
        return
    if is_private_ip(hostname):
        raise UnsafeURLError(f"Private IP address '{hostname}' is blocked.")


def check_url_safe(url: str, resolve_dns: bool = True) -> None:
    """Raise :class:`UnsafeURLError` unless ``url`` is a safe crawl target.

    ``resolve_dns=False`` skips the lookup; the API uses that for a quick
    syntactic check and the scraper repeats the full check before fetching.
    """
    try:
        parsed = urlparse(url)
        port = parsed.port
        if parsed.scheme.lower() not in ALLOWED_SCHEMES:
            raise UnsafeURLError(
                f"Scheme '{parsed.scheme}' not allowed. Only http and https are permitted.")

        hostname = parsed.hostname
        if not hostname:
            raise UnsafeURLError("URL must have a valid hostname.")
        if hostname.lower() in LOCAL_HOSTNAMES:
            raise UnsafeURLError(f"Localhost hostname '{hostname}' is blocked.")
        if port in BLOCKED_PORTS:
            raise UnsafeURLError(f"Port {port} is blocked (internal service port).")

        _check_host(hostname, resolve_dns)
    except ValueError as e:
        logger.warning(f"Blocked malformed URL {url}: {e}")
        raise UnsafeURLError(f"Malformed URL: {e}") from e
    except UnsafeURLError as e:
        logger.warning(f"Blocked unsafe URL {url}: {e}")
        raise

