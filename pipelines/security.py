"""URL validation for crawl seeds.

Rejects malformed URLs and obvious internal targets before any network call.
Hostnames are not resolved here; only literal IPs and well-known local names
are checked.
"""

import ipaddress
import logging
from typing import Optional, Tuple
from urllib.parse import urlparse, urlunparse

from .errors import InvalidInput

logger = logging.getLogger(__name__)

PRIVATE_IP_RANGES = [
    ipaddress.ip_network('10.0.0.0/8'),        # RFC 1918
    ipaddress.ip_network('172.16.0.0/12'),     # RFC 1918
    ipaddress.ip_network('192.168.0.0/16'),    # RFC 1918
    ipaddress.ip_network('127.0.0.0/8'),       # Loopback
    ipaddress.ip_network('169.254.0.0/16'),    # Link-local
    ipaddress.ip_network('::1/128'),           # IPv6 loopback
    ipaddress.ip_network('fc00::/7'),          # IPv6 unique local
    ipaddress.ip_network('fe80::/10'),         # IPv6 link-local
    ipaddress.ip_network('0.0.0.0/8'),         # "This" network
]

ALLOWED_SCHEMES = {'http', 'https'}
LOCAL_HOSTNAMES = {'localhost', 'local', '0', 'metadata', 'metadata.google.internal'}


def is_private_ip(ip_str: str) -> bool:
    """Check if an IP address is in a private range."""
    try:
        ip = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    return any(ip in network for network in PRIVATE_IP_RANGES)


def check_url(url: str, allow_private: bool = False) -> Tuple[bool, Optional[str]]:
    """Validate a crawl URL.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not url or not isinstance(url, str):
        return False, "URL is required."

    try:
        parsed = urlparse(url.strip())
        port = parsed.port
    except ValueError as e:
        return False, f"Invalid URL format: {e}"

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return False, "Invalid URL format. Please include http:// or https://"

    hostname = parsed.hostname
    if not hostname:
        return False, "URL must have a valid hostname."

    if parsed.username or parsed.password:
        return False, "URLs with embedded credentials are not allowed."

    if not allow_private:
        if hostname.lower() in LOCAL_HOSTNAMES:
            return False, f"Local hostname '{hostname}' is not allowed."
        if is_private_ip(hostname):
            return False, f"Private IP address '{hostname}' is not allowed."

    if port is not None and not 0 < port < 65536:
        return False, f"Invalid port {port}."

    return True, None


def canonicalize_url(url: str) -> str:
    """Trim whitespace, lower-case scheme and host, drop the fragment and give
    an empty path a trailing slash, so equivalent URLs compare equal."""
    parsed = urlparse(url.strip())
    return urlunparse(parsed._replace(
        scheme=parsed.scheme.lower(),
        netloc=parsed.netloc.lower(),
        path=parsed.path or "/",
        fragment="",
    ))


def validate_seed_url(url: str, allow_private: bool = False) -> str:
    """Return the canonical seed URL or raise ``InvalidInput``."""
    is_valid, error = check_url(url, allow_private=allow_private)
    if not is_valid:
        logger.warning(f"Rejected crawl URL {url!r}: {error}")
        raise InvalidInput(error)

    return canonicalize_url(url)
