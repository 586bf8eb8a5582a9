"""
SoundCloud URL validation.
"""

import hashlib
from typing import Any, Dict
from urllib.parse import urlsplit

SUPPORTED_HOSTS = frozenset({"soundcloud.com", "www.soundcloud.com"})
ALLOWED_SCHEMES = frozenset({"http", "https"})


def is_supported_url(url: Any) -> bool:
    """
    Check whether a URL points at the SoundCloud web host.

    Fails closed: anything that does not parse as an absolute http(s) URL,
    or whose host is not exactly soundcloud.com / www.soundcloud.com,
    is rejected.

    Args:
        url: Candidate URL (any type; non-strings are rejected)

    Returns:
        True if the URL is supported, False otherwise

    Example:
        >>> is_supported_url("https://soundcloud.com/artist/track")
        True
        >>> is_supported_url("https://soundcloud.com.evil.example/track")
        False
    """
    if not isinstance(url, str) or not url:
        return False

    try:
        parts = urlsplit(url)
        hostname = parts.hostname
        # Accessing .port validates the netloc (raises on garbage like "host:abc")
        parts.port
    except ValueError:
        return False

    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        return False

    if not hostname:
        return False

    return hostname in SUPPORTED_HOSTS


def describe_url(url: str) -> Dict[str, str]:
    """
    Log-safe description of a user-supplied URL.

    The raw URL is never logged; only its host and a short fingerprint.
    """
    try:
        host = urlsplit(url).hostname or ""
    except ValueError:
        host = ""
    fingerprint = hashlib.sha256(url.encode("utf-8", errors="replace")).hexdigest()[:12]
    return {"url_host": host, "url_fingerprint": fingerprint}
