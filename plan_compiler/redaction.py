"""
Helpers that keep sensitive values out of messages and logs.
"""

from __future__ import annotations

from urllib.parse import urlsplit

INVALID_URL = "[INVALID_URL]"


def redact_url(url: str) -> str:
    """
    Reduce a URL to ``scheme://hostname`` so paths and query strings (which
    may carry tokens) never reach a log line or an API response.
    """

    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError:
        return INVALID_URL
    if not parts.scheme or not hostname:
        return INVALID_URL
    return f"{parts.scheme}://{hostname}"


def redact_org_id(org_id: str) -> str:
    return f"{org_id[:8]}..."
