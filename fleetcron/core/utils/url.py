# fleetcron/core/utils/url.py
"""URL helpers for safe logging."""

from __future__ import annotations

from urllib.parse import urlparse, urlunparse


def mask_database_url(url: str) -> str:
    """Replace the password in a database URL with ``***``.

    Falls back to plain string splitting when the URL cannot be parsed.
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        if '@' not in url:
            return url
        credentials, host = url.rsplit('@', 1)
        return f"{credentials.rsplit(':', 1)[0]}:***@{host}"

    if not parsed.password:
        return url
    netloc = parsed.netloc.replace(f':{parsed.password}@', ':***@')
    return urlunparse(parsed._replace(netloc=netloc))
