"""Callback URL validation."""

from __future__ import annotations

from typing import Any, Collection, Optional
from urllib.parse import urlsplit

import httpx

DEFAULT_SCHEMES = frozenset({"http", "https"})


def is_valid_url(value: Any, schemes: Optional[Collection[str]] = DEFAULT_SCHEMES) -> bool:
    """Return True when ``value`` is an absolute URL with a scheme and a host.

    ``schemes`` restricts the accepted schemes (compared lower-case); pass
    ``None`` to accept any non-empty scheme. The host must also be one the
    delivery client can encode (``http://xn--/`` is rejected). Nothing is
    resolved over the network.
    """

    if not isinstance(value, str) or not value:
        return False
    try:
        parts = urlsplit(value)
        host = parts.hostname
    except ValueError:
        return False
    if not parts.scheme or not host:
        return False
    if schemes is not None and parts.scheme.lower() not in schemes:
        return False
    try:
        # URL.host decodes punycode labels
        return bool(httpx.URL(value).host)
    except (httpx.InvalidURL, ValueError):
        return False
