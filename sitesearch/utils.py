"""URL helpers shared by the crawler and the indexing service."""

from __future__ import annotations

import re
from urllib.parse import urlsplit

_DUPLICATE_SLASHES = re.compile(r"(?<!:)/{2,}")
_MULTI_SLASH = re.compile(r"/+")


def normalize_base_url(url: str) -> str:
    return (url or "").strip().rstrip("/")


def get_domain(url: str) -> str:
    """Host of ``url`` without a leading ``www.``; empty string if unparsable."""
    try:
        host = urlsplit(url).hostname or ""
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def strip_query(url: str) -> str:
    return url.split("#", 1)[0].split("?", 1)[0]


def normalize_url(url: str) -> str:
    """Canonical form used as the crawl dedup key.

    Collapses duplicate slashes outside the scheme, drops query string,
    fragment and the trailing slash.
    """
    cleaned = _DUPLICATE_SLASHES.sub("/", strip_query(url.strip()))
    if cleaned.endswith("/") and not cleaned.endswith("://"):
        cleaned = cleaned.rstrip("/")
    return cleaned


def relative_path(href: str, base_url: str) -> str:
    """Site-relative form of ``href`` with its query string and fragment kept."""
    path = href.strip()
    if path.startswith(base_url):
        path = path[len(base_url):]
    return "/" + _MULTI_SLASH.sub("/", path).lstrip("/")


def normalize_path(href: str, base_url: str) -> str:
    """Turn an admissible href into a site-relative path starting with ``/``."""
    path = strip_query(relative_path(href, base_url))
    return "/" + path.strip("/")


def is_same_site_link(href: str | None, base_url: str) -> bool:
    if not href:
        return False
    value = href.strip()
    if not value or value.startswith(("#", "mailto:", "javascript:", "tel:")):
        return False
    if value.startswith("//"):
        return False
    if value.startswith("/"):
        return True
    return value == base_url or value.startswith(base_url + "/")

