"""URL helpers for matching and storage dedup."""

from __future__ import annotations

import hashlib
from urllib.parse import urljoin, urlparse


def extract_domain(url: str) -> str:
    """Host of `url` without a leading ``www.``; empty string if it can't be parsed."""
    if not url:
        return ""
    try:
        host = (urlparse(url.strip()).hostname or "").lower()
    except ValueError:
        return ""
    if host.startswith("www."):
        host = host[4:]
    return host


def absolute_url(url: str, base: str) -> str:
    url = (url or "").strip()
    if url.startswith(("http://", "https://")):
        return url
    return urljoin(base, url)


def headline_hash(title: str, url: str) -> str:
    """Stable hash of a headline's (title, url) pair; the store pairs it with the source."""
    sig = f"{title}:{url}"
    return hashlib.sha256(sig.encode("utf-8")).hexdigest()
