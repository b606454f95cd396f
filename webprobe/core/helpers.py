"""
URL, domain and hashing helpers shared by the cache, source intelligence
and claim graph.
"""

from __future__ import annotations

import hashlib
import json
import uuid
from typing import Any
from urllib.parse import urlparse


def generate_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def hash_string(text: str) -> str:
    """SHA-256 hex digest of ``text``."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def content_hash(data: Any) -> str:
    return hash_string(json.dumps(data, sort_keys=True, default=str))


def normalize_domain(domain: str) -> str:
    """Lower-case a domain and strip scheme, path, port and ``www.``."""
    value = domain.strip().lower()
    if "://" in value:
        value = urlparse(value).netloc
    value = value.split("/", 1)[0].split(":", 1)[0]
    if value.startswith("www."):
        value = value[4:]
    return value


def extract_domain(url: str) -> str:
    """Domain of ``url``; accepts bare domains and scheme-less URLs."""
    if not url:
        return ""
    if "://" not in url:
        url = f"https://{url}"
    try:
        netloc = urlparse(url).netloc
    except ValueError:
        return ""
    return normalize_domain(netloc)


def normalize_url(url: str) -> str:
    """
    Cache key form of a URL: scheme + host + path, lower-cased, ``www.``
    and trailing slash stripped. Query strings and fragments are dropped.
    """
    raw = url.strip()
    if "://" not in raw:
        raw = f"https://{raw}"
    try:
        parsed = urlparse(raw)
    except ValueError:
        return url.strip().lower()

    host = normalize_domain(parsed.netloc)
    path = parsed.path.rstrip("/")
    return f"{parsed.scheme.lower()}://{host}{path}".lower()


def url_path(url: str) -> str:
    try:
        return urlparse(url if "://" in url else f"https://{url}").path or "/"
    except ValueError:
        return "/"
