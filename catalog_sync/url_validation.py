"""URL validation and sanitization for catalog downloads."""

import re
from typing import Optional, Set
from urllib.parse import urlparse

from catalog_sync.config import BASE_URL

__all__ = [
    "URLValidationError",
    "sanitize_url",
    "validate_url",
    "build_document_url",
    "validate_image_url",
    "filename_from_url",
]


class URLValidationError(Exception):
    """Raised when URL validation fails."""
    pass


# Dangerous URL schemes to reject
DANGEROUS_SCHEMES = {"javascript", "data", "vbscript", "file"}

SUSPICIOUS_PATTERNS = [
    r"\.\./",            # Path traversal
    r"%2e%2e",           # Encoded path traversal
    r"<script",          # XSS attempt
    r"javascript:",      # JS injection
]


def sanitize_url(url: str) -> str:
    """Strip whitespace, control characters and null bytes."""
    if not url:
        return ""

    url = url.strip()
    url = re.sub(r"[\x00-\x1f\x7f-\x9f]", "", url)
    return url.replace("%00", "")


def _check_suspicious(url: str) -> None:
    url_lower = url.lower()
    for pattern in SUSPICIOUS_PATTERNS:
        if re.search(pattern, url_lower):
            raise URLValidationError(f"URL contains suspicious pattern: {pattern}")


def validate_url(url: str, allowed_domains: Optional[Set[str]] = None) -> str:
    """Validate an absolute http(s) URL.

    Args:
        url: URL to validate
        allowed_domains: Hosts to accept (default: any)

    Returns:
        The sanitized URL

    Raises:
        URLValidationError: If the URL is empty, unsafe or off the allowed hosts
    """
    if not url:
        raise URLValidationError("URL is empty")

    url = sanitize_url(url)
    parsed = urlparse(url)

    scheme = parsed.scheme.lower()
    if scheme in DANGEROUS_SCHEMES:
        raise URLValidationError(f"Dangerous URL scheme: {scheme}")
    if scheme not in ("http", "https"):
        raise URLValidationError(f"Invalid URL scheme: {scheme or '(none)'}")

    host = (parsed.hostname or "").lower()
    if not host:
        raise URLValidationError("URL has no domain")
    if allowed_domains and host not in allowed_domains:
        raise URLValidationError(
            f"URL domain '{host}' not in allowed domains: {sorted(allowed_domains)}"
        )

    _check_suspicious(url)
    return url


def build_document_url(path: str, base_url: str = BASE_URL) -> str:
    """Join a ledger path onto the catalog base URL.

    Raises:
        URLValidationError: If the path is empty, absolute or escapes the base
    """
    path = sanitize_url(path or "")
    if not path:
        raise URLValidationError("Document path is empty")
    if urlparse(path).scheme:
        raise URLValidationError(f"Document path must be relative: {path}")

    url = base_url.rstrip("/") + "/" + path.lstrip("/")
    base_host = urlparse(base_url).hostname
    return validate_url(url, allowed_domains={base_host} if base_host else None)


def validate_image_url(url: str) -> str:
    """Validate the absolute image URL declared by a detail document."""
    url = validate_url(url)
    if not filename_from_url(url):
        raise URLValidationError(f"Image URL has no file name: {url}")
    return url


def filename_from_url(url: str) -> str:
    """Last path segment of a URL."""
    return urlparse(url).path.rstrip("/").split("/")[-1]
