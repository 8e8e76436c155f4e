"""Field format checks shared by the form controllers."""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import urlparse

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_blank(value: Any) -> bool:
    """True for None and for strings that are empty after trimming."""
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value or ""))


def normalize_url(value: str) -> str:
    """Prefix ``https://`` unless the value already names an http(s) scheme."""
    value = (value or "").strip()
    if not value or value.startswith("http"):
        return value
    return f"https://{value}"


def is_valid_url(value: str) -> bool:
    """Check an http(s) URL, accepting a missing scheme.

    ``acme.com`` and ``http://acme.com/about`` pass; ``not a url`` and
    ``https://`` do not.
    """
    candidate = normalize_url(value)
    if not candidate or any(ch.isspace() for ch in candidate):
        return False
    parsed = urlparse(candidate)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
