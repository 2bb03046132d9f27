import re
from typing import Any, Dict, Iterable, List
from urllib.parse import urlparse


EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and bool(EMAIL_RE.match(value))


def is_valid_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    parsed = urlparse(value.strip())
    if not parsed.scheme:
        return False
    if parsed.scheme in ("http", "https"):
        return bool(parsed.netloc)
    return bool(parsed.netloc or parsed.path)


def missing_fields(payload: Dict, required: Iterable[str]) -> List[str]:
    return [name for name in required if not payload.get(name)]

