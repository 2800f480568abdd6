"""
Log sanitization for AuditLens.

Request-supplied values (user ids, company ids, field names) end up in
log lines; these helpers strip line breaks and control characters so a
crafted value cannot forge extra log records (CWE-117). MongoDB filters
are logged by shape only since their values may hold audit content.
"""

import re
from typing import Any, Dict, Optional

# Stripped from every logged value
_INJECTION_PATTERNS = [
    re.compile(r"[\r\n]"),
    re.compile(r"%0[ad]", re.IGNORECASE),
    re.compile(r"\\[rn]"),
    re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]"),
]

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._@\-\s]")


def sanitize_for_log(value: Optional[Any], max_length: int = 100, allow_special: bool = False) -> str:
    """
    Render a value as a single safe log token.

    Args:
        value: Anything; None renders as "null"
        max_length: Longer values are cut and suffixed with "..."
        allow_special: Keep punctuation outside letters, digits and ``._@-``

    Returns:
        The cleaned string, or "[sanitized]" when nothing printable is left

    Example:
        >>> sanitize_for_log("analyst\\nadmin")
        'analystadmin'
    """
    if value is None:
        return "null"

    text = str(value)
    if len(text) > max_length:
        text = text[:max_length] + "..."

    for pattern in _INJECTION_PATTERNS:
        text = pattern.sub("", text)
    if not allow_special:
        text = _UNSAFE_CHARS.sub("", text)

    text = text.strip()
    return text or "[sanitized]"


def sanitize_id_for_log(identifier: Optional[Any]) -> str:
    """Sanitize a document id (ObjectId or string) for logging."""
    return sanitize_for_log(identifier, max_length=48)


def sanitize_query_for_log(query: Optional[Dict[str, Any]], max_length: int = 200) -> str:
    """Describe a MongoDB filter by its top-level keys, never its values."""
    if not query:
        return "{}"
    keys = ", ".join(sanitize_for_log(key, max_length=40, allow_special=True) for key in query)
    return sanitize_for_log("{" + keys + "}", max_length=max_length, allow_special=True)
