"""Metadata sanitization for activity events.

Keys matching the sensitive-field denylist keep their key but their value is
replaced by ``REDACTED``, so a reader of the audit trail can see that a value
was present and removed. Sanitizing an already-sanitized mapping is a no-op.
"""
import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Pattern

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"

SENSITIVE_DATA_PATTERNS = [
    r"password",
    r"token",
    r"secret",
    r"key",
    r"auth",
    r"credential",
    r"ssn",
    r"social.?security",
    r"credit.?card",
    r"bank.?account",
    r"routing.?number",
]

# Headers never copied into activity metadata
STRIPPED_HEADERS = {"authorization", "cookie", "x-api-key"}


def compile_patterns(extra: Optional[Iterable[str]] = None) -> List[Pattern]:
    """Compile the default denylist plus any configured extra patterns."""
    patterns = list(SENSITIVE_DATA_PATTERNS) + [p for p in (extra or []) if p]
    return [re.compile(p, re.IGNORECASE) for p in patterns]


DEFAULT_PATTERNS = compile_patterns()


def is_sensitive_key(key: Any, patterns: Optional[List[Pattern]] = None) -> bool:
    """Check whether a metadata key matches the denylist (case-insensitive)."""
    if not isinstance(key, str):
        return False
    return any(p.search(key) for p in (patterns or DEFAULT_PATTERNS))


def _sanitize_value(value: Any, patterns: List[Pattern]) -> Any:
    if isinstance(value, dict):
        return sanitize_metadata(value, patterns)
    if isinstance(value, (list, tuple)):
        return [_sanitize_value(item, patterns) for item in value]
    return value


def sanitize_metadata(
    metadata: Optional[Dict[str, Any]],
    patterns: Optional[List[Pattern]] = None,
) -> Optional[Dict[str, Any]]:
    """
    Return a copy of ``metadata`` with sensitive values redacted.

    Args:
        metadata: Arbitrary key/value metadata (nested dicts and lists allowed)
        patterns: Compiled denylist, defaults to SENSITIVE_DATA_PATTERNS

    Returns:
        Sanitized copy, or None if metadata was None
    """
    if metadata is None:
        return None

    patterns = patterns or DEFAULT_PATTERNS
    sanitized: Dict[str, Any] = {}
    for key, value in metadata.items():
        if is_sensitive_key(key, patterns):
            sanitized[key] = REDACTED
        else:
            sanitized[key] = _sanitize_value(value, patterns)
    return sanitized


def sanitize_headers(headers: Dict[str, Any]) -> Dict[str, Any]:
    """Drop credential-carrying headers before they reach metadata."""
    return {
        key: value for key, value in headers.items()
        if key.lower() not in STRIPPED_HEADERS
    }


def limit_metadata_size(metadata: Optional[Dict[str, Any]], max_bytes: int) -> Optional[Dict[str, Any]]:
    """
    Replace oversized metadata with a truncation summary.

    Args:
        metadata: Sanitized metadata
        max_bytes: Maximum serialized size; 0 or less disables the limit

    Returns:
        The original mapping, or a summary with a preview of the serialized form
    """
    if metadata is None or max_bytes <= 0:
        return metadata

    serialized = json.dumps(metadata, default=str)
    if len(serialized) <= max_bytes:
        return metadata

    logger.debug("Truncating activity metadata of %d bytes", len(serialized))
    return {
        "truncated": True,
        "size": len(serialized),
        "preview": serialized[:1000] + "...",
    }
