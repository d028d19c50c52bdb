"""Helpers for safe debug logging.

Firestore requests carry bearer tokens and API keys, and every record
is keyed by a driver identity.  Credentials are redacted and identities
masked before anything reaches a DEBUG log.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "authorization",
        "access_token",
        "accesstoken",
        "api_key",
        "apikey",
        "key",
        "password",
        "mqtt_password",
        "token",
    }
)

# Keys whose values embed the tracked identity.
_IDENTITY_KEYS: frozenset[str] = frozenset({"identity", "username", "last_username", "name"})


def mask_identity(identity: str) -> str:
    """Keep the first two characters of an identity, mask the rest."""
    if len(identity) <= 2:
        return "*" * len(identity)
    return f"{identity[:2]}***"


def _mask_document_name(name: str) -> str:
    # projects/p/databases/d/documents/drivers/<identity>[/locations/<ts>]
    parts = name.split("/")
    if "documents" in parts:
        index = parts.index("documents")
        # Identity is the segment after the first collection id.
        ident_at = index + 2
        if ident_at < len(parts):
            parts[ident_at] = mask_identity(parts[ident_at])
        return "/".join(parts)
    return mask_identity(name)


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs."""
    if _depth > 20:
        return "<max-depth>"

    if value is None or isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            lowered = key.lower()
            if lowered in _SENSITIVE_VALUE_KEYS:
                redacted[key] = "<redacted>"
            elif lowered in _IDENTITY_KEYS and isinstance(v, str):
                redacted[key] = _mask_document_name(v) if "/" in v else mask_identity(v)
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    return repr(value)
