"""RGPD-safe event guard — the only gate between structured payloads and any log or audit sink.

``assert_safe`` validates an event name and a flat map of fields and raises
``LogGuardViolation`` when the payload could carry personal data or secrets.
It has no side effects: raising is its only contract. Every logger (see
``src.security.safe_log``) and the audit emitter call it; there is no bypass.

Rules:
- event name must match ``[a-z0-9][a-z0-9._-]{0,120}`` (case-insensitive)
- keys containing a forbidden token (email, password, prompt, ...) or equal
  to ``data`` are rejected
- string values containing ``@``, shaped like an email, a JWT or an API key,
  or containing a forbidden token are rejected
- values must be scalars, except for allow-listed keys that carry a list of
  category labels (``pii_types``)

The value heuristics live behind ``PiiDetector`` so a structured classifier
can replace them with ``set_detector`` without touching call sites.

Usage:
    from src.security.log_guard import assert_safe

    assert_safe("rgpd.export.created", {"export_id": str(export_id)})
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Protocol

from src.errors import LogGuardViolation, ValidationError

EVENT_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._-]{0,120}$", re.IGNORECASE)

# Caller-supplied labels that end up in logs and audit metadata (purpose, model ref)
LABEL_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._-]{0,99}$", re.IGNORECASE)

FORBIDDEN_TOKENS: tuple[str, ...] = (
    "email",
    "password",
    "prompt",
    "content",
    "payload",
    "body",
    "input",
    "output",
    "message",
    "text",
    "document",
    "token",
    "secret",
)

# Exact key matches on top of the substring tokens
FORBIDDEN_KEYS: frozenset[str] = frozenset({"data"})

# Keys allowed to carry a list of category labels (never content)
LIST_KEYS: frozenset[str] = frozenset({"pii_types"})

_EMAIL_RE = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
_JWT_RE = re.compile(r"eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*")
_API_KEY_RE = re.compile(
    r"\b(?:sk|pk|rk|api|key)[-_][A-Za-z0-9_-]{16,}\b|\b[A-Za-z0-9]{40,}\b",
    re.IGNORECASE,
)

_SCALARS = (str, int, float, bool, type(None))


class PiiDetector(Protocol):
    def detect(self, value: str) -> str | None:
        """Return the name of the matched rule, or None when the value looks safe."""
        ...


class HeuristicPiiDetector:
    """Regex and substring heuristics. A guard, not a guarantee."""

    def detect(self, value: str) -> str | None:
        if "@" in value:
            return "at_sign"
        if _EMAIL_RE.search(value):
            return "email_pattern"
        if _JWT_RE.search(value):
            return "jwt_pattern"
        if _API_KEY_RE.search(value):
            return "api_key_pattern"
        lowered = value.lower()
        for token in FORBIDDEN_TOKENS:
            if token in lowered:
                return "forbidden_token"
        return None


_detector: PiiDetector = HeuristicPiiDetector()


def set_detector(detector: PiiDetector) -> None:
    """Swap the value detector used by every guard call."""
    global _detector
    _detector = detector


def get_detector() -> PiiDetector:
    return _detector


def is_forbidden_key(key: str) -> bool:
    lowered = key.lower()
    if lowered in FORBIDDEN_KEYS:
        return True
    return any(token in lowered for token in FORBIDDEN_TOKENS)


def _check_string(event_name: str, key: str, value: str) -> None:
    rule = _detector.detect(value)
    if rule is not None:
        # Never echo the value itself
        msg = f"Unsafe value for field '{key}' in event '{event_name}' ({rule})"
        raise LogGuardViolation(msg)


def assert_safe(event_name: str, fields: Mapping[str, Any] | None = None) -> None:
    """Raise LogGuardViolation unless the event name and every field are safe to emit."""
    if not isinstance(event_name, str) or not EVENT_NAME_PATTERN.match(event_name):
        msg = "Invalid event name"
        raise LogGuardViolation(msg)

    for key, value in (fields or {}).items():
        if not isinstance(key, str) or is_forbidden_key(key):
            msg = f"Forbidden field key in event '{event_name}'"
            raise LogGuardViolation(msg)

        if isinstance(value, _SCALARS):
            if isinstance(value, str):
                _check_string(event_name, key, value)
            continue

        if key in LIST_KEYS and isinstance(value, (list, tuple)):
            for item in value:
                if not isinstance(item, str):
                    msg = f"Field '{key}' in event '{event_name}' must only hold labels"
                    raise LogGuardViolation(msg)
                _check_string(event_name, key, item)
            continue

        msg = f"Non-scalar value for field '{key}' in event '{event_name}'"
        raise LogGuardViolation(msg)


def require_label(field: str, value: Any) -> str:
    """Validate a caller-supplied label before it is stored, logged or audited.

    Raises ``ValidationError``, not ``LogGuardViolation``: a rejected label is
    bad input, not a programming error.
    """
    if not isinstance(value, str) or not LABEL_PATTERN.match(value):
        msg = f"Invalid {field}"
        raise ValidationError(msg)
    if _detector.detect(value) is not None:
        msg = f"Invalid {field}: not allowed as an audited label"
        raise ValidationError(msg)
    return value
