"""Scrubbing secrets out of report text."""

from __future__ import annotations

import re
from typing import Dict

REDACTED = "<redacted>"

SENSITIVE_PREFIXES = [
    "selected database user:",
    "selected database password:",
    "your admin username:",
    "your admin email:",
    "your admin password:",
    "admin username:",
    "admin email:",
    "username:",
    "password:",
]

# Presentation hints carried in event fields; never written to the report.
INTERNAL_FIELDS = {"op", "kind", "progress_key", "label", "pct", "tail"}

_FLAG_VALUE = re.compile(
    r"(--(?:db-user|db-password|admin-username|admin-email|admin-password))=\S+", re.IGNORECASE
)
_EMAIL = re.compile(r"[a-z0-9._%+\-]+@[a-z0-9.\-]+\.[a-z]{2,}", re.IGNORECASE)
_USER_SINGLE_QUOTED = re.compile(r"\b(user|username|login)\s*'[^']*'", re.IGNORECASE)
_USER_DOUBLE_QUOTED = re.compile(r'\b(user|username|login)\s*"[^"]*"', re.IGNORECASE)
_KEY_VALUE = re.compile(
    r"\b(username|login|email|password)\s*[:=]\s*(?!<redacted>)\S+", re.IGNORECASE
)


def is_sensitive_key(key: str) -> bool:
    key = key.strip().lower()
    return any(word in key for word in ("password", "email", "user", "login"))


def is_internal_field(key: str) -> bool:
    return key.strip().lower() in INTERNAL_FIELDS


def strip_control_chars(message: str) -> str:
    out = []
    for ch in message:
        if ch in "\n\t\r":
            out.append(" ")
        elif ord(ch) < 32 or ord(ch) == 127:
            continue
        else:
            out.append(ch)
    return "".join(out)


def redact_by_prefix(message: str) -> str:
    trimmed = message.lstrip(" \t")
    leading = message[: len(message) - len(trimmed)]
    lower = trimmed.lower()
    for prefix in SENSITIVE_PREFIXES:
        if lower.startswith(prefix):
            return f"{leading}{trimmed[: len(prefix)]} {REDACTED}."
    return message


def sanitize_message(message: str) -> str:
    """Remove control characters and anything that looks like a credential."""

    if not (message or "").strip():
        return ""
    message = strip_control_chars(message)
    redacted = redact_by_prefix(message)
    if redacted != message:
        return redacted
    message = _FLAG_VALUE.sub(rf"\1={REDACTED}", message)
    message = _EMAIL.sub(REDACTED, message)
    message = _USER_SINGLE_QUOTED.sub(rf"\1 '{REDACTED}'", message)
    message = _USER_DOUBLE_QUOTED.sub(rf'\1 "{REDACTED}"', message)
    message = _KEY_VALUE.sub(rf"\1: {REDACTED}", message)
    return message


def format_value(value: str) -> str:
    value = value.strip().replace("\n", " ").replace("\r", " ")
    if not value:
        return '""'
    if " " in value or "\t" in value:
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return value


def format_fields(fields: Dict[str, str]) -> str:
    """Render public fields as sorted ``key=value`` pairs with secrets masked."""

    parts = []
    for key in sorted(k for k in fields if not is_internal_field(k)):
        value = REDACTED if is_sensitive_key(key) else fields[key]
        parts.append(f"{key}={format_value(sanitize_message(value))}")
    return " ".join(parts)
