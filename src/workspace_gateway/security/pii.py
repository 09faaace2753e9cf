# PII masking for log output.
# Created: 2026-09-19

from __future__ import annotations

import logging
import re
from typing import Any

_EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
_BEARER_RE = re.compile(r"(Bearer\s+)([A-Za-z0-9\-._~+/]+=*)", re.IGNORECASE)
_SECRET_PAIR_RE = re.compile(
    r"\b(access_token|refresh_token|client_secret|code_verifier)([\"']?\s*[:=]\s*[\"']?)"
    r"([A-Za-z0-9\-._~+/=]{10,})",
    re.IGNORECASE,
)
_GOOGLE_API_KEY_RE = re.compile(r"\bAIza[0-9A-Za-z\-_]{35}\b")


def mask_email(email: str, preserve_domain: bool = False) -> str:
    """``alice@example.com`` -> ``a***@***.com``."""
    local, sep, domain = email.partition("@")
    if not sep or not local:
        return email
    masked_local = local[0] + "***"
    if preserve_domain:
        return f"{masked_local}@{domain}"
    parts = domain.split(".")
    masked_domain = f"***.{parts[-1]}" if len(parts) > 1 else "***"
    return f"{masked_local}@{masked_domain}"


def mask_token(token: str) -> str:
    if len(token) <= 6:
        return "***"
    return token[:3] + "***"


def mask_text(text: str) -> str:
    text = _EMAIL_RE.sub(lambda m: mask_email(m.group(0)), text)
    text = _BEARER_RE.sub(lambda m: m.group(1) + mask_token(m.group(2)), text)
    text = _SECRET_PAIR_RE.sub(lambda m: m.group(1) + m.group(2) + mask_token(m.group(3)), text)
    text = _GOOGLE_API_KEY_RE.sub(lambda m: mask_token(m.group(0)), text)
    return text


def mask_value(value: Any) -> Any:
    """Recursively mask strings inside dicts, lists and tuples."""
    if isinstance(value, str):
        return mask_text(value)
    if isinstance(value, dict):
        return {k: mask_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(mask_value(v) for v in value)
    return value


def short_token(token: str) -> str:
    """Log-safe prefix of an opaque token."""
    return token[:8] + "..."


class PIIMaskingFilter(logging.Filter):
    """Masks emails and credentials in the rendered log message."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.args:
            record.args = mask_value(record.args)
        if isinstance(record.msg, str):
            record.msg = mask_text(record.msg)
        return True
