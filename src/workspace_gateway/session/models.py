# Session data models.
# Created: 2026-09-15

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class OAuthTokenSet:
    """Upstream (Google) OAuth tokens owned by a session."""

    access_token: str
    refresh_token: str | None = None
    scope: str = ""
    token_type: str = "Bearer"
    expiry_date: float = 0.0  # Unix timestamp

    def is_expiring(self, leeway: float = 60.0) -> bool:
        return bool(self.expiry_date) and self.expiry_date <= time.time() + leeway

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OAuthTokenSet:
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope", ""),
            token_type=data.get("token_type", "Bearer"),
            expiry_date=float(data.get("expiry_date") or 0.0),
        )


@dataclass
class Session:
    """A user session. Timestamps are Unix seconds.

    ``authenticated`` is only ever True together with ``tokens`` and
    ``user_email``.
    """

    id: str
    created_at: float
    expires_at: float
    last_accessed_at: float
    authenticated: bool = False
    user_email: str | None = None
    tokens: OAuthTokenSet | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    # Stored ciphertext kept as-is when it could not be decrypted
    sealed_tokens: str | None = field(default=None, repr=False, compare=False)

    @property
    def is_pkce_flow(self) -> bool:
        return bool(self.metadata.get("isPKCEFlow"))

    def is_expired(self, now: float | None = None) -> bool:
        return self.expires_at < (now if now is not None else time.time())

    def to_record(self, encrypted_tokens: str | None) -> dict[str, Any]:
        """Storage form: tokens only ever appear encrypted."""
        record: dict[str, Any] = {
            "id": self.id,
            "createdAt": self.created_at,
            "expiresAt": self.expires_at,
            "lastAccessedAt": self.last_accessed_at,
            # Undecryptable tokens keep the stored authentication state
            "authenticated": self.authenticated or bool(self.sealed_tokens and self.user_email),
            "userEmail": self.user_email,
            "metadata": self.metadata,
        }
        if encrypted_tokens:
            record["encryptedTokens"] = encrypted_tokens
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any], tokens: OAuthTokenSet | None) -> Session:
        session = cls(
            id=record["id"],
            created_at=float(record["createdAt"]),
            expires_at=float(record["expiresAt"]),
            last_accessed_at=float(record["lastAccessedAt"]),
            authenticated=bool(record.get("authenticated")),
            user_email=record.get("userEmail"),
            tokens=tokens,
            metadata=record.get("metadata") or {},
        )
        if session.authenticated and (tokens is None or not session.user_email):
            session.authenticated = False
        return session
