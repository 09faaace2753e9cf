# OAuth data models: pending requests, authorization codes, registered clients.
# Created: 2026-09-16

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class AuthorizationRequest:
    """Pending PKCE request captured at login, keyed by session id."""

    client_id: str
    redirect_uri: str
    code_challenge: str
    code_challenge_method: str = "S256"
    response_type: str = "code"
    state: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuthorizationRequest:
        return cls(**{k: data[k] for k in cls.__dataclass_fields__ if k in data})


@dataclass
class AuthorizationCode:
    """Single-use code bound to a client, redirect URI and PKCE challenge."""

    code: str
    client_id: str
    redirect_uri: str
    code_challenge: str
    user_email: str
    google_access_token: str
    google_refresh_token: str | None = None
    google_expiry_date: float = 0.0
    code_challenge_method: str = "S256"
    state: str | None = None
    scope: str = ""
    created_at: float = field(default_factory=time.time)
    expires_at: float = 0.0

    def is_expired(self, now: float | None = None) -> bool:
        return self.expires_at < (now if now is not None else time.time())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuthorizationCode:
        return cls(**{k: data[k] for k in cls.__dataclass_fields__ if k in data})


@dataclass
class RegisteredClient:
    """Dynamically registered OAuth client (RFC 7591)."""

    client_id: str
    client_name: str
    redirect_uris: list[str]
    grant_types: list[str] = field(default_factory=lambda: ["authorization_code"])
    response_types: list[str] = field(default_factory=lambda: ["code"])
    token_endpoint_auth_method: str = "none"
    client_secret: str | None = None
    created_at: float = field(default_factory=time.time)
    # sha256 of the RFC 7592 registration access token
    registration_token_hash: str | None = None
    # Plaintext token, only on the object returned at registration; never stored
    registration_access_token: str | None = field(default=None, repr=False, compare=False)

    @property
    def is_public(self) -> bool:
        return self.token_endpoint_auth_method == "none"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("registration_access_token")
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RegisteredClient:
        return cls(**{k: data[k] for k in cls.__dataclass_fields__ if k in data})

    def public_view(self) -> dict[str, Any]:
        """Registration metadata without the secret."""
        return {
            "client_id": self.client_id,
            "client_name": self.client_name,
            "redirect_uris": list(self.redirect_uris),
            "grant_types": list(self.grant_types),
            "response_types": list(self.response_types),
            "token_endpoint_auth_method": self.token_endpoint_auth_method,
            "client_id_issued_at": int(self.created_at),
        }
