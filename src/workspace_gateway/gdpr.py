# User data erasure (GDPR Art. 17) and export (Art. 20).
# Created: 2026-09-24
#
# Erasure re-queries until no session for the user is left (or the
# iteration cap is hit) so sessions created mid-erasure are caught too.

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from workspace_gateway.oauth.google import GoogleOAuthClient
from workspace_gateway.oauth.tokens import BearerTokenManager
from workspace_gateway.session import Session, SessionManager

logger = logging.getLogger(__name__)

MAX_ERASURE_ITERATIONS = 10
ERASURE_PAUSE_SECONDS = 0.1


def _iso(ts: float) -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(ts))


class UserDataService:
    """Finds, exports and erases everything stored for one user email."""

    def __init__(
        self,
        sessions: SessionManager,
        bearer_tokens: BearerTokenManager,
        google: GoogleOAuthClient,
        pause: float = ERASURE_PAUSE_SECONDS,
    ):
        self.sessions = sessions
        self.bearer_tokens = bearer_tokens
        self.google = google
        self.pause = pause

    async def sessions_for(self, email: str) -> list[Session]:
        return [s for s in await self.sessions.get_all_sessions() if s.user_email == email]

    async def erase(self, email: str) -> dict[str, Any]:
        sessions_deleted = 0
        tokens_revoked = 0
        iterations = 0

        while iterations < MAX_ERASURE_ITERATIONS:
            iterations += 1
            found = await self.sessions_for(email)
            if not found:
                break

            for session in found:
                if session.tokens is not None and session.tokens.refresh_token:
                    # Best effort: the local delete below is what guarantees erasure.
                    await self.google.revoke_token(session.tokens.refresh_token)
                    tokens_revoked += 1

            for session in found:
                await self.bearer_tokens.revoke_tokens_for_session(session.id)
                await self.sessions.delete_session(session.id)
                sessions_deleted += 1

            if iterations < MAX_ERASURE_ITERATIONS:
                await asyncio.sleep(self.pause)

        deleted_at = _iso(time.time())
        logger.info(
            "GDPR erasure executed for %s: %d sessions, %d tokens revoked, %d iterations",
            email,
            sessions_deleted,
            tokens_revoked,
            iterations,
        )
        return {
            "success": True,
            "message": "All your data has been deleted",
            "deletedAt": deleted_at,
            "sessionsDeleted": sessions_deleted,
            "tokensRevoked": tokens_revoked,
            "gdprArticle": 17,
        }

    async def export(self, email: str) -> dict[str, Any]:
        """Session metadata only; credentials are never part of an export."""
        found = await self.sessions_for(email)
        now = time.time()
        exported = []
        for s in found:
            entry: dict[str, Any] = {
                "id": s.id,
                "createdAt": _iso(s.created_at),
                "expiresAt": _iso(s.expires_at),
                "lastAccessedAt": _iso(s.last_accessed_at),
                "authenticated": s.authenticated,
            }
            if s.tokens is not None and s.tokens.scope:
                entry["oauthScopes"] = s.tokens.scope.split()
            exported.append(entry)

        logger.info("GDPR export executed for %s: %d sessions", email, len(exported))
        return {
            "userEmail": email,
            "exportedAt": _iso(now),
            "gdprArticle": 20,
            "activeSessions": sum(1 for s in found if s.expires_at > now),
            "totalSessions": len(exported),
            "sessions": exported,
        }
