# Per-request Workspace client handles.
# Created: 2026-09-22

from __future__ import annotations

import logging
from dataclasses import dataclass

from workspace_gateway.errors import ErrorKind, GatewayError
from workspace_gateway.oauth.google import GoogleOAuthClient
from workspace_gateway.session import OAuthTokenSet, Session, SessionManager
from workspace_gateway.workspace.base import HTTP_TIMEOUT
from workspace_gateway.workspace.breaker import BreakerRegistry
from workspace_gateway.workspace.calendar import CalendarClient
from workspace_gateway.workspace.drive import DriveClient
from workspace_gateway.workspace.forms import FormsClient
from workspace_gateway.workspace.gmail import GmailClient

logger = logging.getLogger(__name__)

REFRESH_LEEWAY = 60


@dataclass(frozen=True)
class WorkspaceClient:
    """Capability handle bound to one token set."""

    calendar: CalendarClient
    drive: DriveClient
    gmail: GmailClient
    forms: FormsClient


def create_workspace_client(
    tokens: OAuthTokenSet, breakers: BreakerRegistry, timeout: float = HTTP_TIMEOUT
) -> WorkspaceClient:
    token = tokens.access_token
    return WorkspaceClient(
        calendar=CalendarClient(token, breakers, timeout),
        drive=DriveClient(token, breakers, timeout),
        gmail=GmailClient(token, breakers, timeout),
        forms=FormsClient(token, breakers, timeout),
    )


async def fresh_tokens(
    session: Session, sessions: SessionManager, google: GoogleOAuthClient
) -> OAuthTokenSet:
    """The session's tokens, refreshed first if they expire within a minute."""
    if session.tokens is None or not session.user_email:
        raise GatewayError("Session has no Google credentials", ErrorKind.AUTHENTICATION)
    if not session.tokens.is_expiring(REFRESH_LEEWAY):
        return session.tokens

    refreshed = await google.refresh_tokens(session.tokens)
    await sessions.store_tokens(session.id, refreshed, session.user_email)
    session.tokens = refreshed
    logger.info("Access token refreshed for session %s", session.id[:8])
    return refreshed
