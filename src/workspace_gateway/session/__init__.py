from workspace_gateway.session.manager import SESSION_KEY_PREFIX, SessionManager
from workspace_gateway.session.models import OAuthTokenSet, Session

__all__ = ["SESSION_KEY_PREFIX", "OAuthTokenSet", "Session", "SessionManager"]
