from workspace_gateway.oauth.codes import AuthorizationCodeManager, compute_s256_challenge
from workspace_gateway.oauth.flow import (
    CallbackFailed,
    LoginRequest,
    OAuthFlowController,
    OAuthProtocolError,
)
from workspace_gateway.oauth.google import GoogleOAuthClient
from workspace_gateway.oauth.redirects import RedirectValidator
from workspace_gateway.oauth.registration import ClientRegistrationManager
from workspace_gateway.oauth.tokens import BearerTokenManager, TokenValidation

__all__ = [
    "AuthorizationCodeManager",
    "BearerTokenManager",
    "CallbackFailed",
    "ClientRegistrationManager",
    "GoogleOAuthClient",
    "LoginRequest",
    "OAuthFlowController",
    "OAuthProtocolError",
    "RedirectValidator",
    "TokenValidation",
    "compute_s256_challenge",
]
