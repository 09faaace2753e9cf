"""HMAC-signed session cookie values.

Cookie format: ``{session_id}.{hex_hmac}``

The cookie carries only the session id. The signature lets the gateway
reject forged or altered ids before touching the store.
"""

import hashlib
import hmac

__all__ = ["sign_session_id", "unsign_session_id"]


def sign_session_id(secret: str, session_id: str) -> str:
    return f"{session_id}.{_sign(secret, session_id)}"


def unsign_session_id(secret: str, value: str | None) -> str | None:
    """Return the session id if the signature checks out, else None."""
    if not value:
        return None
    session_id, sep, sig = value.rpartition(".")
    if not sep or not session_id:
        return None
    if not hmac.compare_digest(sig, _sign(secret, session_id)):
        return None
    return session_id


def _sign(key: str, message: str) -> str:
    return hmac.new(key.encode(), message.encode(), hashlib.sha256).hexdigest()
