"""
Session management service.

This module handles:
1. Creating and storing user sessions with Google tokens
2. Validating session cookies (JWT-based)
3. Refreshing the Google access token before it expires
4. Handing the token pair to request handlers

Sessions are stored in-memory; the JWT cookie only carries the session id.
"""
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request

from superhuman.config import get_settings
from superhuman.integrations.google_auth import refresh_access_token
from superhuman.models.session import CredentialPair
from superhuman.services.session_cache import SessionCache
from superhuman.utils.logger import get_logger
from superhuman.utils.errors import (
    AuthExpiredError,
    InvalidGrantError,
    SessionExpiredError,
    UnauthorizedError,
)

logger = get_logger(__name__)
settings = get_settings()

SESSION_COOKIE = "session"

# Key: session_id (from JWT), Value: session data dict
_sessions: dict[str, dict] = {}

# Refresh the access token when it has less than this left
TOKEN_REFRESH_BUFFER = timedelta(minutes=5)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _decode(session_token: str, verify_exp: bool = True) -> Optional[str]:
    """Session id from a JWT, None when the token is invalid."""
    try:
        payload = jwt.decode(
            session_token,
            settings.session_secret,
            algorithms=["HS256"],
            options={"verify_exp": verify_exp},
        )
    except jwt.ExpiredSignatureError:
        logger.warning("JWT expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid JWT: {e}")
        return None
    return payload.get("session_id")


def create_session(
    user_id: str,
    email: str,
    name: str,
    picture: Optional[str],
    access_token: str,
    refresh_token: Optional[str],
    expires_in: int,
) -> str:
    """
    Create a new user session and return a JWT session token.

    The JWT contains only the session ID. Tokens and user info stay
    server-side.

    Returns:
        JWT session token (to be stored in cookie)
    """
    session_id = f"{user_id}_{secrets.token_urlsafe(16)}"
    now = _now()
    session_expiry = now + timedelta(hours=settings.session_expire_hours)

    _sessions[session_id] = {
        "user_id": user_id,
        "email": email,
        "name": name,
        "picture": picture,
        "access_token": access_token,
        "refresh_token": refresh_token or "",
        "token_expiry": now + timedelta(seconds=expires_in),
        "session_expiry": session_expiry,
        "created_at": now,
    }

    token = jwt.encode(
        {"session_id": session_id, "exp": session_expiry, "iat": now},
        settings.session_secret,
        algorithm="HS256",
    )
    logger.info(f"Created session for user: {email}")
    return token


def get_session(session_token: str) -> Optional[dict]:
    """
    Retrieve session data from a JWT session token.

    Returns None if the JWT is invalid or the session is gone/expired.
    """
    session_id = _decode(session_token)
    if not session_id or session_id not in _sessions:
        return None

    session = _sessions[session_id]
    if _now() > session["session_expiry"]:
        logger.info(f"Session expired for: {session['email']}")
        del _sessions[session_id]
        return None

    return session


def update_session(session_token: str, updates: dict) -> bool:
    """Update stored session fields; False if the session is unknown."""
    session_id = _decode(session_token)
    if session_id and session_id in _sessions:
        _sessions[session_id].update(updates)
        return True
    return False


def delete_session(session_token: str) -> bool:
    """Delete a session (logout). Expired JWTs are accepted here."""
    session_id = _decode(session_token, verify_exp=False)
    if session_id and session_id in _sessions:
        email = _sessions.pop(session_id).get("email", "unknown")
        logger.info(f"Deleted session for: {email}")
        return True
    return False


def is_token_expired(session: dict) -> bool:
    """True when the Google access token expires within the refresh buffer."""
    return _now() + TOKEN_REFRESH_BUFFER > session["token_expiry"]


def update_tokens(session_token: str, access_token: str, expires_in: int) -> bool:
    """Store a refreshed access token."""
    return update_session(session_token, {
        "access_token": access_token,
        "token_expiry": _now() + timedelta(seconds=expires_in),
    })


def credentials_from_session(session: dict) -> CredentialPair:
    """
    Token pair of a session.

    Raises:
        UnauthorizedError: Session has no access token
    """
    if not session.get("access_token"):
        raise UnauthorizedError()
    return CredentialPair(
        access_token=session["access_token"],
        refresh_token=session.get("refresh_token") or "",
    )


# Dependency for protected routes
async def get_current_session(request: Request) -> dict:
    """
    FastAPI dependency to get current authenticated session.

    Refreshes the Google access token when it is about to expire.

    Raises:
        HTTPException 401: Not signed in, session expired, or access revoked
    """
    session_cookie = request.cookies.get(SESSION_COOKIE)
    if not session_cookie:
        raise HTTPException(status_code=401, detail=UnauthorizedError("Authentication required").to_dict())

    session = get_session(session_cookie)
    if not session:
        raise HTTPException(
            status_code=401,
            detail=SessionExpiredError().to_dict(),
        )

    if is_token_expired(session) and session.get("refresh_token"):
        try:
            new_token, expires_in = await refresh_access_token(session["refresh_token"])
        except InvalidGrantError:
            delete_session(session_cookie)
            raise HTTPException(status_code=401, detail=AuthExpiredError().to_dict())
        except Exception as e:
            logger.error(f"Token refresh failed: {e}")
            raise HTTPException(
                status_code=401,
                detail={"error": True, "code": "TOKEN_REFRESH_FAILED", "message": "Failed to refresh session. Please sign in again."}
            )
        update_tokens(session_cookie, new_token, expires_in)
        logger.info(f"Refreshed token for: {session['email']}")

    return session


async def get_credentials(session: dict = Depends(get_current_session)) -> CredentialPair:
    """FastAPI dependency: the signed-in user's Google token pair."""
    try:
        return credentials_from_session(session)
    except UnauthorizedError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


def get_session_cache(request: Request) -> SessionCache:
    """FastAPI dependency: the process-wide Gmail client cache."""
    return request.app.state.session_cache
