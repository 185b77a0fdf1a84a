"""
Authentication service.

This module orchestrates the OAuth flow:
1. Generate OAuth URL → google_auth
2. Handle callback → exchange code → get user → create session
3. Refresh sessions when needed
4. Logout → drop the session and its cached Gmail client
"""
from typing import Optional

from superhuman.integrations.google_auth import (
    get_oauth_url as _get_oauth_url,
    exchange_code_for_tokens,
    get_user_info,
    refresh_access_token,
)
from superhuman.services.session_cache import SessionCache
from superhuman.services.session_service import (
    create_session,
    credentials_from_session,
    delete_session,
    get_session,
    update_tokens,
    is_token_expired,
)
from superhuman.utils.logger import get_logger
from superhuman.utils.errors import AuthError

logger = get_logger(__name__)


class AuthService:
    """
    Authentication service handling OAuth flow.

    Usage:
        auth_service = AuthService()
        url = auth_service.get_oauth_url()
        token = await auth_service.handle_oauth_callback(code)
    """

    def get_oauth_url(self) -> str:
        """Google OAuth authorization URL the frontend redirects to."""
        return _get_oauth_url()

    async def handle_oauth_callback(self, code: str) -> str:
        """
        Handle OAuth callback after user grants permission.

        Flow:
        1. Exchange authorization code for tokens
        2. Fetch user profile from Google
        3. Create session with tokens and user info

        Returns:
            Session token (JWT) to store in cookie

        Raises:
            AuthError: If any step fails
        """
        tokens = await exchange_code_for_tokens(code)
        logger.info("Exchanged code for tokens")

        user_info = await get_user_info(tokens["access_token"])

        return create_session(
            user_id=user_info["id"],
            email=user_info["email"],
            name=user_info["name"],
            picture=user_info.get("picture"),
            access_token=tokens["access_token"],
            refresh_token=tokens["refresh_token"],
            expires_in=tokens["expires_in"],
        )

    async def refresh_session(self, session_token: str) -> Optional[str]:
        """
        Refresh session if access token is expired.

        Returns:
            Same session token if refreshed, None if not needed

        Raises:
            AuthError: If session invalid or refresh fails
        """
        session = get_session(session_token)
        if not session:
            raise AuthError("Session not found or expired")

        if not is_token_expired(session):
            return None

        new_access_token, expires_in = await refresh_access_token(session["refresh_token"])
        update_tokens(session_token, new_access_token, expires_in)
        logger.info(f"Refreshed session for: {session['email']}")

        # JWT hasn't changed, only stored data
        return session_token

    def logout(self, session_token: str, cache: Optional[SessionCache] = None) -> bool:
        """Delete the session and evict its Gmail client from the cache."""
        session = get_session(session_token)
        if session and session.get("access_token") and cache is not None:
            cache.invalidate(credentials_from_session(session))
        return delete_session(session_token)
