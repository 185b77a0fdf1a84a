"""
Authentication routes for Google OAuth.

OAuth Flow:
1. Frontend calls GET /api/auth/login → gets OAuth URL
2. Frontend redirects user to OAuth URL
3. User grants permissions on Google
4. Google redirects to GET /api/auth/callback with code
5. Backend exchanges code for tokens, creates session
6. Backend redirects to frontend /inbox with session cookie

Security:
- Session token is HTTP-only cookie
- Google tokens stay server-side, the JWT only names the session
"""
from fastapi import APIRouter, Depends, Response, Request, HTTPException
from fastapi.responses import RedirectResponse

from superhuman.config import get_settings
from superhuman.services.auth_service import AuthService
from superhuman.services.session_cache import SessionCache
from superhuman.services.session_service import SESSION_COOKIE, get_session, get_session_cache
from superhuman.utils.logger import get_logger
from superhuman.utils.errors import AppError

router = APIRouter()
logger = get_logger(__name__)
settings = get_settings()
auth_service = AuthService()


def _set_session_cookie(response: Response, session_token: str) -> None:
    # Localhost over HTTP should NOT use secure=True
    is_secure = settings.frontend_url.startswith("https") and "localhost" not in settings.frontend_url
    response.set_cookie(
        key=SESSION_COOKIE,
        value=session_token,
        httponly=True,
        secure=is_secure,
        samesite="lax",
        max_age=settings.session_expire_hours * 3600,
        path="/",
    )


@router.get("/login")
async def login():
    """
    Get Google OAuth login URL.

    Returns:
        { auth_url: "https://accounts.google.com/..." }
    """
    return {"auth_url": auth_service.get_oauth_url()}


@router.get("/callback")
async def oauth_callback(code: str = None, error: str = None):
    """
    Handle Google OAuth callback.

    On success: create session, set cookie, redirect to /inbox.
    On error: redirect to /login with an error code.
    """
    if error:
        logger.warning(f"OAuth error: {error}")
        return RedirectResponse(url=f"{settings.frontend_url}/login?error=oauth_denied")

    if not code:
        logger.warning("OAuth callback missing code")
        return RedirectResponse(url=f"{settings.frontend_url}/login?error=missing_code")

    try:
        session_token = await auth_service.handle_oauth_callback(code)
    except AppError as e:
        logger.error(f"OAuth callback failed [{e.code}]: {e.message}")
        return RedirectResponse(url=f"{settings.frontend_url}/login?error=auth_failed")

    response = RedirectResponse(url=f"{settings.frontend_url}/inbox", status_code=302)
    _set_session_cookie(response, session_token)
    logger.info("OAuth callback successful, session created")
    return response


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    cache: SessionCache = Depends(get_session_cache),
):
    """
    Logout: drop the server-side session, its cached Gmail client and
    the cookie.
    """
    session_cookie = request.cookies.get(SESSION_COOKIE)
    if session_cookie:
        auth_service.logout(session_cookie, cache)

    response.delete_cookie(key=SESSION_COOKIE, path="/")
    logger.info("User logged out")
    return {"success": True, "message": "Logged out successfully"}


@router.get("/session")
async def get_session_info(request: Request):
    """
    Check current session status.

    Returns:
        { authenticated: true/false, email?: string }
    """
    session_cookie = request.cookies.get(SESSION_COOKIE)
    session = get_session(session_cookie) if session_cookie else None

    if not session:
        return {"authenticated": False}

    return {
        "authenticated": True,
        "email": session["email"],
        "name": session["name"],
    }


@router.get("/refresh")
async def refresh_session(request: Request):
    """
    Refresh the Google access token if it is about to expire.

    Returns:
        { refreshed: true/false, valid: true }
    """
    session_cookie = request.cookies.get(SESSION_COOKIE)
    if not session_cookie:
        raise HTTPException(status_code=401, detail="No session found")

    try:
        refreshed = await auth_service.refresh_session(session_cookie)
    except AppError as e:
        logger.error(f"Session refresh failed [{e.code}]: {e.message}")
        raise HTTPException(status_code=401, detail=e.to_dict())

    return {"refreshed": refreshed is not None, "valid": True}
