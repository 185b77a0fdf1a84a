"""
User profile endpoint.
"""
from fastapi import APIRouter, Depends, HTTPException

from superhuman.models.session import CredentialPair, UserResponse
from superhuman.services.session_cache import SessionCache
from superhuman.services.session_service import (
    get_credentials,
    get_current_session,
    get_session_cache,
)
from superhuman.utils.logger import get_logger
from superhuman.utils.errors import AppError

router = APIRouter()
logger = get_logger(__name__)


@router.get("/user", response_model=UserResponse)
async def get_user(
    session: dict = Depends(get_current_session),
    credentials: CredentialPair = Depends(get_credentials),
    cache: SessionCache = Depends(get_session_cache),
):
    """
    Current user's profile.

    Checks Gmail with the cached client, so a revoked grant is reported
    here (401 AUTH_EXPIRED) before the inbox tries to load.
    """
    handle = cache.get_or_create(credentials)
    try:
        await cache.validate(handle)
    except AppError as e:
        logger.warning(f"Gmail profile check failed [{e.code}] for {session['email']}")
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

    return UserResponse(
        email=session["email"],
        name=session["name"],
        picture=session.get("picture"),
        gmail_address=handle.profile_email,
    )
