"""
Session-related Pydantic models.
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict

KEY_SEPARATOR = "\x00"


class CredentialPair(BaseModel):
    """Google OAuth token pair a Gmail client is bound to."""
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str = ""

    @property
    def cache_key(self) -> str:
        """
        Key used for both lookup and insertion in the session cache.

        NUL never occurs in an OAuth token, so ("ab", "c") and ("a", "bc")
        cannot collide.
        """
        return f"{self.access_token}{KEY_SEPARATOR}{self.refresh_token}"


class UserResponse(BaseModel):
    """
    Signed-in user as shown in the app header.

    email/name/picture come from Google's userinfo at login; gmail_address
    is what the Gmail profile lookup reports for the cached client.
    """
    email: str
    name: str
    picture: Optional[str] = None
    gmail_address: Optional[str] = None
