"""
Custom error classes for the application.

Every failure that leaves the mail layer is one of three kinds:
- UnauthorizedError: no credentials on the request
- AuthExpiredError: Google rejected the credentials (cached client evicted)
- ProviderError: anything else Gmail reported, with Gmail's own message
"""
from typing import Optional


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        status_code: int = 500,
        details: Optional[dict] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert error to dictionary for response."""
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class AuthError(AppError):
    """Authentication related errors."""

    def __init__(self, message: str, code: str = "AUTH_ERROR"):
        super().__init__(message, code, status_code=401)


class UnauthorizedError(AuthError):
    """No Google credentials present on the request."""

    def __init__(self, message: str = "Missing authentication tokens"):
        super().__init__(message, "AUTH_REQUIRED")


class SessionExpiredError(AuthError):
    """Session has expired."""

    def __init__(self):
        super().__init__(
            "Your session has expired. Please sign in again.",
            "SESSION_EXPIRED"
        )


class InvalidGrantError(AuthError):
    """
    Google reported the token pair as revoked or invalid.

    Raised by the integrations layer as a structured signal; the session
    cache turns it into AuthExpiredError after evicting the client.
    """

    def __init__(self, message: str = "Google credentials are no longer valid"):
        super().__init__(message, "INVALID_GRANT")


class AuthExpiredError(AuthError):
    """Gmail access was revoked or expired; the user must sign in again."""

    def __init__(self, message: str = "Gmail access expired. Please sign in and grant permissions again."):
        super().__init__(message, "AUTH_EXPIRED")


class ProviderError(AppError):
    """Gmail API related errors."""

    def __init__(
        self,
        message: str = "Couldn't reach Gmail. Please try again.",
        provider_status: Optional[int] = None,
        status_code: int = 502,
        code: str = "PROVIDER_ERROR",
    ):
        details = {"provider_status": provider_status} if provider_status else None
        super().__init__(message, code, status_code=status_code, details=details)
        self.provider_status = provider_status


class RateLimitError(ProviderError):
    """Rate limit exceeded."""

    def __init__(self, message: str = "Too many requests. Please wait a moment."):
        super().__init__(message, provider_status=429, status_code=429, code="RATE_LIMITED")


class NotFoundError(ProviderError):
    """Message, thread or attachment not found."""

    def __init__(self, reference: str = ""):
        message = f"Couldn't find '{reference}'." if reference else "Not found."
        super().__init__(message, provider_status=404, status_code=404, code="NOT_FOUND")


class AIError(AppError):
    """AI service related errors."""

    def __init__(self, message: str = "AI processing failed. Please try again."):
        super().__init__(message, "AI_ERROR", status_code=503)


class ScrapeError(AppError):
    """A company website could not be fetched."""

    def __init__(self, message: str = "Couldn't reach the website."):
        super().__init__(message, "SCRAPE_FAILED", status_code=502)


class InvalidRequestError(AppError):
    """Invalid request format."""

    def __init__(self, message: str = "Invalid request format."):
        super().__init__(message, "INVALID_REQUEST", status_code=400)
