"""
Mail API endpoints.

Thin HTTP wrappers over MailService. Each request borrows the user's
cached Gmail client from the session cache (built on first use).

Error mapping:
- 401 AUTH_REQUIRED: not signed in / no Google tokens
- 401 AUTH_EXPIRED: Google revoked the tokens, sign in again
- 404 NOT_FOUND, 429 RATE_LIMITED, 502 PROVIDER_ERROR: Gmail failures
"""
from typing import Awaitable, List, Optional, TypeVar
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response

from superhuman.models.email import (
    Label,
    Message,
    SendEmailRequest,
    SendReplyRequest,
    SendResult,
)
from superhuman.models.session import CredentialPair
from superhuman.services.mail_service import MailService
from superhuman.services.session_cache import SessionCache
from superhuman.services.session_service import get_credentials, get_session_cache
from superhuman.utils.logger import get_logger
from superhuman.utils.errors import AppError

router = APIRouter()
logger = get_logger(__name__)

T = TypeVar("T")


def content_disposition(filename: str) -> str:
    """
    Content-Disposition for a download.

    Header values go out as latin-1, so the real name travels RFC 5987
    encoded in filename*; filename= is an ASCII stand-in for old clients.
    """
    fallback = "".join(
        c if c.isascii() and c.isprintable() and c not in '"\\' else "_"
        for c in filename
    )
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


def get_mail_service(
    credentials: CredentialPair = Depends(get_credentials),
    cache: SessionCache = Depends(get_session_cache),
) -> MailService:
    """FastAPI dependency: MailService bound to the user's cached client."""
    return MailService(cache.get_or_create(credentials), cache)


async def _call(operation: Awaitable[T]) -> T:
    """Await a mail operation, translating application errors to HTTP."""
    try:
        return await operation

    except AppError as e:
        logger.error(f"Mail error [{e.code}]: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

    except Exception as e:
        logger.exception(f"Unexpected mail error: {e}")
        raise HTTPException(
            status_code=500,
            detail={
                "error": True,
                "code": "INTERNAL_ERROR",
                "message": "Something went wrong. Please try again."
            }
        )


@router.get("/messages", response_model=List[Message])
async def list_messages(
    label: str = Query("INBOX"),
    service: MailService = Depends(get_mail_service),
):
    """Latest messages under a label (metadata only)."""
    return await _call(service.list_messages(label))


@router.get("/search", response_model=List[Message])
async def search_messages(
    q: str = Query(..., min_length=1),
    service: MailService = Depends(get_mail_service),
):
    """Messages matching a Gmail search query, e.g. "from:alice has:attachment"."""
    return await _call(service.search_messages(q))


@router.get("/threads/{thread_id}", response_model=List[Message])
async def get_thread(thread_id: str, service: MailService = Depends(get_mail_service)):
    """Full thread with participants and the user's own address."""
    return await _call(service.get_thread(thread_id))


@router.post("/send", response_model=SendResult)
async def send_email(request: SendEmailRequest, service: MailService = Depends(get_mail_service)):
    """
    Send a new email.

    content is HTML; newline → <br> conversion is done by the client.
    Attachment content must already be base64 encoded.
    """
    return await _call(service.send_email(
        to=request.to,
        subject=request.subject,
        content=request.content,
        attachments=request.attachments,
    ))


@router.post("/threads/{thread_id}/reply", response_model=SendResult)
async def send_reply(
    thread_id: str,
    request: SendReplyRequest,
    service: MailService = Depends(get_mail_service),
):
    """Reply to the last message of a thread."""
    return await _call(service.send_reply(
        thread_id=thread_id,
        to=request.to,
        subject=request.subject,
        content=request.content,
        attachments=request.attachments,
    ))


@router.delete("/messages/{message_id}", response_model=SendResult)
async def delete_message(message_id: str, service: MailService = Depends(get_mail_service)):
    """Move a message to trash."""
    return await _call(service.delete_message(message_id))


@router.get("/messages/{message_id}/attachments/{attachment_id}")
async def get_attachment(
    message_id: str,
    attachment_id: str,
    filename: Optional[str] = Query(None),
    mime_type: Optional[str] = Query(None),
    service: MailService = Depends(get_mail_service),
):
    """
    Download an attachment.

    Gmail's attachment endpoint returns bytes only; the client passes the
    filename and type it got from the thread listing.
    """
    data = await _call(service.get_attachment(message_id, attachment_id))
    return Response(
        content=data,
        media_type=mime_type or "application/octet-stream",
        headers={"Content-Disposition": content_disposition(filename or "attachment")},
    )


@router.get("/labels", response_model=List[Label])
async def list_labels(service: MailService = Depends(get_mail_service)):
    return await _call(service.list_labels())
