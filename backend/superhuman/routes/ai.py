"""
AI endpoints: importance triage, draft generation and domain lookup.
"""
from fastapi import APIRouter, Depends, HTTPException, Request

from superhuman.models.ai import (
    DomainInfo,
    DomainRequest,
    DraftRequest,
    EmailDraft,
    EmailImportance,
    ImportanceRequest,
)
from superhuman.routes.mail import get_mail_service
from superhuman.services.ai_service import analyze_importance, generate_draft, lookup_domain
from superhuman.services.mail_service import MailService
from superhuman.services.session_service import get_current_session
from superhuman.utils.logger import get_logger
from superhuman.utils.errors import AppError

router = APIRouter()
logger = get_logger(__name__)


@router.post("/importance", response_model=EmailImportance)
async def importance(
    body: ImportanceRequest,
    request: Request,
    session: dict = Depends(get_current_session),
):
    """Classify an email as high / medium / low importance."""
    try:
        return await analyze_importance(
            subject=body.subject,
            sender=body.sender,
            snippet=body.snippet,
            cache=request.app.state.importance_cache,
        )
    except AppError as e:
        logger.error(f"Triage error [{e.code}]: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.post("/draft", response_model=EmailDraft)
async def draft(body: DraftRequest, service: MailService = Depends(get_mail_service)):
    """
    Compose a draft, or refine previous_draft with modifications.

    With thread_id the thread is loaded and the draft answers it.
    """
    try:
        thread_messages = await service.get_thread(body.thread_id) if body.thread_id else None
        return await generate_draft(body, thread_messages)
    except AppError as e:
        logger.error(f"Draft error [{e.code}]: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.post("/domain", response_model=DomainInfo)
async def domain_info(body: DomainRequest, session: dict = Depends(get_current_session)):
    """
    Who is behind a sender's domain.

    An unreachable site still answers 200 with success=false; only a
    malformed domain is rejected (400).
    """
    try:
        return await lookup_domain(body.domain)
    except AppError as e:
        logger.error(f"Domain lookup error [{e.code}]: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
