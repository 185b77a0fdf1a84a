"""
AI service for email triage, drafting and sender lookup.

This module provides:
1. Importance triage (high / medium / low) with an in-process answer cache
2. Draft generation, optionally grounded on a thread and refining a
   previous draft
3. Domain lookup: who is behind a sender's domain, from their website
"""
from collections import OrderedDict
from typing import List, Optional

import httpx
from pydantic import ValidationError

from superhuman.integrations.gemini_client import parse_json_response
from superhuman.integrations.web_scraper import fetch_website, normalize_domain
from superhuman.models.ai import (
    DomainInfo,
    DraftRequest,
    EmailDraft,
    EmailImportance,
    WebsiteContent,
)
from superhuman.models.email import Message
from superhuman.utils.logger import get_logger
from superhuman.utils.errors import AIError, AppError

logger = get_logger(__name__)


# =============================================================================
# IMPORTANCE TRIAGE
# =============================================================================

IMPORTANCE_SYSTEM = """You triage emails. Classify the email as:
- high: important, needs attention
- medium: might be important
- low: can be safely deleted

Respond ONLY in JSON:
{"importance": "high|medium|low", "reason": "one sentence"}
For low importance, the reason says why the email can be deleted."""


class ImportanceCache:
    """
    Triage answers keyed on subject, sender and snippet.

    The same message is triaged every time the inbox renders; identical
    inputs get the stored answer. Oldest entries go first past max_entries.
    """

    def __init__(self, max_entries: int = 5000):
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, EmailImportance]" = OrderedDict()

    @staticmethod
    def key(subject: str, sender: str, snippet: str) -> str:
        return f"{subject}-{sender}-{snippet}"

    def get(self, key: str) -> Optional[EmailImportance]:
        return self._entries.get(key)

    def set(self, key: str, value: EmailImportance) -> None:
        self._entries[key] = value
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)


async def analyze_importance(
    subject: str,
    sender: str,
    snippet: str,
    cache: Optional[ImportanceCache] = None,
) -> EmailImportance:
    """
    Classify an email's importance.

    Raises:
        AIError: Model failure or an answer outside the schema (not cached)
    """
    key = ImportanceCache.key(subject, sender, snippet)
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return cached

    prompt = f"""Subject: {subject}
From: {sender}
Preview: {snippet}"""

    data = await parse_json_response(prompt=prompt, system_instruction=IMPORTANCE_SYSTEM)
    try:
        result = EmailImportance(**data)
    except ValidationError as e:
        logger.warning(f"Importance answer rejected: {e.error_count()} error(s)")
        raise AIError("AI returned an invalid importance classification")

    if cache is not None:
        cache.set(key, result)
    return result


# =============================================================================
# DRAFT GENERATION
# =============================================================================

DRAFT_SYSTEM = """You compose or refine emails on behalf of the user.
Write in first person as the user. Keep it well-structured and concise,
professional but approachable unless another tone is requested.
If this is a reply, address the most recent message in the thread.

Respond ONLY in JSON:
{"subject": "", "greeting": "", "body": "", "closing": "", "signature": ""}"""


def format_thread_context(messages: List[Message]) -> str:
    """Thread messages as a numbered transcript."""
    blocks = []
    for i, message in enumerate(messages, start=1):
        blocks.append(
            f"Message {i}:\n"
            f"From: {message.sender}\n"
            f"Date: {message.date}\n"
            f"Content: {message.plain_content or message.snippet}\n"
            "---"
        )
    return "\n".join(blocks)


def build_draft_prompt(request: DraftRequest, thread_messages: Optional[List[Message]] = None) -> str:
    thread_context = format_thread_context(thread_messages) if thread_messages else ""

    if request.modifications and request.previous_draft:
        return (
            "Modify this email draft according to the request.\n\n"
            f"=== Previous Draft ===\n{request.previous_draft}\n\n"
            f"=== Requested Modifications ===\n{request.modifications}\n\n"
            f"=== Email Thread Context ===\n{thread_context or 'No previous messages'}"
        )

    prompt = "Write a clear and concise email"
    if request.tone:
        prompt += f" in a {request.tone} tone"
    if request.subject:
        prompt += f" about: {request.subject}"
    prompt += "."
    if request.outline:
        prompt += f"\n\nIncorporate these points:\n{request.outline}"
    if thread_context:
        prompt += (
            f"\n\nThis is a reply to the following email thread:\n{thread_context}\n"
            "Prioritize the most recent message."
        )
    return prompt


async def generate_draft(
    request: DraftRequest,
    thread_messages: Optional[List[Message]] = None,
) -> EmailDraft:
    """
    Compose a new draft or refine a previous one.

    Raises:
        AIError: Model failure
    """
    data = await parse_json_response(
        prompt=build_draft_prompt(request, thread_messages),
        system_instruction=DRAFT_SYSTEM,
        temperature=0.7,
    )
    try:
        draft = EmailDraft(**data)
    except ValidationError:
        raise AIError("AI returned an invalid draft")

    logger.info(f"Generated draft ({len(draft.body)} chars)")
    return draft


# =============================================================================
# DOMAIN LOOKUP
# =============================================================================

DOMAIN_SYSTEM = """You identify companies from their website content.
Name the company, say in one sentence what it does, and summarize the site
in two or three sentences.

Respond ONLY in JSON:
{"company_name": "", "description": "", "summary": ""}"""


def build_domain_prompt(page: WebsiteContent) -> str:
    return f"""Analyze this website content:
Title: {page.title}
Meta Description: {page.meta_description}
OG Description: {page.og_description}
Main Content: {page.main_content}"""


async def lookup_domain(
    domain: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> DomainInfo:
    """
    Describe the company behind a domain from its home page.

    A site that can't be fetched or summarized is reported in the result
    (success=False, error) rather than raised.

    Raises:
        InvalidRequestError: domain is not a public hostname
    """
    domain = normalize_domain(domain)

    try:
        page = await fetch_website(domain, transport=transport)
        data = await parse_json_response(
            prompt=build_domain_prompt(page),
            system_instruction=DOMAIN_SYSTEM,
        )
    except AppError as e:
        logger.warning(f"Domain lookup failed for {domain} [{e.code}]: {e.message}")
        return DomainInfo(
            domain=domain,
            summary="Unable to fetch domain information",
            success=False,
            error=e.message,
        )

    return DomainInfo(
        domain=domain,
        company_name=str(data.get("company_name") or ""),
        description=str(data.get("description") or ""),
        summary=str(data.get("summary") or ""),
    )
