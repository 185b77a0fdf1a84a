"""
AI-related Pydantic models.
"""
from pydantic import BaseModel
from typing import Optional, List, Literal


class ImportanceRequest(BaseModel):
    """Email fields used for importance triage."""
    subject: str
    sender: str
    snippet: str


class EmailImportance(BaseModel):
    """high = important, medium = might be important, low = can be deleted."""
    importance: Literal["high", "medium", "low"]
    reason: str


class DraftRequest(BaseModel):
    """Request to compose or refine a draft."""
    subject: Optional[str] = None
    outline: Optional[str] = None
    tone: Optional[Literal["professional", "casual", "friendly"]] = None
    modifications: Optional[str] = None
    previous_draft: Optional[str] = None
    thread_id: Optional[str] = None


class EmailDraft(BaseModel):
    """Structured draft returned by the model."""
    subject: str = ""
    greeting: str = ""
    body: str = ""
    closing: str = ""
    signature: str = ""

    def as_text(self) -> str:
        parts = [self.greeting, self.body, self.closing, self.signature]
        return "\n\n".join(p for p in parts if p)


class DomainRequest(BaseModel):
    """Domain to look up, e.g. the part after @ in a sender address."""
    domain: str


class WebsiteContent(BaseModel):
    """What a company's home page says about itself."""
    title: str = ""
    meta_description: str = ""
    og_description: str = ""
    main_content: str = ""


class DomainInfo(BaseModel):
    """Company behind a domain; success=False carries the error instead."""
    domain: str
    summary: str = ""
    company_name: str = ""
    description: str = ""
    success: bool = True
    error: str = ""
