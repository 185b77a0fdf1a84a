"""
Email-related Pydantic models.
"""
from pydantic import BaseModel, Field
from typing import Optional, List


class AttachmentInfo(BaseModel):
    """Attachment metadata on a received message."""
    id: str
    filename: str
    mime_type: str
    size: int = 0


class Message(BaseModel):
    """Gmail message as returned to the frontend."""
    id: str
    thread_id: str
    subject: str = ""
    sender: str = ""
    sender_name: str = ""
    sender_email: str = ""
    to: str = ""
    date: str = ""
    snippet: str = ""
    html_content: str = ""
    plain_content: str = ""
    labels: List[str] = []
    attachments: List[AttachmentInfo] = []
    participants: List[str] = []
    my_email: Optional[str] = None


class Label(BaseModel):
    """Gmail label."""
    id: str
    name: str
    type: str = "user"


class OutgoingAttachment(BaseModel):
    """Attachment to send; content is already base64 encoded by the caller."""
    filename: str
    content: str
    mime_type: str


class OutgoingMessage(BaseModel):
    """Logical description of one message to send."""
    to: str
    subject: str
    html_body: str
    attachments: List[OutgoingAttachment] = []
    in_reply_to_id: Optional[str] = None
    references_id: Optional[str] = None


class SendEmailRequest(BaseModel):
    """Request to send a new email."""
    to: str
    subject: str
    content: str
    attachments: List[OutgoingAttachment] = Field(default_factory=list)


class SendReplyRequest(SendEmailRequest):
    """Request to reply inside an existing thread."""


class SendResult(BaseModel):
    """Outcome of a mutating mail operation."""
    success: bool = True
    id: Optional[str] = None
    thread_id: Optional[str] = None
