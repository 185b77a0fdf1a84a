"""
Outgoing message encoder.

Builds the raw RFC 2822 message Gmail's messages.send endpoint expects in
its "raw" field:
1. Header block + HTML body, or multipart/mixed with one part per attachment
2. Lines joined with CRLF whatever the host platform
3. base64, URL-safe alphabet, padding stripped

Attachment content arrives already base64 encoded and is copied through
untouched. Nothing here does I/O.
"""
import base64
import secrets
import time
from email.header import Header
from typing import List, Optional

from superhuman.models.email import OutgoingMessage

CRLF = "\r\n"


def make_boundary() -> str:
    """Boundary unique per call: nanosecond clock plus 128 random bits."""
    return f"boundary_{time.time_ns()}_{secrets.token_hex(16)}"


def _pick_boundary(message: OutgoingMessage) -> str:
    # A boundary found inside any payload would split the MIME tree there
    payloads = [message.html_body] + [a.content for a in message.attachments]
    while True:
        boundary = make_boundary()
        if not any(boundary in p for p in payloads):
            return boundary


def encode_subject(subject: str) -> str:
    """
    ASCII subjects stay verbatim, anything else becomes RFC 2047 words.

    Long subjects fold over several lines; continuation lines use CRLF too.
    """
    if subject.isascii():
        return subject
    return Header(subject, "utf-8").encode(linesep=CRLF)


def _address_headers(message: OutgoingMessage) -> List[str]:
    lines = [
        f"To: {message.to}",
        f"Subject: {encode_subject(message.subject)}",
    ]
    if message.in_reply_to_id:
        lines.append(f"In-Reply-To: {message.in_reply_to_id}")
    if message.references_id:
        lines.append(f"References: {message.references_id}")
    return lines


def build_mime_lines(message: OutgoingMessage, boundary: Optional[str] = None) -> List[str]:
    """
    Lay the message out line by line.

    No attachments gives the single-part text/html form; an empty
    attachment list never produces a multipart shell.

    Args:
        message: What to send
        boundary: Fixed boundary for multipart output, generated if None

    Returns:
        Lines without terminators
    """
    lines = _address_headers(message)

    if not message.attachments:
        lines += [
            "Content-Type: text/html; charset=utf-8",
            "MIME-Version: 1.0",
            "",
            message.html_body,
        ]
        return lines

    boundary = boundary or _pick_boundary(message)
    lines += [
        "MIME-Version: 1.0",
        f'Content-Type: multipart/mixed; boundary="{boundary}"',
        "",
        f"--{boundary}",
        "Content-Type: text/html; charset=utf-8",
        "Content-Transfer-Encoding: 8bit",
        "",
        message.html_body,
    ]

    for attachment in message.attachments:
        lines += [
            f"--{boundary}",
            f'Content-Type: {attachment.mime_type}; name="{attachment.filename}"',
            f'Content-Disposition: attachment; filename="{attachment.filename}"',
            "Content-Transfer-Encoding: base64",
            "",
            attachment.content,
        ]

    lines.append(f"--{boundary}--")
    return lines


def to_base64url(data: bytes) -> str:
    """base64 with '+' → '-', '/' → '_' and trailing '=' removed."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def from_base64url(text: str) -> bytes:
    padding = -len(text) % 4
    return base64.urlsafe_b64decode(text + "=" * padding)


def encode_message(message: OutgoingMessage, boundary: Optional[str] = None) -> str:
    """Encode a message for the "raw" field of messages.send."""
    raw = CRLF.join(build_mime_lines(message, boundary))
    return to_base64url(raw.encode("utf-8"))
