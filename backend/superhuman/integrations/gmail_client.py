"""
Gmail API client integration.

This module handles direct communication with Gmail API:
1. List/get messages and threads, fetch attachments and labels
2. Send raw MIME messages and move messages to trash
3. Refresh the OAuth access token when Gmail answers 401
4. Parse Gmail's complex response format into clean objects

Gmail API Reference: https://developers.google.com/gmail/api/reference/rest
"""
import asyncio
import base64
import re
from datetime import datetime, timezone
from email.utils import parseaddr
from typing import List, Optional, Tuple

import httpx

from superhuman.config import get_settings
from superhuman.integrations import google_auth
from superhuman.models.email import AttachmentInfo, Message
from superhuman.models.session import CredentialPair
from superhuman.utils.logger import get_logger
from superhuman.utils.errors import (
    AuthError,
    InvalidGrantError,
    NotFoundError,
    ProviderError,
    RateLimitError,
)

logger = get_logger(__name__)
settings = get_settings()

# Gmail API base URL
GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1/users/me"

METADATA_HEADERS = ["Subject", "From", "To", "Date"]


class GmailClient:
    """
    Gmail API client bound to one OAuth token pair.

    Construction does no network I/O. The access token is swapped in place
    when Google hands out a new one; the credentials the client was built
    with never change.

    Usage:
        client = GmailClient(CredentialPair(access_token=..., refresh_token=...))
        listing = await client.list_messages(label_ids=["INBOX"])
        await client.send_message(raw)
    """

    def __init__(
        self,
        credentials: CredentialPair,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            credentials: Access/refresh token pair with Gmail scopes
            transport: Optional httpx transport (tests plug a MockTransport here)
            max_retries: Retries for 429/5xx/connection errors
            timeout: Per-request timeout in seconds
        """
        self.credentials = credentials
        self.access_token = credentials.access_token
        self.refresh_token = credentials.refresh_token
        self.transport = transport
        self.max_retries = settings.gmail_max_retries if max_retries is None else max_retries
        self.timeout = settings.gmail_request_timeout if timeout is None else timeout

    @property
    def headers(self) -> dict:
        return {"Authorization": f"Bearer {self.access_token}"}

    async def _refresh_token(self) -> None:
        """
        Swap in a fresh access token.

        Raises:
            InvalidGrantError: refresh token missing or revoked
            ProviderError: Google could not be reached
        """
        try:
            new_token, _ = await google_auth.refresh_access_token(self.refresh_token)
        except InvalidGrantError:
            raise
        except AuthError as e:
            raise ProviderError(e.message)

        self.access_token = new_token
        logger.info("Gmail access token refreshed")

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        json_data: dict = None,
        params: dict = None,
    ) -> dict:
        """
        Make an authenticated request to Gmail API.

        Handles common error cases:
        - 401: refresh the access token once and replay
        - 404: NotFoundError
        - 429 / 5xx / connection errors: exponential backoff, then give up
        - anything else: ProviderError with Gmail's message

        Args:
            method: HTTP method (GET, POST, DELETE)
            endpoint: API endpoint (relative to base URL)
            json_data: Request body for POST
            params: Query parameters

        Returns:
            Response JSON dict

        Raises:
            InvalidGrantError: Credentials revoked
            RateLimitError: Still rate limited after retries
            NotFoundError: Resource missing
            ProviderError: Any other API failure
        """
        url = f"{GMAIL_API_BASE}{endpoint}"
        attempt = 0
        refreshed = False

        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            while True:
                try:
                    response = await client.request(
                        method=method,
                        url=url,
                        headers=self.headers,
                        json=json_data,
                        params=params,
                    )
                except (httpx.TimeoutException, httpx.ConnectError) as e:
                    if attempt < self.max_retries:
                        wait_time = 2 ** attempt  # Exponential backoff
                        attempt += 1
                        logger.warning(f"Gmail API connection error, retrying in {wait_time}s...")
                        await asyncio.sleep(wait_time)
                        continue

                    logger.error(f"Gmail API: Request failed after {self.max_retries} retries - {e}")
                    raise ProviderError("Gmail service unavailable. Please try again later.")

                status = response.status_code

                # Handle success (including 204)
                if 200 <= status < 300:
                    if status == 204 or not response.content:
                        return {}
                    return response.json()

                if status == 401:
                    if refreshed or not self.refresh_token:
                        logger.warning("Gmail API: credentials rejected")
                        raise InvalidGrantError(_error_message(response) or "Gmail rejected the access token")
                    logger.info("Gmail API: access token expired, refreshing")
                    await self._refresh_token()
                    refreshed = True
                    continue

                # Handle transient errors (Rate limit, Server error)
                if status == 429 or status >= 500:
                    if attempt < self.max_retries:
                        wait_time = 2 ** attempt
                        attempt += 1
                        logger.warning(f"Gmail API transient error {status}, retrying in {wait_time}s...")
                        await asyncio.sleep(wait_time)
                        continue
                    if status == 429:
                        raise RateLimitError()

                if status == 404:
                    raise NotFoundError(endpoint.rsplit("/", 1)[-1])

                message = _error_message(response) or f"Gmail API error: {status}"
                logger.error(f"Gmail API error: {status} - {message}")
                raise ProviderError(message, provider_status=status)

    async def list_messages(
        self,
        label_ids: List[str] = None,
        query: str = None,
        max_results: int = None,
    ) -> List[dict]:
        """List message stubs ({id, threadId}) by label and/or search query."""
        params = {"maxResults": max_results or settings.gmail_list_page_size}
        if label_ids:
            params["labelIds"] = label_ids
        if query:
            params["q"] = query

        response = await self._make_request("GET", "/messages", params=params)
        return response.get("messages", [])

    async def get_message(
        self,
        message_id: str,
        format: str = "full",
        metadata_headers: List[str] = None,
    ) -> dict:
        """Get one message, optionally as a metadata projection."""
        params = {"format": format}
        if format == "metadata":
            params["metadataHeaders"] = metadata_headers or METADATA_HEADERS
        return await self._make_request("GET", f"/messages/{message_id}", params=params)

    async def get_thread(
        self,
        thread_id: str,
        format: str = "full",
        metadata_headers: List[str] = None,
    ) -> dict:
        """Get a thread with all of its messages."""
        params = {"format": format}
        if format == "metadata":
            params["metadataHeaders"] = metadata_headers or METADATA_HEADERS
        return await self._make_request("GET", f"/threads/{thread_id}", params=params)

    async def get_attachment(self, message_id: str, attachment_id: str) -> dict:
        """Get attachment body ({size, data}); data is base64url."""
        return await self._make_request(
            "GET",
            f"/messages/{message_id}/attachments/{attachment_id}",
        )

    async def send_message(self, raw: str, thread_id: Optional[str] = None) -> dict:
        """
        Send an already encoded message.

        Args:
            raw: base64url encoded RFC 2822 message
            thread_id: Thread to attach the message to (replies)

        Returns:
            Gmail's {id, threadId, labelIds}
        """
        request_body = {"raw": raw}
        if thread_id:
            request_body["threadId"] = thread_id

        response = await self._make_request("POST", "/messages/send", json_data=request_body)
        logger.info(f"Email sent successfully, ID: {response.get('id', 'unknown')}")
        return response

    async def trash_message(self, message_id: str) -> dict:
        """
        Move a message to trash.

        Trash instead of permanent delete; the user can recover it.
        """
        logger.info(f"Trashing message: {message_id}")
        return await self._make_request("POST", f"/messages/{message_id}/trash")

    async def list_labels(self) -> List[dict]:
        response = await self._make_request("GET", "/labels")
        return response.get("labels", [])

    async def get_profile(self) -> dict:
        """Profile of the authenticated mailbox; cheapest read-only call."""
        return await self._make_request("GET", "/profile")


def _error_message(response: httpx.Response) -> str:
    """Pull Gmail's error.message out of an error response."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] if response.content else ""
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return error.get("message", "")
    if isinstance(error, str):
        return data.get("error_description", error)
    return ""


# =============================================================================
# MESSAGE PARSING
# =============================================================================

def header_map(payload: dict) -> dict:
    """Lower-cased header name → value."""
    return {h["name"].lower(): h["value"] for h in payload.get("headers", [])}


def parse_message(message: dict, my_email: Optional[str] = None) -> Message:
    """
    Parse Gmail API message into a Message.

    Gmail message structure is complex. Headers are in a list,
    body may be nested in parts, and content is base64url encoded.
    Works for both "full" and "metadata" projections.
    """
    payload = message.get("payload", {})
    headers = header_map(payload)

    from_header = headers.get("from", "")
    sender_name, sender_email = parse_sender(from_header) if from_header else ("Unknown", "")

    html_content, plain_content = extract_bodies(payload)
    if html_content and not plain_content:
        plain_content = strip_html(html_content)

    return Message(
        id=message["id"],
        thread_id=message.get("threadId", message["id"]),
        subject=headers.get("subject", "(No Subject)"),
        sender=from_header,
        sender_name=sender_name,
        sender_email=sender_email,
        to=headers.get("to", ""),
        date=parse_date(headers.get("date", ""), message.get("internalDate")),
        snippet=message.get("snippet", ""),
        html_content=html_content,
        plain_content=plain_content,
        labels=message.get("labelIds", []),
        attachments=extract_attachments(payload),
        my_email=my_email,
    )


def parse_sender(from_header: str) -> Tuple[str, str]:
    """
    Parse 'From' header into name and email.

    Handles formats:
    - "John Doe <john@example.com>"
    - "john@example.com"
    - "<john@example.com>"
    """
    match = re.match(r'^"?([^"<]+)"?\s*<(.+)>$', from_header.strip())
    if match:
        return match.group(1).strip(), match.group(2).strip()

    match = re.match(r'^<(.+)>$', from_header.strip())
    if match:
        email = match.group(1).strip()
        return email, email

    email = from_header.strip()
    return email, email


def parse_addresses(header_value: str) -> List[str]:
    """Split an address list header into bare lower-cased addresses."""
    addresses = []
    for chunk in header_value.split(","):
        _, address = parseaddr(chunk)
        if address:
            addresses.append(address.lower())
    return addresses


def parse_date(date_str: str, internal_date: Optional[str]) -> str:
    """
    Parse date into ISO format string.

    internalDate (milliseconds since epoch) is more reliable than the
    Date header, which is used as fallback.
    """
    if internal_date:
        try:
            timestamp = int(internal_date) / 1000
            return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()
        except (ValueError, TypeError):
            pass
    return date_str


def extract_bodies(payload: dict) -> Tuple[str, str]:
    """
    Return (html, plain) bodies of a payload.

    Simple emails keep the body on the payload itself, multipart ones
    nest it in parts, possibly several levels deep.
    """
    html, plain = "", ""
    mime_type = payload.get("mimeType", "")
    data = payload.get("body", {}).get("data")

    if data and not payload.get("filename"):
        text = decode_body(data)
        if mime_type == "text/html":
            return text, ""
        return "", text

    for part in payload.get("parts", []):
        part_html, part_plain = extract_bodies(part)
        html = html or part_html
        plain = plain or part_plain

    return html, plain


def extract_attachments(payload: dict) -> List[AttachmentInfo]:
    """Collect attachment metadata from all parts, depth first."""
    attachments = []
    body = payload.get("body", {})
    if payload.get("filename") and body.get("attachmentId"):
        attachments.append(AttachmentInfo(
            id=body["attachmentId"],
            filename=payload["filename"],
            mime_type=payload.get("mimeType", "application/octet-stream"),
            size=body.get("size", 0),
        ))
    for part in payload.get("parts", []):
        attachments.extend(extract_attachments(part))
    return attachments


def decode_base64url(data: str) -> bytes:
    """Decode Gmail's URL-safe base64, tolerating missing padding."""
    data = data.replace("-", "+").replace("_", "/")
    padding = 4 - len(data) % 4
    if padding != 4:
        data += "=" * padding
    return base64.b64decode(data)


def decode_body(data: str) -> str:
    """Decode base64url-encoded body data."""
    try:
        return decode_base64url(data).decode("utf-8", errors="replace")
    except ValueError as e:
        logger.warning(f"Failed to decode body: {e}")
        return ""


def strip_html(html: str) -> str:
    """
    Strip HTML tags to get plain text.

    Simple implementation - removes tags and decodes entities.
    """
    html = re.sub(r'<style[^>]*>.*?</style>', '', html, flags=re.DOTALL | re.IGNORECASE)
    html = re.sub(r'<script[^>]*>.*?</script>', '', html, flags=re.DOTALL | re.IGNORECASE)
    html = re.sub(r'<br\s*/?>', '\n', html, flags=re.IGNORECASE)
    html = re.sub(r'<[^>]+>', ' ', html)

    html = html.replace("&nbsp;", " ")
    html = html.replace("&amp;", "&")
    html = html.replace("&lt;", "<")
    html = html.replace("&gt;", ">")
    html = html.replace("&quot;", '"')

    html = re.sub(r'[ \t]+', ' ', html)
    return html.strip()
