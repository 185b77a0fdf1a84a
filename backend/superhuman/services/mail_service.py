"""
Mail service - the operations the HTTP layer exposes.

Every call runs inside SessionCache.guard(), so revoked credentials evict
the cached client and surface as AuthExpiredError; other Gmail failures
surface as ProviderError.

Batch policy: when a listing needs one detail call per message the calls run
concurrently and any single failure fails the whole request. Nothing is
silently dropped.
"""
import asyncio
from typing import Iterable, List, Optional

from superhuman.integrations.gmail_client import (
    GmailClient,
    decode_base64url,
    header_map,
    parse_addresses,
    parse_message,
)
from superhuman.models.email import (
    Label,
    Message,
    OutgoingAttachment,
    OutgoingMessage,
    SendResult,
)
from superhuman.services.mime import encode_message
from superhuman.services.session_cache import SessionCache, SessionHandle
from superhuman.utils.logger import get_logger
from superhuman.utils.errors import NotFoundError

logger = get_logger(__name__)

REPLY_HEADERS = ["Message-ID", "Subject", "From", "To", "Date"]


def thread_participants(messages: Iterable[dict]) -> List[str]:
    """Unique addresses across From/To/Cc of a thread, first-seen order."""
    seen = []
    for message in messages:
        headers = header_map(message.get("payload", {}))
        for name in ("from", "to", "cc"):
            for address in parse_addresses(headers.get(name, "")):
                if address not in seen:
                    seen.append(address)
    return seen


class MailService:
    """
    Gmail operations for one signed-in user.

    Usage:
        handle = cache.get_or_create(credentials)
        service = MailService(handle, cache)
        messages = await service.list_messages("INBOX")
        await service.send_reply(thread_id, to, subject, html)
    """

    def __init__(self, handle: SessionHandle, cache: SessionCache):
        self.handle = handle
        self.cache = cache

    async def _fetch_details(self, gmail: GmailClient, stubs: List[dict]) -> List[Message]:
        details = await asyncio.gather(*(
            gmail.get_message(stub["id"], format="metadata")
            for stub in stubs
            if stub.get("id")
        ))
        return [parse_message(detail) for detail in details]

    async def list_messages(self, label: str = "INBOX") -> List[Message]:
        """Latest messages under a label, metadata only."""
        async with self.cache.guard(self.handle) as gmail:
            stubs = await gmail.list_messages(label_ids=[label])
            messages = await self._fetch_details(gmail, stubs)

        logger.info(f"Listed {len(messages)} messages in {label}")
        return messages

    async def search_messages(self, query: str) -> List[Message]:
        """Messages matching a Gmail search query."""
        async with self.cache.guard(self.handle) as gmail:
            stubs = await gmail.list_messages(query=query)
            messages = await self._fetch_details(gmail, stubs)

        logger.info(f"Search matched {len(messages)} messages")
        return messages

    async def get_profile_email(self) -> Optional[str]:
        """Address of the signed-in mailbox, looked up once per handle."""
        if self.handle.profile_email is None:
            async with self.cache.guard(self.handle) as gmail:
                profile = await gmail.get_profile()
            self.handle.profile_email = profile.get("emailAddress")
        return self.handle.profile_email

    async def get_thread(self, thread_id: str) -> List[Message]:
        """
        All messages of a thread, full content.

        Each message carries the thread's participants and the user's own
        address so the UI can tell "me" apart.
        """
        async with self.cache.guard(self.handle) as gmail:
            thread = await gmail.get_thread(thread_id, format="full")
        my_email = await self.get_profile_email()

        raw_messages = thread.get("messages", [])
        participants = thread_participants(raw_messages)

        messages = []
        for raw in raw_messages:
            message = parse_message(raw, my_email=my_email)
            message.participants = participants
            messages.append(message)
        return messages

    async def send_email(
        self,
        to: str,
        subject: str,
        content: str,
        attachments: Optional[List[OutgoingAttachment]] = None,
    ) -> SendResult:
        """Send a new message; content is HTML."""
        raw = encode_message(OutgoingMessage(
            to=to,
            subject=subject,
            html_body=content,
            attachments=attachments or [],
        ))

        async with self.cache.guard(self.handle) as gmail:
            response = await gmail.send_message(raw)

        logger.info(f"Sent email with {len(attachments or [])} attachment(s)")
        return SendResult(id=response.get("id"), thread_id=response.get("threadId"))

    async def send_reply(
        self,
        thread_id: str,
        to: str,
        subject: str,
        content: str,
        attachments: Optional[List[OutgoingAttachment]] = None,
    ) -> SendResult:
        """
        Reply inside a thread.

        In-Reply-To and References point at the thread's last message: its
        Message-ID header, or Gmail's message id when the header is missing.
        """
        async with self.cache.guard(self.handle) as gmail:
            thread = await gmail.get_thread(
                thread_id,
                format="metadata",
                metadata_headers=REPLY_HEADERS,
            )
            messages = thread.get("messages", [])
            if not messages:
                raise NotFoundError(thread_id)

            last = messages[-1]
            reference = header_map(last.get("payload", {})).get("message-id") or last["id"]

            raw = encode_message(OutgoingMessage(
                to=to,
                subject=subject,
                html_body=content,
                attachments=attachments or [],
                in_reply_to_id=reference,
                references_id=reference,
            ))
            response = await gmail.send_message(raw, thread_id=thread_id)

        logger.info(f"Sent reply in thread {thread_id}")
        return SendResult(id=response.get("id"), thread_id=response.get("threadId", thread_id))

    async def delete_message(self, message_id: str) -> SendResult:
        """Move a message to trash."""
        async with self.cache.guard(self.handle) as gmail:
            await gmail.trash_message(message_id)
        return SendResult(id=message_id)

    async def get_attachment(self, message_id: str, attachment_id: str) -> bytes:
        """Decoded attachment bytes."""
        async with self.cache.guard(self.handle) as gmail:
            response = await gmail.get_attachment(message_id, attachment_id)

        data = response.get("data")
        if not data:
            raise NotFoundError(attachment_id)
        return decode_base64url(data)

    async def list_labels(self) -> List[Label]:
        async with self.cache.guard(self.handle) as gmail:
            labels = await gmail.list_labels()
        return [
            Label(id=label["id"], name=label.get("name", label["id"]), type=label.get("type", "user").lower())
            for label in labels
        ]
