"""
Pytest fixtures for Superhuman++ backend tests.
"""
import pytest
from unittest.mock import AsyncMock

from superhuman.models.session import CredentialPair
from superhuman.services.session_cache import SessionCache


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGmailClient:
    """Stands in for GmailClient; every API call is an AsyncMock."""

    def __init__(self, credentials=None):
        self.credentials = credentials
        self.list_messages = AsyncMock(return_value=[])
        self.get_message = AsyncMock(return_value={})
        self.get_thread = AsyncMock(return_value={"messages": []})
        self.get_attachment = AsyncMock(return_value={})
        self.send_message = AsyncMock(return_value={"id": "sent-123", "threadId": "thread-new"})
        self.trash_message = AsyncMock(return_value={})
        self.list_labels = AsyncMock(return_value=[])
        self.get_profile = AsyncMock(return_value={"emailAddress": "me@example.com"})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_gmail():
    return FakeGmailClient()


@pytest.fixture
def credentials():
    return CredentialPair(access_token="mock-access-token", refresh_token="mock-refresh-token")


@pytest.fixture
def session_cache(clock):
    """Cache building a separate FakeGmailClient per credential pair."""
    return SessionCache(idle_timeout=300, client_factory=FakeGmailClient, clock=clock)


@pytest.fixture
def shared_cache(clock, fake_gmail):
    """Cache whose every handle wraps the same fake_gmail."""
    return SessionCache(idle_timeout=300, client_factory=lambda creds: fake_gmail, clock=clock)


@pytest.fixture
def mock_session():
    """Create a mock user session."""
    return {
        "user_id": "user-123",
        "email": "me@example.com",
        "name": "Test User",
        "picture": "https://example.com/avatar.jpg",
        "access_token": "mock-access-token",
        "refresh_token": "mock-refresh-token",
    }


def _headers(**values):
    return [{"name": name.replace("_", "-"), "value": value} for name, value in values.items()]


@pytest.fixture
def mock_gmail_message():
    """Create a mock Gmail API message response."""
    return {
        "id": "msg-abc123",
        "threadId": "thread-xyz789",
        "labelIds": ["INBOX", "UNREAD"],
        "snippet": "This is the email snippet...",
        "internalDate": "1738751400000",
        "payload": {
            "headers": _headers(
                From="John Doe <john@example.com>",
                To="me@example.com",
                Subject="Test Subject",
                Date="Wed, 5 Feb 2025 10:30:00 +0000",
            ),
            "mimeType": "text/plain",
            "body": {
                "data": "VGhpcyBpcyB0aGUgZW1haWwgYm9keQ=="  # Base64 "This is the email body"
            },
        },
    }


@pytest.fixture
def mock_gmail_multipart_message():
    """Create a mock Gmail API multipart message with one attachment."""
    return {
        "id": "msg-multi123",
        "threadId": "thread-multi789",
        "labelIds": ["INBOX"],
        "snippet": "Multipart email snippet...",
        "payload": {
            "headers": _headers(
                From="Jane Smith <jane@example.com>",
                To="me@example.com, Bob <bob@example.com>",
                Subject="Multipart Email",
            ),
            "mimeType": "multipart/mixed",
            "parts": [
                {
                    "mimeType": "multipart/alternative",
                    "parts": [
                        {
                            "mimeType": "text/plain",
                            "body": {"data": "UGxhaW4gdGV4dCBib2R5"},  # "Plain text body"
                        },
                        {
                            "mimeType": "text/html",
                            "body": {"data": "PHA-SFRNTCBib2R5PC9wPg"},  # "<p>HTML body</p>", base64url
                        },
                    ],
                },
                {
                    "mimeType": "application/pdf",
                    "filename": "invoice.pdf",
                    "body": {"attachmentId": "att-1", "size": 2048},
                },
            ],
        },
    }


@pytest.fixture
def gmail_thread():
    """Thread of two messages; the last carries an RFC Message-ID."""
    return {
        "id": "thread-1",
        "messages": [
            {
                "id": "msg-1",
                "threadId": "thread-1",
                "snippet": "First",
                "payload": {
                    "headers": _headers(
                        From="Alice <alice@example.com>",
                        To="me@example.com",
                        Subject="Plans",
                        Message_ID="<first@mail.example.com>",
                    ),
                },
            },
            {
                "id": "msg-2",
                "threadId": "thread-1",
                "snippet": "Second",
                "payload": {
                    "headers": _headers(
                        From="Me <me@example.com>",
                        To="alice@example.com",
                        Cc="Carol <carol@example.com>",
                        Subject="Re: Plans",
                        Message_ID="<second@mail.example.com>",
                    ),
                },
            },
        ],
    }
