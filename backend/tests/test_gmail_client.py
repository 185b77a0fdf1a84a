"""
Unit tests for Gmail Client.

Tests Gmail response parsing and the request policy (token refresh,
retries, error mapping) against an httpx.MockTransport.
"""
import base64
import json

import httpx
import pytest
from unittest.mock import AsyncMock, patch

from superhuman.integrations.gmail_client import (
    GmailClient,
    decode_base64url,
    parse_addresses,
    parse_message,
    strip_html,
)
from superhuman.models.session import CredentialPair
from superhuman.utils.errors import (
    InvalidGrantError,
    NotFoundError,
    ProviderError,
    RateLimitError,
)


class TestMessageParsing:
    """Test Gmail message parsing."""

    def test_parse_simple_message(self, mock_gmail_message):
        """Test parsing a simple text/plain message."""
        message = parse_message(mock_gmail_message)

        assert message.id == "msg-abc123"
        assert message.thread_id == "thread-xyz789"
        assert message.sender_name == "John Doe"
        assert message.sender_email == "john@example.com"
        assert message.subject == "Test Subject"
        assert message.plain_content == "This is the email body"
        assert message.html_content == ""
        assert message.labels == ["INBOX", "UNREAD"]
        assert message.date.startswith("2025-02-05T10:30:00")

    def test_parse_multipart_message(self, mock_gmail_multipart_message):
        """Nested alternative parts yield both bodies."""
        message = parse_message(mock_gmail_multipart_message)

        assert message.plain_content == "Plain text body"
        assert message.html_content == "<p>HTML body</p>"
        assert message.to == "me@example.com, Bob <bob@example.com>"

    def test_attachments_are_listed(self, mock_gmail_multipart_message):
        message = parse_message(mock_gmail_multipart_message)

        assert len(message.attachments) == 1
        attachment = message.attachments[0]
        assert attachment.id == "att-1"
        assert attachment.filename == "invoice.pdf"
        assert attachment.mime_type == "application/pdf"
        assert attachment.size == 2048

    def test_html_only_message_gets_plain_text(self):
        html = base64.urlsafe_b64encode(b"<p>Hi&nbsp;there</p><br>bye").decode()
        message = parse_message({
            "id": "h1",
            "payload": {"mimeType": "text/html", "body": {"data": html}},
        })

        assert message.plain_content == "Hi there \nbye"
        assert message.thread_id == "h1"

    def test_parse_sender_formats(self):
        """Test parsing different sender header formats."""
        bare = parse_message({
            "id": "1",
            "payload": {"headers": [{"name": "From", "value": "simple@example.com"}]},
        })
        angled = parse_message({
            "id": "2",
            "payload": {"headers": [{"name": "From", "value": "<angled@example.com>"}]},
        })

        assert bare.sender_email == "simple@example.com"
        assert angled.sender_name == "angled@example.com"
        assert angled.sender_email == "angled@example.com"

    def test_parse_missing_fields(self):
        """Test parsing message with missing optional fields."""
        message = parse_message({
            "id": "min-123",
            "threadId": "thread-min",
            "snippet": "minimal message",
            "payload": {"headers": [], "body": {}},
        })

        assert message.snippet == "minimal message"
        assert message.sender_name == "Unknown"
        assert message.subject == "(No Subject)"
        assert message.attachments == []

    def test_base64_decoding(self):
        """Test proper base64url decoding of message body."""
        text = "Hello, special chars: é, ñ, ü"
        encoded = base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")

        message = parse_message({
            "id": "b64",
            "payload": {"mimeType": "text/plain", "body": {"data": encoded}},
        })

        assert message.plain_content == text
        assert decode_base64url(encoded).decode() == text

    def test_parse_addresses(self):
        assert parse_addresses("Alice <Alice@Example.com>, bob@example.com") == [
            "alice@example.com",
            "bob@example.com",
        ]
        assert parse_addresses("") == []

    def test_strip_html_drops_style_and_script(self):
        html = "<style>p {}</style><script>x()</script><p>Text &amp; more</p>"

        assert strip_html(html) == "Text & more"


def make_client(handler, refresh_token="mock-refresh-token", max_retries=0):
    credentials = CredentialPair(access_token="mock-access-token", refresh_token=refresh_token)
    return GmailClient(
        credentials,
        transport=httpx.MockTransport(handler),
        max_retries=max_retries,
    )


def gmail_error(status, message):
    return httpx.Response(status, json={"error": {"code": status, "message": message}})


class TestGmailClientRequests:
    """Test GmailClient methods against a mock transport."""

    @pytest.mark.asyncio
    async def test_list_messages_sends_label_and_page_size(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"messages": [{"id": "m1", "threadId": "t1"}]})

        client = make_client(handler)
        stubs = await client.list_messages(label_ids=["INBOX"], max_results=5)

        assert stubs == [{"id": "m1", "threadId": "t1"}]
        request = seen[0]
        assert request.url.path == "/gmail/v1/users/me/messages"
        assert request.url.params.get_list("labelIds") == ["INBOX"]
        assert request.url.params["maxResults"] == "5"
        assert request.headers["Authorization"] == "Bearer mock-access-token"

    @pytest.mark.asyncio
    async def test_list_messages_without_results(self):
        client = make_client(lambda request: httpx.Response(200, json={"resultSizeEstimate": 0}))

        assert await client.list_messages(query="from:nobody") == []

    @pytest.mark.asyncio
    async def test_metadata_projection_requests_headers(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"id": "m1"})

        await make_client(handler).get_message("m1", format="metadata")

        params = seen[0].url.params
        assert params["format"] == "metadata"
        assert params.get_list("metadataHeaders") == ["Subject", "From", "To", "Date"]

    @pytest.mark.asyncio
    async def test_send_includes_thread_id(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"id": "sent-1", "threadId": "thread-456"})

        response = await make_client(handler).send_message("cmF3", thread_id="thread-456")

        assert response["id"] == "sent-1"
        assert seen[0].method == "POST"
        assert seen[0].url.path.endswith("/messages/send")
        assert json.loads(seen[0].content) == {"raw": "cmF3", "threadId": "thread-456"}

    @pytest.mark.asyncio
    async def test_send_without_thread_omits_thread_id(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"id": "sent-1"})

        await make_client(handler).send_message("cmF3")

        assert json.loads(seen[0].content) == {"raw": "cmF3"}

    @pytest.mark.asyncio
    async def test_trash_uses_trash_endpoint(self):
        """Deleting moves to trash, never a permanent delete."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"id": "m1", "labelIds": ["TRASH"]})

        await make_client(handler).trash_message("m1")

        assert seen[0].method == "POST"
        assert seen[0].url.path.endswith("/messages/m1/trash")

    @pytest.mark.asyncio
    async def test_empty_body_returns_empty_dict(self):
        client = make_client(lambda request: httpx.Response(204))

        assert await client.trash_message("m1") == {}


class TestGmailClientErrorHandling:
    """Test token refresh, retries and error mapping."""

    @pytest.mark.asyncio
    async def test_401_refreshes_token_and_replays(self):
        tokens = []

        def handler(request):
            tokens.append(request.headers["Authorization"])
            if request.headers["Authorization"] == "Bearer mock-access-token":
                return gmail_error(401, "Invalid Credentials")
            return httpx.Response(200, json={"emailAddress": "me@example.com"})

        client = make_client(handler)
        with patch(
            "superhuman.integrations.gmail_client.google_auth.refresh_access_token",
            new_callable=AsyncMock,
            return_value=("new-token", 3600),
        ) as refresh:
            profile = await client.get_profile()

        assert profile == {"emailAddress": "me@example.com"}
        assert tokens == ["Bearer mock-access-token", "Bearer new-token"]
        refresh.assert_awaited_once_with("mock-refresh-token")
        assert client.credentials.access_token == "mock-access-token"

    @pytest.mark.asyncio
    async def test_revoked_refresh_token_raises_invalid_grant(self):
        client = make_client(lambda request: gmail_error(401, "Invalid Credentials"))

        with patch(
            "superhuman.integrations.gmail_client.google_auth.refresh_access_token",
            new_callable=AsyncMock,
            side_effect=InvalidGrantError("Token has been expired or revoked."),
        ):
            with pytest.raises(InvalidGrantError):
                await client.get_profile()

    @pytest.mark.asyncio
    async def test_second_401_after_refresh_raises_invalid_grant(self):
        calls = []

        def handler(request):
            calls.append(request)
            return gmail_error(401, "Invalid Credentials")

        client = make_client(handler)
        with patch(
            "superhuman.integrations.gmail_client.google_auth.refresh_access_token",
            new_callable=AsyncMock,
            return_value=("new-token", 3600),
        ):
            with pytest.raises(InvalidGrantError):
                await client.get_profile()

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_401_without_refresh_token_raises_invalid_grant(self):
        client = make_client(lambda request: gmail_error(401, "Invalid Credentials"), refresh_token="")

        with patch(
            "superhuman.integrations.gmail_client.google_auth.refresh_access_token",
            new_callable=AsyncMock,
        ) as refresh:
            with pytest.raises(InvalidGrantError):
                await client.get_profile()

        refresh.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_404_raises_not_found(self):
        client = make_client(lambda request: gmail_error(404, "Requested entity was not found."))

        with pytest.raises(NotFoundError) as exc_info:
            await client.get_message("missing-id")

        assert exc_info.value.status_code == 404
        assert "missing-id" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_other_errors_carry_gmail_message(self):
        client = make_client(lambda request: gmail_error(400, "Invalid To header"))

        with pytest.raises(ProviderError) as exc_info:
            await client.send_message("cmF3")

        assert exc_info.value.message == "Invalid To header"
        assert exc_info.value.provider_status == 400
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_rate_limit_after_retries(self):
        client = make_client(lambda request: gmail_error(429, "Rate Limit Exceeded"), max_retries=0)

        with pytest.raises(RateLimitError):
            await client.list_messages()

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self):
        responses = iter([
            gmail_error(503, "Backend Error"),
            httpx.Response(200, json={"labels": [{"id": "INBOX", "name": "INBOX"}]}),
        ])
        client = make_client(lambda request: next(responses), max_retries=2)

        with patch("superhuman.integrations.gmail_client.asyncio.sleep", new_callable=AsyncMock) as sleep:
            labels = await client.list_labels()

        assert labels == [{"id": "INBOX", "name": "INBOX"}]
        sleep.assert_awaited_once_with(1)

    @pytest.mark.asyncio
    async def test_server_error_after_retries_is_provider_error(self):
        client = make_client(lambda request: gmail_error(500, "Backend Error"), max_retries=0)

        with pytest.raises(ProviderError) as exc_info:
            await client.list_labels()

        assert exc_info.value.provider_status == 500
        assert exc_info.value.message == "Backend Error"

    @pytest.mark.asyncio
    async def test_connection_error_becomes_provider_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderError):
            await make_client(handler).get_profile()
