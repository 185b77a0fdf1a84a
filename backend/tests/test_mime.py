"""
Unit tests for the outgoing message encoder.
"""
import email
import re
from email.header import decode_header, make_header

import pytest

from superhuman.models.email import OutgoingAttachment, OutgoingMessage
from superhuman.services import mime
from superhuman.services.mime import (
    build_mime_lines,
    encode_message,
    from_base64url,
    make_boundary,
    to_base64url,
)


def decode(raw: str) -> str:
    return from_base64url(raw).decode("utf-8")


def split_headers(text: str):
    """(header lines, body text) split at the first empty line."""
    head, _, body = text.partition("\r\n\r\n")
    return head.split("\r\n"), body


@pytest.fixture
def attachments():
    return [
        OutgoingAttachment(filename="report.pdf", content="JVBERi0xLjQK", mime_type="application/pdf"),
        OutgoingAttachment(filename="photo.png", content="iVBORw0KGgo=", mime_type="image/png"),
    ]


class TestSimpleMessage:
    """Messages without attachments."""

    def test_headers_and_body(self):
        raw = encode_message(OutgoingMessage(to="a@b.com", subject="Hi", html_body="<p>Hello</p>"))

        headers, body = split_headers(decode(raw))

        assert headers == [
            "To: a@b.com",
            "Subject: Hi",
            "Content-Type: text/html; charset=utf-8",
            "MIME-Version: 1.0",
        ]
        assert body == "<p>Hello</p>"
        assert "boundary" not in "\r\n".join(headers)

    def test_body_text_is_not_altered(self):
        raw = encode_message(OutgoingMessage(to="a@b.com", subject="Hi", html_body="Hello\nWorld"))

        lines = decode(raw).split("\r\n")

        assert lines.count("") == 1
        assert lines[-1] == "Hello\nWorld"

    def test_empty_attachment_list_is_not_multipart(self):
        message = OutgoingMessage(to="a@b.com", subject="Hi", html_body="x", attachments=[])

        parsed = email.message_from_bytes(from_base64url(encode_message(message)))

        assert not parsed.is_multipart()
        assert parsed.get_content_type() == "text/html"

    def test_reply_headers(self):
        message = OutgoingMessage(
            to="a@b.com",
            subject="Re: Hi",
            html_body="ok",
            in_reply_to_id="<orig@mail.example.com>",
            references_id="<orig@mail.example.com>",
        )

        headers, _ = split_headers(decode(encode_message(message)))

        assert "In-Reply-To: <orig@mail.example.com>" in headers
        assert "References: <orig@mail.example.com>" in headers
        assert headers.index("References: <orig@mail.example.com>") < headers.index("MIME-Version: 1.0")

    def test_non_ascii_subject_is_rfc2047_encoded(self):
        lines = build_mime_lines(OutgoingMessage(to="a@b.com", subject="Réunion", html_body="x"))

        assert lines[1].startswith("Subject: =?utf-8?")
        parsed = email.message_from_string("\r\n".join(lines))
        assert str(make_header(decode_header(parsed["Subject"]))) == "Réunion"

    def test_long_non_ascii_subject_folds_with_crlf(self):
        subject = ("Réunion " * 12).strip()

        text = decode(encode_message(OutgoingMessage(to="a@b.com", subject=subject, html_body="x")))
        headers, _ = split_headers(text)

        assert "\n" not in text.replace("\r\n", "")
        assert headers[2].startswith(" =?utf-8?")
        parsed = email.message_from_string(text)
        assert str(make_header(decode_header(parsed["Subject"]))) == subject


class TestMultipartMessage:
    """Messages with attachments."""

    def test_delimiter_count_and_order(self, attachments):
        message = OutgoingMessage(to="a@b.com", subject="Files", html_body="<p>see attached</p>", attachments=attachments)

        text = decode(encode_message(message, boundary="boundary_test"))
        lines = text.split("\r\n")

        assert lines.count("--boundary_test") == len(attachments) + 1
        assert lines.count("--boundary_test--") == 1
        assert lines[-1] == "--boundary_test--"
        assert text.index('filename="report.pdf"') < text.index('filename="photo.png"')

    def test_top_level_headers(self, attachments):
        lines = build_mime_lines(
            OutgoingMessage(to="a@b.com", subject="Files", html_body="x", attachments=attachments),
            boundary="boundary_test",
        )

        assert lines[:5] == [
            "To: a@b.com",
            "Subject: Files",
            "MIME-Version: 1.0",
            'Content-Type: multipart/mixed; boundary="boundary_test"',
            "",
        ]

    def test_attachment_content_is_copied_verbatim(self, attachments):
        lines = build_mime_lines(
            OutgoingMessage(to="a@b.com", subject="Files", html_body="x", attachments=attachments),
            boundary="boundary_test",
        )

        assert "JVBERi0xLjQK" in lines
        assert "iVBORw0KGgo=" in lines

    def test_parses_as_multipart_mixed(self, attachments):
        message = OutgoingMessage(to="a@b.com", subject="Files", html_body="<p>hi</p>", attachments=attachments)

        parsed = email.message_from_bytes(from_base64url(encode_message(message)))
        parts = parsed.get_payload()

        assert parsed.get_content_type() == "multipart/mixed"
        assert len(parts) == 3
        assert parts[0].get_content_type() == "text/html"
        assert [p.get_filename() for p in parts[1:]] == ["report.pdf", "photo.png"]
        assert parts[1].get_payload(decode=True) == b"%PDF-1.4\n"

    def test_generated_boundary_matches_header(self, attachments):
        text = decode(encode_message(
            OutgoingMessage(to="a@b.com", subject="Files", html_body="x", attachments=attachments)
        ))

        boundary = re.search(r'boundary="([^"]+)"', text).group(1)
        assert text.rstrip().endswith(f"--{boundary}--")

    def test_boundary_found_in_payload_is_redrawn(self, monkeypatch, attachments):
        drawn = iter(["boundary_clash", "boundary_clean"])
        monkeypatch.setattr(mime, "make_boundary", lambda: next(drawn))

        lines = build_mime_lines(OutgoingMessage(
            to="a@b.com",
            subject="Files",
            html_body="quoting boundary_clash here",
            attachments=attachments,
        ))

        assert 'Content-Type: multipart/mixed; boundary="boundary_clean"' in lines


class TestTransportEncoding:
    """base64url transform."""

    def test_url_safe_alphabet_without_padding(self):
        assert to_base64url(b"\xfb\xff\xfe") == "-__-"
        assert to_base64url(b"\xfb") == "-w"

    def test_encoded_message_has_no_unsafe_characters(self):
        raw = encode_message(OutgoingMessage(to="a@b.com", subject="???>>>", html_body="~~~ÿÿÿ"))

        assert not set(raw) & {"+", "/", "="}

    def test_lines_are_joined_with_crlf(self):
        text = decode(encode_message(OutgoingMessage(to="a@b.com", subject="Hi", html_body="x")))

        assert text.count("\r\n") == 5
        assert "\n" not in text.replace("\r\n", "")


def test_boundaries_are_unique():
    assert len({make_boundary() for _ in range(1000)}) == 1000
