"""Tests for email_parser.py."""

from datetime import datetime, timezone

import pytest

from mail_telegram_agent.email_parser import parse_message
from mail_telegram_agent.exceptions import ParseError

MULTIPART = (
    b"From: =?utf-8?q?J=C3=BCrgen?= <jurgen@example.com>\r\n"
    b"Subject: =?utf-8?b?UmVwb3J0IOKckw==?=\r\n"
    b"Date: Sat, 17 Oct 2026 11:30:00 +0200\r\n"
    b"MIME-Version: 1.0\r\n"
    b'Content-Type: multipart/mixed; boundary="outer"\r\n'
    b"\r\n"
    b"--outer\r\n"
    b'Content-Type: multipart/alternative; boundary="inner"\r\n'
    b"\r\n"
    b"--inner\r\n"
    b"Content-Type: text/plain; charset=utf-8\r\n\r\nPlain body\r\n"
    b"--inner\r\n"
    b"Content-Type: text/html; charset=utf-8\r\n\r\n<p>HTML body</p>\r\n"
    b"--inner--\r\n"
    b"--outer\r\n"
    b"Content-Type: application/pdf\r\n"
    b'Content-Disposition: attachment; filename="report.pdf"\r\n'
    b"Content-Transfer-Encoding: base64\r\n\r\n"
    b"JVBERi0xLjQgZGF0YQ==\r\n"
    b"--outer--\r\n"
)


def test_parses_headers_bodies_and_attachments():
    parsed = parse_message(MULTIPART)

    assert parsed.sender == "Jürgen <jurgen@example.com>"
    assert parsed.subject == "Report ✓"
    assert parsed.date == datetime(2026, 10, 17, 9, 30, tzinfo=timezone.utc)
    assert parsed.text.strip() == "Plain body"
    assert parsed.html.strip() == "<p>HTML body</p>"
    assert len(parsed.attachments) == 1
    attachment = parsed.attachments[0]
    assert attachment.filename == "report.pdf"
    assert attachment.content_type == "application/pdf"
    assert attachment.size == len(b"%PDF-1.4 data")


def test_html_only_message():
    raw = (
        b"From: news@example.com\r\n"
        b"Subject: Weekly\r\n"
        b"Content-Type: text/html; charset=utf-8\r\n"
        b"\r\n"
        b"<h1>Hello</h1>\r\n"
    )
    parsed = parse_message(raw)
    assert parsed.text is None
    assert "<h1>Hello</h1>" in parsed.html
    assert parsed.date is None
    assert parsed.attachments == []


def test_missing_headers_are_empty():
    parsed = parse_message(b"\r\nJust a body\r\n")
    assert parsed.sender == ""
    assert parsed.subject == ""
    assert parsed.text.strip() == "Just a body"


def test_bad_date_is_ignored():
    parsed = parse_message(b"Date: not a date\r\nSubject: x\r\n\r\nbody\r\n")
    assert parsed.date is None


@pytest.mark.parametrize("raw", [b"", "not bytes"])
def test_unparseable_input_raises(raw):
    with pytest.raises(ParseError):
        parse_message(raw)


def test_undecodable_encoded_word_raises_parse_error():
    with pytest.raises(ParseError):
        parse_message(b"From: a@example.com\r\nSubject: =?utf-8?b?A?=\r\n\r\nbody\r\n")
