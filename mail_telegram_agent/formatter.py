"""Render parsed emails as Telegram HTML messages."""

import re
from datetime import timezone
from email.utils import format_datetime
from html import unescape
from typing import List

from .models import Attachment, ParsedMessage

ELLIPSIS = "…"
DEFAULT_MAX_BODY_CHARS = 1500

_TAG_RE = re.compile(r"<[^>]+>")
# Trailing partial entity such as "&am" or "&lt"
_PARTIAL_ENTITY_RE = re.compile(r"&[a-z]*$")


def escape_html(text: str) -> str:
    """Escape the three characters Telegram's HTML mode treats as markup."""
    if not text:
        return ""
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def strip_tags(html: str) -> str:
    """Remove every HTML tag, keeping the text between them."""
    if not html:
        return ""
    return _TAG_RE.sub("", html)


def shorten(text: str, limit: int) -> str:
    """
    Truncate text to at most `limit` characters, ending with an ellipsis.

    Text already within the limit is returned unchanged. The cut never
    splits an HTML entity produced by escape_html().
    """
    if not text:
        return ""
    if len(text) <= limit:
        return text
    head = text[:max(limit - 1, 0)]
    head = _PARTIAL_ENTITY_RE.sub("", head)
    return head + ELLIPSIS


def body_excerpt(message: ParsedMessage, limit: int = DEFAULT_MAX_BODY_CHARS) -> str:
    """Escaped, truncated body; plain text preferred over HTML with tags removed."""
    if message.text:
        body = message.text
    elif message.html:
        # Decode entities so they are not escaped twice
        body = unescape(strip_tags(message.html))
    else:
        body = ""
    return shorten(escape_html(body), limit)


def _format_date(message: ParsedMessage) -> str:
    if message.date is None:
        return ""
    date = message.date
    if date.tzinfo is None:
        date = date.replace(tzinfo=timezone.utc)
    return format_datetime(date.astimezone(timezone.utc), usegmt=True)


def _attachments_summary(attachments: List[Attachment]) -> str:
    if not attachments:
        return ""
    lines = [
        f"• {escape_html(a.filename or 'unnamed')} ({escape_html(a.content_type)}, {a.size} bytes)"
        for a in attachments
    ]
    return f"\nAttachments ({len(attachments)}):\n" + "\n".join(lines)


def format_message(message: ParsedMessage, max_body_chars: int = DEFAULT_MAX_BODY_CHARS) -> str:
    """
    Build the Telegram notification text for one email.

    Args:
        message: Parsed email.
        max_body_chars: Maximum length of the body excerpt.

    Returns:
        HTML text suitable for parse_mode="HTML".
    """
    sender = message.sender or "Unknown"
    subject = message.subject or "(no subject)"

    return (
        "<b>New Email</b>\n"
        f"<b>From:</b> {escape_html(sender)}\n"
        f"<b>Subject:</b> {escape_html(subject)}\n"
        f"<b>Date:</b> {escape_html(_format_date(message))}\n"
        "\n"
        f"{body_excerpt(message, max_body_chars)}"
        f"{_attachments_summary(message.attachments)}"
    )
