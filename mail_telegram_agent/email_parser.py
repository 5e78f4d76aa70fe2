"""Parse raw RFC 822 messages into ParsedMessage objects."""

import email
import email.errors
import email.message
import email.utils
import logging
from datetime import datetime
from email.header import decode_header
from typing import List, Optional

from .exceptions import ParseError
from .models import Attachment, ParsedMessage

logger = logging.getLogger(__name__)


def _decode_header_value(header_value: Optional[str]) -> str:
    """Decode email header value (handles encoded words)."""
    if not header_value:
        return ""

    decoded_string = ""
    for part, encoding in decode_header(str(header_value)):
        if isinstance(part, bytes):
            try:
                decoded_string += part.decode(encoding or "utf-8", errors="replace")
            except LookupError:
                # Unknown charset label
                decoded_string += part.decode("utf-8", errors="replace")
        else:
            decoded_string += part

    return decoded_string.strip()


def _decode_part(part: email.message.Message) -> str:
    payload = part.get_payload(decode=True)
    if not payload:
        return ""
    charset = part.get_content_charset() or "utf-8"
    try:
        return payload.decode(charset, errors="replace")
    except LookupError:
        return payload.decode("utf-8", errors="replace")


def _parse_date(date_str: Optional[str]) -> Optional[datetime]:
    """Parse the Date header to an aware datetime."""
    if not date_str:
        return None
    try:
        return email.utils.parsedate_to_datetime(date_str)
    except (TypeError, ValueError) as e:
        logger.debug(f"Error parsing date '{date_str}': {e}")
        return None


def _is_attachment(part: email.message.Message) -> bool:
    if part.is_multipart():
        return False
    if part.get_content_disposition() == "attachment":
        return True
    # Named inline parts (images etc.) are reported as attachments too
    return part.get_filename() is not None


def _attachment_of(part: email.message.Message) -> Attachment:
    payload = part.get_payload(decode=True) or b""
    filename = part.get_filename()
    return Attachment(
        filename=_decode_header_value(filename) if filename else None,
        content_type=part.get_content_type(),
        size=len(payload),
    )


def parse_message(raw: bytes) -> ParsedMessage:
    """
    Parse a raw message.

    Args:
        raw: Full message bytes as fetched from the server.

    Returns:
        The parsed message: headers, first text and HTML bodies, attachments.

    Raises:
        ParseError: If the bytes cannot be interpreted as a message.
    """
    if not isinstance(raw, (bytes, bytearray)):
        raise ParseError(f"Expected raw message bytes, got {type(raw).__name__}")

    try:
        msg = email.message_from_bytes(bytes(raw))

        text_content: Optional[str] = None
        html_content: Optional[str] = None
        attachments: List[Attachment] = []

        for part in msg.walk():
            if part.is_multipart():
                continue
            if _is_attachment(part):
                attachments.append(_attachment_of(part))
                continue
            content_type = part.get_content_type()
            if content_type == "text/plain" and text_content is None:
                text_content = _decode_part(part)
            elif content_type == "text/html" and html_content is None:
                html_content = _decode_part(part)

        sender = _decode_header_value(msg.get("From"))
        subject = _decode_header_value(msg.get("Subject"))
    except (email.errors.MessageError, LookupError, ValueError, TypeError, AttributeError) as e:
        raise ParseError(f"Cannot parse message: {e}") from e

    if not msg.keys() and not msg.get_payload():
        raise ParseError("Message has no headers and no body")

    return ParsedMessage(
        sender=sender,
        subject=subject,
        date=_parse_date(msg.get("Date")),
        text=text_content or None,
        html=html_content or None,
        attachments=attachments,
    )
