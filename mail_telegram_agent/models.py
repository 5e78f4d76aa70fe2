"""Data models for mail notifications."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Attachment:
    """Attachment descriptor; the content itself is never kept."""
    filename: Optional[str]
    content_type: str
    size: int          # decoded size in bytes


@dataclass(frozen=True)
class ParsedMessage:
    """Represents a parsed email message."""
    sender: str        # "Name <email>"
    subject: str
    date: Optional[datetime]
    text: Optional[str] = None   # text/plain body
    html: Optional[str] = None   # text/html body
    attachments: List[Attachment] = field(default_factory=list)


@dataclass
class NotificationPayload:
    """Body of a Telegram sendMessage request."""
    chat_id: str
    text: str
    parse_mode: str = "HTML"
    disable_web_page_preview: bool = True
    options: Dict[str, Any] = field(default_factory=dict)  # extra Bot API fields

    def to_json(self) -> Dict[str, Any]:
        body = {
            "chat_id": self.chat_id,
            "text": self.text,
            "parse_mode": self.parse_mode,
            "disable_web_page_preview": self.disable_web_page_preview,
        }
        body.update(self.options)
        return body
