"""
Base Handler

Abstract base class for meeting event sources.
Converts source-specific payloads into CaptionEntry / ChatMessage.
"""

import html
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..caption_aggregator import CaptionEntry


_MENTION_SPAN_RE = re.compile(
    r'<span[^>]*itemtype="http://schema\.skype\.com/Mention"[^>]*>([^<]+)</span>',
    re.IGNORECASE,
)
_PARAGRAPH_BREAK_RE = re.compile(r"</p>\s*<p[^>]*>", re.IGNORECASE)
_PARAGRAPH_TAG_RE = re.compile(r"</?p[^>]*>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")


def extract_message_text(content: str) -> str:
    """
    Reduce chat HTML to plain text.

    Teams wraps @mentions in ``<span itemtype=".../Mention">Name</span>``;
    the span is replaced by the bare name so "@Meeting @Helper" noise does
    not pile up.
    """
    if not content:
        return ""
    text = _MENTION_SPAN_RE.sub(r"\1", content)
    text = _PARAGRAPH_BREAK_RE.sub(" ", text)
    text = _PARAGRAPH_TAG_RE.sub("", text)
    text = _TAG_RE.sub("", text)
    text = html.unescape(text)
    return _WHITESPACE_RE.sub(" ", text).strip()


@dataclass
class ChatMessage:
    """
    Common chat message format for all sources.

    ``content`` is plain text; ``mentions_me`` is set when the source itself
    flagged the agent as mentioned (e.g. a structured @mention).
    """
    id: str
    sender: str
    content: str
    timestamp: datetime
    sender_id: Optional[str] = None
    mentions_me: bool = False
    raw_data: Optional[Dict[str, Any]] = None

    @property
    def is_valid(self) -> bool:
        return bool(self.content and self.content.strip())


def parse_timestamp(value: Any) -> datetime:
    """Accept epoch seconds/milliseconds or ISO-8601; default to now (UTC)."""
    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > 1e11 else float(value)
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.now(timezone.utc)


class BaseHandler(ABC):
    """
    Abstract base class for meeting event handlers.

    Each handler must implement:
    - parse_caption: Convert a raw caption event to CaptionEntry
    - parse_chat: Convert a raw chat event to ChatMessage
    - verify_signature: Verify webhook signature (if applicable)
    """

    def __init__(self, source_name: str):
        self.source_name = source_name

    @abstractmethod
    def parse_caption(self, raw_data: Dict[str, Any]) -> Optional[CaptionEntry]:
        """Return a CaptionEntry, or None if the event should be ignored"""

    @abstractmethod
    def parse_chat(self, raw_data: Dict[str, Any]) -> Optional[ChatMessage]:
        """Return a ChatMessage, or None if the event should be ignored"""

    @abstractmethod
    def verify_signature(self, body: bytes, signature: str, timestamp: str) -> bool:
        """True if the webhook signature is valid"""

    def should_process_chat(self, message: ChatMessage, agent_display_name: str = "") -> bool:
        """
        Default chat filter: skip empty messages and the agent's own messages.

        Override in subclass for source-specific filtering.
        """
        if not message.is_valid:
            return False
        if agent_display_name and message.sender.strip().lower() == agent_display_name.strip().lower():
            return False
        return True
