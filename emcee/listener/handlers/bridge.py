"""
Bridge Handler

Handles JSON webhook events posted by a meeting bridge (the process that
actually sits in the call) and converts them to captions and chat messages.

Event shapes:
    {"type": "caption", "id": "...", "speaker": "Ann", "text": "...",
     "timestamp": 1712345678901, "isFinal": true}
    {"type": "chat", "id": "...", "sender": "Ann", "senderId": "...",
     "content": "<p>...</p>", "timestamp": "...", "mentionsMe": false}
    {"type": "hand", "raised": false}
"""

import hashlib
import hmac
import time
import uuid
from typing import Any, Dict, Optional

from ..caption_aggregator import CaptionEntry
from .base import BaseHandler, ChatMessage, extract_message_text, parse_timestamp

SIGNATURE_MAX_AGE_SECONDS = 300


class BridgeHandler(BaseHandler):
    """
    Handler for meeting bridge webhooks.

    Ignores:
    - interim (non-final) captions
    - empty captions and chat messages
    """

    def __init__(self, signing_secret: str = ""):
        super().__init__("bridge")
        self._signing_secret = signing_secret

    def event_type(self, raw_data: Dict[str, Any]) -> str:
        return str(raw_data.get("type", "")).lower()

    def parse_caption(self, raw_data: Dict[str, Any]) -> Optional[CaptionEntry]:
        if not raw_data.get("isFinal", raw_data.get("is_final", True)):
            return None

        text = str(raw_data.get("text", "")).strip()
        if not text:
            return None

        timestamp = raw_data.get("timestamp")
        if not isinstance(timestamp, (int, float)):
            timestamp = time.time() * 1000

        return CaptionEntry(
            id=str(raw_data.get("id") or uuid.uuid4().hex),
            speaker=str(raw_data.get("speaker", "")),
            text=text,
            timestamp=float(timestamp),
            is_final=True,
        )

    def parse_chat(self, raw_data: Dict[str, Any]) -> Optional[ChatMessage]:
        content = extract_message_text(str(raw_data.get("content", "")))
        if not content:
            return None

        return ChatMessage(
            id=str(raw_data.get("id") or uuid.uuid4().hex),
            sender=str(raw_data.get("sender", "")),
            sender_id=raw_data.get("senderId") or raw_data.get("sender_id"),
            content=content,
            timestamp=parse_timestamp(raw_data.get("timestamp")),
            mentions_me=bool(raw_data.get("mentionsMe", raw_data.get("mentions_me", False))),
            raw_data=raw_data,
        )

    def parse_hand_state(self, raw_data: Dict[str, Any]) -> Optional[bool]:
        raised = raw_data.get("raised")
        if isinstance(raised, bool):
            return raised
        return None

    def verify_signature(self, body: bytes, signature: str, timestamp: str) -> bool:
        """
        Verify ``X-Emcee-Signature`` (``v0=<hex hmac-sha256>`` over
        ``v0:{timestamp}:{body}``).
        """
        if not self._signing_secret:
            # Skip verification if no secret configured
            return True

        if not signature or not timestamp:
            return False

        try:
            ts = int(timestamp)
            if abs(time.time() - ts) > SIGNATURE_MAX_AGE_SECONDS:
                return False
        except ValueError:
            return False

        sig_basestring = f"v0:{timestamp}:{body.decode('utf-8')}"
        expected_sig = "v0=" + hmac.new(
            self._signing_secret.encode("utf-8"),
            sig_basestring.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

        return hmac.compare_digest(expected_sig, signature)
