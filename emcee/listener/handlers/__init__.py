"""
Meeting Event Handlers

Each handler converts source-specific events to CaptionEntry / ChatMessage.

Available Handlers:
- BridgeHandler: JSON webhooks from a meeting bridge
"""

from .base import BaseHandler, ChatMessage, extract_message_text
from .bridge import BridgeHandler

__all__ = [
    "BaseHandler",
    "ChatMessage",
    "extract_message_text",
    "BridgeHandler",
]
