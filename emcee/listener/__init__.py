"""
Emcee Listener

Turns live captions and chat into mention decisions.

Pipeline:
1. CaptionAggregator merges caption fragments per speaker
2. NameMatcher scores the text (exact / phonetic / fuzzy)
3. HybridMentionDetector escalates ambiguous cases to an LLM
4. MentionPipeline (emcee.listener.pipeline) hands mentions to the responder
"""

from .name_matcher import MentionResult, NameMatcher, contains_question_or_request
from .caption_aggregator import (
    AggregatedCaption,
    AggregatorState,
    CaptionAggregator,
    CaptionEntry,
    PendingMention,
)
from .hybrid_detector import HybridMentionDetector, LLMDetection
from .handlers import BaseHandler, BridgeHandler, ChatMessage, extract_message_text

__all__ = [
    "MentionResult",
    "NameMatcher",
    "contains_question_or_request",
    "AggregatedCaption",
    "AggregatorState",
    "CaptionAggregator",
    "CaptionEntry",
    "PendingMention",
    "HybridMentionDetector",
    "LLMDetection",
    "BaseHandler",
    "BridgeHandler",
    "ChatMessage",
    "extract_message_text",
]
