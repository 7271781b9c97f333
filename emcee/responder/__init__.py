"""
Emcee Responder - Response Routing & Delivery

Turns detected mentions into agent responses and releases them according
to the active behavior pattern.

Key Components:
- BehaviorProcessor: Trigger -> response generation -> routing -> delivery
- ResponseQueue: Pending response lifecycle (approve/reject/dismiss)
- PatternStore: Preset and custom behavior patterns
- HttpMeetingBridge / LLMResponseGenerator: Default collaborators

The FastAPI control server lives in emcee.responder.server.
"""

from .behavior_processor import BehaviorProcessor, GeneratedResponse, TriggerContext
from .bridge import BridgeError, HttpMeetingBridge, LLMResponseGenerator
from .pattern_store import PatternStore, UnknownPatternError
from .response_queue import InvalidTransitionError, ResponseQueue

__all__ = [
    "BehaviorProcessor",
    "GeneratedResponse",
    "TriggerContext",
    "BridgeError",
    "HttpMeetingBridge",
    "LLMResponseGenerator",
    "PatternStore",
    "UnknownPatternError",
    "InvalidTransitionError",
    "ResponseQueue",
]
