"""
Emcee Common Module

Shared infrastructure for the listener and responder sides.
"""

from .config import EmceeConfig, load_config
from .events import BehaviorEvent, BehaviorEventType, EventEmitter
from .llm_client import LLMClient

__all__ = [
    "EmceeConfig",
    "load_config",
    "BehaviorEvent",
    "BehaviorEventType",
    "EventEmitter",
    "LLMClient",
]
