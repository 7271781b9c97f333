"""
Emcee Schemas

Behavior patterns, trigger configs and the pending response lifecycle.
"""

from .behavior import (
    AgentBehaviorPattern,
    BehaviorMode,
    ControlledOptions,
    ControlledTrigger,
    ImmediateTrigger,
    PendingResponse,
    QueuedOptions,
    QueuedTrigger,
    QueueStats,
    ResponseChannel,
    ResponseStatus,
    TriggerConfig,
    TriggerSource,
    TERMINAL_STATUSES,
    can_transition,
)
from .presets import PRESET_PATTERNS, DEFAULT_PATTERN_ID, get_patterns_by_category

__all__ = [
    "AgentBehaviorPattern",
    "BehaviorMode",
    "ControlledOptions",
    "ControlledTrigger",
    "ImmediateTrigger",
    "PendingResponse",
    "QueuedOptions",
    "QueuedTrigger",
    "QueueStats",
    "ResponseChannel",
    "ResponseStatus",
    "TriggerConfig",
    "TriggerSource",
    "TERMINAL_STATUSES",
    "can_transition",
    "PRESET_PATTERNS",
    "DEFAULT_PATTERN_ID",
    "get_patterns_by_category",
]
