"""
Preset Behavior Patterns

Built-in patterns for common agent behaviors. Presets are read-only; custom
patterns are loaded alongside them by the PatternStore.
"""

from typing import Dict, List

from .behavior import (
    AgentBehaviorPattern,
    ControlledOptions,
    ControlledTrigger,
    ImmediateTrigger,
    QueuedOptions,
    QueuedTrigger,
    ResponseChannel,
)


DISABLED = ImmediateTrigger(enabled=False, response_channel=ResponseChannel.CHAT)
IMMEDIATE_VOICE = ImmediateTrigger(response_channel=ResponseChannel.SPEECH)
IMMEDIATE_CHAT = ImmediateTrigger(response_channel=ResponseChannel.CHAT)
CONTROLLED_VOICE = ControlledTrigger(
    response_channel=ResponseChannel.SPEECH,
    controlled_options=ControlledOptions(show_preview=True),
)
CONTROLLED_CHAT = ControlledTrigger(
    response_channel=ResponseChannel.CHAT,
    controlled_options=ControlledOptions(show_preview=True),
)
QUEUED_VOICE = QueuedTrigger(
    response_channel=ResponseChannel.SPEECH,
    queued_options=QueuedOptions(auto_raise_hand=True, speak_on_lower=True),
)


def _preset(pattern_id: str, name: str, description: str, caption, chat) -> AgentBehaviorPattern:
    return AgentBehaviorPattern(
        id=pattern_id,
        name=name,
        description=description,
        is_preset=True,
        caption_mention=caption.model_copy(deep=True),
        chat_mention=chat.model_copy(deep=True),
    )


PRESET_PATTERNS: Dict[str, AgentBehaviorPattern] = {
    p.id: p
    for p in [
        _preset(
            "autonomous-voice", "Autonomous (Voice)",
            "Agent responds immediately via speech to any mention. No human approval needed.",
            IMMEDIATE_VOICE, IMMEDIATE_VOICE,
        ),
        _preset(
            "autonomous-chat", "Autonomous (Chat)",
            "Agent responds immediately via chat to any mention. No human approval needed.",
            IMMEDIATE_CHAT, IMMEDIATE_CHAT,
        ),
        _preset(
            "autonomous-mixed", "Autonomous (Mixed)",
            "Agent responds in the same channel as the trigger. Voice to voice, chat to chat.",
            IMMEDIATE_VOICE, IMMEDIATE_CHAT,
        ),
        _preset(
            "supervised", "Supervised",
            "All responses require controller approval before being sent.",
            CONTROLLED_VOICE, CONTROLLED_CHAT,
        ),
        _preset(
            "polite-queue-voice", "Polite Queue (Voice)",
            "Agent raises hand when ready to speak. Speaks when hand is lowered.",
            QUEUED_VOICE, QUEUED_VOICE,
        ),
        _preset(
            "polite-queue-mixed", "Polite Queue (Mixed)",
            "Voice mentions queue with hand raise. Chat mentions respond immediately.",
            QUEUED_VOICE, IMMEDIATE_CHAT,
        ),
        _preset(
            "chat-only-supervised", "Chat Only (Supervised)",
            "Only responds to chat mentions. Requires controller approval.",
            DISABLED, CONTROLLED_CHAT,
        ),
        _preset(
            "voice-only-autonomous", "Voice Only (Autonomous)",
            "Only responds to voice mentions. Responds immediately via speech.",
            IMMEDIATE_VOICE, DISABLED,
        ),
        _preset(
            "silent-observer", "Silent Observer",
            "Agent listens to all mentions but does not respond.",
            DISABLED, DISABLED,
        ),
    ]
}

DEFAULT_PATTERN_ID = "supervised"

PATTERN_CATEGORIES: Dict[str, List[str]] = {
    "Autonomous": ["autonomous-voice", "autonomous-chat", "autonomous-mixed"],
    "Supervised": ["supervised", "chat-only-supervised"],
    "Polite Queue": ["polite-queue-voice", "polite-queue-mixed"],
    "Specialized": ["voice-only-autonomous", "silent-observer"],
}


def get_patterns_by_category() -> Dict[str, List[AgentBehaviorPattern]]:
    """Group presets for display"""
    return {
        category: [PRESET_PATTERNS[pid] for pid in ids]
        for category, ids in PATTERN_CATEGORIES.items()
    }
