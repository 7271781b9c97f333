"""
Behavior Pattern & Pending Response Schemas

A behavior pattern maps each trigger source to a response channel and a
delivery mode. Trigger configs are a tagged union over ``behavior_mode`` so
mode-specific options only exist on the matching variant.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


# ============================================================================
# Enums
# ============================================================================

class TriggerSource(str, Enum):
    """Sources that can trigger the agent"""
    CAPTION_MENTION = "caption-mention"
    CHAT_MENTION = "chat-mention"


class ResponseChannel(str, Enum):
    """Channels through which the agent can respond"""
    CHAT = "chat"
    SPEECH = "speech"
    BOTH = "both"


class BehaviorMode(str, Enum):
    """How a response is released.

    - immediate: deliver as soon as it is generated
    - controlled: hold until a controller approves it
    - queued: raise hand, deliver when the hand is lowered
    """
    IMMEDIATE = "immediate"
    CONTROLLED = "controlled"
    QUEUED = "queued"


class ResponseStatus(str, Enum):
    """Lifecycle of a pending response"""
    PENDING = "pending"  # Waiting for approval/action
    APPROVED = "approved"  # Approved, about to be sent
    REJECTED = "rejected"  # Rejected by controller
    HAND_RAISED = "hand-raised"  # Hand raised, waiting for acknowledgment
    SENDING = "sending"  # Being sent/spoken
    SENT = "sent"
    FAILED = "failed"
    DISMISSED = "dismissed"  # Dropped as stale


TERMINAL_STATUSES = frozenset({
    ResponseStatus.SENT,
    ResponseStatus.FAILED,
    ResponseStatus.REJECTED,
    ResponseStatus.DISMISSED,
})

# HAND_RAISED is only entered at creation; HAND_RAISED -> PENDING is the
# fallback when raising the hand fails
ALLOWED_TRANSITIONS: Dict[ResponseStatus, frozenset] = {
    ResponseStatus.PENDING: frozenset({
        ResponseStatus.APPROVED,
        ResponseStatus.SENDING,
        ResponseStatus.REJECTED,
        ResponseStatus.DISMISSED,
    }),
    ResponseStatus.APPROVED: frozenset({ResponseStatus.SENDING}),
    ResponseStatus.HAND_RAISED: frozenset({
        ResponseStatus.SENDING,
        ResponseStatus.DISMISSED,
        ResponseStatus.PENDING,
    }),
    ResponseStatus.SENDING: frozenset({ResponseStatus.SENT, ResponseStatus.FAILED}),
    ResponseStatus.SENT: frozenset(),
    ResponseStatus.FAILED: frozenset(),
    ResponseStatus.REJECTED: frozenset(),
    ResponseStatus.DISMISSED: frozenset(),
}


def can_transition(current: ResponseStatus, target: ResponseStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


# ============================================================================
# Trigger configuration (tagged union on behavior_mode)
# ============================================================================

class ControlledOptions(BaseModel):
    """Options for controlled mode"""
    show_preview: bool = True


class QueuedOptions(BaseModel):
    """Options for queued mode"""
    auto_raise_hand: bool = True
    speak_on_lower: bool = True


class ImmediateTrigger(BaseModel):
    """Respond as soon as the response is generated"""
    behavior_mode: Literal["immediate"] = "immediate"
    enabled: bool = True
    response_channel: ResponseChannel = ResponseChannel.CHAT


class ControlledTrigger(BaseModel):
    """Hold the response until a controller approves it"""
    behavior_mode: Literal["controlled"] = "controlled"
    enabled: bool = True
    response_channel: ResponseChannel = ResponseChannel.CHAT
    controlled_options: ControlledOptions = Field(default_factory=ControlledOptions)


class QueuedTrigger(BaseModel):
    """Raise hand and deliver once acknowledged"""
    behavior_mode: Literal["queued"] = "queued"
    enabled: bool = True
    response_channel: ResponseChannel = ResponseChannel.SPEECH
    queued_options: QueuedOptions = Field(default_factory=QueuedOptions)


TriggerConfig = Annotated[
    Union[ImmediateTrigger, ControlledTrigger, QueuedTrigger],
    Field(discriminator="behavior_mode"),
]


class AgentBehaviorPattern(BaseModel):
    """Complete behavior configuration; each trigger source is independent"""
    id: str
    name: str
    description: str = ""
    is_preset: bool = False
    caption_mention: TriggerConfig
    chat_mention: TriggerConfig

    def trigger_config(self, source: TriggerSource) -> Union[ImmediateTrigger, ControlledTrigger, QueuedTrigger]:
        if source == TriggerSource.CAPTION_MENTION:
            return self.caption_mention
        return self.chat_mention


# ============================================================================
# Pending responses
# ============================================================================

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PendingResponse(BaseModel):
    """A generated response travelling through its lifecycle"""
    id: str
    created_at: datetime = Field(default_factory=_utcnow)
    trigger_source: TriggerSource
    trigger_content: str
    trigger_author: str
    response_text: str
    response_channel: ResponseChannel
    status: ResponseStatus = ResponseStatus.PENDING
    behavior_mode: BehaviorMode
    status_changed_at: datetime = Field(default_factory=_utcnow)
    error_message: Optional[str] = None
    # Per-channel outcome of the last delivery: "sent" or the error text
    channel_results: Dict[str, str] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def channels(self) -> List[ResponseChannel]:
        if self.response_channel == ResponseChannel.BOTH:
            return [ResponseChannel.CHAT, ResponseChannel.SPEECH]
        return [self.response_channel]


class QueueStats(BaseModel):
    """Counts of responses per status"""
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    hand_raised: int = 0
    sending: int = 0
    sent: int = 0
    failed: int = 0
    dismissed: int = 0
