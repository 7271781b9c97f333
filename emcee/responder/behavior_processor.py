"""
Behavior Processor

Takes a detected trigger (caption or chat mention) through response
generation and routes the result according to the active behavior pattern:

- immediate: deliver right away
- controlled: hold as pending until approve_response / reject_response
- queued: raise the hand, deliver when the hand is lowered

Collaborators (response generator, chat/speech senders, hand raise/lower)
are injected as coroutine functions. Failures never propagate to the
caller; they surface as response status and events.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ..common.events import BehaviorEvent, BehaviorEventType, EventEmitter, EventListener
from ..common.schemas import (
    BehaviorMode,
    PendingResponse,
    QueuedTrigger,
    ResponseChannel,
    ResponseStatus,
    TriggerSource,
)
from ..listener.handlers import ChatMessage
from .pattern_store import PatternStore
from .response_queue import (
    DEFAULT_RETENTION_MS,
    InvalidTransitionError,
    ResponseQueue,
    generate_response_id,
)

logger = logging.getLogger("emcee.responder.processor")


@dataclass
class TriggerContext:
    """What the agent is responding to"""
    source: TriggerSource
    content: str
    author: str
    author_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    # e.g. {"recent_captions": [...], "participant_count": 4}
    meeting_context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GeneratedResponse:
    """Result from the response generator"""
    text: str
    confidence: Optional[float] = None


ResponseGenerator = Callable[[TriggerContext], Awaitable[GeneratedResponse]]
TextSender = Callable[[str], Awaitable[None]]
HandAction = Callable[[], Awaitable[None]]


class BehaviorProcessor:
    """
    Manages the flow from trigger detection to response delivery.

    Usage:
        processor = BehaviorProcessor(
            agent_name="Steve",
            patterns=PatternStore("supervised"),
            response_generator=agent.respond,
            send_chat=bridge.send_chat,
        )
        await processor.process_caption_mention("Ann", "Steve, what's next?")
        await processor.approve_response(processor.queue.get_pending()[0].id)
    """

    def __init__(
        self,
        agent_name: str,
        response_generator: ResponseGenerator,
        patterns: Optional[PatternStore] = None,
        name_variations: Optional[Sequence[str]] = None,
        send_chat: Optional[TextSender] = None,
        speak: Optional[TextSender] = None,
        raise_hand: Optional[HandAction] = None,
        lower_hand: Optional[HandAction] = None,
        queue: Optional[ResponseQueue] = None,
        history_retention_ms: int = DEFAULT_RETENTION_MS,
    ):
        self._agent_name = agent_name
        self._name_variations = [v for v in (name_variations or []) if v and v.strip()]
        self._response_generator = response_generator
        self._patterns = patterns or PatternStore()
        self._send_chat = send_chat
        self._speak = speak
        self._raise_hand = raise_hand
        self._lower_hand = lower_hand
        self._queue = queue or ResponseQueue()
        self._events = EventEmitter()
        self._hand_raised = False
        self._history_retention_ms = history_retention_ms

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def queue(self) -> ResponseQueue:
        return self._queue

    @property
    def patterns(self) -> PatternStore:
        return self._patterns

    @property
    def agent_name(self) -> str:
        return self._agent_name

    @property
    def is_hand_raised(self) -> bool:
        return self._hand_raised

    def add_listener(self, listener: EventListener) -> Callable[[], None]:
        """Subscribe to BehaviorEvents; returns an unsubscribe callable."""
        return self._events.add_listener(listener)

    def _emit(self, event_type: BehaviorEventType, pending_id: Optional[str] = None, **data: Any) -> None:
        self._events.emit(BehaviorEvent(type=event_type, pending_id=pending_id, data=data))

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def process_caption_mention(
        self,
        speaker: str,
        text: str,
        speaker_id: Optional[str] = None,
        recent_captions: Optional[List[str]] = None,
    ) -> Optional[PendingResponse]:
        context = TriggerContext(
            source=TriggerSource.CAPTION_MENTION,
            content=text,
            author=speaker,
            author_id=speaker_id,
        )
        if recent_captions:
            context.meeting_context["recent_captions"] = list(recent_captions)
        return await self.process_trigger(context)

    async def process_chat_mention(self, message: ChatMessage) -> Optional[PendingResponse]:
        return await self.process_trigger(TriggerContext(
            source=TriggerSource.CHAT_MENTION,
            content=message.content,
            author=message.sender,
            author_id=message.sender_id,
            timestamp=message.timestamp,
        ))

    async def handle_chat_message(self, message: ChatMessage) -> Optional[PendingResponse]:
        """Process a chat message only if it mentions the agent."""
        if not (message.mentions_me or self.is_mention_of_agent(message.content)):
            return None
        return await self.process_chat_mention(message)

    def is_mention_of_agent(self, text: str) -> bool:
        """
        Literal check for the display name or a variation (``@name`` included).

        Chat text is typed, not transcribed, so no fuzzy matching here.
        """
        if not text:
            return False
        lower_text = text.lower()
        names = [self._agent_name.lower().strip()] + [v.lower().strip() for v in self._name_variations]
        return any(name and name in lower_text for name in names)

    async def process_trigger(self, context: TriggerContext) -> Optional[PendingResponse]:
        """
        Run a trigger through generation and routing.

        Returns:
            The created PendingResponse, or None if the trigger was ignored
            or generation failed
        """
        pattern = self._patterns.get_current()
        trigger = pattern.trigger_config(context.source)

        if not trigger.enabled:
            logger.info("Trigger %s is disabled in pattern %r", context.source.value, pattern.id)
            self._emit(
                BehaviorEventType.TRIGGER_IGNORED,
                source=context.source.value,
                author=context.author,
                pattern_id=pattern.id,
            )
            return None

        self._emit(
            BehaviorEventType.TRIGGER_DETECTED,
            source=context.source.value,
            content=context.content,
            author=context.author,
        )
        logger.info(
            "Processing %s from %s: %r",
            context.source.value, context.author, context.content[:50],
        )

        try:
            generated = await self._response_generator(context)
            if not generated or not generated.text or not generated.text.strip():
                raise ValueError("Response generator returned an empty response")
        except Exception as e:
            logger.error("Response generation failed for %s: %s", context.source.value, e)
            self._emit(BehaviorEventType.RESPONSE_FAILED, error=str(e))
            return None

        self._emit(BehaviorEventType.RESPONSE_GENERATED, response_text=generated.text)
        self._queue.clear_completed(self._history_retention_ms)

        mode = BehaviorMode(trigger.behavior_mode)
        auto_raise = isinstance(trigger, QueuedTrigger) and trigger.queued_options.auto_raise_hand
        pending = PendingResponse(
            id=generate_response_id(),
            trigger_source=context.source,
            trigger_content=context.content,
            trigger_author=context.author,
            response_text=generated.text,
            response_channel=trigger.response_channel,
            behavior_mode=mode,
            status=ResponseStatus.HAND_RAISED if auto_raise else ResponseStatus.PENDING,
        )
        self._queue.add(pending)
        self._emit(
            BehaviorEventType.RESPONSE_QUEUED,
            pending.id,
            behavior_mode=mode.value,
            channel=pending.response_channel.value,
            status=pending.status.value,
        )

        if mode == BehaviorMode.IMMEDIATE:
            await self.deliver_response(pending)
        elif mode == BehaviorMode.CONTROLLED:
            logger.info("Response %s waiting for controller approval", pending.id)
        elif auto_raise:
            await self._raise_hand_for(pending)
        else:
            logger.info("Queued response %s waiting without hand raise", pending.id)

        return pending

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def deliver_response(self, pending: PendingResponse) -> PendingResponse:
        """
        Send a response through its channel(s).

        Both channels of a ``both`` response are sent concurrently and each
        outcome is recorded in ``channel_results``; any failed channel marks
        the whole response failed. Sends are not retried.

        Raises:
            InvalidTransitionError: the response cannot be sent from its status
        """
        self._queue.update_status(pending.id, ResponseStatus.SENDING)
        self._emit(BehaviorEventType.RESPONSE_SENDING, pending.id, channel=pending.response_channel.value)

        channels = pending.channels()
        results = await asyncio.gather(
            *(self._send(channel, pending.response_text) for channel in channels),
            return_exceptions=True,
        )

        errors = []
        pending.channel_results = {}
        for channel, result in zip(channels, results):
            if isinstance(result, BaseException):
                message = str(result) or type(result).__name__
                pending.channel_results[channel.value] = message
                errors.append(f"{channel.value}: {message}")
            else:
                pending.channel_results[channel.value] = "sent"

        if errors:
            error_message = "; ".join(errors)
            self._queue.update_status(pending.id, ResponseStatus.FAILED, error_message=error_message)
            logger.warning("Delivery of %s failed: %s", pending.id, error_message)
            self._emit(
                BehaviorEventType.RESPONSE_FAILED,
                pending.id,
                error=error_message,
                channel_results=dict(pending.channel_results),
            )
        else:
            self._queue.update_status(pending.id, ResponseStatus.SENT)
            logger.info("Response delivered via %s: %s", pending.response_channel.value, pending.id)
            self._emit(
                BehaviorEventType.RESPONSE_SENT,
                pending.id,
                channel_results=dict(pending.channel_results),
            )

        return pending

    async def _send(self, channel: ResponseChannel, text: str) -> None:
        if channel == ResponseChannel.CHAT:
            if self._send_chat is None:
                raise RuntimeError("Chat sender not configured")
            await self._send_chat(text)
        else:
            if self._speak is None:
                raise RuntimeError("Speech sender not configured")
            await self._speak(text)

    # ------------------------------------------------------------------
    # Controller actions
    # ------------------------------------------------------------------

    async def approve_response(self, response_id: str) -> Optional[PendingResponse]:
        """Approve a pending response and deliver it."""
        try:
            pending = self._queue.approve(response_id)
        except (KeyError, InvalidTransitionError) as e:
            logger.warning("Cannot approve response %s: %s", response_id, e)
            return None

        self._emit(BehaviorEventType.RESPONSE_APPROVED, pending.id)
        return await self.deliver_response(pending)

    def reject_response(self, response_id: str) -> Optional[PendingResponse]:
        try:
            pending = self._queue.reject(response_id)
        except (KeyError, InvalidTransitionError) as e:
            logger.warning("Cannot reject response %s: %s", response_id, e)
            return None

        logger.info("Response %s rejected", response_id)
        self._emit(BehaviorEventType.RESPONSE_REJECTED, pending.id)
        return pending

    async def dismiss_response(self, response_id: str) -> Optional[PendingResponse]:
        """
        Drop a pending or hand-raised response.

        Dismissing the last hand-raised response lowers the agent's hand.
        """
        item = self._queue.get_item(response_id)
        was_hand_raised = item is not None and item.status == ResponseStatus.HAND_RAISED
        try:
            pending = self._queue.dismiss(response_id)
        except (KeyError, InvalidTransitionError) as e:
            logger.warning("Cannot dismiss response %s: %s", response_id, e)
            return None

        logger.info("Response %s dismissed", response_id)
        self._emit(BehaviorEventType.RESPONSE_DISMISSED, pending.id)

        if was_hand_raised and self._queue.next_for_hand() is None and self._hand_raised:
            await self._lower_hand_quietly()

        return pending

    # ------------------------------------------------------------------
    # Hand state
    # ------------------------------------------------------------------

    def _still_hand_raised(self, response_id: str) -> bool:
        item = self._queue.get_item(response_id)
        return item is not None and item.status == ResponseStatus.HAND_RAISED

    async def _raise_hand_for(self, pending: PendingResponse) -> None:
        """
        Raise the hand for a hand-raised response.

        The response may be dismissed or delivered while the raise is in
        flight; only a response still in hand-raised is reverted or marked.
        """
        called = False
        try:
            if self._raise_hand is None:
                raise RuntimeError("Hand raiser not configured")
            if not self._hand_raised:
                called = True
                await self._raise_hand()
        except Exception as e:
            logger.error("Failed to raise hand for %s: %s", pending.id, e)
            if self._still_hand_raised(pending.id):
                # Fall back to manual handling
                self._queue.update_status(pending.id, ResponseStatus.PENDING)
            return

        if not self._still_hand_raised(pending.id):
            logger.info("Response %s left hand-raised while raising the hand", pending.id)
            if called and self._queue.next_for_hand() is None:
                await self._lower_hand_quietly()
            return

        self._hand_raised = True
        logger.info("Hand raised for response %s", pending.id)
        self._emit(BehaviorEventType.HAND_RAISED, pending.id)

    async def _lower_hand_quietly(self) -> None:
        self._hand_raised = False
        if self._lower_hand is None:
            return
        try:
            await self._lower_hand()
        except Exception as e:
            logger.warning("Failed to lower hand: %s", e)
            return
        self._emit(BehaviorEventType.HAND_LOWERED, reason="dismissed")

    async def on_hand_lowered(self) -> Optional[PendingResponse]:
        """
        The meeting reports the agent's hand was lowered.

        Delivers the oldest hand-raised queued response (at most one). If
        more are waiting, the hand is raised again for the next one.
        """
        self._hand_raised = False
        pending = self._queue.next_for_hand()
        self._emit(BehaviorEventType.HAND_LOWERED, pending.id if pending else None)

        if pending is None:
            logger.debug("Hand lowered with no queued response")
            return None

        logger.info("Hand lowered, delivering queued response %s", pending.id)
        await self.deliver_response(pending)

        following = self._queue.next_for_hand()
        if following is not None:
            await self._raise_hand_for(following)

        return pending

    async def on_hand_raised_state_changed(self, is_raised: bool) -> None:
        """Meeting hand-state notification; a lowered hand releases one response."""
        if not is_raised and self._hand_raised:
            await self.on_hand_lowered()
            return
        self._hand_raised = is_raised
