"""
Caption Aggregator

Live captions arrive as short fragments ("Hey", "Steve", "what's on the
agenda"). The aggregator keeps a rolling per-speaker buffer, merges
fragments inside a time window, and runs a small state machine that waits
for a follow-up question after a bare name mention.

States:
- idle: nothing buffered, no pending mention
- buffering: fragments accumulating
- pending-mention: name heard, waiting for the question

All methods are expected to run on one event loop; there is no locking.
"""

import asyncio
import enum
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from .name_matcher import MentionResult, NameMatcher

logger = logging.getLogger("emcee.listener.aggregator")


@dataclass
class CaptionEntry:
    """A single caption fragment from the meeting (timestamp in ms)"""
    id: str
    speaker: str
    text: str
    timestamp: float
    is_final: bool = True


@dataclass
class AggregatedCaption:
    """Same-speaker fragments merged in chronological order"""
    speaker: str
    text: str
    caption_ids: List[str] = field(default_factory=list)
    start_time: float = 0.0
    end_time: float = 0.0


@dataclass
class PendingMention:
    """Name mention still waiting for its question"""
    speaker: str
    caption_text: str
    timestamp: float
    matched_variation: str


class AggregatorState(str, enum.Enum):
    IDLE = "idle"
    BUFFERING = "buffering"
    PENDING_MENTION = "pending-mention"


AggregatedCallback = Callable[[AggregatedCaption, MentionResult], Any]
TimeoutCallback = Callable[[PendingMention], Any]


class CaptionAggregator:
    """
    Buffers captions per speaker and emits (AggregatedCaption, MentionResult).

    Emission rules for the speaker of the newest caption:
    - mention + question: emit now, clear any pending mention
    - mention, no question: hold as pending mention, arm the timeout
    - no mention, pending mention from this speaker + question:
      emit pending text + new text as one caption
    - no mention, pending mention from this speaker, no question: keep waiting
    - anything else: emit the (non-mention) caption so callers see all speech

    Once a mention is emitted or handed to the timeout callback, that
    speaker's buffered fragments are consumed.
    """

    def __init__(
        self,
        matcher: NameMatcher,
        aggregation_window_ms: float = 3000,
        pending_mention_timeout_ms: float = 3500,
    ):
        self._matcher = matcher
        self._aggregation_window_ms = aggregation_window_ms
        self._pending_mention_timeout_ms = pending_mention_timeout_ms

        self._buffer: List[CaptionEntry] = []
        self._pending_mention: Optional[PendingMention] = None
        self._pending_timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Future] = set()

        self._on_aggregated: Optional[AggregatedCallback] = None
        self._on_pending_timeout: Optional[TimeoutCallback] = None

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def matcher(self) -> NameMatcher:
        return self._matcher

    @property
    def aggregation_window_ms(self) -> float:
        return self._aggregation_window_ms

    @property
    def pending_mention_timeout_ms(self) -> float:
        return self._pending_mention_timeout_ms

    def set_on_aggregated_caption(self, callback: Optional[AggregatedCallback]) -> None:
        """Called with every emitted caption; may be a coroutine function."""
        self._on_aggregated = callback

    def set_on_pending_mention_timeout(self, callback: Optional[TimeoutCallback]) -> None:
        """Called once when a pending mention gets no follow-up in time."""
        self._on_pending_timeout = callback

    def set_config(
        self,
        aggregation_window_ms: Optional[float] = None,
        pending_mention_timeout_ms: Optional[float] = None,
        fuzzy_match_threshold: Optional[float] = None,
    ) -> None:
        if aggregation_window_ms is not None:
            self._aggregation_window_ms = aggregation_window_ms
        if pending_mention_timeout_ms is not None:
            self._pending_mention_timeout_ms = pending_mention_timeout_ms
        if fuzzy_match_threshold is not None:
            self._matcher.fuzzy_match_threshold = fuzzy_match_threshold

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> AggregatorState:
        if self._pending_mention is not None:
            return AggregatorState.PENDING_MENTION
        if self._buffer:
            return AggregatorState.BUFFERING
        return AggregatorState.IDLE

    @property
    def buffered_count(self) -> int:
        return len(self._buffer)

    def get_pending_mention(self) -> Optional[PendingMention]:
        return self._pending_mention

    def has_pending_mention(self) -> bool:
        return self._pending_mention is not None

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def add_caption(self, entry: CaptionEntry) -> None:
        """
        Buffer a caption and reprocess its speaker.

        Entries older than the aggregation window (measured from this
        entry's timestamp) are pruned first. Non-final entries are ignored.

        Must be called from a running event loop: a bare mention arms the
        pending-mention timer with ``loop.call_later``.
        """
        if not entry.is_final:
            return

        self._buffer = [
            c for c in self._buffer
            if entry.timestamp - c.timestamp < self._aggregation_window_ms
        ]
        self._buffer.append(entry)

        self._process_speaker(entry.speaker, entry.text, entry.timestamp)

    def flush_buffer(self) -> None:
        """Force-process every buffered speaker, then clear the buffer.

        Like add_caption, this must run on the event loop.
        """
        if not self._buffer:
            return

        latest: Dict[str, CaptionEntry] = {}
        for caption in self._buffer:
            current = latest.get(caption.speaker)
            if current is None or caption.timestamp >= current.timestamp:
                latest[caption.speaker] = caption

        for speaker, newest in latest.items():
            self._process_speaker(speaker, newest.text, newest.timestamp)

        self._buffer = []

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def _process_speaker(self, speaker: str, newest_text: str, now: float) -> None:
        captions = sorted(
            (
                c for c in self._buffer
                if c.speaker == speaker and now - c.timestamp < self._aggregation_window_ms
            ),
            key=lambda c: c.timestamp,
        )
        if not captions:
            return

        text = " ".join(c.text for c in captions)
        mention = self._matcher.detect_mention(text)
        aggregated = AggregatedCaption(
            speaker=speaker,
            text=text,
            caption_ids=[c.id for c in captions],
            start_time=captions[0].timestamp,
            end_time=captions[-1].timestamp,
        )
        has_question = (
            self._matcher.contains_question_or_request(text)
            or self._matcher.contains_question_or_request(newest_text)
        )

        if mention.is_mentioned:
            if has_question:
                self._clear_pending_mention()
                self.consume_speaker(speaker)
                self._emit(aggregated, mention)
            else:
                self._set_pending_mention(PendingMention(
                    speaker=speaker,
                    caption_text=text,
                    timestamp=now,
                    matched_variation=mention.matched_variation or "",
                ))
            return

        pending = self._pending_mention
        if pending is not None and pending.speaker == speaker:
            if has_question:
                combined_text = f"{pending.caption_text} {text}"
                combined = AggregatedCaption(
                    speaker=speaker,
                    text=combined_text,
                    caption_ids=aggregated.caption_ids,
                    start_time=pending.timestamp,
                    end_time=aggregated.end_time,
                )
                combined_mention = self._matcher.detect_mention(combined_text)
                self._clear_pending_mention()
                self.consume_speaker(speaker)
                self._emit(combined, combined_mention)
            return

        self._emit(aggregated, mention)

    def consume_speaker(self, speaker: str) -> None:
        """Drop a speaker's buffered captions so they cannot trigger again."""
        self._buffer = [c for c in self._buffer if c.speaker != speaker]

    # ------------------------------------------------------------------
    # Pending mention timer
    # ------------------------------------------------------------------

    def _set_pending_mention(self, pending: PendingMention) -> None:
        self._clear_pending_mention()
        self._pending_mention = pending
        logger.info("Pending mention set, waiting for follow-up: %r", pending.caption_text)

        loop = asyncio.get_running_loop()
        self._pending_timer = loop.call_later(
            self._pending_mention_timeout_ms / 1000.0,
            self._fire_pending_timeout,
            pending,
        )

    def _clear_pending_mention(self) -> None:
        if self._pending_timer is not None:
            self._pending_timer.cancel()
            self._pending_timer = None
        self._pending_mention = None

    def _fire_pending_timeout(self, pending: PendingMention) -> None:
        # A superseded mention's timer is cancelled; this guards a race with cancel()
        if self._pending_mention is not pending:
            return

        self._pending_timer = None
        logger.info("Pending mention timed out, processing anyway: %r", pending.caption_text)
        try:
            if self._on_pending_timeout is not None:
                self._dispatch(self._on_pending_timeout, pending)
        finally:
            self._pending_mention = None
            self.consume_speaker(pending.speaker)

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def _emit(self, caption: AggregatedCaption, mention: MentionResult) -> None:
        if self._on_aggregated is not None:
            self._dispatch(self._on_aggregated, caption, mention)

    def _dispatch(self, callback: Callable[..., Any], *args: Any) -> None:
        result = callback(*args)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Caption callback failed: %s", exc, exc_info=exc)

    async def drain(self) -> None:
        """Wait for callback coroutines scheduled so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def dispose(self) -> None:
        """Cancel the timer and drop all buffered state."""
        self._clear_pending_mention()
        self._buffer = []
