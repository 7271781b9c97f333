"""
Mention Pipeline

Wires the listener to the responder:

    captions -> CaptionAggregator -> (hybrid escalation) -> BehaviorProcessor
    chat     -> BehaviorProcessor.handle_chat_message

One pipeline per meeting session; every component is an owned instance.
"""

import logging
from collections import deque
from typing import Deque, List, Optional, Set

from ..common.config import EmceeConfig
from ..common.llm_client import LLMClient
from ..responder.behavior_processor import BehaviorProcessor
from .caption_aggregator import AggregatedCaption, CaptionAggregator, CaptionEntry, PendingMention
from .handlers import ChatMessage
from .hybrid_detector import HybridMentionDetector
from .name_matcher import MentionResult, NameMatcher

logger = logging.getLogger("emcee.listener.pipeline")


class MentionPipeline:
    """
    Feeds captions and chat into mention detection and response routing.

    Usage:
        pipeline = MentionPipeline.from_config(config, processor, llm_client)
        await pipeline.on_caption(entry)
        await pipeline.on_chat(message)
        await pipeline.aclose()
    """

    def __init__(
        self,
        processor: BehaviorProcessor,
        aggregator: CaptionAggregator,
        hybrid: Optional[HybridMentionDetector] = None,
        correction_enabled: bool = False,
        context_size: int = 5,
    ):
        self._processor = processor
        self._aggregator = aggregator
        self._hybrid = hybrid
        self._correction_enabled = correction_enabled
        self._history: Deque[str] = deque(maxlen=max(context_size, 1))
        # Caption ids with an LLM escalation in flight
        self._escalating: Set[str] = set()

        self._aggregator.set_on_aggregated_caption(self._handle_aggregated)
        self._aggregator.set_on_pending_mention_timeout(self._handle_pending_timeout)

    @classmethod
    def from_config(
        cls,
        config: EmceeConfig,
        processor: BehaviorProcessor,
        llm_client: Optional[LLMClient] = None,
    ) -> "MentionPipeline":
        detection = config.detection
        matcher = NameMatcher(fuzzy_match_threshold=detection.fuzzy_match_threshold)
        matcher.initialize(config.agent.display_name, config.agent.name_variations or None)

        aggregator = CaptionAggregator(
            matcher,
            aggregation_window_ms=detection.aggregation_window_ms,
            pending_mention_timeout_ms=detection.pending_mention_timeout_ms,
        )

        hybrid = None
        if detection.hybrid_enabled:
            hybrid = HybridMentionDetector(
                matcher,
                llm_client=llm_client,
                ambiguous_threshold=detection.llm_ambiguous_threshold,
                min_confidence_threshold=detection.llm_min_confidence_threshold,
                context_size=detection.context_size,
            )

        return cls(
            processor,
            aggregator,
            hybrid=hybrid,
            correction_enabled=detection.correction_enabled,
            context_size=detection.context_size,
        )

    @property
    def processor(self) -> BehaviorProcessor:
        return self._processor

    @property
    def aggregator(self) -> CaptionAggregator:
        return self._aggregator

    @property
    def hybrid(self) -> Optional[HybridMentionDetector]:
        return self._hybrid

    @property
    def matcher(self) -> NameMatcher:
        return self._aggregator.matcher

    @property
    def history(self) -> List[str]:
        """Recent "speaker: text" lines, oldest first"""
        return list(self._history)

    def _is_self(self, name: str) -> bool:
        agent_name = self._processor.agent_name.strip().lower()
        return bool(agent_name) and name.strip().lower() == agent_name

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    async def on_caption(self, entry: CaptionEntry) -> None:
        """Accept a caption; interim captions and the agent's own speech are dropped."""
        if not entry.is_final or not entry.text.strip():
            return
        if self._is_self(entry.speaker):
            return

        if self._correction_enabled and self._hybrid is not None:
            entry.text = await self._hybrid.correct_caption_text(entry.text)

        self._history.append(f"{entry.speaker}: {entry.text}")
        self._aggregator.add_caption(entry)

    async def on_chat(self, message: ChatMessage) -> None:
        if self._is_self(message.sender):
            return
        await self._processor.handle_chat_message(message)

    async def on_hand_state(self, is_raised: bool) -> None:
        await self._processor.on_hand_raised_state_changed(is_raised)

    # ------------------------------------------------------------------
    # Aggregator callbacks
    # ------------------------------------------------------------------

    async def _handle_aggregated(self, caption: AggregatedCaption, mention: MentionResult) -> None:
        if self._hybrid is not None and not self._hybrid.is_confident(mention):
            ids = set(caption.caption_ids)
            if ids & self._escalating and not mention.is_mentioned:
                # An earlier fragment of this utterance is still being escalated
                logger.debug("Skipping overlapping escalation for %s", caption.speaker)
                return
            self._escalating |= ids
            try:
                mention = await self._hybrid.detect_mention_hybrid(caption.text, self.history)
            finally:
                self._escalating -= ids

        if not mention.is_mentioned:
            return

        if mention.llm_enhanced:
            self._aggregator.consume_speaker(caption.speaker)

        logger.info("Agent mentioned by %s: %s", caption.speaker, self.matcher.explain_match(mention))
        await self._processor.process_caption_mention(
            caption.speaker, caption.text, recent_captions=self.history,
        )

    async def _handle_pending_timeout(self, pending: PendingMention) -> None:
        logger.info("No follow-up from %s, responding to %r", pending.speaker, pending.caption_text)
        await self._processor.process_caption_mention(
            pending.speaker, pending.caption_text, recent_captions=self.history,
        )

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def drain(self) -> None:
        """Wait for in-flight caption processing."""
        await self._aggregator.drain()

    async def aclose(self) -> None:
        """Flush buffered captions, wait for in-flight work, stop the timer."""
        self._aggregator.flush_buffer()
        await self._aggregator.drain()
        self._aggregator.dispose()
