"""
Hybrid Mention Detector

Wraps the local NameMatcher with an optional LLM pass that is only paid for
when the local answer is ambiguous:

- confident local match (>= ambiguous threshold): returned as-is, no LLM call
- medium local match (>= min confidence threshold): LLM validates/upgrades it
- no usable local match: LLM looks for indirect references ("the assistant")

The LLM never makes things worse: when it is unavailable, fails, or answers
with garbage, the local result is returned.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from ..common.llm_client import LLMClient
from ..common.llm_utils import parse_llm_json, sniff_json_flag
from .name_matcher import MentionResult, NameMatcher

logger = logging.getLogger("emcee.listener.hybrid")


DETECTION_POLICY = """You are an agent mention detection system. The AI agent's name is "{agent_name}" (variations: {variations}).

Your task: decide whether the speaker is addressing or mentioning THIS agent.

DETECT AS MENTIONED when:
1. The agent's name is used, even if misspelled or misheard by speech recognition
2. {indirect_rule}
3. Wake words such as "hey {agent_name}", "ok {agent_name}", "excuse me {agent_name}"

DO NOT DETECT when:
- AI or assistants are discussed in general, not this specific agent
- The name is mentioned while clearly talking TO someone else
- Casual conversation that does not involve the agent
{context}
Respond with JSON only:
{{"correctedText": "text with name corrections applied", "nameDetected": true/false, "detectedAs": "matched name or reference" or null, "isIndirectReference": true/false, "confidence": 0.0-1.0, "reasoning": "one sentence"}}"""

INDIRECT_RULE = 'Indirect references such as "the AI", "the assistant", "the bot", "hey assistant", or "you" when clearly addressing the agent'
DIRECT_ONLY_RULE = "Direct name mentions only"

CORRECTION_POLICY = """You are a speech-to-text correction system. Fix obvious speech recognition errors in the text.

The AI agent's name is "{agent_name}".

Fix:
- Misheard names (e.g. "Steev" -> "Steve", "Jon" -> "John")
- Homophones (their/there, your/you're)
- Run-together words ("whattime" -> "what time")
- Missing spaces after punctuation

Rules:
- ONLY fix obvious speech-to-text errors
- Keep the original meaning intact
- If a word sounds like "{agent_name}", write "{agent_name}"
- Return ONLY the corrected text, nothing else"""

MAX_CAPTION_CHARS = 500
MALFORMED_CONFIDENCE = 0.6


@dataclass
class LLMDetection:
    """Parsed LLM answer for one caption"""
    corrected_text: str
    name_detected: bool
    detected_as: Optional[str]
    is_indirect_reference: bool
    confidence: float
    reasoning: str
    raw_response: Optional[str] = None


class HybridMentionDetector:
    """
    Confidence-tiered local/LLM mention detection.

    Uses any object with ``is_available`` and ``generate(prompt, system=...)``
    (normally an LLMClient). The synchronous provider call runs in a worker
    thread so the event loop keeps serving captions.
    """

    def __init__(
        self,
        matcher: NameMatcher,
        llm_client: Optional[LLMClient] = None,
        ambiguous_threshold: float = 0.85,
        min_confidence_threshold: float = 0.50,
        context_size: int = 3,
    ):
        self._matcher = matcher
        self._llm = llm_client
        self._ambiguous_threshold = ambiguous_threshold
        self._min_confidence_threshold = min_confidence_threshold
        self._context_size = context_size
        self._unavailable_logged = False

    @property
    def matcher(self) -> NameMatcher:
        return self._matcher

    @property
    def ambiguous_threshold(self) -> float:
        return self._ambiguous_threshold

    @property
    def is_available(self) -> bool:
        available = self._llm is not None and self._llm.is_available
        if not available and not self._unavailable_logged:
            logger.info("LLM not configured for mention escalation, using local matching only")
            self._unavailable_logged = True
        return available

    def is_confident(self, result: MentionResult) -> bool:
        return result.is_mentioned and result.confidence >= self._ambiguous_threshold

    async def detect_mention_hybrid(
        self,
        text: str,
        context: Optional[Sequence[str]] = None,
    ) -> MentionResult:
        """
        Detect a mention, escalating to the LLM only when needed.

        Args:
            text: Aggregated caption text
            context: Recent "speaker: text" lines, oldest first

        Returns:
            Local MentionResult, or an LLM-enhanced one
        """
        local = self._matcher.detect_mention(text)

        if self.is_confident(local):
            return local

        if not self.is_available:
            return local

        if local.is_mentioned and local.confidence >= self._min_confidence_threshold:
            logger.debug("Medium confidence match (%.2f), validating with LLM", local.confidence)
            return await self._escalate(text, local, context, check_indirect=False)

        logger.debug("No confident local match, checking for indirect references")
        return await self._escalate(text, local, context, check_indirect=True)

    async def _escalate(
        self,
        text: str,
        local: MentionResult,
        context: Optional[Sequence[str]],
        check_indirect: bool,
    ) -> MentionResult:
        try:
            detection = await self.analyze_caption(text, context, check_indirect)
        except Exception as e:
            logger.warning("LLM mention analysis failed, using local result: %s", e)
            return local

        if not detection.name_detected:
            return local

        logger.info(
            "LLM detected agent reference %r (indirect: %s, confidence: %.2f)",
            detection.detected_as, detection.is_indirect_reference, detection.confidence,
        )
        return MentionResult(
            is_mentioned=True,
            matched_variation=detection.detected_as or self._matcher.agent_name,
            confidence=detection.confidence,
            fuzzy_match=True,
            llm_enhanced=True,
            indirect_reference=detection.is_indirect_reference,
        )

    async def analyze_caption(
        self,
        text: str,
        context: Optional[Sequence[str]] = None,
        check_indirect: bool = True,
    ) -> LLMDetection:
        """Ask the LLM whether the caption addresses the agent. Raises on LLM errors."""
        system = self._build_detection_prompt(context, check_indirect)
        prompt = f'Analyze this caption: "{text[:MAX_CAPTION_CHARS]}"'
        raw = await asyncio.to_thread(self._llm.generate, prompt, system=system, max_tokens=200)
        return self._parse_detection(raw, text)

    async def correct_caption_text(self, text: str) -> str:
        """
        Rewrite likely speech-to-text errors (names, homophones).

        Returns the original text when the LLM is unavailable or fails.
        """
        if not text or not text.strip() or not self.is_available:
            return text

        system = CORRECTION_POLICY.format(agent_name=self._matcher.agent_name)
        try:
            corrected = await asyncio.to_thread(
                self._llm.generate, text[:MAX_CAPTION_CHARS], system=system, max_tokens=200,
            )
        except Exception as e:
            logger.warning("Caption correction failed: %s", e)
            return text

        corrected = (corrected or "").strip() or text
        if corrected != text:
            logger.debug("Corrected caption %r -> %r", text, corrected)
        return corrected

    def _build_detection_prompt(self, context: Optional[Sequence[str]], check_indirect: bool) -> str:
        context_block = ""
        if context:
            recent = list(context)[-self._context_size:]
            context_block = "\nRecent conversation:\n" + "\n".join(recent) + "\n"

        return DETECTION_POLICY.format(
            agent_name=self._matcher.agent_name,
            variations=", ".join(self._matcher.variations),
            indirect_rule=INDIRECT_RULE if check_indirect else DIRECT_ONLY_RULE,
            context=context_block,
        )

    def _parse_detection(self, raw: str, text: str) -> LLMDetection:
        """Parse the LLM JSON answer; malformed output is sniffed for nameDetected."""
        data = parse_llm_json(raw)

        if not data:
            detected = sniff_json_flag(raw, "nameDetected")
            return LLMDetection(
                corrected_text=text,
                name_detected=detected,
                detected_as=self._matcher.agent_name if detected else None,
                is_indirect_reference=False,
                confidence=MALFORMED_CONFIDENCE if detected else 0.0,
                reasoning="Parsed from malformed JSON",
                raw_response=raw,
            )

        try:
            confidence = float(data.get("confidence", 0.0))
        except (TypeError, ValueError):
            confidence = 0.0
        confidence = min(max(confidence, 0.0), 1.0)

        detected_as = data.get("detectedAs")
        return LLMDetection(
            corrected_text=str(data.get("correctedText") or text),
            name_detected=data.get("nameDetected") is True,
            detected_as=str(detected_as) if detected_as else None,
            is_indirect_reference=data.get("isIndirectReference") is True,
            confidence=confidence,
            reasoning=str(data.get("reasoning", "")),
            raw_response=raw,
        )
