"""
Name Matcher

Decides whether a span of caption text mentions the agent. Captions come out
of speech recognition, so besides literal matches the matcher tolerates
phonetic spellings and small edit distances.

Tiers (first hit wins, scores are never blended):
1. Exact substring of a name variation        -> confidence 1.0
2. Exact substring of a phonetic variant      -> confidence 0.9
3. Per-word Levenshtein similarity >= threshold -> confidence = similarity
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

logger = logging.getLogger("emcee.listener.name_matcher")


# Ordered substitution rules for common speech-to-text confusions
PHONETIC_RULES = [
    (re.compile(r"ph"), "f"),
    (re.compile(r"ck"), "k"),
    (re.compile(r"ee"), "i"),
    (re.compile(r"ea"), "e"),
    (re.compile(r"oo"), "u"),
    (re.compile(r"ou"), "ow"),
    (re.compile(r"ie"), "y"),
    (re.compile(r"ey"), "ee"),
    (re.compile(r"y$"), "ie"),
    (re.compile(r"v"), "b"),
    (re.compile(r"th"), "d"),
    (re.compile(r"s$"), "z"),
]

COMMON_MISHEARINGS: Dict[str, List[str]] = {
    "steve": ["steev", "steven", "steph", "step", "sleeve", "steep"],
    "john": ["jon", "joan", "jean", "jan"],
    "mike": ["mic", "mick", "myke", "bike"],
    "alex": ["alec", "alexis", "elec"],
    "sam": ["san", "psalm", "sham"],
    "max": ["macs", "match"],
    "dan": ["den", "then", "tan"],
    "tom": ["thom", "tim", "tum"],
    "bob": ["bop", "pop", "rob"],
    "jim": ["gym", "gem", "tim"],
    "joe": ["jo", "joey", "show"],
    "ben": ["been", "bin", "pen"],
    "ray": ["rey", "rae", "way"],
    "lee": ["li", "lea", "leigh"],
    "amy": ["aimee", "aim", "emmy"],
    "anna": ["ana", "anya", "hannah"],
    "kate": ["cate", "kay", "kait"],
    "lisa": ["leesa", "liza", "elisa"],
    "sara": ["sarah", "sera", "zara"],
    "emma": ["ema", "emmer", "ima"],
    "copilot": ["co-pilot", "co pilot", "cope pilot", "copy lot"],
    "assistant": ["assist ant", "assistance", "a system"],
    "ai": ["a i", "hey", "ay", "eye"],
    "agent": ["a gent", "aged", "urgent"],
}

QUESTION_STARTERS = (
    "what", "when", "where", "who", "whom", "whose", "why", "which", "how",
    "can", "could", "would", "should", "will", "is", "are", "do", "does", "did",
    "have", "has", "may", "might", "shall",
)

REQUEST_PHRASES = (
    "tell me", "explain", "describe", "show me", "help", "find",
    "search", "give me", "i want", "i need", "let me know",
    "can you", "could you", "would you", "please",
)

# "what's" counts as starting with "what"; "whatever" does not
_QUESTION_START_RE = re.compile(r"^(?:%s)\b" % "|".join(QUESTION_STARTERS))

MIN_WORD_LENGTH = 3


@dataclass
class MentionResult:
    """Result of mention detection"""
    is_mentioned: bool
    matched_variation: Optional[str] = None
    confidence: float = 0.0
    fuzzy_match: bool = False
    llm_enhanced: bool = False
    indirect_reference: bool = False

    @classmethod
    def none(cls) -> "MentionResult":
        return cls(is_mentioned=False, matched_variation=None, confidence=0.0, fuzzy_match=False)


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance (insert, delete, substitute all cost 1)."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j], current[j - 1], previous[j - 1]))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Similarity ratio in [0, 1]: ``1 - distance / max_len``."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / max_len


def generate_name_variations(full_name: str) -> List[str]:
    """
    Derive name variations from a display name.

    Returns the full lowercased name, every word of 3+ characters, and
    "first name + last initial" when the name has two or more such words.
    """
    name = full_name.lower().strip()
    if not name:
        return []

    variations = [name]
    parts = [p for p in name.split() if len(p) >= MIN_WORD_LENGTH]
    for part in parts:
        if part not in variations:
            variations.append(part)

    if len(parts) >= 2:
        combo = f"{parts[0]} {parts[-1][0]}"
        if combo not in variations:
            variations.append(combo)

    return variations


def generate_phonetic_variants(variation: str) -> List[str]:
    """Canonical variation first, then rule-based spellings, then known mishearings."""
    variants = [variation]
    for pattern, replacement in PHONETIC_RULES:
        phonetic = pattern.sub(replacement, variation)
        if phonetic != variation and phonetic not in variants:
            variants.append(phonetic)

    for misheard in COMMON_MISHEARINGS.get(variation, []):
        if misheard not in variants:
            variants.append(misheard)

    return variants


def contains_question_or_request(text: str) -> bool:
    """
    Check whether text asks something of the listener.

    True for a question mark anywhere, a question word at the start
    ("what's on the agenda"), or a request phrase anywhere ("please", "can you").
    """
    if "?" in text:
        return True

    lower_text = text.lower().strip()
    if _QUESTION_START_RE.match(lower_text):
        return True

    return any(phrase in lower_text for phrase in REQUEST_PHRASES)


class NameMatcher:
    """
    Classifies text as mentioning the agent.

    Usage:
        matcher = NameMatcher()
        matcher.initialize("Steve Jobs")
        matcher.detect_mention("hey steev can you help")
    """

    def __init__(self, fuzzy_match_threshold: float = 0.75):
        self._fuzzy_match_threshold = fuzzy_match_threshold
        self._agent_name = ""
        self._variations: List[str] = []
        self._phonetic_variations: Dict[str, List[str]] = {}

    @property
    def agent_name(self) -> str:
        return self._agent_name

    @property
    def variations(self) -> List[str]:
        return list(self._variations)

    @property
    def phonetic_variations(self) -> Dict[str, List[str]]:
        return {k: list(v) for k, v in self._phonetic_variations.items()}

    @property
    def fuzzy_match_threshold(self) -> float:
        return self._fuzzy_match_threshold

    @fuzzy_match_threshold.setter
    def fuzzy_match_threshold(self, value: float) -> None:
        self._fuzzy_match_threshold = value

    def initialize(self, agent_name: str, variations: Optional[Sequence[str]] = None) -> None:
        """
        Set the agent name and build the variation sets.

        Args:
            agent_name: Display name of the agent
            variations: Explicit variations; derived from the name when omitted
        """
        self._agent_name = agent_name
        if variations:
            self._variations = [v.lower().strip() for v in variations if v and v.strip()]
        else:
            self._variations = generate_name_variations(agent_name)

        self._phonetic_variations = {
            variation: generate_phonetic_variants(variation)
            for variation in self._variations
        }

        logger.info(
            "Name matcher initialized for %r (variations: %s)",
            agent_name, ", ".join(self._variations),
        )
        logger.debug("Phonetic variations: %s", self._phonetic_variations)

    def detect_mention(self, text: str) -> MentionResult:
        """
        Detect whether text mentions the agent.

        Args:
            text: Caption or message text

        Returns:
            MentionResult from the first tier that matches
        """
        if not text or not self._variations:
            return MentionResult.none()

        lower_text = text.lower()

        for variation in self._variations:
            if variation in lower_text:
                return MentionResult(
                    is_mentioned=True,
                    matched_variation=variation,
                    confidence=1.0,
                    fuzzy_match=False,
                )

        for original, phonetics in self._phonetic_variations.items():
            for phonetic in phonetics:
                if phonetic in lower_text:
                    return MentionResult(
                        is_mentioned=True,
                        matched_variation=original,
                        confidence=0.9,
                        fuzzy_match=True,
                    )

        for word in lower_text.split():
            if len(word) < MIN_WORD_LENGTH:
                continue
            for variation in self._variations:
                score = similarity(word, variation)
                if score >= self._fuzzy_match_threshold:
                    return MentionResult(
                        is_mentioned=True,
                        matched_variation=variation,
                        confidence=score,
                        fuzzy_match=True,
                    )

        return MentionResult.none()

    def contains_question_or_request(self, text: str) -> bool:
        return contains_question_or_request(text)

    def explain_match(self, result: MentionResult) -> str:
        """One-line, human-readable account of a detection result."""
        if not result.is_mentioned:
            return f"No mention (threshold: {self._fuzzy_match_threshold})"
        if result.llm_enhanced:
            kind = "indirect reference" if result.indirect_reference else "LLM-confirmed"
        elif not result.fuzzy_match:
            kind = "exact"
        elif result.confidence == 0.9:
            kind = "phonetic"
        else:
            kind = "fuzzy"
        return f"Mention of {result.matched_variation!r} ({kind}, confidence: {result.confidence:.2f})"
