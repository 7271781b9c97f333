"""
Pattern Store

Read-only access to behavior patterns: the built-in presets plus custom
patterns defined in ~/.emcee/patterns.json. Only the selection of the
current pattern can change at runtime; pattern definitions never do.

patterns.json holds a list of pattern objects:
    [{"id": "standup", "name": "Standup", "caption_mention": {...},
      "chat_mention": {"behavior_mode": "immediate", "response_channel": "chat"}}]
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

from ..common.schemas import AgentBehaviorPattern, DEFAULT_PATTERN_ID, PRESET_PATTERNS

logger = logging.getLogger("emcee.responder.patterns")


class UnknownPatternError(KeyError):
    """Raised when selecting a pattern ID that does not exist"""


class PatternStore:
    """
    Presets first, then custom patterns (custom IDs may not shadow presets).

    Usage:
        store = PatternStore(patterns_path=Path("~/.emcee/patterns.json").expanduser())
        store.set_current("polite-queue-voice")
        store.get_current().caption_mention.behavior_mode
    """

    def __init__(
        self,
        current_pattern_id: str = DEFAULT_PATTERN_ID,
        patterns_path: Optional[Path] = None,
        custom_patterns: Optional[List[AgentBehaviorPattern]] = None,
    ):
        self._patterns: Dict[str, AgentBehaviorPattern] = dict(PRESET_PATTERNS)

        if patterns_path is not None:
            for pattern in self._load_custom_patterns(patterns_path):
                self._register(pattern)
        for pattern in custom_patterns or []:
            self._register(pattern)

        if current_pattern_id not in self._patterns:
            logger.warning(
                "Unknown behavior pattern %r, falling back to %r",
                current_pattern_id, DEFAULT_PATTERN_ID,
            )
            current_pattern_id = DEFAULT_PATTERN_ID
        self._current_id = current_pattern_id

    def _register(self, pattern: AgentBehaviorPattern) -> None:
        existing = self._patterns.get(pattern.id)
        if existing is not None and existing.is_preset:
            logger.warning("Custom pattern %r shadows a preset, ignoring it", pattern.id)
            return
        self._patterns[pattern.id] = pattern.model_copy(update={"is_preset": False})

    def _load_custom_patterns(self, path: Path) -> List[AgentBehaviorPattern]:
        """Load custom patterns from disk; a bad file or entry is skipped with a warning"""
        if not path.exists():
            return []

        try:
            with open(path) as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load custom patterns from %s: %s", path, e)
            return []

        if not isinstance(data, list):
            logger.warning("Custom patterns file %s must contain a list", path)
            return []

        patterns = []
        for entry in data:
            try:
                patterns.append(AgentBehaviorPattern.model_validate(entry))
            except ValidationError as e:
                logger.warning("Skipping invalid custom pattern: %s", e)
        logger.info("Loaded %d custom behavior patterns from %s", len(patterns), path)
        return patterns

    @property
    def current_id(self) -> str:
        return self._current_id

    def get_current(self) -> AgentBehaviorPattern:
        return self._patterns[self._current_id]

    def get(self, pattern_id: str) -> Optional[AgentBehaviorPattern]:
        return self._patterns.get(pattern_id)

    def list(self) -> List[AgentBehaviorPattern]:
        return list(self._patterns.values())

    def set_current(self, pattern_id: str) -> AgentBehaviorPattern:
        """
        Select the active pattern.

        Raises:
            UnknownPatternError: no pattern with this ID
        """
        if pattern_id not in self._patterns:
            raise UnknownPatternError(pattern_id)
        self._current_id = pattern_id
        logger.info("Behavior pattern set to %r", pattern_id)
        return self._patterns[pattern_id]
