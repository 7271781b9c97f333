"""
Tests for behavior schemas and preset patterns
"""

import pytest


class TestTriggerConfig:
    def test_pattern_parses_tagged_union(self):
        from emcee.common.schemas import AgentBehaviorPattern, ControlledTrigger, QueuedTrigger

        pattern = AgentBehaviorPattern.model_validate({
            "id": "custom",
            "name": "Custom",
            "caption_mention": {
                "behavior_mode": "queued",
                "response_channel": "speech",
                "queued_options": {"auto_raise_hand": False},
            },
            "chat_mention": {"behavior_mode": "controlled", "response_channel": "chat"},
        })

        assert isinstance(pattern.caption_mention, QueuedTrigger)
        assert pattern.caption_mention.queued_options.auto_raise_hand is False
        assert pattern.caption_mention.queued_options.speak_on_lower is True
        assert isinstance(pattern.chat_mention, ControlledTrigger)
        assert pattern.chat_mention.controlled_options.show_preview is True
        assert pattern.is_preset is False

    def test_unknown_mode_is_rejected(self):
        from pydantic import ValidationError
        from emcee.common.schemas import AgentBehaviorPattern

        with pytest.raises(ValidationError):
            AgentBehaviorPattern.model_validate({
                "id": "bad",
                "name": "Bad",
                "caption_mention": {"behavior_mode": "eventually"},
                "chat_mention": {"behavior_mode": "immediate"},
            })

    def test_trigger_config_by_source(self):
        from emcee.common.schemas import PRESET_PATTERNS, BehaviorMode, TriggerSource

        pattern = PRESET_PATTERNS["polite-queue-mixed"]

        assert pattern.trigger_config(TriggerSource.CAPTION_MENTION).behavior_mode == BehaviorMode.QUEUED.value
        assert pattern.trigger_config(TriggerSource.CHAT_MENTION).behavior_mode == BehaviorMode.IMMEDIATE.value


class TestPresets:
    def test_nine_presets(self):
        from emcee.common.schemas import PRESET_PATTERNS, DEFAULT_PATTERN_ID

        assert len(PRESET_PATTERNS) == 9
        assert DEFAULT_PATTERN_ID in PRESET_PATTERNS
        assert all(p.is_preset for p in PRESET_PATTERNS.values())

    def test_silent_observer_disables_everything(self):
        from emcee.common.schemas import PRESET_PATTERNS

        pattern = PRESET_PATTERNS["silent-observer"]

        assert pattern.caption_mention.enabled is False
        assert pattern.chat_mention.enabled is False

    def test_presets_do_not_share_trigger_objects(self):
        from emcee.common.schemas import PRESET_PATTERNS

        voice = PRESET_PATTERNS["autonomous-voice"]
        assert voice.caption_mention is not voice.chat_mention

    def test_categories_cover_all_presets(self):
        from emcee.common.schemas import PRESET_PATTERNS, get_patterns_by_category

        grouped = get_patterns_by_category()
        ids = [p.id for patterns in grouped.values() for p in patterns]

        assert sorted(ids) == sorted(PRESET_PATTERNS)


class TestPendingResponse:
    def _response(self, channel):
        from emcee.common.schemas import BehaviorMode, PendingResponse, ResponseChannel, TriggerSource

        return PendingResponse(
            id="pr-1",
            trigger_source=TriggerSource.CAPTION_MENTION,
            trigger_content="Steve?",
            trigger_author="Ann",
            response_text="Yes?",
            response_channel=ResponseChannel(channel),
            behavior_mode=BehaviorMode.IMMEDIATE,
        )

    def test_both_expands_to_two_channels(self):
        from emcee.common.schemas import ResponseChannel

        assert self._response("both").channels() == [ResponseChannel.CHAT, ResponseChannel.SPEECH]
        assert self._response("speech").channels() == [ResponseChannel.SPEECH]

    def test_defaults(self):
        from emcee.common.schemas import ResponseStatus

        response = self._response("chat")

        assert response.status == ResponseStatus.PENDING
        assert response.is_terminal is False
        assert response.channel_results == {}
        assert response.created_at.tzinfo is not None


class TestTransitions:
    @pytest.mark.parametrize("current,target,allowed", [
        ("pending", "approved", True),
        ("pending", "hand-raised", False),
        ("pending", "sent", False),
        ("approved", "sending", True),
        ("approved", "rejected", False),
        ("hand-raised", "pending", True),
        ("sending", "failed", True),
        ("sent", "sending", False),
        ("dismissed", "pending", False),
    ])
    def test_can_transition(self, current, target, allowed):
        from emcee.common.schemas import ResponseStatus, can_transition

        assert can_transition(ResponseStatus(current), ResponseStatus(target)) is allowed
