"""
Tests for CaptionAggregator

Timestamps are caption timestamps in ms; the pending-mention timer uses
real (short) timeouts, so timer tests sleep briefly.
"""

import asyncio
import logging

import pytest


def _matcher():
    from emcee.listener.name_matcher import NameMatcher

    matcher = NameMatcher()
    matcher.initialize("Steve")
    return matcher


def _caption(text, timestamp, speaker="Ann", is_final=True):
    from emcee.listener.caption_aggregator import CaptionEntry

    return CaptionEntry(
        id=f"c-{speaker}-{timestamp}",
        speaker=speaker,
        text=text,
        timestamp=timestamp,
        is_final=is_final,
    )


class Recorder:
    """Collects aggregator callbacks"""

    def __init__(self, aggregator):
        self.emitted = []
        self.timeouts = []
        aggregator.set_on_aggregated_caption(lambda caption, mention: self.emitted.append((caption, mention)))
        aggregator.set_on_pending_mention_timeout(self.timeouts.append)

    @property
    def mentions(self):
        return [caption for caption, mention in self.emitted if mention.is_mentioned]


def _aggregator(**kwargs):
    from emcee.listener.caption_aggregator import CaptionAggregator

    aggregator = CaptionAggregator(_matcher(), **kwargs)
    return aggregator, Recorder(aggregator)


class TestAggregation:
    def test_fragments_merge_within_window(self):
        async def scenario():
            aggregator, rec = _aggregator()
            aggregator.add_caption(_caption("Hey", 0))
            aggregator.add_caption(_caption("Steve", 500))

            pending = aggregator.get_pending_mention()
            aggregator.dispose()
            return pending

        pending = asyncio.run(scenario())
        assert pending is not None
        assert pending.caption_text == "Hey Steve"
        assert pending.matched_variation == "steve"

    def test_non_mentions_are_still_emitted(self):
        async def scenario():
            aggregator, rec = _aggregator()
            aggregator.add_caption(_caption("the quarterly numbers look fine", 0))
            return rec

        rec = asyncio.run(scenario())
        assert len(rec.emitted) == 1
        caption, mention = rec.emitted[0]
        assert caption.text == "the quarterly numbers look fine"
        assert mention.is_mentioned is False

    def test_mention_with_question_emits_immediately(self):
        async def scenario():
            aggregator, rec = _aggregator()
            aggregator.add_caption(_caption("Steve can you share the roadmap", 0))
            return aggregator, rec

        aggregator, rec = asyncio.run(scenario())
        assert [c.text for c in rec.mentions] == ["Steve can you share the roadmap"]
        assert aggregator.has_pending_mention() is False
        assert aggregator.buffered_count == 0

    def test_speakers_are_aggregated_separately(self):
        async def scenario():
            aggregator, rec = _aggregator()
            aggregator.add_caption(_caption("I think", 0, speaker="Bob"))
            aggregator.add_caption(_caption("Steve, can you check the status", 100, speaker="Ann"))
            return rec

        rec = asyncio.run(scenario())
        assert [c.text for c in rec.mentions] == ["Steve, can you check the status"]
        assert rec.mentions[0].speaker == "Ann"

    def test_old_captions_are_pruned(self):
        async def scenario():
            aggregator, rec = _aggregator(aggregation_window_ms=1000)
            aggregator.add_caption(_caption("budget", 0))
            aggregator.add_caption(_caption("review", 1500))
            return rec

        rec = asyncio.run(scenario())
        assert rec.emitted[-1][0].text == "review"

    def test_non_final_captions_are_ignored(self):
        async def scenario():
            aggregator, rec = _aggregator()
            aggregator.add_caption(_caption("Steve can you", 0, is_final=False))
            return aggregator, rec

        aggregator, rec = asyncio.run(scenario())
        assert aggregator.buffered_count == 0
        assert rec.emitted == []

    def test_flush_buffer_processes_and_clears(self):
        async def scenario():
            aggregator, rec = _aggregator()
            aggregator.add_caption(_caption("the budget", 0))
            aggregator.flush_buffer()
            return aggregator, rec

        aggregator, rec = asyncio.run(scenario())
        assert aggregator.buffered_count == 0
        assert rec.emitted[-1][0].text == "the budget"

    def test_consumed_speaker_is_not_re_emitted(self):
        async def scenario():
            aggregator, rec = _aggregator()
            aggregator.add_caption(_caption("can the assistant help", 0))
            aggregator.add_caption(_caption("the budget", 50, speaker="Bob"))
            aggregator.consume_speaker("Ann")
            aggregator.add_caption(_caption("with the notes", 200))
            return aggregator, rec

        aggregator, rec = asyncio.run(scenario())
        assert rec.emitted[-1][0].text == "with the notes"
        assert aggregator.buffered_count == 2


class TestPendingMention:
    def test_follow_up_question_completes_mention(self):
        from emcee.listener.caption_aggregator import AggregatorState

        async def scenario():
            aggregator, rec = _aggregator(pending_mention_timeout_ms=50)
            aggregator.add_caption(_caption("Hey Steve", 0))
            assert aggregator.state == AggregatorState.PENDING_MENTION

            aggregator.add_caption(_caption("what's on the agenda", 1000))
            await asyncio.sleep(0.1)
            return aggregator, rec

        aggregator, rec = asyncio.run(scenario())
        assert [c.text for c in rec.mentions] == ["Hey Steve what's on the agenda"]
        assert rec.timeouts == []
        assert aggregator.has_pending_mention() is False
        assert aggregator.state == AggregatorState.IDLE

    def test_follow_up_outside_window_is_combined(self):
        async def scenario():
            aggregator, rec = _aggregator(aggregation_window_ms=3000)
            aggregator.add_caption(_caption("Hey Steve", 0))
            aggregator.add_caption(_caption("what's on the agenda", 3200))
            aggregator.dispose()
            return rec

        rec = asyncio.run(scenario())
        assert [c.text for c in rec.mentions] == ["Hey Steve what's on the agenda"]

    def test_same_speaker_statement_keeps_waiting(self):
        async def scenario():
            aggregator, rec = _aggregator(aggregation_window_ms=1000)
            aggregator.add_caption(_caption("Hey Steve", 0))
            aggregator.add_caption(_caption("so about the launch", 2000))
            pending = aggregator.get_pending_mention()
            aggregator.dispose()
            return pending, rec

        pending, rec = asyncio.run(scenario())
        assert pending is not None
        assert pending.caption_text == "Hey Steve"
        assert rec.emitted == []

    def test_other_speaker_does_not_complete_mention(self):
        async def scenario():
            aggregator, rec = _aggregator()
            aggregator.add_caption(_caption("Hey Steve", 0, speaker="Ann"))
            aggregator.add_caption(_caption("what time is it", 100, speaker="Bob"))
            pending = aggregator.get_pending_mention()
            aggregator.dispose()
            return pending, rec

        pending, rec = asyncio.run(scenario())
        assert pending.speaker == "Ann"
        assert rec.mentions == []
        assert rec.emitted[-1][0].speaker == "Bob"

    def test_timeout_fires_once(self):
        from emcee.listener.caption_aggregator import AggregatorState

        async def scenario():
            aggregator, rec = _aggregator(pending_mention_timeout_ms=30)
            aggregator.add_caption(_caption("Hey Steve", 0))
            await asyncio.sleep(0.15)
            return aggregator, rec

        aggregator, rec = asyncio.run(scenario())
        assert len(rec.timeouts) == 1
        assert rec.timeouts[0].caption_text == "Hey Steve"
        assert aggregator.state == AggregatorState.IDLE

    def test_superseded_mention_cancels_previous_timer(self):
        async def scenario():
            aggregator, rec = _aggregator(pending_mention_timeout_ms=30)
            aggregator.add_caption(_caption("Hey Steve", 0, speaker="Ann"))
            aggregator.add_caption(_caption("Steve hello", 10, speaker="Bob"))
            await asyncio.sleep(0.15)
            aggregator.dispose()
            return rec

        rec = asyncio.run(scenario())
        assert [p.speaker for p in rec.timeouts] == ["Bob"]

    def test_bare_mention_requires_running_loop(self):
        aggregator, rec = _aggregator()

        aggregator.add_caption(_caption("the budget", 0))
        with pytest.raises(RuntimeError):
            aggregator.add_caption(_caption("Hey Steve", 100, speaker="Bob"))

    def test_dispose_cancels_timer(self):
        async def scenario():
            aggregator, rec = _aggregator(pending_mention_timeout_ms=30)
            aggregator.add_caption(_caption("Hey Steve", 0))
            aggregator.dispose()
            await asyncio.sleep(0.1)
            return rec

        rec = asyncio.run(scenario())
        assert rec.timeouts == []


class TestAsyncCallbacks:
    def test_coroutine_callbacks_are_awaited_by_drain(self):
        from emcee.listener.caption_aggregator import CaptionAggregator

        seen = []

        async def on_caption(caption, mention):
            await asyncio.sleep(0)
            seen.append(caption.text)

        async def scenario():
            aggregator = CaptionAggregator(_matcher())
            aggregator.set_on_aggregated_caption(on_caption)
            aggregator.add_caption(_caption("Steve can you help", 0))
            await aggregator.drain()

        asyncio.run(scenario())
        assert seen == ["Steve can you help"]

    def test_failing_callback_is_logged(self, caplog):
        from emcee.listener.caption_aggregator import CaptionAggregator

        async def on_caption(caption, mention):
            raise RuntimeError("boom")

        async def scenario():
            aggregator = CaptionAggregator(_matcher())
            aggregator.set_on_aggregated_caption(on_caption)
            aggregator.add_caption(_caption("Steve can you help", 0))
            await aggregator.drain()

        with caplog.at_level(logging.ERROR, logger="emcee.listener.aggregator"):
            asyncio.run(scenario())
        assert "Caption callback failed" in caplog.text

    def test_set_config_updates_thresholds(self):
        from emcee.listener.caption_aggregator import CaptionAggregator

        aggregator = CaptionAggregator(_matcher())
        aggregator.set_config(aggregation_window_ms=1000, pending_mention_timeout_ms=200, fuzzy_match_threshold=0.9)

        assert aggregator.aggregation_window_ms == 1000
        assert aggregator.pending_mention_timeout_ms == 200
        assert aggregator.matcher.fuzzy_match_threshold == 0.9
