"""
Tests for EventEmitter
"""

import logging


def _event(event_type=None, pending_id="pr-1", **data):
    from emcee.common.events import BehaviorEvent, BehaviorEventType

    return BehaviorEvent(event_type or BehaviorEventType.RESPONSE_SENT, pending_id=pending_id, data=data)


class TestEventEmitter:
    def test_listeners_receive_events_in_order(self):
        from emcee.common.events import EventEmitter

        emitter = EventEmitter()
        seen = []
        emitter.add_listener(lambda e: seen.append(("a", e.pending_id)))
        emitter.add_listener(lambda e: seen.append(("b", e.pending_id)))

        emitter.emit(_event())

        assert seen == [("a", "pr-1"), ("b", "pr-1")]

    def test_failing_listener_does_not_block_others(self, caplog):
        from emcee.common.events import EventEmitter

        emitter = EventEmitter()
        seen = []

        def broken(event):
            raise RuntimeError("listener bug")

        emitter.add_listener(broken)
        emitter.add_listener(seen.append)

        with caplog.at_level(logging.ERROR, logger="emcee.common.events"):
            emitter.emit(_event())

        assert len(seen) == 1
        assert "response-sent" in caplog.text

    def test_unsubscribe(self):
        from emcee.common.events import EventEmitter

        emitter = EventEmitter()
        seen = []
        unsubscribe = emitter.add_listener(seen.append)

        unsubscribe()
        unsubscribe()
        emitter.emit(_event())

        assert seen == []
        assert emitter.listener_count == 0

    def test_clear(self):
        from emcee.common.events import EventEmitter

        emitter = EventEmitter()
        emitter.add_listener(lambda e: None)
        emitter.clear()

        assert emitter.listener_count == 0


class TestBehaviorEvent:
    def test_to_dict_flattens_data(self):
        from emcee.common.events import BehaviorEventType

        event = _event(BehaviorEventType.RESPONSE_FAILED, error="tts down")
        payload = event.to_dict()

        assert payload["type"] == "response-failed"
        assert payload["pending_id"] == "pr-1"
        assert payload["error"] == "tts down"
        assert "timestamp" in payload

    def test_hand_events_have_no_pending_id(self):
        from emcee.common.events import BehaviorEventType

        event = _event(BehaviorEventType.HAND_RAISED, pending_id=None)

        assert event.to_dict()["pending_id"] is None
