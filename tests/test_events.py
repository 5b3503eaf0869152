"""
Event channel tests.

Run with: python -m pytest tests/test_events.py -v
"""

import pytest

from engine.events import (
    EventChannel,
    GameEvent,
    GameOver,
    PhaseChanged,
    TurnStarted,
    UnitDied,
)
from engine.turn import GamePhase

from conftest import place, PLAYER_FACTION


class Recorder:
    def __init__(self):
        self.seen = []

    def on_event(self, event):
        self.seen.append(event)


class TestEventChannel:
    def test_typed_subscription(self):
        channel = EventChannel()
        turns = []
        channel.subscribe(TurnStarted, turns.append)

        channel.publish(TurnStarted(1))
        channel.publish(GameOver("draw"))

        assert turns == [TurnStarted(1)]

    def test_catch_all_sees_everything(self):
        channel = EventChannel()
        seen = []
        channel.subscribe_all(seen.append)

        channel.publish(TurnStarted(1))
        channel.publish(PhaseChanged(GamePhase.GAME_OVER))

        assert [e.name for e in seen] == ["TurnStarted", "PhaseChanged"]

    def test_base_class_subscription(self):
        channel = EventChannel()
        seen = []
        channel.subscribe(GameEvent, seen.append)
        channel.publish(TurnStarted(3))
        assert len(seen) == 1

    def test_only_event_types(self):
        with pytest.raises(TypeError):
            EventChannel().subscribe("TurnStarted", print)

    def test_unsubscribe(self):
        channel = EventChannel()
        seen = []
        channel.subscribe(TurnStarted, seen.append)
        channel.unsubscribe(seen.append)
        channel.publish(TurnStarted(1))
        assert seen == []

    def test_bound_methods_are_weak(self):
        channel = EventChannel()
        recorder = Recorder()
        channel.subscribe(TurnStarted, recorder.on_event)
        channel.publish(TurnStarted(1))
        assert len(recorder.seen) == 1

        del recorder
        channel.publish(TurnStarted(2))
        assert channel._subscribers[TurnStarted] == []

    def test_events_are_frozen(self):
        event = TurnStarted(1)
        with pytest.raises(AttributeError):
            event.turn = 2


class TestSerialization:
    def test_units_reduce_to_ids(self, session):
        unit = place(session, PLAYER_FACTION, 0, (1, 1))
        assert UnitDied(unit).to_dict() == {
            "event": "UnitDied",
            "unit": f"{PLAYER_FACTION}_0",
        }

    def test_enums_reduce_to_values(self):
        assert PhaseChanged(GamePhase.PLAYER_ACTION).to_dict()["phase"] == "player_action"
