"""Unit tests for the event system.

Tests cover:
- FormEvent creation and immutability
- Event serialization (to_dict, to_jsonl) and deserialization (from_dict)
- EventEmitter subscriptions, unsubscription and dispatch order
- Listener error isolation
"""

import json
from datetime import datetime, timezone

import pytest

from formguard.events import EventEmitter, FormEvent
from formguard.types import EventType


def make_event(event_type=EventType.FIELD_CHANGED, payload=None):
    return FormEvent(
        event_id="evt_001",
        type=event_type,
        form_id="signup",
        ts=datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc),
        payload=payload,
    )


class TestFormEventCreation:
    """Test FormEvent construction."""

    def test_create_assigns_id_and_timestamp(self):
        """Should stamp a prefixed ID and a timezone-aware UTC time."""
        event = FormEvent.create(EventType.FORM_RESET, "signup", {"errors": {}})

        assert event.event_id.startswith("evt_")
        assert len(event.event_id) == len("evt_") + 16
        assert event.ts.tzinfo is not None
        assert event.form_id == "signup"
        assert event.payload == {"errors": {}}

    def test_ids_are_unique(self):
        """Should give every event its own ID."""
        ids = {FormEvent.create(EventType.FORM_RESET, "f").event_id for _ in range(50)}
        assert len(ids) == 50

    def test_string_type_coerced(self):
        """Should accept the string value of an event type."""
        event = FormEvent(
            event_id="evt_1",
            type="form.validated",
            form_id="f",
            ts=datetime.now(timezone.utc),
        )
        assert event.type is EventType.FORM_VALIDATED

    def test_event_is_immutable(self):
        """Should not allow attribute assignment."""
        event = make_event()
        with pytest.raises(AttributeError):
            event.form_id = "other"


class TestEventSerialization:
    """Test FormEvent to_dict/to_jsonl/from_dict."""

    def test_to_dict_with_payload(self):
        """Should use camelCase keys and an ISO timestamp."""
        data = make_event(payload={"field": "email"}).to_dict()
        assert data == {
            "eventId": "evt_001",
            "type": "field.changed",
            "formId": "signup",
            "ts": "2024-01-15T10:30:00+00:00",
            "payload": {"field": "email"},
        }

    def test_to_dict_without_payload(self):
        """Should omit the payload key when there is none."""
        assert "payload" not in make_event().to_dict()

    def test_to_jsonl_is_compact_single_line(self):
        """Should produce one compact JSON line."""
        line = make_event(payload={"field": "email"}).to_jsonl()
        assert "\n" not in line
        assert ", " not in line
        assert json.loads(line)["formId"] == "signup"

    def test_to_jsonl_stringifies_unknown_values(self):
        """Should write values JSON cannot represent as strings."""
        moment = datetime(2024, 1, 1, tzinfo=timezone.utc)
        line = make_event(payload={"values": {"when": moment}}).to_jsonl()
        assert json.loads(line)["payload"]["values"]["when"] == str(moment)

    def test_from_dict_handles_z_timezone(self):
        """Should handle a 'Z' timezone suffix in the timestamp."""
        event = FormEvent.from_dict({
            "eventId": "evt_002",
            "type": "submission.succeeded",
            "formId": "signup",
            "ts": "2024-01-15T10:30:00Z",
        })
        assert event.ts.tzinfo is not None
        assert event.ts.year == 2024
        assert event.type is EventType.SUBMISSION_SUCCEEDED
        assert event.payload is None

    def test_from_dict_restores_to_dict_output(self):
        """Should rebuild an equal event from its dict form."""
        original = make_event(EventType.FORM_VALIDATED, {"errors": {"email": "bad"}, "isValid": False})
        assert FormEvent.from_dict(original.to_dict()) == original


class TestEventEmitterSubscriptions:
    """Test EventEmitter subscriptions and dispatch."""

    def test_type_specific_listener(self):
        """Should only receive events of the subscribed type."""
        emitter = EventEmitter()
        seen = []
        emitter.on(EventType.FORM_RESET, seen.append)

        emitter.emit(make_event(EventType.FIELD_CHANGED))
        emitter.emit(make_event(EventType.FORM_RESET))

        assert [e.type for e in seen] == [EventType.FORM_RESET]

    def test_wildcard_listener(self):
        """Should receive every event."""
        emitter = EventEmitter()
        seen = []
        emitter.on_any(seen.append)

        emitter.emit(make_event(EventType.FIELD_CHANGED))
        emitter.emit(make_event(EventType.FORM_RESET))

        assert len(seen) == 2

    def test_specific_listeners_run_before_wildcard(self):
        """Should call type-specific listeners first, then wildcard ones."""
        emitter = EventEmitter()
        order = []
        emitter.on_any(lambda e: order.append("any"))
        emitter.on(EventType.FORM_RESET, lambda e: order.append("specific"))

        emitter.emit(make_event(EventType.FORM_RESET))

        assert order == ["specific", "any"]

    def test_unsubscribe(self):
        """Should stop delivering after off() and off_any()."""
        emitter = EventEmitter()
        seen = []
        emitter.on(EventType.FORM_RESET, seen.append)
        emitter.on_any(seen.append)

        emitter.off(EventType.FORM_RESET, seen.append)
        emitter.off_any(seen.append)
        emitter.emit(make_event(EventType.FORM_RESET))

        assert seen == []

    def test_unsubscribe_unknown_listener_ignored(self):
        """Should ignore listeners that were never registered."""
        emitter = EventEmitter()
        emitter.off(EventType.FORM_RESET, print)
        emitter.off_any(print)
        assert emitter.listener_count() == 0

    def test_listener_exceptions_are_isolated(self, caplog):
        """Should keep dispatching after a listener raises, and log the failure."""
        emitter = EventEmitter()
        seen = []

        def broken(event):
            raise RuntimeError("listener bug")

        emitter.on(EventType.FORM_RESET, broken)
        emitter.on(EventType.FORM_RESET, seen.append)

        with caplog.at_level("DEBUG", logger="formguard.events"):
            emitter.emit(make_event(EventType.FORM_RESET))

        assert len(seen) == 1
        assert any("Listener failed" in r.getMessage() for r in caplog.records)

    def test_clear_and_count(self):
        """Should count listeners per type and in total, and clear them all."""
        emitter = EventEmitter()
        emitter.on(EventType.FORM_RESET, print)
        emitter.on(EventType.FORM_RESET, repr)
        emitter.on_any(print)

        assert emitter.listener_count(EventType.FORM_RESET) == 2
        assert emitter.listener_count(EventType.FIELD_CHANGED) == 0
        assert emitter.listener_count() == 3

        emitter.clear()
        assert emitter.listener_count() == 0
