"""Tests for delete-target resolution."""

from routes.chat_filters import resolve_action_target, resolve_delete_target
from schemas.chat_schema import CalendarEvent, DeleteEventAction


class TestResolveDeleteTarget:
    def test_id_short_circuits(self, events):
        req = DeleteEventAction(id="ev-4", title="전혀 다른 제목", date="2000-01-01")
        assert resolve_delete_target(req, events).id == "ev-4"

    def test_title_contained_in_event_title(self, events):
        assert resolve_delete_target(DeleteEventAction(title="치과"), events).id == "ev-1"

    def test_event_title_contained_in_request(self, events):
        req = DeleteEventAction(title="내일 헬스장 일정")
        assert resolve_delete_target(req, events).id == "ev-4"

    def test_title_ignores_case_and_spaces(self, events):
        req = DeleteEventAction(title="teammeeting", start_time="10:00")
        assert resolve_delete_target(req, events).id == "ev-2"

    def test_tie_goes_to_earliest_start(self, events):
        req = DeleteEventAction(title="Team Meeting", date="2024-03-12")
        assert resolve_delete_target(req, events).id == "ev-3"

    def test_missing_start_time_sorts_as_midnight(self):
        evs = [
            CalendarEvent(id="a", title="회의", date="2024-03-12", start_time="08:00"),
            CalendarEvent(id="b", title="회의", date="2024-03-12"),
        ]
        assert resolve_delete_target(DeleteEventAction(title="회의"), evs).id == "b"

    def test_unparsable_dates_sort_last(self):
        evs = [
            CalendarEvent(id="bad", title="회의", date="someday"),
            CalendarEvent(id="ok", title="회의", date="2030-01-01"),
        ]
        assert resolve_delete_target(DeleteEventAction(title="회의"), evs).id == "ok"

    def test_no_candidates(self, events):
        assert resolve_delete_target(DeleteEventAction(title="치과", date="2024-03-12"), events) is None

    def test_unknown_id_without_other_fields_picks_earliest(self):
        evs = [
            CalendarEvent(id="a", title="수영", date="2024-03-12"),
            CalendarEvent(id="b", title="독서", date="2024-03-11"),
        ]
        assert resolve_delete_target(DeleteEventAction(id="zzz"), evs).id == "b"

    def test_unknown_id_single_event(self):
        only = [CalendarEvent(id="a", title="수영", date="2024-03-12")]
        assert resolve_delete_target(DeleteEventAction(id="zzz"), only).id == "a"

    def test_unknown_id_falls_back_to_fields(self, events):
        req = DeleteEventAction(id="missing", date="2024-03-15")
        assert resolve_delete_target(req, events).id == "ev-4"

    def test_empty_event_list(self):
        assert resolve_delete_target(DeleteEventAction(title="anything"), []) is None

    def test_events_not_mutated(self, events):
        before = [e.model_copy() for e in events]
        resolve_delete_target(DeleteEventAction(title="Team Meeting"), events)
        assert events == before


class TestResolveActionTarget:
    def test_concrete_action_copied_from_event(self, events):
        action = resolve_action_target(DeleteEventAction(title="치과"), events)
        assert action == DeleteEventAction(id="ev-1", title="치과 예약", date="2024-03-11", start_time="15:00")

    def test_none_when_unresolved(self, events):
        assert resolve_action_target(DeleteEventAction(title="없는 일정"), events) is None
