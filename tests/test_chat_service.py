"""Tests for the chat turn flow and action execution."""

import asyncio
import json

import pytest

from conftest import reply_json
from routes.chat_render import (
    ACTION_FAILED_TEXT,
    CANCELLED_TEXT,
    INSIGHT_FAILED_TEXT,
    INSIGHT_NO_KEY_TEXT,
    NOT_FOUND_TEXT,
    REPROMPT_TEXT,
)
from routes.chat_openai import CompletionError
from routes.chat_state import get_or_create_session
from schemas.chat_schema import (
    AddEventAction,
    AppSettings,
    DeleteEventAction,
    GenerateInsightAction,
)
from services.chat_service import execute_action, handle_chat_turn

DELETE_RAW = {"type": "delete_event", "deleteEvent": {"title": "치과"}}


@pytest.fixture
def session(events):
    s = get_or_create_session("test-session")
    s.store.replace_snapshot(events=events)
    return s


async def _turn(session, client, personas, settings, anchor, text):
    return await handle_chat_turn(session, text, personas, client, settings=settings, now=anchor, pacing_delay=0)


class TestGateSequencing:
    @pytest.mark.asyncio
    async def test_propose_reprompt_cancel(self, session, fake_client, personas, settings, anchor):
        fake_client.responses = [reply_json("치과 일정을 지울까요?", DELETE_RAW)]

        proposed = await _turn(session, fake_client, personas[:1], settings, anchor, "치과 일정 지워줘")
        assert [m.kind for m in proposed.messages] == ["reply", "proposal"]
        assert proposed.messages[1].quick_replies == ["실행", "취소"]
        assert proposed.pending == DeleteEventAction(id="ev-1", title="치과 예약", date="2024-03-11", start_time="15:00")
        assert proposed.executed == []

        reprompt = await _turn(session, fake_client, personas[:1], settings, anchor, "내일 날씨 어때?")
        assert [m.kind for m in reprompt.messages] == ["reprompt"]
        assert reprompt.messages[0].content == REPROMPT_TEXT
        assert reprompt.pending is not None
        assert len(fake_client.calls) == 1

        cancelled = await _turn(session, fake_client, personas[:1], settings, anchor, "취소")
        assert [m.content for m in cancelled.messages] == [CANCELLED_TEXT]
        assert cancelled.pending is None
        assert session.gate.state == "idle"
        assert len(session.store.events) == 4

    @pytest.mark.asyncio
    async def test_confirm_executes_exactly_once(self, session, fake_client, personas, settings, anchor):
        fake_client.responses = [reply_json("지울까요?", DELETE_RAW)]
        await _turn(session, fake_client, personas[:1], settings, anchor, "치과 일정 지워줘")

        done = await _turn(session, fake_client, personas[:1], settings, anchor, "실행!")
        assert [m.kind for m in done.messages] == ["executed"]
        assert done.executed == [DeleteEventAction(id="ev-1", title="치과 예약", date="2024-03-11", start_time="15:00")]
        assert [e.id for e in session.store.events] == ["ev-2", "ev-3", "ev-4"]

        fake_client.responses = [reply_json("네, 주인님")]
        again = await _turn(session, fake_client, personas[:1], settings, anchor, "실행")
        assert [m.kind for m in again.messages] == ["reply"]
        assert len(session.store.events) == 3

    @pytest.mark.asyncio
    async def test_gate_message_follows_all_persona_replies(self, session, fake_client, personas, settings, anchor):
        fake_client.responses = [
            reply_json("할 일로 추가할까요?", {"type": "add_todo", "todo": {"text": "치실 사기", "category": "health"}}),
            reply_json("좋은 생각이에요"),
            reply_json("천천히 해요"),
        ]
        out = await _turn(session, fake_client, personas, settings, anchor, "치실 사기 할 일 추가")
        assert [m.kind for m in out.messages] == ["reply", "reply", "reply", "proposal"]
        assert out.messages[-1].persona_id is None

        done = await _turn(session, fake_client, personas, settings, anchor, "네")
        assert done.executed[0].type == "add_todo"
        todo = session.store.todos[0]
        assert (todo.text, todo.category, todo.date) == ("치실 사기", "health", "2024-03-10")

    @pytest.mark.asyncio
    async def test_confirmation_off_executes_immediately(self, session, fake_client, personas, settings, anchor):
        settings.chat_action_confirm = False
        fake_client.responses = [reply_json("지웠어요", DELETE_RAW)]
        out = await _turn(session, fake_client, personas[:1], settings, anchor, "치과 일정 지워줘")
        assert [m.kind for m in out.messages] == ["reply", "executed"]
        assert out.pending is None
        assert "ev-1" not in [e.id for e in session.store.events]

    @pytest.mark.asyncio
    async def test_add_event_executes_without_confirmation(self, session, fake_client, personas, settings, anchor):
        raw = {"type": "add_event", "event": {"title": "요가", "date": "모레", "startTime": "오전 7시"}}
        fake_client.responses = [reply_json("요가 일정 추가했어요", raw)]
        out = await _turn(session, fake_client, personas[:1], settings, anchor, "모레 오전 7시 요가")
        assert out.executed == [AddEventAction(title="요가", date="2024-03-12", start_time="07:00")]
        added = session.store.events[-1]
        assert (added.title, added.date, added.start_time) == ("요가", "2024-03-12", "07:00")

    @pytest.mark.asyncio
    async def test_not_found_delete_proposes_nothing(self, session, fake_client, personas, settings, anchor):
        fake_client.responses = [reply_json("지웠어요", {"type": "delete_event", "deleteEvent": {"title": "수영"}})]
        out = await _turn(session, fake_client, personas[:1], settings, anchor, "수영 일정 지워줘")
        assert [m.kind for m in out.messages] == ["not_found"]
        assert out.pending is None


class TestHistory:
    @pytest.mark.asyncio
    async def test_turns_recorded_with_attribution(self, session, fake_client, personas, settings, anchor):
        fake_client.responses = [reply_json("지울까요?", DELETE_RAW)]
        await _turn(session, fake_client, personas[:1], settings, anchor, "치과 일정 지워줘")
        assert [(t.role, t.persona_id) for t in session.history] == [
            ("user", None),
            ("assistant", "ARIA"),
            ("assistant", None),
        ]

    @pytest.mark.asyncio
    async def test_persona_memory_merged(self, session, fake_client, personas, settings, anchor):
        fake_client.responses = [reply_json("네")]
        await handle_chat_turn(session, "안녕", personas[:1], fake_client, settings=settings, now=anchor,
                               persona_memory={"ARIA": "커피를 좋아함"}, pacing_delay=0)
        assert session.persona_memory == {"ARIA": "커피를 좋아함"}
        assert "커피를 좋아함" in fake_client.calls[0]["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_snapshot_upload_waits_for_running_turn(self, session, fake_client, personas, settings, anchor):
        fake_client.responses = [reply_json("네")]
        await session.lock.acquire()
        try:
            task = asyncio.create_task(handle_chat_turn(
                session, "안녕", personas[:1], fake_client, settings=settings, now=anchor, pacing_delay=0, events=[],
            ))
            await asyncio.sleep(0)
            assert len(session.store.events) == 4
        finally:
            session.lock.release()
        await task
        assert session.store.events == []


class TestExecuteAction:
    @pytest.mark.asyncio
    async def test_sink_failure_becomes_error_message(self, session, fake_client, settings, anchor, monkeypatch):
        def boom(event):
            raise RuntimeError("disk full")

        monkeypatch.setattr(session.store, "add_event", boom)
        msg = await execute_action(AddEventAction(title="t", date="2024-03-10"), session, fake_client, settings, anchor)
        assert msg.kind == "error"
        assert msg.content == ACTION_FAILED_TEXT

    @pytest.mark.asyncio
    async def test_vanished_delete_target(self, session, fake_client, settings, anchor):
        msg = await execute_action(DeleteEventAction(id="gone"), session, fake_client, settings, anchor)
        assert msg.kind == "not_found"
        assert msg.content == NOT_FOUND_TEXT
        assert len(session.store.events) == 4

    @pytest.mark.asyncio
    async def test_insight_added_to_board(self, session, fake_client, settings, anchor):
        fake_client.responses = [json.dumps({"title": "집중의 한 주", "content": "주인님은...", "tags": ["Focus"]})]
        msg = await execute_action(GenerateInsightAction(), session, fake_client, settings, anchor)
        assert msg.kind == "executed"
        assert session.store.posts[0].title == "집중의 한 주"

    @pytest.mark.asyncio
    async def test_insight_without_key(self, session, fake_client, anchor):
        msg = await execute_action(GenerateInsightAction(), session, fake_client, AppSettings(), anchor)
        assert msg.content == INSIGHT_NO_KEY_TEXT
        assert session.store.posts == []

    @pytest.mark.asyncio
    async def test_insight_failure(self, session, fake_client, settings, anchor):
        fake_client.responses = [CompletionError("down")]
        msg = await execute_action(GenerateInsightAction(), session, fake_client, settings, anchor)
        assert msg.kind == "error"
        assert msg.content == INSIGHT_FAILED_TEXT
