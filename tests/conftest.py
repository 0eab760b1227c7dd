"""Shared test fixtures for the LifeSync chat backend."""

import json
import sys
from datetime import datetime
from pathlib import Path

import pytest

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from routes.chat_openai import CompletionError  # noqa: E402
from routes.chat_state import SESSIONS  # noqa: E402
from routes.chat_time import KST  # noqa: E402
from schemas.chat_schema import ApiConnection, AppSettings, CalendarEvent, Persona  # noqa: E402


class FakeCompletionClient:
    """Returns queued completion strings in order; an Exception instance in the queue is raised."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []

    def complete(self, connection, messages, temperature=0.5):
        self.calls.append({"connection": connection, "messages": messages, "temperature": temperature})
        if not self.responses:
            raise CompletionError("no more fake responses")
        nxt = self.responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


def reply_json(reply, action=None):
    return json.dumps({"reply": reply, "action": action or {"type": "none"}}, ensure_ascii=False)


@pytest.fixture
def anchor():
    return datetime(2024, 3, 10, 9, 0, tzinfo=KST)


@pytest.fixture
def settings():
    return AppSettings(
        api_connections=[ApiConnection(id="conn-1", provider="openai", api_key="sk-test", model_name="gpt-4o-mini")],
        active_connection_id="conn-1",
    )


@pytest.fixture
def personas():
    return [
        Persona(id="ARIA", name="LifeSync AI", role="Personal Assistant"),
        Persona(id="COACH", name="Productivity Coach", role="Coach"),
        Persona(id="EMPATH", name="Mindfulness Guide", role="Therapist"),
    ]


@pytest.fixture
def events():
    return [
        CalendarEvent(id="ev-1", title="치과 예약", date="2024-03-11", start_time="15:00"),
        CalendarEvent(id="ev-2", title="Team Meeting", date="2024-03-12", start_time="10:00"),
        CalendarEvent(id="ev-3", title="Team Meeting", date="2024-03-12", start_time="09:00"),
        CalendarEvent(id="ev-4", title="헬스장", date="2024-03-15"),
    ]


@pytest.fixture
def fake_client():
    return FakeCompletionClient()


@pytest.fixture(autouse=True)
def clear_sessions(monkeypatch):
    """Isolate the session registry and the env fallback key per test."""
    SESSIONS.clear()
    monkeypatch.setattr("routes.chat_openai.OPENAI_API_KEY", "")
    yield
    SESSIONS.clear()
