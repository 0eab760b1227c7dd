# services/life_store.py
# 세션별 일정/할 일/일기/인사이트 저장소(메모리). 채팅 파이프라인이 실행한 액션만 여기를 변경한다.
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from schemas.chat_schema import (
    CalendarEvent,
    ContextSnapshot,
    InsightPost,
    JournalEntry,
    Todo,
)

UPCOMING_EVENTS_LIMIT = 5
PENDING_TODOS_LIMIT = 5
RECENT_JOURNAL_LIMIT = 3


def _new_id() -> str:
    return str(uuid.uuid4())


def _event_sort_key(e: CalendarEvent):
    return (e.date, e.start_time or "00:00")


class LifeStore:
    def __init__(self):
        self.events: List[CalendarEvent] = []
        self.todos: List[Todo] = []
        self.journal: List[JournalEntry] = []
        self.posts: List[InsightPost] = []

    def replace_snapshot(
        self,
        events: Optional[List[CalendarEvent]] = None,
        todos: Optional[List[Todo]] = None,
        journal: Optional[List[JournalEntry]] = None,
    ) -> None:
        # 클라이언트가 보낸 목록이 있으면 그것을 기준으로 교체(None이면 기존 유지)
        if events is not None:
            self.events = list(events)
        if todos is not None:
            self.todos = list(todos)
        if journal is not None:
            self.journal = list(journal)

    # 액션 싱크
    def add_event(self, event: CalendarEvent) -> CalendarEvent:
        self.events.append(event)
        return event

    def delete_event(self, event_id: str) -> CalendarEvent:
        ev = next((e for e in self.events if e.id == event_id), None)
        if not ev:
            raise ValueError("NOT_FOUND")
        self.events = [e for e in self.events if e.id != event_id]
        return ev

    def add_todo(self, text: str, category: str, due_date: Optional[str], today: str) -> Todo:
        todo = Todo(id=_new_id(), text=text, category=category, due_date=due_date, date=today)
        self.todos.append(todo)
        return todo

    def add_journal(self, title: str, content: str, mood: str, today: str) -> JournalEntry:
        entry = JournalEntry(id=_new_id(), title=title, content=content, mood=mood, date=today)
        self.journal.append(entry)
        return entry

    def add_post(self, post: InsightPost) -> InsightPost:
        self.posts.insert(0, post)
        return post

    # 조회
    def recent_journal(self, limit: int) -> List[JournalEntry]:
        return sorted(self.journal, key=lambda j: j.date, reverse=True)[:limit]

    def snapshot(self, now: datetime) -> ContextSnapshot:
        """
        페르소나 지시문에 넣을 작은 도메인 요약(다가오는 일정 5, 남은 할 일 5, 최근 일기 3)
        """
        today = now.strftime("%Y-%m-%d")
        upcoming = sorted((e for e in self.events if e.date >= today), key=_event_sort_key)
        return ContextSnapshot(
            date=today,
            current_time=now.strftime("%H:%M"),
            upcoming_events=upcoming[:UPCOMING_EVENTS_LIMIT],
            pending_todos=[t for t in self.todos if not t.completed][:PENDING_TODOS_LIMIT],
            recent_journal=self.recent_journal(RECENT_JOURNAL_LIMIT),
        )

    def insight_context(self, now: datetime) -> Dict[str, Any]:
        # 인사이트 분석용 컨텍스트(채팅 스냅샷보다 넓게)
        return {
            "currentDate": now.strftime("%Y-%m-%d"),
            "recentEvents": [e.model_dump() for e in sorted(self.events, key=_event_sort_key)[:10]],
            "pendingTasks": [t.model_dump() for t in self.todos if not t.completed][:20],
            "completedTasks": [t.model_dump() for t in self.todos if t.completed][:10],
            "recentJournal": [j.model_dump() for j in self.recent_journal(5)],
        }

    def new_event_id(self) -> str:
        return _new_id()
