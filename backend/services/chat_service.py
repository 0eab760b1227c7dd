# services/chat_service.py
# 채팅 턴 처리(확인 게이트 -> 페르소나 진행 -> 실행/제안) 및 액션 실행
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from fastapi.concurrency import run_in_threadpool

from routes.chat_openai import CompletionClient, CompletionError, generate_life_insight, resolve_connection
from routes.chat_personas import CHAT_PACING_DELAY, PersonaTurnOrchestrator
from routes.chat_render import (
    ACTION_FAILED_TEXT,
    CANCELLED_TEXT,
    INSIGHT_FAILED_TEXT,
    INSIGHT_NO_KEY_TEXT,
    NOT_FOUND_TEXT,
    REPROMPT_TEXT,
    CONFIRM_QUICK_REPLIES,
    build_action_result,
    build_confirmation_prompt,
)
from routes.chat_state import ChatSession, GateOutcome
from routes.chat_time import now_kst
from schemas.chat_schema import (
    Action,
    AddEventAction,
    AddJournalAction,
    AddTodoAction,
    AppSettings,
    CalendarEvent,
    ChatMessage,
    DeleteEventAction,
    GenerateInsightAction,
    JournalEntry,
    Persona,
    Todo,
)

logger = logging.getLogger(__name__)


@dataclass
class TurnOutcome:
    messages: List[ChatMessage] = field(default_factory=list)
    executed: List[Action] = field(default_factory=list)
    pending: Optional[Action] = None


def _notice(content: str, kind: str, action: Optional[Action] = None,
            quick_replies: Optional[List[str]] = None) -> ChatMessage:
    # 페르소나에 귀속되지 않는 안내 메시지(페르소나 히스토리에는 들어가지 않음)
    return ChatMessage(
        id=str(uuid.uuid4()),
        content=content,
        kind=kind,
        action=action,
        quick_replies=quick_replies or [],
    )


async def _run_insight(session: ChatSession, client: CompletionClient, persona: Optional[Persona],
                       settings: Optional[AppSettings], now: datetime) -> Optional[ChatMessage]:
    # 성공하면 None, 실패하면 사용자에게 보여줄 메시지
    connection = resolve_connection(persona, settings)
    if connection is None:
        return _notice(INSIGHT_NO_KEY_TEXT, "warning")
    try:
        post = await run_in_threadpool(
            generate_life_insight, client, connection, session.store.insight_context(now), now
        )
    except CompletionError as e:
        logger.error(f"Insight generation failed: {e}")
        return _notice(INSIGHT_FAILED_TEXT, "error")
    session.store.add_post(post)
    return None


async def execute_action(
    action: Action,
    session: ChatSession,
    client: CompletionClient,
    settings: Optional[AppSettings],
    now: datetime,
    persona: Optional[Persona] = None,
) -> ChatMessage:
    """
    검증(및 확인)이 끝난 액션을 저장소에 정확히 한 번 반영하고 결과 메시지를 만든다.
    저장소 오류는 예외로 올리지 않고 error 메시지로 바꾼다.

    :param action: 실행할 액션(none 제외)
    :type action: Action
    :param session: 대상 세션(저장소 포함)
    :type session: ChatSession
    :param client: 인사이트 생성용 클라이언트
    :type client: CompletionClient
    :param settings: API 연결 설정(인사이트용)
    :type settings: Optional[AppSettings]
    :param now: 기준 시각(할 일/일기 날짜, 인사이트 날짜)
    :type now: datetime
    :param persona: 인사이트 연결을 고를 때 쓰는 첫 번째 페르소나
    :type persona: Optional[Persona]
    :return: executed / not_found / warning / error 메시지
    :rtype: ChatMessage
    """

    store = session.store
    today = now.strftime("%Y-%m-%d")
    try:
        if isinstance(action, AddEventAction):
            store.add_event(CalendarEvent(
                id=store.new_event_id(),
                title=action.title,
                date=action.date,
                start_time=action.start_time,
                end_time=action.end_time,
                tag=action.tag,
            ))
        elif isinstance(action, DeleteEventAction):
            try:
                store.delete_event(action.id)
            except ValueError:
                # 제안 이후 일정 목록이 바뀌어 대상이 사라진 경우
                return _notice(NOT_FOUND_TEXT, "not_found")
        elif isinstance(action, AddTodoAction):
            store.add_todo(action.text, action.category, action.due_date, today)
        elif isinstance(action, AddJournalAction):
            store.add_journal(action.title, action.content, action.mood, today)
        elif isinstance(action, GenerateInsightAction):
            failed = await _run_insight(session, client, persona, settings, now)
            if failed is not None:
                return failed
        else:
            raise ValueError(f"not executable: {action.type}")
    except Exception as e:
        logger.error(f"Action execution error ({action.type}): {e}")
        return _notice(ACTION_FAILED_TEXT, "error")

    logger.info(f"[EXEC] session={session.session_id} action={action.type}")
    content, quick = build_action_result(action)
    return _notice(content, "executed", action=action, quick_replies=quick)


async def handle_chat_turn(
    session: ChatSession,
    user_text: str,
    personas: Sequence[Persona],
    client: CompletionClient,
    settings: Optional[AppSettings] = None,
    mode: Optional[str] = "basic",
    now: Optional[datetime] = None,
    persona_memory: Optional[Dict[str, str]] = None,
    pacing_delay: float = CHAT_PACING_DELAY,
    events: Optional[List[CalendarEvent]] = None,
    todos: Optional[List[Todo]] = None,
    journal: Optional[List[JournalEntry]] = None,
) -> TurnOutcome:
    """
    사용자 입력 한 건을 처리한다.
    1) 확인 대기 액션이 있으면 확인/취소/재안내만 하고 페르소나는 호출하지 않음
    2) 대기 액션이 없으면 페르소나들을 순서대로 호출
    3) 첫 번째 페르소나 액션을 게이트에 제출해 즉시 실행하거나 확인을 요청

    메시지 순서: 페르소나 답변들(순서대로) -> 게이트 메시지(확인 요청 또는 실행 결과)
    events/todos/journal을 주면 세션 잠금 안에서 저장소 내용을 교체한 뒤 처리한다.
    """

    settings = settings or AppSettings()
    now = now or now_kst()
    owner = personas[0] if personas else None
    outcome = TurnOutcome()

    async with session.lock:
        session.store.replace_snapshot(events=events, todos=todos, journal=journal)
        session.gate.configure(settings.chat_action_confirm)
        if persona_memory:
            session.persona_memory.update(persona_memory)

        decision = session.gate.on_user_turn(user_text)
        if decision.outcome == GateOutcome.EXECUTE:
            msg = await execute_action(decision.action, session, client, settings, now, owner)
            outcome.messages.append(msg)
            if msg.kind == "executed":
                outcome.executed.append(decision.action)
        elif decision.outcome == GateOutcome.CANCELLED:
            outcome.messages.append(_notice(CANCELLED_TEXT, "cancelled"))
        elif decision.outcome == GateOutcome.REPROMPT:
            outcome.messages.append(_notice(REPROMPT_TEXT, "reprompt", decision.action, list(CONFIRM_QUICK_REPLIES)))
        else:
            orchestrator = PersonaTurnOrchestrator(client, settings, pacing_delay)
            turn = await orchestrator.run_turn(
                user_text,
                personas,
                session.history,
                session.persona_memory,
                session.store.snapshot(now),
                session.store.events,
                now,
                mode,
            )
            outcome.messages.extend(turn.messages)

            submitted = session.gate.submit(turn.action, now)
            if submitted.outcome == GateOutcome.EXECUTE:
                msg = await execute_action(submitted.action, session, client, settings, now, owner)
                outcome.messages.append(msg)
                if msg.kind == "executed":
                    outcome.executed.append(submitted.action)
            elif submitted.outcome == GateOutcome.PROPOSED:
                content, quick = build_confirmation_prompt(submitted.action)
                outcome.messages.append(_notice(content, "proposal", submitted.action, quick))

        session.add_user_turn(user_text)
        session.add_messages(outcome.messages)
        outcome.pending = session.gate.pending.action if session.gate.pending else None

    return outcome
