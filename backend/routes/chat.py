# 채팅 라우터. 사용자 입력 한 건을 확인 게이트 / 페르소나 진행 / 액션 실행 흐름으로 처리함.
import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from routes.chat_openai import CompletionClient
from routes.chat_spec import DEFAULT_PERSONAS
from routes.chat_state import drop_session, get_or_create_session, get_session
from routes.chat_time import KST, now_kst
from schemas.chat_schema import (
    Action,
    AppSettings,
    CalendarEvent,
    ChatMessage,
    ChatMode,
    InsightPost,
    JournalEntry,
    Persona,
    Todo,
)
from services.chat_service import handle_chat_turn

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/chat", tags=["chat"])

# 프로세스 단위 Completion 클라이언트(상태 없음)
_client = CompletionClient()


# IO 모델(요청/응답 스키마)
class ChatIn(BaseModel):
    """
    /chat/message 엔드포인트 입력 스키마
    """
    session_id: str = Field(min_length=1)
    user_message: str
    personas: Optional[List[Persona]] = None
    persona_memory: Optional[Dict[str, str]] = None
    settings: Optional[AppSettings] = None
    mode: Optional[ChatMode] = "basic"
    now: Optional[datetime] = None
    # 클라이언트의 현재 데이터(보내면 세션 저장소 내용을 교체)
    events: Optional[List[CalendarEvent]] = None
    todos: Optional[List[Todo]] = None
    journal: Optional[List[JournalEntry]] = None


class ChatOut(BaseModel):
    """
    /chat/message 엔드포인트 출력 스키마
    """
    messages: List[ChatMessage]
    executed: List[Action] = Field(default_factory=list)
    pending: Optional[Action] = None


class SessionOut(BaseModel):
    session_id: str
    state: str
    pending: Optional[Action] = None
    history_length: int
    events: List[CalendarEvent]
    todos: List[Todo]
    journal: List[JournalEntry]
    posts: List[InsightPost]


def _turn_clock(now: Optional[datetime]) -> datetime:
    if now is None:
        return now_kst()
    # 타임존이 없으면 KST 벽시계로 간주
    return now if now.tzinfo else now.replace(tzinfo=KST)


# 라우터 엔드포인트
@router.post("/message", response_model=ChatOut)
async def chat_message(input: ChatIn):
    """
    채팅 메시지 한 건 처리

    :param input: 사용자 입력/페르소나/설정/현재 데이터
    :type input: ChatIn
    :return: 페르소나 답변 + 게이트 메시지, 실행된 액션, 확인 대기 액션
    :rtype: ChatOut
    """
    sid = input.session_id.strip()
    session = get_or_create_session(sid)

    personas = input.personas or DEFAULT_PERSONAS[:1]
    logger.debug(f"[CHAT] session={sid} personas={[p.id for p in personas]} user='{input.user_message[:80]}'")

    outcome = await handle_chat_turn(
        session,
        input.user_message,
        personas,
        _client,
        settings=input.settings,
        mode=input.mode,
        now=_turn_clock(input.now),
        persona_memory=input.persona_memory,
        events=input.events,
        todos=input.todos,
        journal=input.journal,
    )
    return ChatOut(messages=outcome.messages, executed=outcome.executed, pending=outcome.pending)


@router.get("/sessions/{session_id}", response_model=SessionOut)
def read_session(session_id: str):
    session = get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="세션을 찾을 수 없습니다.")
    return SessionOut(
        session_id=session.session_id,
        state=session.gate.state,
        pending=session.gate.pending.action if session.gate.pending else None,
        history_length=len(session.history),
        events=session.store.events,
        todos=session.store.todos,
        journal=session.store.journal,
        posts=session.store.posts,
    )


@router.delete("/sessions/{session_id}")
def delete_session(session_id: str):
    return {"ok": drop_session(session_id)}
