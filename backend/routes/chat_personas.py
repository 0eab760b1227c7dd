# routes/chat_personas.py
# 멀티 페르소나 턴 진행
#
# 한 사용자 턴에서 활성 페르소나들을 순서대로 한 명씩 호출한다(동시 호출 없음).
# - 액션은 첫 번째 페르소나만 가질 수 있고, 나머지 페르소나가 준 액션은 버린다.
# - 페르소나별 히스토리 = 모든 사용자 턴 + 그 페르소나 자신의 답변(다른 페르소나 답변 내용은 보지 않음)
# - 한 페르소나의 실패(연결 없음 / 호출 오류)는 그 페르소나 메시지로만 끝나고 턴은 계속 진행

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from fastapi.concurrency import run_in_threadpool

from routes.chat_actions import validate_action
from routes.chat_filters import resolve_action_target
from routes.chat_openai import (
    CHAT_TEMPERATURE,
    GROUP_CHAT_TEMPERATURE,
    CompletionClient,
    CompletionError,
    parse_json_reply,
    resolve_connection,
)
from routes.chat_render import (
    APOLOGY_TEXT,
    DEFAULT_REPLY_TEXT,
    NOT_FOUND_TEXT,
    PARSE_FAILED_TEXT,
    persona_fallback_reply,
    persona_unavailable_text,
)
from routes.chat_sanitize import sanitize_reply
from routes.chat_spec import (
    CHAT_HISTORY_LIMIT,
    MAX_ACTIVE_PERSONAS,
    MODEL_MESSAGE_CHAR_LIMIT,
    build_system_prompt,
    truncate_for_model,
)
from schemas.chat_schema import (
    Action,
    AppSettings,
    CalendarEvent,
    ChatMessage,
    ContextSnapshot,
    ConversationTurn,
    DeleteEventAction,
    NoAction,
    Persona,
)

logger = logging.getLogger(__name__)

# 페르소나 요청 사이 간격(초)
CHAT_PACING_DELAY = float(os.getenv("CHAT_PACING_DELAY", "0.08"))


@dataclass
class TurnResult:
    messages: List[ChatMessage] = field(default_factory=list)
    action: Action = field(default_factory=NoAction)
    raw_action_type: Optional[str] = None


def unique_personas(personas: Sequence[Persona]) -> List[Persona]:
    """id 기준 중복 제거 + 최대 인원 제한(순서 유지, 첫 번째가 액션 담당)"""
    seen = set()
    out: List[Persona] = []
    for p in personas:
        if p.id in seen:
            continue
        seen.add(p.id)
        out.append(p)
        if len(out) >= MAX_ACTIVE_PERSONAS:
            break
    return out


def persona_history(history: Sequence[ConversationTurn], persona_id: str, user_text: str) -> List[Dict[str, str]]:
    """
    페르소나 한 명에게 보낼 대화 히스토리를 만든다.
    persona_id가 없는 어시스턴트 턴(확인 안내 등)은 누구에게도 보내지 않는다.

    :param history: 세션 대화 기록(이번 사용자 입력 제외)
    :type history: Sequence[ConversationTurn]
    :param persona_id: 대상 페르소나 id
    :type persona_id: str
    :param user_text: 이번 턴 사용자 입력
    :type user_text: str
    :return: 최근 CHAT_HISTORY_LIMIT개, 각 MODEL_MESSAGE_CHAR_LIMIT자로 자른 role/content 목록
    :rtype: List[Dict[str, str]]
    """

    turns = [
        t for t in history
        if t.role == "user" or (t.persona_id is not None and t.persona_id == persona_id)
    ]
    turns.append(ConversationTurn(role="user", content=user_text))
    return [
        {"role": t.role, "content": truncate_for_model(t.content, MODEL_MESSAGE_CHAR_LIMIT)}
        for t in turns[-CHAT_HISTORY_LIMIT:]
    ]


def _message(persona: Persona, content: str, kind: str = "reply") -> ChatMessage:
    return ChatMessage(
        id=str(uuid.uuid4()),
        content=content,
        kind=kind,
        persona_id=persona.id,
        persona_name=persona.name,
    )


def _raw_action_type(raw: Any) -> Optional[str]:
    if isinstance(raw, dict) and isinstance(raw.get("type"), str):
        return raw["type"].strip()
    return None


class PersonaTurnOrchestrator:
    """
    사용자 턴 하나를 활성 페르소나 목록에 대해 순차 실행하는 진행자.

    :param client: 동기 Completion 클라이언트(threadpool에서 호출)
    :type client: CompletionClient
    :param settings: 요청의 API 연결 설정
    :type settings: Optional[AppSettings]
    :param pacing_delay: 페르소나 요청 사이 대기(초)
    :type pacing_delay: float
    """

    def __init__(self, client: CompletionClient, settings: Optional[AppSettings] = None,
                 pacing_delay: float = CHAT_PACING_DELAY):
        self.client = client
        self.settings = settings
        self.pacing_delay = pacing_delay

    async def _complete(self, persona: Persona, connection, messages, temperature) -> Optional[str]:
        try:
            return await run_in_threadpool(self.client.complete, connection, messages, temperature)
        except CompletionError as e:
            logger.error(f"[PERSONA] completion failed for {persona.id}: {e}")
            return None

    def _resolve_first_action(self, raw: Any, user_text: str, anchor: datetime,
                              events: Sequence[CalendarEvent]) -> Optional[Action]:
        # 반환값 None = 삭제 대상을 못 찾음
        action = validate_action(raw, user_text, anchor)
        if _raw_action_type(raw) != "delete_event":
            return action
        if not isinstance(action, DeleteEventAction):
            return None
        return resolve_action_target(action, events)

    async def run_turn(
        self,
        user_text: str,
        personas: Sequence[Persona],
        history: Sequence[ConversationTurn],
        persona_memory: Optional[Dict[str, str]],
        snapshot: ContextSnapshot,
        events: Sequence[CalendarEvent],
        anchor: datetime,
        mode: Optional[str] = "basic",
    ) -> TurnResult:
        """
        활성 페르소나마다 한 번씩 순서대로 답변을 받고, 첫 번째 페르소나의 액션만 검증해 돌려준다.

        :param user_text: 이번 턴 사용자 입력
        :type user_text: str
        :param personas: 활성 페르소나(첫 번째가 액션 담당)
        :type personas: Sequence[Persona]
        :param history: 이번 입력 이전까지의 대화 기록
        :type history: Sequence[ConversationTurn]
        :param persona_memory: 페르소나 id -> 장기 메모리
        :type persona_memory: Optional[Dict[str, str]]
        :param snapshot: 지시문용 도메인 요약
        :type snapshot: ContextSnapshot
        :param events: 삭제 대상 해석용 전체 일정
        :type events: Sequence[CalendarEvent]
        :param anchor: 상대 날짜 기준 시각
        :type anchor: datetime
        :param mode: basic | roleplay | learning
        :type mode: Optional[str]
        :return: 페르소나 순서대로의 메시지 + 검증된 액션
        :rtype: TurnResult
        """

        active = unique_personas(personas)
        result = TurnResult()
        if not active:
            return result

        names = [p.name for p in active]
        memory = persona_memory or {}
        temperature = GROUP_CHAT_TEMPERATURE if len(active) > 1 else CHAT_TEMPERATURE
        replied: List[str] = []

        for idx, persona in enumerate(active):
            is_first = idx == 0
            others = [n for n in names if n != persona.name]

            connection = resolve_connection(persona, self.settings)
            if connection is None:
                logger.warning(f"[PERSONA] no usable API connection for {persona.id}")
                result.messages.append(_message(persona, persona_unavailable_text(persona.name), kind="warning"))
                continue

            if idx > 0 and self.pacing_delay > 0:
                await asyncio.sleep(self.pacing_delay)

            system_prompt = build_system_prompt(
                persona,
                snapshot,
                memory=memory.get(persona.id),
                mode=mode,
                other_names=others,
                replied_names=replied,
                is_first=is_first,
            )
            messages = [{"role": "system", "content": system_prompt}] + persona_history(history, persona.id, user_text)

            content = await self._complete(persona, connection, messages, temperature)
            if content is None:
                result.messages.append(_message(persona, APOLOGY_TEXT, kind="error"))
                continue

            parsed = parse_json_reply(content)
            if parsed is None:
                logger.warning(f"[PERSONA] non-JSON completion from {persona.id}")
                reply = sanitize_reply(content, persona.name, others) or PARSE_FAILED_TEXT
                raw_action = None
            else:
                raw_reply = parsed.get("reply")
                reply = sanitize_reply(raw_reply if isinstance(raw_reply, str) else "", persona.name, others)
                raw_action = parsed.get("action")

            if not reply:
                reply = DEFAULT_REPLY_TEXT if is_first else persona_fallback_reply(persona.name)

            if not is_first:
                if _raw_action_type(raw_action) not in (None, "none"):
                    logger.debug(f"[PERSONA] dropped action from non-owner {persona.id}: {_raw_action_type(raw_action)}")
                result.messages.append(_message(persona, reply))
                replied.append(persona.name)
                continue

            result.raw_action_type = _raw_action_type(raw_action)
            action = self._resolve_first_action(raw_action, user_text, anchor, events)
            if action is None:
                logger.info(f"[PERSONA] delete target not found: {raw_action}")
                result.messages.append(_message(persona, NOT_FOUND_TEXT, kind="not_found"))
            else:
                result.action = action
                result.messages.append(_message(persona, reply))
            replied.append(persona.name)

        logger.debug(f"[PERSONA] turn done: messages={len(result.messages)} action={result.action.type}")
        return result
