# routes/chat_state.py
# 세션 / 확인 게이트
#
# 세션별 상태(대화 기록, 확인 대기 액션, 저장소, 페르소나 메모리)는 ChatSession 객체 하나에 모아 두고,
# 세션 ID -> ChatSession 레지스트리로 찾는다.
#
# 확인 게이트 상태 전이:
#   Idle + 확인 불필요 액션           -> 즉시 실행, Idle 유지
#   Idle + 확인 필요 액션             -> Proposed(action), 요약 + [실행/취소] 안내
#   Proposed + 확인 키워드            -> 실행, Idle
#   Proposed + 취소 키워드            -> 폐기, Idle
#   Proposed + 그 밖의 입력           -> 새 요청으로 보지 않고 재안내, Proposed 유지
#   확인 기능 off                      -> 게이트 우회(항상 즉시 실행)

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from routes.chat_actions import requires_confirmation
from routes.chat_time import now_kst
from schemas.chat_schema import Action, ChatMessage, ConversationTurn, PendingAction
from services.life_store import LifeStore

logger = logging.getLogger(__name__)

CONFIRM_KEYWORDS = {"실행", "확인", "네", "응", "좋아", "그래", "ㅇㅋ", "ok", "오케이"}
CANCEL_KEYWORDS = {"취소", "아니", "그만", "나중에", "no"}

_KEYWORD_PUNCT_RE = re.compile(r"[.!?~,。！？]")


class GateOutcome(str, Enum):
    PASS = "pass"            # 대기 중인 액션 없음 -> 일반 턴 진행
    IGNORED = "ignored"      # 제출된 액션이 none
    EXECUTE = "execute"
    PROPOSED = "proposed"
    CANCELLED = "cancelled"
    REPROMPT = "reprompt"


@dataclass
class GateDecision:
    outcome: GateOutcome
    action: Optional[Action] = None


def normalize_keyword(text: str) -> str:
    return _KEYWORD_PUNCT_RE.sub("", (text or "").strip().lower()).strip()


def classify_reply(text: str) -> Optional[str]:
    """
    확인 대기 중 사용자 입력이 확인/취소 키워드인지 판별한다(메시지 전체 일치).

    :param text: 사용자 입력
    :type text: str
    :return: "confirm" | "cancel" | None
    :rtype: Optional[str]
    """

    normalized = normalize_keyword(text)
    if normalized in CONFIRM_KEYWORDS:
        return "confirm"
    if normalized in CANCEL_KEYWORDS:
        return "cancel"
    return None


class ConfirmationGate:
    """
    대화 세션 하나의 실행/취소 확인 상태 머신. 대기 액션은 최대 1개.
    """

    def __init__(self, require_confirm: bool = True):
        self.require_confirm = require_confirm
        self.pending: Optional[PendingAction] = None

    @property
    def state(self) -> str:
        return "proposed" if self.pending else "idle"

    def configure(self, require_confirm: bool) -> None:
        if not require_confirm and self.pending:
            logger.info("[GATE] confirmation turned off, dropping pending %s", self.pending.action.type)
            self.pending = None
        self.require_confirm = require_confirm

    def on_user_turn(self, text: str) -> GateDecision:
        """
        대기 액션이 있을 때 사용자 입력을 먼저 처리한다.

        :param text: 사용자 입력
        :type text: str
        :return: PASS(대기 없음) / EXECUTE / CANCELLED / REPROMPT
        :rtype: GateDecision
        """

        if not self.pending:
            return GateDecision(GateOutcome.PASS)

        kind = classify_reply(text)
        if kind == "confirm":
            action = self.pending.action
            self.pending = None
            return GateDecision(GateOutcome.EXECUTE, action)
        if kind == "cancel":
            action = self.pending.action
            self.pending = None
            logger.debug("[GATE] cancelled %s", action.type)
            return GateDecision(GateOutcome.CANCELLED, action)
        return GateDecision(GateOutcome.REPROMPT, self.pending.action)

    def submit(self, action: Action, now: Optional[datetime] = None) -> GateDecision:
        """
        검증된 액션을 즉시 실행할지, 확인을 받을지 결정한다.
        이미 대기 중인 액션이 있으면 새 제안을 받지 않는다(REPROMPT).
        """

        if self.pending:
            return GateDecision(GateOutcome.REPROMPT, self.pending.action)
        if action.type == "none":
            return GateDecision(GateOutcome.IGNORED)
        if self.require_confirm and requires_confirmation(action):
            self.pending = PendingAction(action=action, proposed_at=now or now_kst())
            logger.debug("[GATE] proposed %s", action.type)
            return GateDecision(GateOutcome.PROPOSED, action)
        return GateDecision(GateOutcome.EXECUTE, action)


@dataclass
class ChatSession:
    session_id: str
    gate: ConfirmationGate = field(default_factory=ConfirmationGate)
    store: LifeStore = field(default_factory=LifeStore)
    history: List[ConversationTurn] = field(default_factory=list)
    persona_memory: Dict[str, str] = field(default_factory=dict)
    # 같은 세션의 턴은 한 번에 하나씩만 처리
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def add_user_turn(self, text: str) -> None:
        self.history.append(ConversationTurn(role="user", content=text))

    def add_messages(self, messages: List[ChatMessage]) -> None:
        for m in messages:
            self.history.append(ConversationTurn(role="assistant", content=m.content, persona_id=m.persona_id))


# 세션 ID -> ChatSession
SESSIONS: Dict[str, ChatSession] = {}


def get_session(sid: str) -> Optional[ChatSession]:
    return SESSIONS.get(sid)


def get_or_create_session(sid: str) -> ChatSession:
    session = SESSIONS.get(sid)
    if session is None:
        session = ChatSession(session_id=sid)
        SESSIONS[sid] = session
        logger.debug(f"Created chat session {sid}")
    return session


def drop_session(sid: str) -> bool:
    """세션 상태 폐기"""
    return SESSIONS.pop(sid, None) is not None
