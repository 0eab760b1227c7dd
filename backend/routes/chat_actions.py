# routes/chat_actions.py
# 모델 출력 액션 검증/정규화
#
# 모델이 준 action 객체는 신뢰하지 않는다. 원시 dict를 받아 필드별 정규화 전략을 순서대로 시도하고,
# 화이트리스트를 통과한 닫힌 Action 유니온만 돌려준다. 어떤 입력이든 예외 없이 NoAction으로 수렴함.
#
# 입력 예시(raw):
# {
#   "type": "add_event",
#   "event": {"title": "치과", "date": "내일", "startTime": "오후 3시", "type": "tag_2"}
# }

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional, Union

from routes.chat_time import (
    infer_date_from_text,
    infer_time_from_text,
    normalize_date,
    normalize_time,
)
from schemas.chat_schema import (
    DEFAULT_EVENT_TAG,
    DEFAULT_JOURNAL_MOOD,
    DEFAULT_TODO_CATEGORY,
    JOURNAL_MOODS,
    TODO_CATEGORIES,
    Action,
    AddEventAction,
    AddJournalAction,
    AddTodoAction,
    DeleteEventAction,
    GenerateInsightAction,
    NoAction,
)

logger = logging.getLogger(__name__)

EVENT_TITLE_FALLBACK_CHARS = 60
JOURNAL_TITLE_FALLBACK_CHARS = 24

# 확인(실행/취소)이 필요한 액션 타입
CONFIRMATION_REQUIRED_TYPES = {"delete_event", "add_todo", "add_journal"}


def first_success(*strategies: Callable[[], Optional[Any]]) -> Optional[Any]:
    """
    정규화 전략들을 순서대로 실행해 처음으로 None이 아닌 값을 돌려준다.

    :param strategies: 인자 없는 callable 목록(각각 값 또는 None 반환)
    :return: 첫 성공 값 또는 None
    """

    for strategy in strategies:
        value = strategy()
        if value is not None:
            return value
    return None


def _text_or_none(v: Any) -> Optional[str]:
    if isinstance(v, str) and v.strip():
        return v.strip()
    return None


def _pick(obj: Dict[str, Any], *keys: str) -> Any:
    # camelCase/snake_case 어느 쪽으로 와도 읽는다
    for k in keys:
        if k in obj and obj[k] is not None:
            return obj[k]
    return None


def _sub_object(raw: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    v = _pick(raw, *keys)
    return v if isinstance(v, dict) else {}


def _validate_add_event(raw: Dict[str, Any], user_text: str, anchor: date) -> Action:
    ev = _sub_object(raw, "event")
    title = first_success(
        lambda: _text_or_none(ev.get("title")),
        lambda: _text_or_none(user_text[:EVENT_TITLE_FALLBACK_CHARS]),
        lambda: "New event",
    )
    event_date = first_success(
        lambda: normalize_date(ev.get("date"), anchor),
        lambda: infer_date_from_text(user_text, anchor),
        lambda: anchor.isoformat(),
    )
    start_time = first_success(
        lambda: normalize_time(_pick(ev, "startTime", "start_time")),
        lambda: infer_time_from_text(user_text),
    )
    # 종료 시각은 원문 추정을 하지 않는다(시작 시각과 같은 값을 잡아버림)
    end_time = normalize_time(_pick(ev, "endTime", "end_time"))
    tag = first_success(
        lambda: _text_or_none(_pick(ev, "type", "tag")),
        lambda: DEFAULT_EVENT_TAG,
    )
    return AddEventAction(title=title, date=event_date, start_time=start_time, end_time=end_time, tag=tag)


def _validate_delete_event(raw: Dict[str, Any], user_text: str, anchor: date) -> Action:
    target = _sub_object(raw, "deleteEvent", "delete_event")
    event_id = _text_or_none(target.get("id"))
    title = _text_or_none(target.get("title"))
    event_date = first_success(
        lambda: normalize_date(target.get("date"), anchor),
        lambda: infer_date_from_text(user_text, anchor),
    )
    start_time = first_success(
        lambda: normalize_time(_pick(target, "startTime", "start_time")),
        lambda: infer_time_from_text(user_text),
    )
    # 식별 정보가 하나도 없으면 추측하지 않고 거절
    if not event_id and not title and not event_date:
        logger.debug("[VALIDATE] delete_event without any identifying field -> none")
        return NoAction()
    return DeleteEventAction(id=event_id, title=title, date=event_date, start_time=start_time)


def _validate_add_todo(raw: Dict[str, Any], user_text: str, anchor: date) -> Action:
    todo = _sub_object(raw, "todo")
    text = _text_or_none(todo.get("text"))
    if not text:
        return NoAction()
    category = todo.get("category")
    if category not in TODO_CATEGORIES:
        category = DEFAULT_TODO_CATEGORY
    due_date = normalize_date(_pick(todo, "dueDate", "due_date"), anchor)
    return AddTodoAction(text=text, category=category, due_date=due_date)


def _validate_add_journal(raw: Dict[str, Any], user_text: str, anchor: date) -> Action:
    journal = _sub_object(raw, "journal")
    content = _text_or_none(journal.get("content"))
    if not content:
        return NoAction()
    title = first_success(
        lambda: _text_or_none(journal.get("title")),
        lambda: _text_or_none(content[:JOURNAL_TITLE_FALLBACK_CHARS]),
        lambda: "Chat memo",
    )
    mood = journal.get("mood")
    if mood not in JOURNAL_MOODS:
        mood = DEFAULT_JOURNAL_MOOD
    return AddJournalAction(title=title, content=content, mood=mood)


def _validate_generate_insight(raw: Dict[str, Any], user_text: str, anchor: date) -> Action:
    return GenerateInsightAction()


_VALIDATORS = {
    "add_event": _validate_add_event,
    "delete_event": _validate_delete_event,
    "add_todo": _validate_add_todo,
    "add_journal": _validate_add_journal,
    "generate_insight": _validate_generate_insight,
}


def validate_action(raw: Any, latest_user_text: Any, anchor: Union[date, datetime]) -> Action:
    """
    모델이 준 원시 액션을 검증해 정규화된 Action으로 만든다.
    알 수 없는 type, 잘못된 모양, 필수 값 누락은 모두 NoAction으로 떨어진다(예외 없음).

    :param raw: 모델 출력의 action 값(dict가 아니어도 됨)
    :type raw: Any
    :param latest_user_text: 가장 최근 사용자 발화(날짜/시간/제목 추정용)
    :type latest_user_text: Any
    :param anchor: 상대 날짜의 기준 시각
    :type anchor: date | datetime
    :return: 검증된 Action
    :rtype: Action
    """

    if not isinstance(raw, dict):
        return NoAction()
    action_type = raw.get("type")
    if not isinstance(action_type, str):
        return NoAction()
    validator = _VALIDATORS.get(action_type.strip())
    if validator is None:
        return NoAction()

    user_text = latest_user_text.strip() if isinstance(latest_user_text, str) else ""
    anchor_date = anchor.date() if isinstance(anchor, datetime) else anchor
    try:
        return validator(raw, user_text, anchor_date)
    except Exception as e:
        logger.warning(f"[VALIDATE] malformed {action_type} payload dropped: {e}")
        return NoAction()


def requires_confirmation(action: Action) -> bool:
    return action.type in CONFIRMATION_REQUIRED_TYPES
