# 삭제 대상 해석 유틸

# 이 모듈은 부분적인 식별 정보(id/제목/날짜/시작시각)로 사용자의 기존 일정 중 하나를 고른다.
# 1) id가 정확히 일치하면 바로 반환(나머지 필터는 보지 않음)
# 2) 아니면 전체 일정에서 주어진 조건(날짜 -> 시작시각 -> 제목 양방향 부분 포함)만으로 후보를 좁힘
#    (없는 id만 온 경우엔 조건이 없으므로 전체 일정이 후보)
# 3) 후보가 0개면 None(추측 금지), 1개면 그것, 여러 개면 가장 이른 날짜+시각을 고름
#
# 제목 비교는 대소문자/공백을 무시하고, 일정 제목이 요청 제목을 포함하거나 그 반대여도 일치로 본다.
# (모델/사용자가 전체 제목을 줄 수도, 줄임말을 줄 수도 있기 때문)

from datetime import datetime
from typing import List, Optional, Sequence

from schemas.chat_schema import CalendarEvent, DeleteEventAction

_FAR_FUTURE = datetime.max


def _norm_title(text: Optional[str]) -> str:
    """
    제목 비교용 정규화: 소문자 + 모든 공백 제거
    """

    return "".join((text or "").lower().split())


def _ci_title_match(event_title: Optional[str], target: str) -> bool:
    """
    대소문자/공백 무시 양방향 부분 포함 검사

    :param event_title: 일정 제목
    :param target: 요청에 들어온 제목(정규화 전)
    :return: 한쪽이 다른 쪽을 포함하면 True
    """

    a = _norm_title(event_title)
    b = _norm_title(target)
    return b in a or a in b


def _start_key(e: CalendarEvent) -> datetime:
    # 시각이 없으면 00:00으로 간주, 날짜가 깨져 있으면 맨 뒤로
    try:
        return datetime.fromisoformat(f"{e.date}T{e.start_time or '00:00'}:00")
    except ValueError:
        return _FAR_FUTURE


def _filter_candidates(request: DeleteEventAction, events: Sequence[CalendarEvent]) -> List[CalendarEvent]:
    candidates = list(events)
    if request.date:
        candidates = [e for e in candidates if e.date == request.date]
    if request.start_time:
        candidates = [e for e in candidates if e.start_time == request.start_time]
    if request.title:
        candidates = [e for e in candidates if _ci_title_match(e.title, request.title)]
    return candidates


def resolve_delete_target(request: DeleteEventAction, events: Sequence[CalendarEvent]) -> Optional[CalendarEvent]:
    """
    삭제 요청을 실제 일정 하나로 해석한다. 일정 목록은 읽기만 한다.

    :param request: 검증된 삭제 요청(id/title/date/start_time 일부)
    :type request: DeleteEventAction
    :param events: 사용자의 기존 일정 목록
    :type events: Sequence[CalendarEvent]
    :return: 선택된 일정 또는 None(일치 없음)
    :rtype: Optional[CalendarEvent]
    """

    if request.id:
        hit = next((e for e in events if e.id == request.id), None)
        if hit:
            return hit

    candidates = _filter_candidates(request, events)
    if not candidates:
        return None
    if len(candidates) == 1:
        return candidates[0]
    # 여러 개면 가장 먼저 다가오는 일정 (min은 동률일 때 입력 순서를 유지)
    return min(candidates, key=_start_key)


def resolve_action_target(request: DeleteEventAction, events: Sequence[CalendarEvent]) -> Optional[DeleteEventAction]:
    """
    해석된 일정으로 id가 확정된 삭제 액션을 만든다. 대상이 없으면 None.
    """

    target = resolve_delete_target(request, events)
    if target is None:
        return None
    return DeleteEventAction(id=target.id, title=target.title, date=target.date, start_time=target.start_time)
