# routes/chat_time.py
# 날짜 / 시간 정규화 / 정규식

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional, Union

from dateutil import parser as dateutil_parser

KST = timezone(timedelta(hours=9))
WEEKDAY_KO = ["월", "화", "수", "목", "금", "토", "일"]

DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$", re.ASCII)
HHMM_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$", re.ASCII)
HOUR_ONLY_RE = re.compile(r"^(\d{1,2})$", re.ASCII)
# '오후 3시', '오전 10시 30분', '3시 반' (단, '3시간'은 제외)
KOREAN_TIME_RE = re.compile(
    r"(오전|오후)?\s*(\d{1,2})\s*시(?!간|작)(?:\s*(?:(\d{1,2})\s*분|(반)))?", re.ASCII
)
# 'pm 2:30', 'AM 9'
AMPM_PREFIX_RE = re.compile(r"(?<![a-z])(am|pm)\s*(\d{1,2})(?::(\d{1,2}))?", re.ASCII | re.IGNORECASE)
# '2:30pm', '9 am'
AMPM_SUFFIX_RE = re.compile(r"(?<!\d)(\d{1,2})(?::(\d{1,2}))?\s*(am|pm)(?![a-z])", re.ASCII | re.IGNORECASE)

# 자유 텍스트 안에 박힌 ISO 날짜 / HH:MM
ISO_DATE_IN_TEXT_RE = re.compile(r"(?<!\d)(\d{4}-\d{2}-\d{2})(?!\d)", re.ASCII)
HHMM_IN_TEXT_RE = re.compile(r"(?<!\d)([01]?\d|2[0-3]):([0-5]\d)(?!\d)", re.ASCII)

# ISO 타임스탬프 탐지(ex: 2025-08-26T12:34:56Z / +09:00 등등)
ISO_TS_RE = re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(?::\d{2})?(?:Z|[+-]\d{2}:\d{2})?", re.ASCII)

# 구조화 값에서 허용하는 상대 날짜 토큰(완전 일치)
RELATIVE_DATE_TOKENS = {
    "today": 0,
    "오늘": 0,
    "tomorrow": 1,
    "내일": 1,
    "day after tomorrow": 2,
    "모레": 2,
    "내일모레": 2,
    "next week": 7,
    "다음주": 7,
    "다음 주": 7,
}

# 자유 텍스트 스캔용. 긴 토큰을 먼저 본다('내일모레'가 '내일'에 먹히지 않도록)
TEXT_DATE_TOKENS = [
    (("내일모레", "day after tomorrow", "모레"), 2),
    (("내일", "tomorrow"), 1),
    (("다음주", "다음 주", "next week"), 7),
    (("오늘", "today"), 0),
]

AnchorLike = Union[date, datetime]


def now_kst() -> datetime:
    return datetime.now(KST)


def _as_date(anchor: AnchorLike) -> date:
    return anchor.date() if isinstance(anchor, datetime) else anchor


def friendly_today(now: Optional[datetime] = None) -> str:
    """
    KST 기준 '오늘'을 사람이 읽기 쉬운 형식으로 반환한다.
    예: "2025-08-25 (월) 13:20"

    :param now: 기준 시각(없으면 현재 KST)
    :type now: Optional[datetime]
    :return: "YYYY-MM-DD (요일) HH:MM" 형태 문자열
    :rtype: str
    """

    n = now or now_kst()
    return f"{n.strftime('%Y-%m-%d')} ({WEEKDAY_KO[n.weekday()]}) {n.strftime('%H:%M')}"


def format_korean_date(value: str) -> str:
    """
    'YYYY-MM-DD'를 "3월 11일 (월요일)" 형태로 바꾼다. 해석할 수 없으면 원문 그대로.
    """

    try:
        d = date.fromisoformat(value)
    except (TypeError, ValueError):
        return value
    return f"{d.month}월 {d.day}일 ({WEEKDAY_KO[d.weekday()]}요일)"


def iso_str_to_kst_friendly(iso_str: str) -> str:
    """
    ISO 타임스탬프를 한국어 친화 문자열로 바꾼다.

    :param iso_str: ISO 유사 타임스탬프(Z 포함 가능)
    :type iso_str: str
    :return: "YYYY-MM-DD (요일) HH:MM" 문자열
    :rtype: str
    """

    try:
        dt = datetime.fromisoformat(iso_str.replace("Z", "+00:00"))
    except ValueError:
        return iso_str
    dt = (dt if dt.tzinfo else dt.replace(tzinfo=KST)).astimezone(KST)
    return friendly_today(dt)


def _parse_absolute_date(value: str, base: date) -> Optional[str]:
    # 숫자만 있는 짧은 값('3', '15')이나 시각만 있는 값은 날짜로 보지 않는다
    if (value.isdigit() and len(value) < 6) or HHMM_RE.match(value):
        return None
    # 기본값을 달리해 두 번 파싱: 문자열이 월을 정하지 않으면(시각만 있는 '3pm', 'at 5' 등) 결과가 갈림
    alt_default = datetime(
        base.year + 1,
        1 if base.month != 1 else 2,
        1 if base.day != 1 else 2,
    )
    try:
        parsed = dateutil_parser.parse(value, default=datetime(base.year, base.month, base.day))
        alt = dateutil_parser.parse(value, default=alt_default)
    except (ValueError, OverflowError, TypeError, IndexError):
        return None
    if parsed.month != alt.month:
        return None
    return parsed.date().isoformat()


def normalize_date(raw: Any, anchor: AnchorLike) -> Optional[str]:
    """
    느슨한 날짜 표현을 'YYYY-MM-DD'로 정규화한다.

    - 'YYYY-MM-DD' (실제로 존재하는 날짜인지 검증)
    - 상대 표현: today/오늘, tomorrow/내일, day after tomorrow/모레, next week/다음주
    - 그 밖에 절대 날짜로 해석 가능한 문자열(연/월/일이 빠지면 anchor에서 채움)

    :param raw: 모델이 준 값(문자열이 아니면 None)
    :type raw: Any
    :param anchor: 상대 표현의 기준 시각
    :type anchor: date | datetime
    :return: 'YYYY-MM-DD' 또는 None(해석 실패)
    :rtype: Optional[str]
    """

    if not isinstance(raw, str):
        return None
    value = raw.strip()
    if not value:
        return None
    base = _as_date(anchor)

    if DATE_ONLY_RE.match(value):
        try:
            return date.fromisoformat(value).isoformat()
        except ValueError:
            return None

    offset = RELATIVE_DATE_TOKENS.get(value.lower())
    if offset is not None:
        return (base + timedelta(days=offset)).isoformat()

    return _parse_absolute_date(value, base)


def _compose_time(hour: int, minute: int, meridiem: Optional[str] = None) -> Optional[str]:
    # meridiem: 'am' | 'pm' | None (12시간제 -> 24시간제 변환)
    if minute < 0 or minute > 59:
        return None
    if meridiem == "pm" and hour < 12:
        hour += 12
    if meridiem == "am" and hour == 12:
        hour = 0
    if 0 <= hour <= 23:
        return f"{hour:02d}:{minute:02d}"
    return None


def _korean_match_to_time(m: re.Match) -> Optional[str]:
    meridiem = {"오전": "am", "오후": "pm"}.get(m.group(1) or "")
    minute = 30 if m.group(4) else int(m.group(3) or 0)
    return _compose_time(int(m.group(2)), minute, meridiem)


def _ampm_prefix_to_time(m: re.Match) -> Optional[str]:
    return _compose_time(int(m.group(2)), int(m.group(3) or 0), m.group(1).lower())


def _ampm_suffix_to_time(m: re.Match) -> Optional[str]:
    return _compose_time(int(m.group(1)), int(m.group(2) or 0), m.group(3).lower())


def normalize_time(raw: Any) -> Optional[str]:
    """
    느슨한 시각 표현을 24시간제 'HH:MM'으로 정규화한다.

    :param raw: '14:30', '9', '오후 3시', '오전 10시 30분', 'pm 2:30', '2:30pm' 등
    :type raw: Any
    :return: 'HH:MM' 또는 None(분이 0~59를 벗어나거나 해석 실패)
    :rtype: Optional[str]
    """

    if not isinstance(raw, str):
        return None
    value = raw.strip()
    if not value:
        return None

    m = HHMM_RE.match(value)
    if m:
        return _compose_time(int(m.group(1)), int(m.group(2)))

    m = HOUR_ONLY_RE.match(value)
    if m:
        return _compose_time(int(m.group(1)), 0)

    m = KOREAN_TIME_RE.search(value)
    if m:
        return _korean_match_to_time(m)

    m = AMPM_PREFIX_RE.search(value)
    if m:
        return _ampm_prefix_to_time(m)

    m = AMPM_SUFFIX_RE.search(value)
    if m:
        return _ampm_suffix_to_time(m)

    return None


def infer_date_from_text(text: Any, anchor: AnchorLike) -> Optional[str]:
    """
    구조화 출력에 날짜가 없을 때 사용자 원문에서 날짜를 추정한다(상대 표현 -> ISO 날짜 순).
    """

    if not isinstance(text, str) or not text.strip():
        return None
    lowered = text.lower()
    base = _as_date(anchor)
    for tokens, offset in TEXT_DATE_TOKENS:
        if any(t in lowered for t in tokens):
            return (base + timedelta(days=offset)).isoformat()

    m = ISO_DATE_IN_TEXT_RE.search(text)
    if m:
        return normalize_date(m.group(1), base)
    return None


def infer_time_from_text(text: Any) -> Optional[str]:
    """
    사용자 원문에서 시각을 추정한다(HH:MM -> 한국어 시/분 순).
    am/pm 표기는 구조화 값(normalize_time)에서만 해석한다.
    """

    if not isinstance(text, str) or not text.strip():
        return None

    m = HHMM_IN_TEXT_RE.search(text)
    if m:
        return _compose_time(int(m.group(1)), int(m.group(2)))

    m = KOREAN_TIME_RE.search(text)
    if m:
        return _korean_match_to_time(m)

    return None
