# routes/chat_sanitize.py
# 페르소나 답변 정리(자기 이름 태그 / 다른 페르소나 사칭 줄 제거)

import re
from typing import Iterable, List

from routes.chat_time import ISO_TS_RE, iso_str_to_kst_friendly

# 답변 맨 앞의 [태그]
LEADING_TAG_RE = re.compile(r"^\[([^\]\n]{1,24})\]\s*")
GENERIC_ROLE_TAGS = {"ai", "assistant", "bot", "봇", "챗봇", "어시스턴트", "비서"}


def _is_self_tag(tag: str, self_name: str) -> bool:
    name = self_name.strip().lower()
    if not name:
        return False
    return tag == name or tag == f"{name}님" or name in tag


def _strip_leading_tag(text: str, self_name: str) -> str:
    m = LEADING_TAG_RE.match(text)
    if not m:
        return text
    tag = m.group(1).strip().lower()
    if tag in GENERIC_ROLE_TAGS or _is_self_tag(tag, self_name):
        return text[m.end():].lstrip()
    return text


def _name_prefix_re(name: str) -> re.Pattern:
    # 'Name:' / 'Name：' (전각 콜론 포함)
    return re.compile(rf"^{re.escape(name.strip())}\s*[:：]\s*", re.IGNORECASE)


def _strip_self_prefix(text: str, self_name: str) -> str:
    if not self_name.strip():
        return text
    return _name_prefix_re(self_name).sub("", text, count=1).lstrip()


def _line_speaks_as(line: str, name: str) -> bool:
    s = line.lstrip()
    m = LEADING_TAG_RE.match(s)
    if m and name.strip().lower() in m.group(1).strip().lower():
        return True
    return bool(_name_prefix_re(name).match(s))


def _drop_impersonated_lines(text: str, other_names: List[str]) -> str:
    kept = [
        line for line in text.splitlines()
        if not any(_line_speaks_as(line, n) for n in other_names)
    ]
    cleaned = "\n".join(kept).strip()
    # 전부 지워지면 줄 제거 전 텍스트를 유지
    return cleaned or text


def sanitize_reply(reply: str, self_name: str, other_names: Iterable[str] = ()) -> str:
    """
    모델 답변을 대화 노출용으로 정리한다.
    - 맨 앞의 일반 역할 태그([AI], [봇] 등) 또는 자기 이름 태그 제거
    - 맨 앞의 '자기이름:' 접두어 제거
    - 다중 페르소나 모드면 다른 페르소나 이름으로 시작하는 줄 제거
    - 생 ISO 타임스탬프를 친화 포맷으로 치환

    :param reply: 모델 원문
    :type reply: str
    :param self_name: 답변한 페르소나 이름
    :type self_name: str
    :param other_names: 같은 턴에 활성화된 다른 페르소나 이름들
    :type other_names: Iterable[str]
    :return: 정리된 텍스트(입력이 비어있지 않으면 절대 빈 문자열이 아님)
    :rtype: str
    """

    trimmed = (reply or "").strip() if isinstance(reply, str) else ""
    if not trimmed:
        return ""

    self_name = self_name or ""
    result = _strip_leading_tag(trimmed, self_name)
    result = _strip_self_prefix(result, self_name)

    others = [n for n in other_names if n and n.strip() and n.strip().lower() != self_name.strip().lower()]
    if others and result:
        result = _drop_impersonated_lines(result, others)

    result = ISO_TS_RE.sub(lambda m: iso_str_to_kst_friendly(m.group(0)), result)
    result = re.sub(r"[ \t]{2,}", " ", result).strip()
    return result or trimmed
