# routes/chat_openai.py
# OpenAI 호환 Chat Completions 호출 / API 연결 선택 / 인사이트 생성

import os, requests, logging, json, uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from routes.chat_spec import build_insight_prompt
from schemas.chat_schema import ApiConnection, AppSettings, InsightPost, Persona

logger = logging.getLogger(__name__)

###############################################
# OPENAI_API_KEY : 연결 설정이 없을 때 쓰는 기본 키  #
# OPENAI_BASE : OPENAI API 엔드포인트 기본 URL   #
# OPENAI_MODEL : 사용할 모델 이름                #
# COMPLETION_TIMEOUT : 호출 타임아웃(초)          #
##############################################
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_BASE = os.getenv("OPENAI_BASE", "https://api.openai.com/v1")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
COMPLETION_TIMEOUT = float(os.getenv("COMPLETION_TIMEOUT", "45"))

PROVIDER_BASE_URLS = {
    "openai": OPENAI_BASE,
    "xai": "https://api.x.ai/v1",
    "gemini": "https://generativelanguage.googleapis.com/v1beta/openai",
}
PROVIDER_DEFAULT_MODELS = {
    "openai": OPENAI_MODEL,
    "xai": "grok-2-latest",
    "gemini": "gemini-1.5-flash",
}

CHAT_TEMPERATURE = 0.5
GROUP_CHAT_TEMPERATURE = 0.55
INSIGHT_TEMPERATURE = 0.5

INSIGHT_FALLBACK_TITLE = "오늘의 인사이트"
INSIGHT_FALLBACK_CONTENT = "분석 결과를 생성하지 못했습니다."
INSIGHT_FALLBACK_TAGS = ["Insight", "Daily"]


class CompletionError(Exception):
    """키 없음 / HTTP 오류 / 타임아웃 / 응답 본문 이상"""


@dataclass
class ResolvedConnection:
    api_key: str
    base_url: str
    model: str
    provider: str = "openai"
    connection_id: Optional[str] = None


def _has_usable_key(c: ApiConnection) -> bool:
    return c.is_active and bool((c.api_key or "").strip())


def _from_connection(c: ApiConnection) -> ResolvedConnection:
    return ResolvedConnection(
        api_key=c.api_key.strip(),
        base_url=(c.base_url or PROVIDER_BASE_URLS.get(c.provider, OPENAI_BASE)).rstrip("/"),
        model=(c.model_name or "").strip() or PROVIDER_DEFAULT_MODELS.get(c.provider, OPENAI_MODEL),
        provider=c.provider,
        connection_id=c.id,
    )


def resolve_connection(persona: Optional[Persona], settings: Optional[AppSettings]) -> Optional[ResolvedConnection]:
    """
    페르소나가 사용할 API 연결을 고른다. 처음 찾은 것이 이긴다.
    1) 페르소나 전용 connection_id
    2) 설정의 활성 연결(active_connection_id)
    3) 키가 있는 첫 번째 활성 연결
    4) 환경변수 OPENAI_API_KEY

    :param persona: 답변할 페르소나(None이면 1단계 생략)
    :type persona: Optional[Persona]
    :param settings: 요청에 실린 앱 설정
    :type settings: Optional[AppSettings]
    :return: 연결 정보 또는 None(사용 가능한 키 없음)
    :rtype: Optional[ResolvedConnection]
    """

    connections = settings.api_connections if settings else []
    by_id = {c.id: c for c in connections}

    wanted = [persona.connection_id if persona else None, settings.active_connection_id if settings else None]
    for cid in wanted:
        c = by_id.get(cid) if cid else None
        if c and _has_usable_key(c):
            return _from_connection(c)

    first = next((c for c in connections if _has_usable_key(c)), None)
    if first:
        return _from_connection(first)

    if OPENAI_API_KEY:
        return ResolvedConnection(api_key=OPENAI_API_KEY, base_url=OPENAI_BASE.rstrip("/"), model=OPENAI_MODEL)
    return None


def parse_completion(data: Dict[str, Any]) -> str:
    """
    Chat Completions 응답 본문에서 assistant content 문자열을 꺼낸다.

    :raises CompletionError: choices/message 구조가 아니면
    """
    try:
        content = data["choices"][0]["message"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError) as e:
        raise CompletionError(f"unexpected completion body: {e}") from e
    return content if isinstance(content, str) else ""


def parse_json_reply(content: str) -> Optional[Dict[str, Any]]:
    # ```json 펜스가 붙어 와도 본문만 파싱, 실패하면 None
    text = (content or "").strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    try:
        parsed = json.loads(text)
    except (ValueError, TypeError):
        return None
    return parsed if isinstance(parsed, dict) else None


class CompletionClient:
    """
    OpenAI 호환 /chat/completions 동기 클라이언트. (비동기 쪽에서는 threadpool로 감싸서 호출)
    """

    def __init__(self, timeout: float = COMPLETION_TIMEOUT):
        self.timeout = timeout

    def complete(
        self,
        connection: ResolvedConnection,
        messages: List[Dict[str, Any]],
        temperature: float = CHAT_TEMPERATURE,
    ) -> str:
        """
        JSON 모드로 한 번 호출하고 assistant content 원문을 돌려준다.

        :param connection: 사용할 연결(키/기본 URL/모델)
        :type connection: ResolvedConnection
        :param messages: system + 대화 히스토리
        :type messages: List[Dict[str, Any]]
        :param temperature: 샘플링 온도
        :type temperature: float
        :raises CompletionError: 키 없음, 네트워크/HTTP 오류, 응답 파싱 실패
        :return: assistant content 문자열
        :rtype: str
        """
        if not connection.api_key:
            raise CompletionError("api key not set")

        last_user = next((m for m in messages[::-1] if m.get("role") == "user"), {})
        logger.debug("[LLM] req: model=%s provider=%s user='%s...'", connection.model, connection.provider,
                     str(last_user.get("content", ""))[:80].replace("\n", " "))

        try:
            r = requests.post(
                f"{connection.base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {connection.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "model": connection.model,
                    "temperature": temperature,
                    "messages": messages,
                    "response_format": {"type": "json_object"},
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Completion request failed: {e}")
            raise CompletionError(str(e)) from e

        if not r.ok:
            logger.error(f"Completion API error: {r.status_code} {r.text}")
            raise CompletionError(f"HTTP {r.status_code}")

        try:
            data = r.json()
        except ValueError as e:
            raise CompletionError("completion body is not JSON") from e

        content = parse_completion(data)
        logger.debug("[LLM] res: content='%s...'", content[:80].replace("\n", " "))
        return content


def _str_field(obj: Dict[str, Any], key: str) -> str:
    v = obj.get(key)
    return v.strip() if isinstance(v, str) else ""


def generate_life_insight(
    client: CompletionClient,
    connection: ResolvedConnection,
    context: Dict[str, Any],
    now: datetime,
) -> InsightPost:
    """
    최근 일정/할 일/일기를 분석해 AI 보드 글 하나를 만든다.

    :raises CompletionError: 호출 실패 또는 JSON이 아닌 응답
    """
    content = client.complete(
        connection,
        [{"role": "user", "content": build_insight_prompt(context)}],
        temperature=INSIGHT_TEMPERATURE,
    )
    parsed = parse_json_reply(content)
    if parsed is None:
        raise CompletionError("insight response is not a JSON object")

    tags = parsed.get("tags")
    return InsightPost(
        id=str(uuid.uuid4()),
        title=_str_field(parsed, "title") or INSIGHT_FALLBACK_TITLE,
        content=_str_field(parsed, "content") or INSIGHT_FALLBACK_CONTENT,
        tags=[str(t) for t in tags] if isinstance(tags, list) and tags else list(INSIGHT_FALLBACK_TAGS),
        date=now.isoformat(),
        type="analysis",
    )
