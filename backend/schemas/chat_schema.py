# schemas/chat_schema.py
# 채팅 파이프라인 도메인 모델(액션/일정/할 일/일기/페르소나/대화 턴)

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

TodoCategory = Literal["personal", "work", "health", "shopping"]
JournalMood = Literal["good", "neutral", "bad"]

TODO_CATEGORIES = ("personal", "work", "health", "shopping")
JOURNAL_MOODS = ("good", "neutral", "bad")
DEFAULT_TODO_CATEGORY = "personal"
DEFAULT_JOURNAL_MOOD = "neutral"
DEFAULT_EVENT_TAG = "tag_1"


# 액션(검증을 통과한 닫힌 유니온)
class AddEventAction(BaseModel):
    type: Literal["add_event"] = "add_event"
    title: str = Field(min_length=1)
    date: str
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    tag: str = DEFAULT_EVENT_TAG


class DeleteEventAction(BaseModel):
    """
    삭제 요청. 해석 전에는 일부 필드만 있고, 해석 후에는 id가 실제 대상 일정 id다.
    """
    type: Literal["delete_event"] = "delete_event"
    id: Optional[str] = None
    title: Optional[str] = None
    date: Optional[str] = None
    start_time: Optional[str] = None


class AddTodoAction(BaseModel):
    type: Literal["add_todo"] = "add_todo"
    text: str = Field(min_length=1)
    category: TodoCategory = DEFAULT_TODO_CATEGORY
    due_date: Optional[str] = None


class AddJournalAction(BaseModel):
    type: Literal["add_journal"] = "add_journal"
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    mood: JournalMood = DEFAULT_JOURNAL_MOOD


class GenerateInsightAction(BaseModel):
    type: Literal["generate_insight"] = "generate_insight"


class NoAction(BaseModel):
    type: Literal["none"] = "none"


Action = Annotated[
    Union[
        AddEventAction,
        DeleteEventAction,
        AddTodoAction,
        AddJournalAction,
        GenerateInsightAction,
        NoAction,
    ],
    Field(discriminator="type"),
]


class PendingAction(BaseModel):
    action: Action
    proposed_at: datetime


# 외부 엔티티(코어는 읽기만 함)
class CalendarEvent(BaseModel):
    id: str
    title: str
    date: str
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    description: Optional[str] = None
    tag: str = DEFAULT_EVENT_TAG


class Todo(BaseModel):
    id: str
    text: str
    completed: bool = False
    date: str
    category: TodoCategory = DEFAULT_TODO_CATEGORY
    due_date: Optional[str] = None


class JournalEntry(BaseModel):
    id: str
    title: str
    content: str
    date: str
    mood: JournalMood = DEFAULT_JOURNAL_MOOD


class InsightPost(BaseModel):
    id: str
    title: str
    content: str
    tags: List[str] = Field(default_factory=list)
    date: str
    type: Literal["analysis", "suggestion"] = "analysis"


# 페르소나 / 연결 설정
class Persona(BaseModel):
    id: str
    name: str
    emoji: str = ""
    role: str = "AI assistant"
    personality: str = "Helpful, observant, and practical."
    tone: str = "Warm and clear"
    connection_id: Optional[str] = None


class ApiConnection(BaseModel):
    id: str
    provider: Literal["openai", "xai", "gemini"] = "openai"
    api_key: str = ""
    model_name: Optional[str] = None
    base_url: Optional[str] = None
    is_active: bool = True


class AppSettings(BaseModel):
    api_connections: List[ApiConnection] = Field(default_factory=list)
    active_connection_id: Optional[str] = None
    chat_action_confirm: bool = True


class ConversationTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str
    persona_id: Optional[str] = None


MessageKind = Literal[
    "reply",
    "warning",
    "not_found",
    "proposal",
    "reprompt",
    "cancelled",
    "executed",
    "error",
]


class ChatMessage(BaseModel):
    """
    대화에 내보내는 어시스턴트 메시지(페르소나 귀속 포함)
    """
    id: str
    role: Literal["assistant"] = "assistant"
    content: str
    kind: MessageKind = "reply"
    persona_id: Optional[str] = None
    persona_name: Optional[str] = None
    action: Optional[Action] = None
    quick_replies: List[str] = Field(default_factory=list)


class ContextSnapshot(BaseModel):
    """
    페르소나 지시문에 넣는 도메인 요약(전체 데이터가 아닌 작은 고정 슬라이스)
    """
    date: str
    current_time: str
    upcoming_events: List[CalendarEvent] = Field(default_factory=list)
    pending_todos: List[Todo] = Field(default_factory=list)
    recent_journal: List[JournalEntry] = Field(default_factory=list)


ChatMode = Literal["basic", "roleplay", "learning"]
