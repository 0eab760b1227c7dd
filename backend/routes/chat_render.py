# routes/chat_render.py
# 렌더/ 서식 (확인 요청 요약, 실행 결과 멘트, 고정 안내 문구)

from typing import List, Optional, Tuple

from routes.chat_time import format_korean_date
from schemas.chat_schema import (
    Action,
    AddEventAction,
    AddJournalAction,
    AddTodoAction,
    DeleteEventAction,
)

Rendered = Tuple[str, List[str]]

CONFIRM_QUICK_REPLIES = ["실행", "취소"]

REPROMPT_TEXT = "확인을 기다리고 있어요. `실행` 또는 `취소` 중 하나로 답해주세요."
CANCELLED_TEXT = "알겠어요. 요청은 취소했어요."
NOT_FOUND_TEXT = "삭제할 일정을 찾지 못했어요. 일정 제목이나 날짜를 조금 더 구체적으로 말해 주세요."
APOLOGY_TEXT = "죄송해요, 잠시 후 다시 시도해 주세요."
DEFAULT_REPLY_TEXT = "도와드릴게요, 주인님."
PARSE_FAILED_TEXT = "죄송해요, 답변 생성에 실패했어요."
ACTION_FAILED_TEXT = "요청을 처리하는 중 오류가 발생했어요. 잠시 후 다시 시도해주세요."
INSIGHT_NO_KEY_TEXT = "AI 분석을 하려면 먼저 **설정 > API 연결 설정**에서 API와 모델을 선택해주세요! 🔑"
INSIGHT_FAILED_TEXT = "AI 분석 중 오류가 발생했어요. 잠시 후 다시 시도해주세요. 😢"

MOOD_LABELS = {"good": "좋음", "neutral": "보통", "bad": "안좋음"}
MOOD_EMOJI = {"good": "😊", "neutral": "😐", "bad": "😔"}
JOURNAL_SNIPPET_CHARS = 60


def persona_fallback_reply(name: str) -> str:
    return f"{name}입니다. 이어서 도와드릴게요, 주인님."


def persona_unavailable_text(name: str) -> str:
    return f"⚠️ {name}의 API 연결 설정을 찾지 못했어요. 설정에서 사용할 API 연결을 확인해주세요."


def _when_lines(date: Optional[str], start_time: Optional[str] = None) -> str:
    out = f"\n📆 {format_korean_date(date)}" if date else ""
    if start_time:
        out += f"\n⏰ {start_time}"
    return out


def _summary(action: Action) -> str:
    if isinstance(action, AddEventAction):
        return f"📅 일정: **{action.title}**{_when_lines(action.date, action.start_time)}"
    if isinstance(action, DeleteEventAction):
        return f"🗑️ 삭제 일정: **{action.title or '선택한 일정'}**{_when_lines(action.date, action.start_time)}"
    if isinstance(action, AddTodoAction):
        due = f"\n📆 마감: {format_korean_date(action.due_date)}" if action.due_date else ""
        return f"☑️ 할 일: **{action.text}**\n🏷️ 분류: {action.category}{due}"
    if isinstance(action, AddJournalAction):
        snippet = action.content[:JOURNAL_SNIPPET_CHARS]
        ellipsis = "…" if len(action.content) > JOURNAL_SNIPPET_CHARS else ""
        return f"📝 일기: \"{snippet}{ellipsis}\"\n🙂 기분: {MOOD_LABELS.get(action.mood, '보통')}"
    if action.type == "generate_insight":
        return "📊 AI 인사이트 생성"
    return ""


def build_confirmation_prompt(action: Action) -> Rendered:
    """
    확인 대기 액션의 요약과 두 가지 응답 선택지를 만든다.

    :param action: 확인이 필요한 액션
    :type action: Action
    :return: (본문, 빠른 응답 목록)
    :rtype: Tuple[str, List[str]]
    """

    return (
        f"요청을 이렇게 이해했어요.\n\n{_summary(action)}\n\n이대로 실행할까요?",
        list(CONFIRM_QUICK_REPLIES),
    )


def build_action_result(action: Action) -> Rendered:
    """
    실행이 끝난 액션에 대한 사용자용 멘트를 만든다.
    """

    if isinstance(action, AddEventAction):
        return (
            f"✅ 캘린더에 일정을 등록했어요!\n\n📅 **{action.title}**"
            f"{_when_lines(action.date, action.start_time)}\n\n캘린더에서 확인해보세요!",
            ["다른 일정 추가", "오늘 할 일 보여줘", "고마워"],
        )
    if isinstance(action, DeleteEventAction):
        return (
            f"🗑️ 일정을 삭제했어요.\n\n📅 **{action.title or '선택한 일정'}**"
            f"{_when_lines(action.date, action.start_time)}",
            ["다른 일정도 삭제", "오늘 일정 알려줘", "고마워"],
        )
    if isinstance(action, AddTodoAction):
        return (
            f"✅ 할 일 목록에 추가했어요!\n\n☑️ **{action.text}**\n🏷️ {action.category}\n\n완료하면 체크해주세요! 화이팅! 💪",
            ["다른 할 일 추가", "지금 할 일 뭐야?", "고마워"],
        )
    if isinstance(action, AddJournalAction):
        emoji = MOOD_EMOJI.get(action.mood, "😐")
        # 기분에 따라 공감 멘트를 다르게
        if action.mood == "bad":
            return (
                f"{emoji} 그랬군요... 정말 힘드셨겠어요.\n\n일기장에 오늘의 이야기를 기록해뒀어요.\n\n"
                "혹시 조금 더 이야기하고 싶으시면, 무슨 일이 있었는지 말씀해주세요. 함께 정리해볼게요. 🌿",
                ["조금 더 이야기하고 싶어", "괜찮아, 그냥 기록만", "오늘은 일찍 쉴래"],
            )
        if action.mood == "good":
            return (
                f"{emoji} 오, 좋은 하루였나봐요! 저도 기분이 좋아지네요.\n\n일기장에 오늘의 기분을 기록해뒀어요.\n\n"
                "무슨 좋은 일이 있었는지 더 들려주실래요?",
                ["응, 좋은 일 있었어!", "그냥 기분이 좋아", "내일도 이랬으면"],
            )
        return (
            f"{emoji} 오늘의 이야기를 일기장에 기록했어요.\n\n내일은 더 좋은 하루가 되길 바래요!",
            ["고마워", "내일 할 일 알려줘", "이제 쉴래"],
        )
    if action.type == "generate_insight":
        return (
            "✅ AI 인사이트를 생성했어요!\n\n**AI 보드** 탭에서 주인님의 라이프 분석 리포트를 확인해보세요. 📊\n\n"
            "더 많은 데이터가 쌓일수록 더 정확한 분석이 가능해요!",
            ["분석 더 해줘", "오늘 할 일 뭐야?", "고마워"],
        )
    return "처리 완료!", []
