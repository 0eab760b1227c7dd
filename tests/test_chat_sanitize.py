"""Tests for persona reply sanitizing."""

import pytest

from routes.chat_sanitize import sanitize_reply


class TestSelfTags:
    @pytest.mark.parametrize("tag", ["[AI]", "[assistant]", "[봇]", "[챗봇]", "[비서]"])
    def test_generic_role_tag_removed(self, tag):
        assert sanitize_reply(f"{tag} 안녕하세요 주인님", "LifeSync AI") == "안녕하세요 주인님"

    def test_own_name_tag_removed(self):
        assert sanitize_reply("[Productivity Coach] 시작해볼까요?", "Productivity Coach") == "시작해볼까요?"

    def test_own_name_with_honorific(self):
        assert sanitize_reply("[코치님] 좋아요!", "코치") == "좋아요!"

    def test_foreign_tag_kept(self):
        assert sanitize_reply("[공지] 내일 비 소식", "LifeSync AI") == "[공지] 내일 비 소식"

    def test_own_name_prefix_removed(self):
        assert sanitize_reply("LifeSync AI: 네, 주인님", "LifeSync AI") == "네, 주인님"

    def test_full_width_colon(self):
        assert sanitize_reply("lifesync ai： 네, 주인님", "LifeSync AI") == "네, 주인님"


class TestImpersonation:
    def test_other_persona_lines_dropped(self):
        reply = "좋은 계획이에요.\nProductivity Coach: 저도 동의해요!\n[Mindfulness Guide] 천천히 하세요."
        out = sanitize_reply(reply, "LifeSync AI", ["Productivity Coach", "Mindfulness Guide"])
        assert out == "좋은 계획이에요."

    def test_all_lines_impersonated_keeps_text(self):
        reply = "Productivity Coach: 제가 대신 말할게요"
        out = sanitize_reply(reply, "LifeSync AI", ["Productivity Coach"])
        assert out == reply

    def test_own_name_in_other_names_ignored(self):
        out = sanitize_reply("두 줄\n세 줄", "LifeSync AI", ["LifeSync AI"])
        assert out == "두 줄\n세 줄"


class TestNeverEmpty:
    def test_empty_input(self):
        assert sanitize_reply("", "x") == ""
        assert sanitize_reply(None, "x") == ""

    @pytest.mark.parametrize("reply", ["[AI]", "LifeSync AI:", "[LifeSync AI]   ", "   [봇]  "])
    def test_tag_only_reply_falls_back(self, reply):
        assert sanitize_reply(reply, "LifeSync AI") == reply.strip()

    def test_iso_timestamp_rewritten(self):
        out = sanitize_reply("회의는 2024-03-11T06:00:00Z 입니다", "LifeSync AI")
        assert out == "회의는 2024-03-11 (월) 15:00 입니다"
