from __future__ import annotations

import pytest

from nira.errors import EmptyInput
from nira.models import ChatMessage, Role
from nira.transcript import ChatTranscript


def test_starts_with_single_system_message():
    transcript = ChatTranscript("be brief")
    assert transcript.snapshot() == (ChatMessage(role=Role.SYSTEM, content="be brief"),)
    assert transcript.system_prompt == "be brief"


def test_preserves_append_order():
    transcript = ChatTranscript("sys")
    transcript.append_user("one")
    transcript.append_user("two")
    transcript.append_assistant("three")
    assert [(m.role, m.content) for m in transcript.snapshot()] == [
        (Role.SYSTEM, "sys"),
        (Role.USER, "one"),
        (Role.USER, "two"),
        (Role.ASSISTANT, "three"),
    ]


def test_user_text_is_trimmed():
    transcript = ChatTranscript("sys")
    message = transcript.append_user("  hello \n")
    assert message.content == "hello"


@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
def test_blank_user_text_is_rejected(text):
    transcript = ChatTranscript("sys")
    with pytest.raises(EmptyInput):
        transcript.append_user(text)
    assert len(transcript) == 1


def test_reset_leaves_only_system_message():
    transcript = ChatTranscript("old")
    for i in range(5):
        transcript.append_user(f"q{i}")
        transcript.append_assistant(f"a{i}")
    transcript.reset("new")
    assert len(transcript) == 1
    assert transcript.last.role == Role.SYSTEM
    assert transcript.last.content == "new"


def test_snapshot_is_detached_from_later_appends():
    transcript = ChatTranscript("sys")
    before = transcript.snapshot()
    transcript.append_user("later")
    assert len(before) == 1
