"""Conversation transcript."""

from typing import List, Optional, Tuple

from .errors import EmptyInput
from .models import ChatMessage, Role


class ChatTranscript:
    """
    Ordered, append-only log of role-tagged messages.

    The first entry is always the single system message set by the last
    reset. Alternation of user/assistant turns is not enforced; the caller
    controls call order and the transcript preserves it.
    """

    def __init__(self, system_prompt: str):
        self._messages: List[ChatMessage] = []
        self.reset(system_prompt)

    def reset(self, system_prompt: str) -> None:
        self._messages = [ChatMessage(role=Role.SYSTEM, content=system_prompt)]

    def append_user(self, text: str) -> ChatMessage:
        content = text.strip()
        if not content:
            raise EmptyInput()
        return self._append(Role.USER, content)

    def append_assistant(self, text: str) -> ChatMessage:
        return self._append(Role.ASSISTANT, text)

    def snapshot(self) -> Tuple[ChatMessage, ...]:
        """Exact payload for the engine, in append order."""
        return tuple(self._messages)

    @property
    def system_prompt(self) -> str:
        return self._messages[0].content

    @property
    def last(self) -> Optional[ChatMessage]:
        return self._messages[-1] if self._messages else None

    def _append(self, role: Role, content: str) -> ChatMessage:
        message = ChatMessage(role=role, content=content)
        self._messages.append(message)
        return message

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(tuple(self._messages))
