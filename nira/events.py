"""Session event fan-out to streaming HTTP clients."""

import asyncio
import logging
from typing import Any, Dict, List, Tuple

from .errors import ErrorKind
from .models import ChatMessage, SessionStatus, UsageTally
from .orchestrator import SessionListener

logger = logging.getLogger(__name__)

Event = Dict[str, Any]


class SessionEvents(SessionListener):
    """
    Listener that copies every session event into subscriber queues.

    Each event is a dict {"event": name, "data": {...}} ready for SSE
    formatting. Subscribers that stop reading must unsubscribe.
    """

    def __init__(self):
        self._subscribers: List[asyncio.Queue] = []

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        logger.debug(f"Event subscriber added ({len(self._subscribers)} total)")
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)
            logger.debug(f"Event subscriber removed ({len(self._subscribers)} total)")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, name: str, data: Dict[str, Any]) -> None:
        event = {"event": name, "data": data}
        for queue in self._subscribers:
            queue.put_nowait(event)

    # SessionListener hooks

    def on_progress(self, percent: int, message: str) -> None:
        self.publish("progress", {"percent": percent, "message": message})

    def on_state_change(self, status: SessionStatus) -> None:
        self.publish("state", {"status": status.value})

    def on_transcript_appended(self, message: ChatMessage) -> None:
        self.publish("message", message.model_dump(mode="json"))

    def on_transcript_reset(self, messages: Tuple[ChatMessage, ...]) -> None:
        self.publish("reset", {"messages": [m.model_dump(mode="json") for m in messages]})

    def on_streaming_update(self, partial_text: str) -> None:
        self.publish("streaming", {"text": partial_text})

    def on_usage_updated(self, tally: UsageTally) -> None:
        self.publish("usage", tally.summary())

    def on_error(self, kind: ErrorKind, message: str) -> None:
        self.publish("error", {"kind": kind.value, "message": message})
