from __future__ import annotations

import asyncio
from typing import Any, List, Optional, Tuple

import pytest
import pytest_asyncio

from nira.catalog import ModelCatalog
from nira.models import ModelDescriptor, SamplingOptions, StreamChunk, Usage
from nira.orchestrator import SessionListener, SessionOrchestrator

SYSTEM_PROMPT = "You are a helpful assistant."


class FakeEngine:
    """
    Scripted engine.

    Each chat call consumes the next entry of ``replies``. A reply script is a
    list whose items are str (delta), Usage, Exception (raised at that point)
    or asyncio.Event (waited on before continuing).
    """

    def __init__(self):
        self.load_progress: List[Tuple[Optional[float], Optional[str]]] = []
        self.load_error: Optional[Exception] = None
        self.load_gate: Optional[asyncio.Event] = None
        self.replies: List[List[Any]] = []
        self.loaded: List[str] = []
        self.chat_calls: List[list] = []
        self.samplings: List[SamplingOptions] = []
        self.installed: List[str] = []
        self.closed = False

    async def load(self, model_id, progress):
        self.loaded.append(model_id)
        for fraction, stage_text in self.load_progress:
            progress(fraction, stage_text)
        if self.load_gate is not None:
            await self.load_gate.wait()
        if self.load_error is not None:
            raise self.load_error

    async def stream_chat(self, messages, sampling):
        self.chat_calls.append(list(messages))
        self.samplings.append(sampling)
        script = self.replies.pop(0) if self.replies else []
        for item in script:
            if isinstance(item, asyncio.Event):
                await item.wait()
            elif isinstance(item, BaseException):
                raise item
            elif isinstance(item, Usage):
                yield StreamChunk(usage=item)
            else:
                yield StreamChunk(delta=item)

    async def list_models(self):
        return [{"name": name} for name in self.installed]

    async def close(self):
        self.closed = True


class RecordingListener(SessionListener):
    def __init__(self):
        self.events: List[Tuple[str, tuple]] = []

    def _record(self, name, *args):
        self.events.append((name, args))

    def on_progress(self, percent, message):
        self._record("progress", percent, message)

    def on_state_change(self, status):
        self._record("state", status)

    def on_transcript_appended(self, message):
        self._record("appended", message)

    def on_transcript_reset(self, messages):
        self._record("reset", messages)

    def on_streaming_update(self, partial_text):
        self._record("streaming", partial_text)

    def on_usage_updated(self, tally):
        self._record("usage", tally)

    def on_error(self, kind, message):
        self._record("error", kind, message)

    def of(self, name):
        return [args for event, args in self.events if event == name]

    def states(self):
        return [args[0] for args in self.of("state")]

    def streaming(self):
        return [args[0] for args in self.of("streaming")]

    def percents(self):
        return [args[0] for args in self.of("progress")]

    def errors(self):
        return [args[0] for args in self.of("error")]


async def wait_until(predicate, attempts: int = 200):
    """Yield to the event loop until predicate() holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


@pytest.fixture
def catalog():
    return ModelCatalog(
        [
            ModelDescriptor(id="m1", label="Model One", approx_size_bytes=800_000_000),
            ModelDescriptor(id="m2", label="Model Two", approx_size_bytes=350_000_000),
        ],
        default_id="m2",
    )


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def orchestrator(engine, catalog, listener):
    return SessionOrchestrator(
        engine=engine,
        catalog=catalog,
        system_prompt=SYSTEM_PROMPT,
        sampling=SamplingOptions(temperature=0.2, top_p=0.9, max_tokens=128),
        listener=listener,
    )


@pytest_asyncio.fixture
async def ready(orchestrator, listener):
    """Orchestrator with m1 loaded and a clean event log."""
    await orchestrator.load_model("m1")
    listener.events.clear()
    return orchestrator
