"""Inference engine contract consumed by the orchestrator."""

from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from .models import ChatMessage, SamplingOptions, StreamChunk

# progress(fraction, stage_text); either argument may be None
ProgressSink = Callable[[Optional[float], Optional[str]], None]


class EngineError(Exception):
    """Failure reported by an engine. The message is the diagnostic text."""


@runtime_checkable
class InferenceEngine(Protocol):
    """
    Local model runtime.

    - load() downloads/compiles the model, reporting progress, and raises
      EngineError on failure.
    - stream_chat() returns a finite, non-restartable stream of chunks.
      Consuming it fully or abandoning it early are both valid.
    - list_models() describes locally installed models as dicts with a
      "name" key; an unreachable runtime yields an empty list.
    """

    async def load(self, model_id: str, progress: ProgressSink) -> None: ...

    def stream_chat(
        self,
        messages: Sequence[ChatMessage],
        sampling: SamplingOptions,
    ) -> AsyncIterator[StreamChunk]: ...

    async def list_models(self) -> List[Dict[str, Any]]: ...

    async def close(self) -> None: ...
