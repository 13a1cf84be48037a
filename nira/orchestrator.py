"""
Session orchestrator.

Owns the engine, the session state machine, the transcript, the stream
assembler and the usage tally for one chat session, and reports every
change to a SessionListener.

Load path:
    load_model(id) -> SessionState.begin_load -> engine.load(progress sink)
    -> SessionState.complete_load -> transcript reset

Chat path:
    send_message(text) -> transcript.append_user -> StreamAssembler.begin_turn
    -> engine.stream_chat(snapshot) -> consume deltas -> finalize
    -> transcript.append_assistant + usage tally
"""

import asyncio
import logging
from typing import Optional, Tuple

from .catalog import ModelCatalog, ModelNotFound
from .engine import EngineError, InferenceEngine
from .errors import (
    Discarded,
    EmptyInput,
    ErrorKind,
    InvalidTransition,
    ModelLoadFailed,
    NotReady,
    StreamFailed,
    UnknownModel,
)
from .models import (
    ChatMessage,
    ModelDescriptor,
    Progress,
    SamplingOptions,
    SessionStatus,
    UsageTally,
)
from .progress import ProgressReporter
from .state import SessionState
from .stream import StreamAssembler
from .transcript import ChatTranscript

logger = logging.getLogger(__name__)

PREPARING_MESSAGE = "Preparing to download the model..."
READY_MESSAGE = "Model ready. Ask your question!"
LOAD_FAILED_MESSAGE = (
    "Error while downloading or loading the model. Please check your connection "
    "and try again. If the problem continues, try a smaller model."
)
NOT_READY_MESSAGE = "Start the model first, then ask your question."
STREAM_FAILED_MESSAGE = "Sorry, something went wrong while thinking. Please try again."


class SessionListener:
    """
    Presentation-layer hooks.

    All methods are no-ops; subclasses override what they render. Calls are
    made synchronously from the orchestrator's continuations, one per event.
    """

    def on_progress(self, percent: int, message: str) -> None:
        pass

    def on_state_change(self, status: SessionStatus) -> None:
        pass

    def on_transcript_appended(self, message: ChatMessage) -> None:
        pass

    def on_transcript_reset(self, messages: Tuple[ChatMessage, ...]) -> None:
        pass

    def on_streaming_update(self, partial_text: str) -> None:
        pass

    def on_usage_updated(self, tally: UsageTally) -> None:
        pass

    def on_error(self, kind: ErrorKind, message: str) -> None:
        pass


class SessionOrchestrator:
    """
    Coordinates model loading and streamed chat turns.

    Handles:
    - Start / reload / retry of the selected model
    - Sending messages and assembling streamed replies
    - Conversation reset
    - Dropping results of turns superseded by a newer send or a reset
    """

    def __init__(
        self,
        engine: InferenceEngine,
        catalog: ModelCatalog,
        system_prompt: str,
        sampling: Optional[SamplingOptions] = None,
        listener: Optional[SessionListener] = None,
        reporter: Optional[ProgressReporter] = None,
    ):
        self.engine = engine
        self.catalog = catalog
        self.sampling = sampling or SamplingOptions()
        self.listener = listener or SessionListener()
        self.reporter = reporter or ProgressReporter()

        self._system_prompt = system_prompt
        self._state = SessionState(on_change=self._state_changed)
        self._transcript = ChatTranscript(system_prompt)
        self._assembler = StreamAssembler()
        self._usage = UsageTally()
        self._current_model: Optional[ModelDescriptor] = None
        self._last_progress = Progress(percent=0, message="Model not started yet.")

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        return self._state.status

    @property
    def current_model(self) -> Optional[ModelDescriptor]:
        return self._current_model

    @property
    def transcript(self) -> Tuple[ChatMessage, ...]:
        return self._transcript.snapshot()

    @property
    def usage(self) -> UsageTally:
        return self._usage.model_copy()

    @property
    def generation(self) -> int:
        return self._assembler.generation

    @property
    def last_progress(self) -> Progress:
        return self._last_progress

    def token_info(self) -> str:
        label = self._current_model.label if self._current_model else "–"
        return f"Tokens: {self._usage.total_tokens} · Model: {label}"

    # ------------------------------------------------------------------
    # Model loading
    # ------------------------------------------------------------------

    def check_load(self, model_id: str) -> ModelDescriptor:
        """Validate a load request without starting it."""
        if not (self._state.can_start_load() or self._state.can_reload()):
            raise InvalidTransition(self._state.status.value, "load a model")
        try:
            return self.catalog.find(model_id)
        except ModelNotFound:
            self._emit("on_error", ErrorKind.UNKNOWN_MODEL, f"Unknown model: {model_id}")
            raise UnknownModel(model_id) from None

    async def load_model(self, model_id: str) -> ModelDescriptor:
        """
        Start, reload or retry a model.

        On success the conversation is reset. On failure the existing
        transcript and usage are left untouched and ModelLoadFailed is raised.
        """
        model = self.check_load(model_id)
        self._state.begin_load()

        self.reporter.start()
        self._report_progress(Progress(percent=0, message=PREPARING_MESSAGE))
        logger.info(f"Loading {model.id} ({model.approx_size_label})")

        try:
            await self.engine.load(model.id, self._on_engine_progress)
        except asyncio.CancelledError:
            logger.warning(f"Load of {model.id} was cancelled")
            self._state.complete_load(False)
            self._report_progress(Progress(percent=0, message=LOAD_FAILED_MESSAGE))
            self._emit("on_error", ErrorKind.MODEL_LOAD_FAILED, f"{LOAD_FAILED_MESSAGE} (cancelled)")
            raise
        except Exception as e:
            reason = str(e) or type(e).__name__
            if not isinstance(e, EngineError):
                logger.exception(f"Unexpected engine failure while loading {model.id}")
            logger.error(f"Failed to load {model.id}: {reason}")
            self._state.complete_load(False)
            self._report_progress(Progress(percent=0, message=LOAD_FAILED_MESSAGE))
            self._emit("on_error", ErrorKind.MODEL_LOAD_FAILED, f"{LOAD_FAILED_MESSAGE} ({reason})")
            raise ModelLoadFailed(model.id, reason) from e

        self._current_model = model
        self._state.complete_load(True)
        self.reset_conversation()
        self._report_progress(self.reporter.normalize(1.0, READY_MESSAGE))
        return model

    def is_ready_on(self, model_id: str) -> bool:
        return (
            self._state.status == SessionStatus.READY
            and self._current_model is not None
            and self._current_model.id == model_id
        )

    async def ensure_loaded(self, model_id: str) -> ModelDescriptor:
        """Load the model unless it is already the ready one."""
        if self.is_ready_on(model_id):
            return self._current_model
        return await self.load_model(model_id)

    def _on_engine_progress(self, fraction: Optional[float], stage_text: Optional[str]) -> None:
        if self._state.status != SessionStatus.LOADING:
            return
        self._report_progress(self.reporter.normalize(fraction, stage_text))

    def _report_progress(self, progress: Progress) -> None:
        self._last_progress = progress
        self._emit("on_progress", progress.percent, progress.message)

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    def check_send(self, text: str) -> str:
        """Validate a send request; returns the trimmed text."""
        if not self._state.can_send():
            self._emit("on_error", ErrorKind.NOT_READY, NOT_READY_MESSAGE)
            raise NotReady(NOT_READY_MESSAGE)
        content = text.strip()
        if not content:
            raise EmptyInput()
        return content

    async def send_message(self, text: str) -> Optional[str]:
        """
        Send a user message and stream the reply.

        Returns the assistant text, or None if the turn was superseded by a
        newer send or a reset before it finished.
        """
        content = self.check_send(text)

        user_message = self._transcript.append_user(content)
        self._emit("on_transcript_appended", user_message)

        generation = self._assembler.begin_turn()
        messages = self._transcript.snapshot()
        logger.info(f"Turn {generation}: streaming reply to {len(messages)} messages")

        stream = None
        try:
            stream = self.engine.stream_chat(messages, self.sampling)
            async for chunk in stream:
                if not self._assembler.is_current(generation):
                    logger.info(f"Turn {generation} superseded, abandoning stream")
                    break
                if chunk.delta:
                    running = self._assembler.consume(chunk.delta, generation)
                    if running is not None:
                        self._emit("on_streaming_update", running)
                if chunk.usage is not None:
                    self._assembler.apply_usage(chunk.usage, generation)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return self._fail_turn(generation, e)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        try:
            turn = self._assembler.finalize(generation)
        except Discarded:
            logger.debug(f"Discarded result of turn {generation}")
            return None

        assistant_message = self._transcript.append_assistant(turn.text)
        self._emit("on_transcript_appended", assistant_message)
        if turn.usage is not None:
            self._usage.add(turn.usage)
            self._emit("on_usage_updated", self._usage.model_copy())
        logger.info(f"Turn {generation} complete ({len(turn.text)} chars)")
        return turn.text

    def _fail_turn(self, generation: int, error: Exception) -> None:
        reason = str(error) or type(error).__name__
        if not isinstance(error, EngineError):
            logger.exception(f"Unexpected engine failure in turn {generation}")

        try:
            turn = self._assembler.finalize(generation)
        except Discarded:
            logger.info(f"Stale turn {generation} failed after being superseded: {reason}")
            return None

        logger.error(f"Turn {generation} failed: {reason}")
        if turn.text:
            assistant_message = self._transcript.append_assistant(turn.text)
            self._emit("on_transcript_appended", assistant_message)
        if turn.usage is not None:
            self._usage.add(turn.usage)
            self._emit("on_usage_updated", self._usage.model_copy())
        self._emit("on_error", ErrorKind.STREAM_FAILED, STREAM_FAILED_MESSAGE)
        raise StreamFailed(reason, turn.text) from error

    # ------------------------------------------------------------------
    # Conversation reset
    # ------------------------------------------------------------------

    def reset_conversation(self, system_prompt: Optional[str] = None) -> None:
        """Start a new conversation. Any in-flight reply becomes stale."""
        if system_prompt is not None:
            self._system_prompt = system_prompt
        self._assembler.invalidate()
        self._transcript = ChatTranscript(self._system_prompt)
        self._usage = UsageTally()
        logger.info("Conversation reset")
        self._emit("on_transcript_reset", self._transcript.snapshot())
        self._emit("on_usage_updated", self._usage.model_copy())

    # ------------------------------------------------------------------
    # Listener plumbing
    # ------------------------------------------------------------------

    def _state_changed(self, status: SessionStatus) -> None:
        self._emit("on_state_change", status)

    def _emit(self, hook: str, *args) -> None:
        try:
            getattr(self.listener, hook)(*args)
        except Exception:
            logger.exception(f"Listener {hook} failed")
