"""
Error taxonomy surfaced by the session orchestrator.

Engine failures never reach the presentation layer directly; the
orchestrator converts them into one of the classes below.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Error categories reported through ``SessionListener.on_error``."""
    INVALID_TRANSITION = "invalid_transition"
    NOT_READY = "not_ready"
    UNKNOWN_MODEL = "unknown_model"
    EMPTY_INPUT = "empty_input"
    MODEL_LOAD_FAILED = "model_load_failed"
    STREAM_FAILED = "stream_failed"
    DISCARDED = "discarded"


class NiraError(Exception):
    """Base class for all session errors."""
    kind: ErrorKind


class InvalidTransition(NiraError):
    """State machine invariant violated (programmer or UI-desync error)."""
    kind = ErrorKind.INVALID_TRANSITION

    def __init__(self, current: str, attempted: str):
        self.current = current
        self.attempted = attempted
        super().__init__(f"Cannot {attempted} while session is {current}")


class NotReady(NiraError):
    """Chat attempted before a model finished loading."""
    kind = ErrorKind.NOT_READY


class UnknownModel(NiraError):
    """Requested model id is not in the catalog."""
    kind = ErrorKind.UNKNOWN_MODEL

    def __init__(self, model_id: str):
        self.model_id = model_id
        super().__init__(f"Unknown model: {model_id}")


class EmptyInput(NiraError):
    """Blank user input. Treated as a no-op by callers."""
    kind = ErrorKind.EMPTY_INPUT

    def __init__(self, message: str = "Message is empty"):
        super().__init__(message)


class ModelLoadFailed(NiraError):
    """Engine failed to download or initialize the model."""
    kind = ErrorKind.MODEL_LOAD_FAILED

    def __init__(self, model_id: str, reason: str):
        self.model_id = model_id
        self.reason = reason
        super().__init__(f"Failed to load {model_id}: {reason}")


class StreamFailed(NiraError):
    """Engine failed mid-generation. Partial output is preserved."""
    kind = ErrorKind.STREAM_FAILED

    def __init__(self, reason: str, partial_text: str = ""):
        self.reason = reason
        self.partial_text = partial_text
        super().__init__(f"Generation failed: {reason}")


class Discarded(NiraError):
    """Internal signal: a stale turn's result must be dropped."""
    kind = ErrorKind.DISCARDED

    def __init__(self, generation: int, current: Optional[int] = None):
        self.generation = generation
        self.current = current
        super().__init__(f"Turn {generation} is stale (current: {current})")
