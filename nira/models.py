"""Data models for the chat session."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Conversation Models
# ============================================================================

class Role(str, Enum):
    """Chat message role."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """One role-tagged transcript entry."""
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str

    def to_engine(self) -> dict:
        """Plain dict in the shape chat engines expect."""
        return {"role": self.role.value, "content": self.content}


class ModelDescriptor(BaseModel):
    """Catalog entry for a selectable model asset."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    label: str
    approx_size_bytes: int = Field(default=0, ge=0)

    @property
    def approx_size_label(self) -> str:
        """Human readable size, e.g. ``~700 MB``."""
        megabytes = self.approx_size_bytes / 1_000_000
        if megabytes >= 1000:
            return f"~{megabytes / 1000:.1f} GB"
        return f"~{megabytes:.0f} MB"


# ============================================================================
# Generation Models
# ============================================================================

class SamplingOptions(BaseModel):
    """Sampling parameters sent with every turn."""
    temperature: float = Field(default=0.7, ge=0.0)
    top_p: float = Field(default=0.95, gt=0.0, le=1.0)
    max_tokens: Optional[int] = Field(default=None, gt=0)


class Usage(BaseModel):
    """Token usage reported by the engine for one turn."""
    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class UsageTally(BaseModel):
    """Running token totals for the current conversation."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    turns: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def add(self, usage: Usage) -> None:
        self.prompt_tokens += usage.prompt_tokens
        self.completion_tokens += usage.completion_tokens
        self.turns += 1

    def summary(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "turns": self.turns,
        }


class StreamChunk(BaseModel):
    """One element of an engine's chat stream."""
    delta: str = ""
    usage: Optional[Usage] = None


class Progress(BaseModel):
    """Normalized load progress for display."""
    percent: int = Field(ge=0, le=100)
    message: str


# ============================================================================
# Session State Models
# ============================================================================

class SessionStatus(str, Enum):
    """Model acquisition state."""
    UNSTARTED = "unstarted"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
