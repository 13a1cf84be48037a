"""Service configuration."""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .models import SamplingOptions

load_dotenv()

DEFAULT_SYSTEM_PROMPT = (
    "You are Nira, a friendly study assistant running entirely on this device.\n"
    "Explain things in simple words, use short paragraphs, and give small examples.\n"
    "If you are not sure about something, say so."
)


def _optional_int(name: str) -> Optional[int]:
    value = os.getenv(name, "").strip()
    return int(value) if value else None


@dataclass
class Config:
    """Configuration loaded from environment variables."""

    # Server
    host: str = field(default_factory=lambda: os.getenv("NIRA_HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.getenv("NIRA_PORT", "8000")))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "").strip().lower() in ("1", "true", "yes"))

    # Ollama
    ollama_url: str = field(default_factory=lambda: os.getenv("OLLAMA_URL", "http://localhost:11434"))
    request_timeout: float = field(default_factory=lambda: float(os.getenv("NIRA_REQUEST_TIMEOUT", "600")))
    keep_alive: str = field(default_factory=lambda: os.getenv("NIRA_KEEP_ALIVE", "30m"))

    # Catalog
    catalog_path: str = field(default_factory=lambda: os.getenv("NIRA_CATALOG", ""))
    default_model: str = field(default_factory=lambda: os.getenv("NIRA_DEFAULT_MODEL", ""))

    # Conversation
    system_prompt: str = field(default_factory=lambda: os.getenv("NIRA_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT))
    temperature: float = field(default_factory=lambda: float(os.getenv("NIRA_TEMPERATURE", "0.7")))
    top_p: float = field(default_factory=lambda: float(os.getenv("NIRA_TOP_P", "0.95")))
    max_tokens: Optional[int] = field(default_factory=lambda: _optional_int("NIRA_MAX_TOKENS"))

    @property
    def sampling(self) -> SamplingOptions:
        """Sampling options sent with each chat turn."""
        return SamplingOptions(
            temperature=self.temperature,
            top_p=self.top_p,
            max_tokens=self.max_tokens,
        )


# Global config instance
config = Config()
