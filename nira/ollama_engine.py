"""Ollama-backed local inference engine."""

import json
import logging
from contextlib import contextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx

from .config import config
from .engine import EngineError, ProgressSink
from .models import ChatMessage, SamplingOptions, StreamChunk, Usage

logger = logging.getLogger(__name__)

WARMUP_STAGE_TEXT = "Loading model into memory…"


class OllamaEngine:
    """
    Async engine backed by a local Ollama daemon.

    Handles:
    - Model download via /api/pull with per-layer progress
    - Warm-up so the first chat turn does not pay the load cost
    - Streaming chat completions with token usage
    - Installed model listing
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        keep_alive: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or config.ollama_url).rstrip("/")
        self.keep_alive = keep_alive or config.keep_alive
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout or config.request_timeout, connect=10.0)
        )
        self.loaded_model: Optional[str] = None

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()

    async def list_models(self) -> List[Dict[str, Any]]:
        """List models installed in the local Ollama store."""
        try:
            resp = await self.client.get(f"{self.base_url}/api/tags")
            resp.raise_for_status()
            data = resp.json()
            return data.get("models", [])
        except Exception as e:
            logger.error(f"Failed to list models: {e}")
            return []

    async def load(self, model_id: str, progress: ProgressSink) -> None:
        """
        Download (if needed) and warm up a model.

        Pull notifications look like:
        - {"status": "pulling manifest"}
        - {"status": "pulling 2af3b81862c6", "digest": "...", "total": N, "completed": M}
        - {"status": "success"}
        - {"error": "..."}
        """
        self.loaded_model = None
        logger.info(f"Loading model {model_id} from {self.base_url}")

        with _translate_errors(self.base_url):
            version = await self.client.get(f"{self.base_url}/api/version")
            version.raise_for_status()

            completed_pull = False
            async with self.client.stream(
                "POST",
                f"{self.base_url}/api/pull",
                json={"model": model_id, "stream": True},
            ) as response:
                await _raise_for_status(response)

                async for line in response.aiter_lines():
                    chunk = _parse_line(line)
                    if chunk is None:
                        continue
                    if "error" in chunk:
                        raise EngineError(str(chunk["error"]))

                    status = chunk.get("status", "")
                    total = chunk.get("total")
                    completed = chunk.get("completed")
                    fraction = None
                    if total and completed is not None:
                        fraction = completed / total
                    progress(fraction, status or None)

                    if status == "success":
                        completed_pull = True

            if not completed_pull:
                raise EngineError(f"Download of {model_id} ended before completion")

            progress(None, WARMUP_STAGE_TEXT)
            resp = await self.client.post(
                f"{self.base_url}/api/generate",
                json={"model": model_id, "keep_alive": self.keep_alive},
            )
            if resp.status_code >= 400:
                raise EngineError(_error_text(resp.text) or f"HTTP {resp.status_code}")

        self.loaded_model = model_id
        logger.info(f"Model {model_id} ready")

    async def stream_chat(
        self,
        messages: Sequence[ChatMessage],
        sampling: SamplingOptions,
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream a chat completion for the loaded model.

        Yields content deltas in order, then one usage chunk built from
        prompt_eval_count/eval_count when Ollama reports completion.
        """
        if self.loaded_model is None:
            raise EngineError("No model loaded")

        options: Dict[str, Any] = {
            "temperature": sampling.temperature,
            "top_p": sampling.top_p,
        }
        if sampling.max_tokens:
            options["num_predict"] = sampling.max_tokens

        payload = {
            "model": self.loaded_model,
            "messages": [m.to_engine() for m in messages],
            "stream": True,
            "options": options,
            "keep_alive": self.keep_alive,
        }

        logger.info(f"Starting chat stream: model={self.loaded_model}, messages={len(messages)}")

        with _translate_errors(self.base_url):
            async with self.client.stream(
                "POST",
                f"{self.base_url}/api/chat",
                json=payload,
            ) as response:
                await _raise_for_status(response)

                async for line in response.aiter_lines():
                    chunk = _parse_line(line)
                    if chunk is None:
                        continue
                    if "error" in chunk:
                        raise EngineError(str(chunk["error"]))

                    content = chunk.get("message", {}).get("content", "")
                    if content:
                        yield StreamChunk(delta=content)

                    if chunk.get("done"):
                        yield StreamChunk(usage=Usage(
                            prompt_tokens=chunk.get("prompt_eval_count") or 0,
                            completion_tokens=chunk.get("eval_count") or 0,
                        ))
                        return

        raise EngineError("Chat stream ended before completion")


def _parse_line(line: str) -> Optional[Dict[str, Any]]:
    if not line:
        return None
    try:
        return json.loads(line)
    except json.JSONDecodeError:
        logger.warning(f"Failed to parse chunk: {line[:100]}")
        return None


def _error_text(body: str) -> str:
    try:
        return str(json.loads(body).get("error", "")) or body
    except (json.JSONDecodeError, AttributeError):
        return body


async def _raise_for_status(response: httpx.Response) -> None:
    if response.status_code >= 400:
        body = (await response.aread()).decode("utf-8", errors="replace")
        logger.error(f"Ollama HTTP error: {response.status_code}")
        raise EngineError(_error_text(body) or f"HTTP {response.status_code}")


@contextmanager
def _translate_errors(base_url: str):
    """Convert transport failures into EngineError."""
    try:
        yield
    except httpx.TimeoutException:
        logger.error("Ollama request timed out")
        raise EngineError("Request timed out") from None
    except httpx.ConnectError:
        logger.error(f"Failed to connect to Ollama at {base_url}")
        raise EngineError(f"Failed to connect to Ollama at {base_url}") from None
    except httpx.HTTPStatusError as e:
        logger.error(f"Ollama HTTP error: {e.response.status_code}")
        raise EngineError(_error_text(e.response.text) or str(e)) from e
    except httpx.HTTPError as e:
        logger.error(f"Ollama stream error: {e}")
        raise EngineError(str(e)) from e
