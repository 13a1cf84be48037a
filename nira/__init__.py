"""
Nira Lite

Local, on-device chat: model acquisition with progress reporting and
streamed multi-turn conversations.

Components:
- catalog: Model catalog and quick-topic prompts
- progress: Download progress normalization
- state: Model acquisition state machine
- transcript: Role-tagged conversation log
- stream: Generation-tagged streaming reply assembly
- orchestrator: Session coordinator and listener hooks
- ollama_engine: Ollama runtime adapter
- api: HTTP/SSE endpoints
"""

__version__ = "0.1.0"
