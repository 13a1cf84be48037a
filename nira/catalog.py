"""
Static model catalog and prompt templates.

The catalog is immutable once built. It is either the built-in list of
curated small models or a JSON file of the form::

    {
        "default": "smollm2:360m",
        "models": [
            {"id": "smollm2:360m", "label": "SmolLM 360M", "approx_size_bytes": 350000000}
        ]
    }
"""

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

from .errors import NiraError, ErrorKind
from .models import ModelDescriptor

logger = logging.getLogger(__name__)

DEFAULT_MODELS = (
    ModelDescriptor(
        id="tinyllama:1.1b",
        label="TinyLlama 1.1B – Fast (Lite)",
        approx_size_bytes=700_000_000,
    ),
    ModelDescriptor(
        id="smollm2:360m",
        label="SmolLM 360M – Ultra Lite",
        approx_size_bytes=350_000_000,
    ),
    ModelDescriptor(
        id="phi3:mini",
        label="Phi-3 Mini – Balanced",
        approx_size_bytes=1_600_000_000,
    ),
)

DEFAULT_MODEL_ID = "smollm2:360m"

PROMPT_TEMPLATES: Dict[str, str] = {
    "School": "Explain photosynthesis in very simple words.",
    "College": "I am a law student. Explain the basics of contract law in India.",
    "IT / Coding": "Teach me what a 'variable' is in programming, with easy examples.",
    "UPSC / Govt Exams": "Give me a quick summary of the Indian Constitution in points.",
    "Competitive Exams": "Give me 5 tricky aptitude questions with answers for placement exams.",
}


class ModelNotFound(NiraError, LookupError):
    """Catalog lookup miss."""
    kind = ErrorKind.UNKNOWN_MODEL

    def __init__(self, model_id: str):
        self.model_id = model_id
        super().__init__(f"Model not in catalog: {model_id}")


class ModelCatalog:
    """
    Immutable mapping from model id to display metadata.

    Handles:
    - Stable, configuration-defined listing order
    - Lookup by id (raises ModelNotFound)
    - Default model selection
    """

    def __init__(self, models: Iterable[ModelDescriptor], default_id: Optional[str] = None):
        self._models: Tuple[ModelDescriptor, ...] = tuple(models)
        if not self._models:
            raise ValueError("Model catalog must contain at least one model")

        self._by_id: Dict[str, ModelDescriptor] = {}
        for model in self._models:
            if model.id in self._by_id:
                raise ValueError(f"Duplicate model id in catalog: {model.id}")
            self._by_id[model.id] = model

        if default_id and default_id not in self._by_id:
            raise ValueError(f"Default model {default_id} is not in the catalog")
        self._default_id = default_id or self._models[0].id

    @classmethod
    def builtin(cls, default_id: Optional[str] = None) -> "ModelCatalog":
        """Catalog of the curated small models."""
        return cls(DEFAULT_MODELS, default_id or DEFAULT_MODEL_ID)

    @classmethod
    def from_file(cls, path: str, default_id: Optional[str] = None) -> "ModelCatalog":
        """Load a catalog from a JSON file."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        models = [ModelDescriptor(**entry) for entry in data.get("models", [])]
        catalog = cls(models, default_id or data.get("default"))
        logger.info(f"Loaded {len(catalog)} models from {path}")
        return catalog

    @classmethod
    def from_config(cls, cfg) -> "ModelCatalog":
        """Build the catalog named by configuration."""
        default_id = cfg.default_model or None
        if cfg.catalog_path:
            return cls.from_file(cfg.catalog_path, default_id)
        return cls.builtin(default_id)

    def list(self) -> Tuple[ModelDescriptor, ...]:
        return self._models

    def find(self, model_id: str) -> ModelDescriptor:
        try:
            return self._by_id[model_id]
        except KeyError:
            raise ModelNotFound(model_id) from None

    @property
    def default(self) -> ModelDescriptor:
        return self._by_id[self._default_id]

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._by_id

    def __len__(self) -> int:
        return len(self._models)


def template_for(topic: str) -> str:
    """Starter prompt for a quick topic, or an empty string."""
    return PROMPT_TEMPLATES.get(topic.strip(), "")
