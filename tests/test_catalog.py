from __future__ import annotations

import json

import pytest

from nira.catalog import (
    DEFAULT_MODEL_ID,
    ModelCatalog,
    ModelNotFound,
    template_for,
)
from nira.config import Config
from nira.models import ModelDescriptor


def test_builtin_catalog_defaults_to_ultra_lite_model():
    catalog = ModelCatalog.builtin()
    assert len(catalog) == 3
    assert catalog.default.id == DEFAULT_MODEL_ID
    assert [m.id for m in catalog.list()] == ["tinyllama:1.1b", "smollm2:360m", "phi3:mini"]


def test_find_and_not_found(catalog):
    assert catalog.find("m1").approx_size_bytes == 800_000_000
    with pytest.raises(ModelNotFound):
        catalog.find("nope")
    with pytest.raises(LookupError):
        catalog.find("nope")


def test_default_is_first_entry_when_unset():
    catalog = ModelCatalog([ModelDescriptor(id="a", label="A"), ModelDescriptor(id="b", label="B")])
    assert catalog.default.id == "a"


def test_rejects_duplicates_and_bad_default():
    with pytest.raises(ValueError):
        ModelCatalog([ModelDescriptor(id="a", label="A"), ModelDescriptor(id="a", label="A2")])
    with pytest.raises(ValueError):
        ModelCatalog([ModelDescriptor(id="a", label="A")], default_id="b")
    with pytest.raises(ValueError):
        ModelCatalog([])


def test_from_file(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({
        "default": "y",
        "models": [
            {"id": "x", "label": "X", "approx_size_bytes": 1},
            {"id": "y", "label": "Y", "approx_size_bytes": 2},
        ],
    }))
    catalog = ModelCatalog.from_file(str(path))
    assert [m.id for m in catalog.list()] == ["x", "y"]
    assert catalog.default.id == "y"
    assert "x" in catalog


def test_from_config_uses_file_and_default_override(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({"models": [{"id": "x", "label": "X"}, {"id": "y", "label": "Y"}]}))
    cfg = Config(catalog_path=str(path), default_model="y")
    assert ModelCatalog.from_config(cfg).default.id == "y"


def test_from_config_builtin():
    cfg = Config(catalog_path="", default_model="phi3:mini")
    assert ModelCatalog.from_config(cfg).default.id == "phi3:mini"


def test_size_label():
    assert ModelDescriptor(id="a", label="A", approx_size_bytes=700_000_000).approx_size_label == "~700 MB"
    assert ModelDescriptor(id="b", label="B", approx_size_bytes=1_600_000_000).approx_size_label == "~1.6 GB"


def test_descriptor_rejects_negative_size():
    with pytest.raises(ValueError):
        ModelDescriptor(id="a", label="A", approx_size_bytes=-1)


def test_template_for():
    assert template_for("School") == "Explain photosynthesis in very simple words."
    assert template_for(" School ") == "Explain photosynthesis in very simple words."
    assert template_for("Unknown") == ""
