"""Token-classification configuration and YAML loading."""
from __future__ import annotations
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import ConfigError

log = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "configs" / "config.yaml"

DEFAULT_MODEL = "dbmdz/bert-large-cased-finetuned-conll03-english"


class LabelAggregation(str, Enum):
    """How the pieces of a split word agree on one label."""
    FIRST = "first"
    LAST = "last"
    MODE = "mode"


class TokenClassificationConfig(BaseModel):
    """Resource references and placement for a token-classification backend.

    Forwarded unchanged to the backend at construction time.
    """
    model_config = ConfigDict(frozen=True, extra="forbid", protected_namespaces=())

    backend: str = "transformers"
    model_name: str = DEFAULT_MODEL
    tokenizer_name: Optional[str] = None
    device: int = -1  # -1 for CPU, 0+ for CUDA GPU
    lower_case: bool = False
    max_length: int = 512
    stride: int = 128  # tokens shared by consecutive windows of a long text
    label_aggregation: LabelAggregation = LabelAggregation.FIRST
    cache_dir: Optional[Path] = None


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return raw


def load_config(path: str | Path | None = None) -> TokenClassificationConfig:
    """Build a config from the `ner:` section of a YAML file.

    Falls back to defaults when the file or the section is absent.
    """
    cfg_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if not cfg_path.exists():
        log.warning("Config file %s not found, using defaults", cfg_path)
        return TokenClassificationConfig()

    section = _read_yaml(cfg_path).get("ner") or {}
    try:
        return TokenClassificationConfig(**section)
    except ValidationError as e:
        raise ConfigError(f"Invalid ner section in {cfg_path}: {e}") from e


def load_paths(path: str | Path | None = None) -> dict[str, Path]:
    """Read the `paths:` section, resolving relative entries from the project root."""
    cfg_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if not cfg_path.exists():
        return {}
    paths = _read_yaml(cfg_path).get("paths") or {}
    out: dict[str, Path] = {}
    for key, value in paths.items():
        p = Path(value)
        out[key] = p if p.is_absolute() else PROJECT_ROOT / p
    return out
