"""Safe file I/O, JSON/YAML helpers."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Union

import yaml

from pricepilot.core.models import BillingModel


def ensure_dir(path: Union[str, Path]) -> Path:
    """Create directory and parents if needed, return Path."""
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def read_json(path: Union[str, Path]) -> Any:
    """Read a JSON file and return parsed contents."""
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def write_json(path: Union[str, Path], data: Any, indent: int = 2) -> Path:
    """Write data to a JSON file."""
    p = Path(path)
    ensure_dir(p.parent)
    with open(p, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, ensure_ascii=False)
    return p


def read_yaml(path: Union[str, Path]) -> Any:
    """Read a YAML file and return parsed contents."""
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_model_file(path: Union[str, Path]) -> BillingModel:
    """Load a BillingModel from a .json, .yaml or .yml file.

    Raises FileNotFoundError, ValueError for unreadable files, and
    ValidationError for records that do not parse as a billing model.
    """
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"Model file not found: {p}")
    suffix = p.suffix.lower()
    if suffix in (".yaml", ".yml"):
        data = read_yaml(p)
    elif suffix == ".json":
        data = read_json(p)
    else:
        raise ValueError(f"Unsupported model file '{p.suffix}'. Supported: .json, .yaml, .yml")
    if not isinstance(data, dict):
        raise ValueError(f"Model file must contain an object, got {type(data).__name__}")
    return BillingModel.from_dict(data)
