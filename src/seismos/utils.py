from __future__ import annotations
import hashlib
import json
import math
from pathlib import Path
from typing import Any, Dict

from jsonschema import Draft202012Validator


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def pretty_json(obj: Any) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False)


def degree_distance(lat_a: float, lng_a: float, lat_b: float, lng_b: float) -> float:
    """Euclidean distance in raw lat/lng degrees; every radius and decay constant is tuned to it."""
    return math.sqrt((lat_a - lat_b) ** 2 + (lng_a - lng_b) ** 2)


_validator_cache: Dict[str, Draft202012Validator] = {}


def _schema_dir() -> Path:
    return Path(__file__).resolve().parent / "schemas"


def get_validator(schema_name: str) -> Draft202012Validator:
    if schema_name in _validator_cache:
        return _validator_cache[schema_name]
    path = _schema_dir() / schema_name
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    validator = Draft202012Validator(raw)
    _validator_cache[schema_name] = validator
    return validator


def validate_json(schema_name: str, obj: Any) -> None:
    """Validate JSON object against a schema; raises ValidationError on failure."""
    validator = get_validator(schema_name)
    validator.validate(obj)
