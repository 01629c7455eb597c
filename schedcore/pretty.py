"""Readable JSON rendering of configuration and state objects."""

from __future__ import annotations

import base64
import dataclasses
import enum
import json
from typing import Any


def _to_json(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
    if isinstance(obj, (bytes, bytearray)):
        return base64.b64encode(bytes(obj)).decode("ascii")
    if isinstance(obj, enum.Enum):
        return obj.value
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    raise TypeError(f"{type(obj).__name__} is not JSON serialisable")


def pretty_print(obj: Any) -> str:
    """Render the object as tab-indented JSON; an unrenderable object gives ""."""
    try:
        return json.dumps(obj, indent="\t", default=_to_json)
    except (TypeError, ValueError):
        return ""