# FILE: httpkernel/utils.py
from __future__ import annotations

import dataclasses
import json
import math
from typing import Any, Dict, Mapping

from pydantic import BaseModel

# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------

_JSONABLE_MAX_DEPTH = 32


def to_jsonable(obj: Any, *, _depth: int = 0) -> Any:
    """
    Convert common structured values into plain JSON containers.

    Handled:
      - pydantic models (model_dump in JSON mode);
      - dataclass instances (field-wise);
      - objects exposing `to_dict()`;
      - mappings (keys coerced to str), lists, tuples, sets;
      - non-finite floats become None.

    Anything else is returned unchanged, so `json.dumps` still raises
    TypeError for values it cannot encode.
    """
    if _depth > _JSONABLE_MAX_DEPTH:
        raise ValueError("structure too deep to serialize")

    if obj is None or isinstance(obj, (str, bool, int)):
        return obj

    if isinstance(obj, float):
        return obj if math.isfinite(obj) else None

    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")

    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict) and not isinstance(obj, type):
        return to_jsonable(to_dict(), _depth=_depth + 1)

    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {
            f.name: to_jsonable(getattr(obj, f.name), _depth=_depth + 1)
            for f in dataclasses.fields(obj)
        }

    if isinstance(obj, Mapping):
        return {str(k): to_jsonable(v, _depth=_depth + 1) for k, v in obj.items()}

    if isinstance(obj, (list, tuple, set, frozenset)):
        return [to_jsonable(v, _depth=_depth + 1) for v in obj]

    return obj


def compact_json(obj: Any) -> str:
    """Strict compact JSON; raises TypeError/ValueError on unencodable input."""
    return json.dumps(
        to_jsonable(obj),
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )


def pretty_json(obj: Any) -> str:
    """Indented JSON for human-facing documents; never raises."""
    try:
        return json.dumps(to_jsonable(obj), ensure_ascii=False, indent=4, default=str)
    except (TypeError, ValueError):
        return json.dumps(str(obj), ensure_ascii=False)


def stringify(value: Any) -> str:
    """Text form of a handler value for non-JSON bodies."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def merge_mappings(*parts: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for p in parts:
        if isinstance(p, Mapping):
            out.update(p)
    return out
