"""Helpers shared by the task parsers that read JSON out of LLM text.

Instruction-following models often wrap the JSON they were asked for in
prose or markdown fences. ``extract_json_object`` tries a strict parse of the
whole text first, then the substring between the first ``{`` and the last
``}``. Input nested too deeply for the decoder counts as invalid. When both
fail it raises ParseFailure and the task parser substitutes its own synthetic
fallback, so callers always get a usable object.
"""
from __future__ import annotations

import json
import math
from enum import Enum
from typing import Any, Dict, List, Tuple

from upsc_ai.utils import get_logger

LOG = get_logger()


class ParseFailure(Exception):
    pass


class ParseTier(str, Enum):
    STRICT = 'strict'
    SUBSTRING = 'substring'
    FALLBACK = 'fallback'
    # line-oriented parsers (quiz) report this instead of strict/substring
    PARSED = 'parsed'


def _loads_object(text: str) -> Dict[str, Any]:
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError('top-level JSON value is not an object')
    return data


def extract_json_object(text: str) -> Tuple[Dict[str, Any], ParseTier]:
    if not text or not text.strip():
        raise ParseFailure('empty response text')
    try:
        return _loads_object(text.strip()), ParseTier.STRICT
    except (ValueError, RecursionError):
        pass
    start = text.find('{')
    end = text.rfind('}')
    if start == -1 or end <= start:
        raise ParseFailure('no JSON object found in response')
    try:
        return _loads_object(text[start:end + 1]), ParseTier.SUBSTRING
    except (ValueError, RecursionError) as e:
        raise ParseFailure(f'embedded JSON is invalid: {e}') from e


def clamp(value: Any, low: float, high: float) -> float:
    """Coerce ``value`` to a number within [low, high]; non-numeric becomes 0."""
    if isinstance(value, bool):
        return max(low, min(high, 0.0))
    try:
        number = float(value)
    except (TypeError, ValueError):
        return max(low, min(high, 0.0))
    if math.isnan(number):
        return max(low, min(high, 0.0))
    return max(low, min(high, number))


def coerce_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, (list, tuple)):
        return [str(value)]
    out = []
    for item in value:
        if item is None:
            continue
        s = item if isinstance(item, str) else json.dumps(item) if isinstance(item, (dict, list)) else str(item)
        if s.strip():
            out.append(s.strip())
    return out
