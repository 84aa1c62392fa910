"""
Canonical JSON

Sorts object keys lexicographically and encodes with no extra whitespace so
operation parameters hash identically on every signer's machine.
"""

import json
from typing import Any


def dumps_canonical(obj: Any) -> str:
    """
    Encode object as canonical JSON string.

    Args:
        obj: Object to encode (dict, list, str, int, bool, None)

    Returns:
        Canonical JSON string with sorted keys and no extra whitespace
    """
    return json.dumps(normalize(obj), separators=(',', ':'), ensure_ascii=False, sort_keys=True)


def loads_canonical(data: str) -> Any:
    """
    Decode a canonical JSON string, rejecting input that would not re-encode
    to the same text.

    Raises:
        ValueError: If the text is not valid canonical JSON
    """
    value = json.loads(data)
    try:
        canonical = dumps_canonical(value)
    except TypeError as e:
        raise ValueError(str(e)) from e
    if canonical != data:
        raise ValueError("JSON text is not in canonical form")
    return value


def normalize(v: Any) -> Any:
    """
    Recursively convert a value to its canonical JSON-native form.

    - Maps: string keys only, values normalized
    - Lists and tuples: become lists, order preserved
    - Primitives: str, int, bool and None pass through

    Floats and bytes are rejected: neither has a single stable text form.

    Args:
        v: Value to normalize

    Returns:
        Normalized value

    Raises:
        TypeError: If the value contains an unsupported type
    """
    if isinstance(v, dict):
        out = {}
        for k in sorted(v.keys()):
            if not isinstance(k, str):
                raise TypeError(f"Object keys must be strings, got {type(k).__name__}")
            out[k] = normalize(v[k])
        return out
    elif isinstance(v, (list, tuple)):
        return [normalize(item) for item in v]
    elif v is None or isinstance(v, (bool, int, str)):
        return v
    raise TypeError(f"Unsupported value type for canonical JSON: {type(v).__name__}")
