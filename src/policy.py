"""
Semantic comparison of policy documents.

Two policies are equivalent when they describe the same document regardless
of key order, statement order, or whether a single value is written as a
scalar or a one-element list.
"""

import json
from typing import Any, Callable

PolicyComparator = Callable[[str, str], bool]


def _canonical(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _canonical(v) for k, v in value.items()}
    if isinstance(value, list):
        items = [_canonical(v) for v in value]
        if len(items) == 1:
            return items[0]
        # Order-insensitive: sort by canonical JSON text
        return sorted(items, key=lambda v: json.dumps(v, sort_keys=True))
    return value


def normalize_policy(text: str) -> str:
    """
    Return a canonical JSON rendering of a policy document.

    Raises:
        ValueError: If text is not valid JSON.
    """
    document = json.loads(text)
    return json.dumps(_canonical(document), sort_keys=True, separators=(",", ":"))


def policies_equivalent(a: str, b: str) -> bool:
    """
    Check whether two policy texts are semantically equivalent.

    Falls back to whitespace-insensitive text comparison when either side
    is not valid JSON.
    """
    if a == b:
        return True
    try:
        return normalize_policy(a) == normalize_policy(b)
    except (TypeError, ValueError):
        return (a or "").strip() == (b or "").strip()
