"""
Policy Validation - JSON Schema checks for repository policy documents.

Only the document's shape is checked (a JSON object with statements that
carry an Effect); what the statements grant is left to the remote service.
"""

import json
import logging
from typing import Any, Dict, Optional, Tuple

from jsonschema import Draft7Validator

logger = logging.getLogger(__name__)

_STRING_OR_LIST = {
    "oneOf": [
        {"type": "string"},
        {"type": "array", "items": {"type": "string"}, "minItems": 1},
    ]
}

_STATEMENT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["Effect"],
    "properties": {
        "Sid": {"type": "string"},
        "Effect": {"enum": ["Allow", "Deny"]},
        "Principal": {"oneOf": [{"type": "string"}, {"type": "object"}]},
        "Action": _STRING_OR_LIST,
        "NotAction": _STRING_OR_LIST,
        "Condition": {"type": "object"},
    },
}

POLICY_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["Statement"],
    "properties": {
        "Version": {"type": "string"},
        "Id": {"type": "string"},
        "Statement": {
            "oneOf": [
                _STATEMENT_SCHEMA,
                {"type": "array", "items": _STATEMENT_SCHEMA, "minItems": 1},
            ]
        },
    },
}


def validate_policy_document(text: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a policy document's JSON structure.

    Args:
        text: The policy document as a JSON string

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        document = json.loads(text)
    except (TypeError, ValueError) as e:
        return False, f"Policy is not valid JSON: {e}"

    validator = Draft7Validator(POLICY_SCHEMA)
    errors = list(validator.iter_errors(document))

    if not errors:
        return True, None

    error_messages = []
    for error in errors:
        path = ".".join(str(p) for p in error.absolute_path) or "(root)"
        error_messages.append(f"{path}: {error.message}")

    return False, "; ".join(error_messages)
