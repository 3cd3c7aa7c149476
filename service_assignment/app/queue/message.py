"""
Queue payload decoding and validation.

Producers send camelCase or PascalCase keys. Keys are matched against an
explicit whitelist after upper-casing their first letter; anything else is
dropped and reported.
"""

import json
import math
import re
from typing import Any, Dict, List, Mapping, Tuple

from shared.errors import MalformedMessageError, ValidationError

CLAIM_FIELDS: Tuple[str, ...] = (
    "ProcessId",
    "Target",
    "Source",
    "DocumentNumber",
    "DocumentType",
    "InvoiceAmount",
    "ExternalReference",
    "ClaimId",
    "ConceptApplicationCode",
    "ObjectionCode",
    "Value",
)

REQUIRED_FIELDS: Tuple[str, ...] = ("ProcessId", "Target", "Source", "InvoiceAmount", "ClaimId", "Value")
NUMERIC_FIELDS: Tuple[str, ...] = ("InvoiceAmount", "Value")

_ALLOWED = frozenset(CLAIM_FIELDS)
_DECIMAL = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")


def decode_message(body: bytes) -> Dict[str, Any]:
    """Decode a message body into a JSON object."""
    try:
        text = body.decode("utf-8") if body else ""
    except UnicodeDecodeError as e:
        raise MalformedMessageError("Message body is not valid UTF-8", {"error": str(e)})

    if not text.strip():
        raise MalformedMessageError("Received empty message")

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedMessageError("Failed to parse message JSON", {"error": str(e), "content": text[:500]})

    if not isinstance(payload, dict):
        raise MalformedMessageError(
            "Message JSON must be an object",
            {"type": type(payload).__name__}
        )

    return payload


def canonical_key(key: str) -> str:
    return key[:1].upper() + key[1:]


def map_fields(payload: Mapping[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
    """Map payload keys onto the claim whitelist.

    Returns the mapped fields and the original keys that were not recognized.
    """
    mapped: Dict[str, Any] = {}
    ignored: List[str] = []

    for key, value in payload.items():
        name = canonical_key(key) if isinstance(key, str) else key
        if name in _ALLOWED:
            mapped[name] = value
        else:
            ignored.append(key)

    return mapped, ignored


def _parse_amount(field_name: str, raw: str) -> float:
    if not _DECIMAL.match(raw):
        raise ValidationError(f"{field_name} is not a valid number", {"field": field_name, "value": raw})

    amount = float(raw)
    if not math.isfinite(amount):
        raise ValidationError(f"{field_name} must be finite", {"field": field_name, "value": raw})
    if amount < 0:
        raise ValidationError(f"{field_name} must be non-negative", {"field": field_name, "value": raw})
    return amount


def validate_claim_message(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Check required fields and coerce amounts.

    Required fields must be present, non-empty strings. Returns a new dict with
    ``InvoiceAmount`` and ``Value`` as floats.
    """
    for field_name in REQUIRED_FIELDS:
        value = fields.get(field_name)
        if value is None or value == "":
            raise ValidationError(f"Missing required field: {field_name}", {"field": field_name})
        if not isinstance(value, str):
            raise ValidationError(
                f"Field {field_name} must be a string",
                {"field": field_name, "type": type(value).__name__}
            )

    validated: Dict[str, Any] = dict(fields)

    for field_name in NUMERIC_FIELDS:
        validated[field_name] = _parse_amount(field_name, fields[field_name])

    for field_name in CLAIM_FIELDS:
        if field_name in REQUIRED_FIELDS:
            continue
        value = validated.get(field_name)
        if value is None or isinstance(value, str):
            continue
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            validated[field_name] = str(value)
        else:
            raise ValidationError(
                f"Field {field_name} must be a string",
                {"field": field_name, "type": type(value).__name__}
            )

    return validated


def parse_claim_message(body: bytes) -> Tuple[Dict[str, Any], List[str]]:
    """Decode, map and validate a raw message body."""
    payload = decode_message(body)
    fields, ignored = map_fields(payload)
    return validate_claim_message(fields), ignored
