"""
Placeholder resolution for per-company notification endpoints and bodies.

Placeholders are written ``{name}``. A mapping translates a placeholder name
into a dotted path inside the resolver data (``assignment.claimId``); body
placeholders that already contain a dot are used as paths directly.
"""

import copy
import re
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

from shared.logging import get_logger

logger = get_logger("assignment.notifications.resolver")

_PLACEHOLDER = re.compile(r"^\{([^{}]+)\}$")


def get_value_from_path(data: Any, path: Optional[str]) -> Any:
    """Follow a dotted path through nested mappings; None when any step is missing."""
    if data is None or not path:
        return None

    current = data
    for key in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(key)
        else:
            return None
        if current is None:
            return None
    return current


def resolve_url(template: str, mapping: Optional[Mapping[str, str]], data: Mapping[str, Any]) -> str:
    """Substitute URL-encoded values for ``{placeholder}`` segments of a URL."""
    if not template:
        raise ValueError("URL template is required")
    if not mapping:
        return template

    resolved = template
    for placeholder, path in mapping.items():
        value = get_value_from_path(data, path)
        if value is None:
            logger.warning("URL placeholder not resolved", placeholder=placeholder, path=path)
            continue
        resolved = resolved.replace("{" + placeholder + "}", quote(str(value), safe=""))

    return resolved


def _resolve_placeholder(text: str, mapping: Optional[Mapping[str, str]], data: Mapping[str, Any]) -> Any:
    match = _PLACEHOLDER.match(text)
    if not match:
        return text

    placeholder = match.group(1)
    path = mapping.get(placeholder) if mapping else None
    if not path and "." in placeholder:
        path = placeholder

    if not path:
        if mapping:
            logger.warning("Body placeholder not in mapping", placeholder=placeholder)
        return text

    value = get_value_from_path(data, path)
    if value is None:
        logger.warning("Body placeholder not resolved", placeholder=placeholder, path=path)
        return text
    return value


def _resolve_recursive(node: Any, mapping: Optional[Mapping[str, str]], data: Mapping[str, Any]) -> Any:
    if isinstance(node, str):
        return _resolve_placeholder(node, mapping, data)
    if isinstance(node, dict):
        return {key: _resolve_recursive(value, mapping, data) for key, value in node.items()}
    if isinstance(node, list):
        return [_resolve_recursive(item, mapping, data) for item in node]
    return node


def resolve_body(template: Optional[Mapping[str, Any]],
                 mapping: Optional[Mapping[str, str]],
                 data: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``template`` with whole-string placeholders replaced."""
    if not template:
        return {}
    return _resolve_recursive(copy.deepcopy(dict(template)), mapping, data)
