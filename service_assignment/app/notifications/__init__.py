from .notifier import AssignmentNotifier, OrchestratorNotifier, build_dispute, build_resolver_data
from .resolver import get_value_from_path, resolve_body, resolve_url

__all__ = [
    "AssignmentNotifier",
    "OrchestratorNotifier",
    "build_dispute",
    "build_resolver_data",
    "get_value_from_path",
    "resolve_body",
    "resolve_url",
]
