from .consumer import AssignmentQueueConsumer, ConnectionState, MessageOutcome
from .message import CLAIM_FIELDS, map_fields, parse_claim_message, validate_claim_message

__all__ = [
    "AssignmentQueueConsumer",
    "CLAIM_FIELDS",
    "ConnectionState",
    "MessageOutcome",
    "map_fields",
    "parse_claim_message",
    "validate_claim_message",
]
