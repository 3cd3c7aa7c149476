"""
Shared error handling for the Claim Assignment Service.
"""

from typing import Dict, Any, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class AssignmentServiceError(Exception):
    """Base exception for the assignment service."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(AssignmentServiceError):
    """Claim or message validation errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class MalformedMessageError(AssignmentServiceError):
    """Queue payload could not be read as a JSON object."""

    def __init__(self, message: str = "Malformed message", details: Optional[Dict[str, Any]] = None):
        super().__init__("MALFORMED_MESSAGE", message, details)


class NotFoundError(AssignmentServiceError):
    """Requested entity does not exist."""

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class QueueConnectionError(AssignmentServiceError):
    """Broker connection or channel errors."""

    def __init__(self, message: str = "Queue connection error", details: Optional[Dict[str, Any]] = None):
        super().__init__("QUEUE_CONNECTION_ERROR", message, details)


class ConfigurationError(AssignmentServiceError):
    """Missing or invalid service settings."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class ExternalServiceError(AssignmentServiceError):
    """External service errors."""

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)
