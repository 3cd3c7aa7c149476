"""
Read-only entities owned by the company/user/configuration CRUD layer.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class Company:
    """Company that owns rules, identified by its document number (NIT)."""
    id: int
    name: str
    document_number: str
    document_type: Optional[str] = None
    type: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "document_number": self.document_number,
        }


@dataclass
class User:
    """Reviewer that can receive assignments."""
    id: int
    name: str
    dud: str
    company_id: Optional[int] = None
    is_active: bool = True


@dataclass
class RuleRole:
    """Join row linking a rule to a role."""
    rule_id: int
    role_id: int


@dataclass
class Configuration:
    """Per-company settings for the outbound assignment notification."""
    id: int
    company_id: int
    token_endpoint: str
    notification_endpoint: str
    auth_type: str
    token_method: str = "POST"
    notification_method: str = "POST"
    list_query_endpoint: Optional[str] = None
    list_query_method: str = "GET"
    auth_username: Optional[str] = None
    auth_password: Optional[str] = None
    auth_api_key: Optional[str] = None
    auth_additional_fields: Optional[Dict[str, Any]] = None
    path_variable_mapping: Optional[Dict[str, str]] = None
    body_variable_mapping: Optional[Dict[str, str]] = None
    custom_headers: Dict[str, str] = field(default_factory=dict)
    is_active: bool = True
    description: Optional[str] = None

    def __post_init__(self):
        self.auth_type = (self.auth_type or "").upper()
        self.token_method = (self.token_method or "POST").upper()
        self.notification_method = (self.notification_method or "POST").upper()
