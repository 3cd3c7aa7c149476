"""
Assignment entity and status values.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from shared.errors import ValidationError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AssignmentStatus(str, Enum):
    """Assignment lifecycle states."""
    PENDING = "pending"
    ASSIGNED = "assigned"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    UNASSIGNED = "unassigned"

    @classmethod
    def is_valid(cls, status: Any) -> bool:
        try:
            cls(status)
        except ValueError:
            return False
        return True

    @classmethod
    def validation_message(cls) -> str:
        return "Status must be one of: " + ", ".join(s.value for s in cls)


@dataclass
class Assignment:
    """A claim routed to a reviewer, or pending triage when ``user_id`` is None.

    The claim fields are copied verbatim from the queue message for audit.
    ``company_id`` is always the source company, the owner of the rules.
    """
    company_id: int
    start_date: datetime = field(default_factory=_utcnow)
    user_id: Optional[int] = None
    status: AssignmentStatus = AssignmentStatus.PENDING
    type: Optional[str] = None
    id: Optional[int] = None
    end_date: Optional[datetime] = None
    assigned_at: datetime = field(default_factory=_utcnow)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    process_id: Optional[str] = None
    source: Optional[str] = None
    document_number: Optional[str] = None
    invoice_amount: Optional[float] = None
    external_reference: Optional[str] = None
    claim_id: Optional[str] = None
    concept_application_code: Optional[str] = None
    objection_code: Optional[str] = None
    value: Optional[float] = None

    def __post_init__(self):
        if isinstance(self.status, str) and not isinstance(self.status, AssignmentStatus):
            if not AssignmentStatus.is_valid(self.status):
                raise ValidationError(AssignmentStatus.validation_message(), {"status": self.status})
            self.status = AssignmentStatus(self.status)
        self.validate()

    def validate(self):
        """Validate identifiers, dates and status."""
        if self.user_id is not None and not _is_positive_int(self.user_id):
            raise ValidationError("User ID must be a positive integer", {"user_id": self.user_id})

        if self.company_id is None:
            raise ValidationError("Company ID is required")

        if not _is_positive_int(self.company_id):
            raise ValidationError("Company ID must be a positive integer", {"company_id": self.company_id})

        if not isinstance(self.start_date, datetime):
            raise ValidationError("Start date must be a valid date")

        if self.end_date is not None:
            if not isinstance(self.end_date, datetime):
                raise ValidationError("End date must be a valid date")
            if self.end_date <= self.start_date:
                raise ValidationError("End date must be after start date")

        if not isinstance(self.status, AssignmentStatus):
            raise ValidationError(AssignmentStatus.validation_message(), {"status": self.status})

    # Domain methods

    def assign(self, user_id: Optional[int] = None):
        if user_id is not None:
            if not _is_positive_int(user_id):
                raise ValidationError("User ID must be a positive integer", {"user_id": user_id})
            self.user_id = user_id
        self.status = AssignmentStatus.ACTIVE
        self.assigned_at = _utcnow()
        self.updated_at = self.assigned_at

    def activate(self):
        self._transition(AssignmentStatus.ACTIVE)

    def complete(self):
        self._transition(AssignmentStatus.COMPLETED)

    def cancel(self):
        self._transition(AssignmentStatus.CANCELLED)

    def unassign(self):
        self._transition(AssignmentStatus.UNASSIGNED)

    def _transition(self, status: AssignmentStatus):
        self.status = status
        self.updated_at = _utcnow()

    def update_dates(self, start_date: datetime, end_date: Optional[datetime] = None):
        if not isinstance(start_date, datetime):
            raise ValidationError("Start date is required and must be a valid date")
        if end_date is not None and (not isinstance(end_date, datetime) or end_date <= start_date):
            raise ValidationError("End date must be a valid date after start date")
        self.start_date = start_date
        self.end_date = end_date
        self.updated_at = _utcnow()

    @property
    def is_pending(self) -> bool:
        return self.status == AssignmentStatus.PENDING

    @property
    def is_assigned(self) -> bool:
        return self.status == AssignmentStatus.ASSIGNED

    @property
    def is_completed(self) -> bool:
        return self.status == AssignmentStatus.COMPLETED

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        if self.end_date is None:
            return False
        return (now or _utcnow()) > self.end_date and not self.is_completed

    def duration_days(self) -> Optional[int]:
        if self.end_date is None:
            return None
        return math.ceil((self.end_date - self.start_date).total_seconds() / 86400)

    def time_remaining_days(self, now: Optional[datetime] = None) -> Optional[int]:
        if self.end_date is None or self.is_completed:
            return None
        now = now or _utcnow()
        if now > self.end_date:
            return 0
        return math.ceil((self.end_date - now).total_seconds() / 86400)

    def overlaps(self, other: "Assignment") -> bool:
        """Date-range overlap; open-ended assignments never overlap."""
        if self.end_date is None or other.end_date is None:
            return False
        return self.start_date <= other.end_date and self.end_date >= other.start_date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "company_id": self.company_id,
            "status": self.status.value,
            "type": self.type,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "assigned_at": self.assigned_at.isoformat(),
            "process_id": self.process_id,
            "source": self.source,
            "document_number": self.document_number,
            "invoice_amount": self.invoice_amount,
            "external_reference": self.external_reference,
            "claim_id": self.claim_id,
            "concept_application_code": self.concept_application_code,
            "objection_code": self.objection_code,
            "value": self.value,
        }


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0
