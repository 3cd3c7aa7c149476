"""
Claim value object built from one queue message.
"""

import math
import re
from dataclasses import dataclass, asdict
from typing import Any, Dict, Mapping, Optional

from shared.errors import ValidationError

_NIT_SEPARATORS = re.compile(r"[-\s]")


def normalize_document(document: str) -> str:
    """Strip dashes and whitespace from a document number."""
    return _NIT_SEPARATORS.sub("", document)


def normalize_nit(nit: str) -> str:
    """Normalize a NIT for comparison: no dashes, no whitespace, uppercase."""
    return normalize_document(nit).upper()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class Claim:
    """Incoming claim/dispute.

    ``source`` identifies the company that owns the routing rules. ``target``
    is only ever compared against rule criteria.
    """
    process_id: str
    target: str
    source: str
    invoice_amount: float
    claim_id: str
    value: float
    document_number: Optional[str] = None
    external_reference: Optional[str] = None
    concept_application_code: Optional[str] = None
    objection_code: Optional[str] = None

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Validate the mandatory claim fields."""
        if not self.process_id:
            raise ValidationError("ProcessId is required for Claim", {"field": "ProcessId"})

        if not self.target:
            raise ValidationError("Target company identifier is required", {"field": "Target"})

        if not self.source:
            raise ValidationError("Source company identifier is required", {"field": "Source"})

        self._validate_amount("InvoiceAmount", self.invoice_amount)

        if not self.claim_id:
            raise ValidationError("ClaimId is required", {"field": "ClaimId"})

        self._validate_amount("Value", self.value)

    @staticmethod
    def _validate_amount(field_name: str, amount: Any):
        if amount is None:
            raise ValidationError(f"{field_name} is required", {"field": field_name})
        if not _is_number(amount) or not math.isfinite(amount) or amount < 0:
            raise ValidationError(
                f"{field_name} must be a non-negative number",
                {"field": field_name, "value": amount}
            )

    @classmethod
    def from_message(cls, data: Mapping[str, Any]) -> "Claim":
        """Build a claim from a message dict keyed by the canonical wire names."""
        return cls(
            process_id=data.get("ProcessId"),
            target=data.get("Target"),
            source=data.get("Source"),
            invoice_amount=data.get("InvoiceAmount"),
            claim_id=data.get("ClaimId"),
            value=data.get("Value"),
            document_number=data.get("DocumentNumber"),
            external_reference=data.get("ExternalReference"),
            concept_application_code=data.get("ConceptApplicationCode"),
            objection_code=data.get("ObjectionCode"),
        )

    def is_amount_in_range(self, minimum_amount: Optional[float], maximum_amount: Optional[float]) -> bool:
        """Inclusive range check. A missing bound leaves that side open."""
        if minimum_amount is None and maximum_amount is None:
            return False
        if minimum_amount is not None and self.invoice_amount < minimum_amount:
            return False
        if maximum_amount is not None and self.invoice_amount > maximum_amount:
            return False
        return True

    def matches_target_company(self, nit_associated_company: Optional[str]) -> bool:
        """Compare the target company against a rule NIT after normalization."""
        if not nit_associated_company:
            return False
        return normalize_nit(self.target) == normalize_nit(nit_associated_company)

    def matches_objection_code(self, code: Optional[str]) -> bool:
        """Exact, case-sensitive objection code comparison."""
        if not code or not self.objection_code:
            return False
        return self.objection_code == code

    def basic_info(self) -> Dict[str, Any]:
        """Identifiers and amounts for decision records and logs."""
        return {
            "process_id": self.process_id,
            "claim_id": self.claim_id,
            "target": self.target,
            "source": self.source,
            "invoice_amount": self.invoice_amount,
            "value": self.value,
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
