"""
Routing rule data models.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Optional


class RuleCriterion(str, Enum):
    """Single claim attribute a rule can test."""
    AMOUNT = "amount"
    COMPANY = "company"
    CODE = "code"


class RuleType(str, Enum):
    """Rule type tags as stored by the rule CRUD layer."""
    CODE_AMOUNT_COMPANY = "CODE-AMOUNT-COMPANY"
    COMPANY_CODE = "COMPANY-CODE"
    CODE_AMOUNT = "CODE-AMOUNT"
    COMPANY_AMOUNT = "COMPANY-AMOUNT"
    COMPANY = "COMPANY"
    CODE = "CODE"
    AMOUNT = "AMOUNT"
    CUSTOM = "CUSTOM"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "RuleType":
        """Map a stored type tag to a RuleType; unknown tags are CUSTOM."""
        if not raw:
            return cls.CUSTOM
        try:
            return cls(raw.strip().upper())
        except ValueError:
            return cls.CUSTOM

    @property
    def specificity(self) -> int:
        """1 is the most specific rank."""
        return SPECIFICITY_RANKS[self]

    @property
    def criteria(self) -> FrozenSet[RuleCriterion]:
        return RULE_CRITERIA[self]


SPECIFICITY_RANKS: Dict[RuleType, int] = {
    RuleType.CODE_AMOUNT_COMPANY: 1,
    RuleType.COMPANY_CODE: 2,
    RuleType.CODE_AMOUNT: 3,
    RuleType.COMPANY_AMOUNT: 4,
    RuleType.COMPANY: 5,
    RuleType.CODE: 6,
    RuleType.AMOUNT: 7,
    RuleType.CUSTOM: 8,
}

RULE_CRITERIA: Dict[RuleType, FrozenSet[RuleCriterion]] = {
    RuleType.CODE_AMOUNT_COMPANY: frozenset({RuleCriterion.CODE, RuleCriterion.AMOUNT, RuleCriterion.COMPANY}),
    RuleType.COMPANY_CODE: frozenset({RuleCriterion.COMPANY, RuleCriterion.CODE}),
    RuleType.CODE_AMOUNT: frozenset({RuleCriterion.CODE, RuleCriterion.AMOUNT}),
    RuleType.COMPANY_AMOUNT: frozenset({RuleCriterion.COMPANY, RuleCriterion.AMOUNT}),
    RuleType.COMPANY: frozenset({RuleCriterion.COMPANY}),
    RuleType.CODE: frozenset({RuleCriterion.CODE}),
    RuleType.AMOUNT: frozenset({RuleCriterion.AMOUNT}),
    RuleType.CUSTOM: frozenset(),
}


@dataclass
class Rule:
    """Eligibility rule owned by a company.

    ``type`` keeps the stored tag verbatim; ``rule_type`` is the parsed form
    the engine works with.
    """
    id: int
    name: str
    company_id: int
    type: str
    description: Optional[str] = None
    is_active: bool = True
    minimum_amount: Optional[float] = None
    maximum_amount: Optional[float] = None
    nit_associated_company: Optional[str] = None
    code: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def rule_type(self) -> RuleType:
        return RuleType.parse(self.type)

    def summary(self) -> Dict[str, object]:
        """Fields carried into decision records."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "nit_associated_company": self.nit_associated_company,
            "code": self.code,
            "minimum_amount": self.minimum_amount,
            "maximum_amount": self.maximum_amount,
        }
