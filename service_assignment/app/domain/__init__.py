from .assignment import Assignment, AssignmentStatus
from .claim import Claim, normalize_document, normalize_nit
from .entities import Company, Configuration, RuleRole, User
from .rules import Rule, RuleCriterion, RuleType, SPECIFICITY_RANKS

__all__ = [
    "Assignment",
    "AssignmentStatus",
    "Claim",
    "Company",
    "Configuration",
    "Rule",
    "RuleCriterion",
    "RuleRole",
    "RuleType",
    "SPECIFICITY_RANKS",
    "User",
    "normalize_document",
    "normalize_nit",
]
