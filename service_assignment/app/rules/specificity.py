"""
Specificity prioritization of applied rules.

Only the most specific tier of applied rules contributes eligible users, so a
narrow override configured next to a broad rule replaces it instead of adding
to it. Rules in the same tier are merged.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..domain.entities import User
from ..domain.rules import Rule
from .evaluator import RuleEvaluation


@dataclass(frozen=True)
class CandidateUser:
    """Active user reached from a rule through one of its roles."""
    user: User
    role_id: Optional[int] = None


@dataclass(frozen=True)
class AppliedRuleResult:
    """A rule evaluation together with the users its roles resolve to."""
    evaluation: RuleEvaluation
    users: Sequence[CandidateUser] = field(default_factory=tuple)

    @property
    def applies(self) -> bool:
        return self.evaluation.applies

    @property
    def specificity(self) -> int:
        return self.evaluation.specificity


@dataclass
class EligibleUser:
    """User selected by the most specific tier, with the rules that selected it."""
    user: User
    role_id: Optional[int] = None
    applied_rules: List[Rule] = field(default_factory=list)

    @property
    def id(self) -> int:
        return self.user.id

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.user.id,
            "name": self.user.name,
            "dud": self.user.dud,
            "role_id": self.role_id,
            "applied_rules": [
                {"id": rule.id, "name": rule.name, "type": rule.type}
                for rule in self.applied_rules
            ],
        }


def most_specific_rank(results: Sequence[AppliedRuleResult]) -> Optional[int]:
    """Lowest specificity rank among applied rules, or None if none applied."""
    ranks = [result.specificity for result in results if result.applies]
    return min(ranks) if ranks else None


def resolve(results: Sequence[AppliedRuleResult]) -> Dict[int, EligibleUser]:
    """Merge the users of the most specific applied rules, keyed by user id.

    Insertion order follows rule order, then role/user order within a rule.
    """
    top_rank = most_specific_rank(results)
    if top_rank is None:
        return {}

    eligible: Dict[int, EligibleUser] = {}
    for result in results:
        if not result.applies or result.specificity != top_rank:
            continue

        rule = result.evaluation.rule
        for candidate in result.users:
            entry = eligible.get(candidate.user.id)
            if entry is None:
                eligible[candidate.user.id] = EligibleUser(
                    user=candidate.user,
                    role_id=candidate.role_id,
                    applied_rules=[rule]
                )
            elif all(existing.id != rule.id for existing in entry.applied_rules):
                entry.applied_rules.append(rule)

    return eligible
