"""
Rule evaluation against a single claim.

Evaluation is pure: no I/O and no logging, so the same (rule, claim) pair
always yields the same result.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from ..domain.claim import Claim
from ..domain.rules import Rule, RuleCriterion, RuleType

# Order in which criteria are checked and reported
_CRITERIA_ORDER = (RuleCriterion.CODE, RuleCriterion.AMOUNT, RuleCriterion.COMPANY)


@dataclass(frozen=True)
class RuleEvaluation:
    """Outcome of one rule against one claim."""
    rule: Rule
    applies: bool
    reason: str
    matched: Tuple[RuleCriterion, ...] = field(default_factory=tuple)
    failed: Tuple[RuleCriterion, ...] = field(default_factory=tuple)

    @property
    def rule_type(self) -> RuleType:
        return self.rule.rule_type

    @property
    def specificity(self) -> int:
        return self.rule.rule_type.specificity

    def to_dict(self) -> Dict[str, object]:
        return {
            **self.rule.summary(),
            "applies": self.applies,
            "reason": self.reason,
            "specificity": self.specificity,
        }


def _format_amount(amount: Optional[float]) -> str:
    if amount is None:
        return "-"
    if isinstance(amount, float) and amount.is_integer():
        return str(int(amount))
    return str(amount)


def _range(rule: Rule) -> str:
    return f"[{_format_amount(rule.minimum_amount)}, {_format_amount(rule.maximum_amount)}]"


def _check_code(rule: Rule, claim: Claim) -> Tuple[bool, str]:
    if claim.matches_objection_code(rule.code):
        return True, f"objection code '{claim.objection_code}' matches configured code '{rule.code}'"
    return False, f"objection code '{claim.objection_code}' does not match configured code '{rule.code}'"


def _check_amount(rule: Rule, claim: Claim) -> Tuple[bool, str]:
    amount = _format_amount(claim.invoice_amount)
    if claim.is_amount_in_range(rule.minimum_amount, rule.maximum_amount):
        return True, f"amount {amount} is within range {_range(rule)}"
    return False, f"amount {amount} is outside range {_range(rule)}"


def _check_company(rule: Rule, claim: Claim) -> Tuple[bool, str]:
    if claim.matches_target_company(rule.nit_associated_company):
        return True, f"target company {claim.target} matches NIT {rule.nit_associated_company}"
    return False, f"target company {claim.target} does not match NIT {rule.nit_associated_company}"


_CHECKS: Dict[RuleCriterion, Callable[[Rule, Claim], Tuple[bool, str]]] = {
    RuleCriterion.CODE: _check_code,
    RuleCriterion.AMOUNT: _check_amount,
    RuleCriterion.COMPANY: _check_company,
}


def evaluate(rule: Rule, claim: Claim) -> RuleEvaluation:
    """Evaluate ``rule`` against ``claim``.

    A rule applies when every criterion of its type matches. CUSTOM and
    unrecognized types carry no criteria and always apply.
    """
    criteria = rule.rule_type.criteria
    if not criteria:
        return RuleEvaluation(
            rule=rule,
            applies=True,
            reason=f"Rule type {rule.type} applies to every claim"
        )

    matched: List[RuleCriterion] = []
    failed: List[RuleCriterion] = []
    matched_reasons: List[str] = []
    failed_reasons: List[str] = []

    for criterion in _CRITERIA_ORDER:
        if criterion not in criteria:
            continue
        ok, reason = _CHECKS[criterion](rule, claim)
        if ok:
            matched.append(criterion)
            matched_reasons.append(reason)
        else:
            failed.append(criterion)
            failed_reasons.append(reason)

    applies = not failed
    reason = " and ".join(matched_reasons) if applies else "; ".join(failed_reasons)

    return RuleEvaluation(
        rule=rule,
        applies=applies,
        reason=reason[:1].upper() + reason[1:],
        matched=tuple(matched),
        failed=tuple(failed)
    )
