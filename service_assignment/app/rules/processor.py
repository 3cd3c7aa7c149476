"""
Business rule processor.

Loads the source company's active rules, evaluates each against the claim,
resolves users through rule -> role -> user lookups and keeps only the most
specific tier. Read-only: nothing here writes to a repository.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from shared.errors import NotFoundError
from shared.logging import get_logger

from ..domain.claim import Claim, normalize_document
from ..domain.entities import Company
from ..persistence.repositories import (
    CompanyRepository,
    RuleRepository,
    RuleRoleRepository,
    UserRoleRepository,
)
from .evaluator import RuleEvaluation, evaluate
from .specificity import AppliedRuleResult, CandidateUser, EligibleUser, most_specific_rank, resolve


class ProcessingOutcome(str, Enum):
    """Audit tag of a processed claim."""
    COMPANY_NOT_FOUND = "company_not_found"
    NO_ACTIVE_RULES = "no_active_rules"
    NO_RULES_APPLIED = "no_rules_applied"
    NO_ELIGIBLE_USERS = "no_eligible_users"
    USERS_FOUND = "users_found"


@dataclass
class ClaimProcessingResult:
    """Decision record for one claim."""
    success: bool
    message: str
    outcome: ProcessingOutcome
    claim: Claim
    company: Optional[Company] = None
    users: List[EligibleUser] = field(default_factory=list)
    evaluations: List[RuleEvaluation] = field(default_factory=list)
    specificity_rank: Optional[int] = None

    @property
    def applied_rules(self) -> List[RuleEvaluation]:
        return [evaluation for evaluation in self.evaluations if evaluation.applies]

    @property
    def total_rules_evaluated(self) -> int:
        return len(self.evaluations)

    @property
    def total_rules_applied(self) -> int:
        return len(self.applied_rules)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "outcome": self.outcome.value,
            "claim": self.claim.basic_info(),
            "company": self.company.summary() if self.company else None,
            "users": [user.to_dict() for user in self.users],
            "evaluated_rules": [evaluation.to_dict() for evaluation in self.evaluations],
            "specificity_rank": self.specificity_rank,
            "total_rules_evaluated": self.total_rules_evaluated,
            "total_rules_applied": self.total_rules_applied,
        }


class BusinessRuleProcessor:
    """Decides which reviewers are eligible for a claim."""

    def __init__(self,
                 company_repository: CompanyRepository,
                 rule_repository: RuleRepository,
                 rule_role_repository: RuleRoleRepository,
                 user_role_repository: UserRoleRepository):
        self.company_repository = company_repository
        self.rule_repository = rule_repository
        self.rule_role_repository = rule_role_repository
        self.user_role_repository = user_role_repository
        self.logger = get_logger("assignment.rule_processor")

    async def process_claim(self, claim_or_data: Union[Claim, Mapping[str, Any]]) -> ClaimProcessingResult:
        """Process a claim and return the eligible users with the full audit trail.

        Raises ``ValidationError`` for malformed claim data. Repository errors
        propagate unchanged.
        """
        claim = claim_or_data if isinstance(claim_or_data, Claim) else Claim.from_message(claim_or_data)

        company = await self.find_company_by_document_number(claim.source)
        if company is None:
            return ClaimProcessingResult(
                success=False,
                message=f"No company with rules found for source document {claim.source}",
                outcome=ProcessingOutcome.COMPANY_NOT_FOUND,
                claim=claim
            )

        rules = await self.rule_repository.find_by_company(company.id)
        active_rules = [rule for rule in rules if rule.is_active]

        if not active_rules:
            self.logger.info(
                "No active rules for source company",
                company_id=company.id,
                total_rules=len(rules)
            )
            return ClaimProcessingResult(
                success=True,
                message="No active rules found for the source company",
                outcome=ProcessingOutcome.NO_ACTIVE_RULES,
                claim=claim,
                company=company
            )

        evaluations: List[RuleEvaluation] = []
        results: List[AppliedRuleResult] = []

        for rule in active_rules:
            evaluation = evaluate(rule, claim)
            evaluations.append(evaluation)

            if evaluation.applies:
                users = await self.get_users_for_rule(rule.id)
                results.append(AppliedRuleResult(evaluation=evaluation, users=tuple(users)))

        rank = most_specific_rank(results)
        users = list(resolve(results).values())

        if not results:
            outcome = ProcessingOutcome.NO_RULES_APPLIED
            message = "No rule applies to the claim"
        elif not users:
            outcome = ProcessingOutcome.NO_ELIGIBLE_USERS
            message = "No active users are linked to the most specific applicable rules"
        else:
            outcome = ProcessingOutcome.USERS_FOUND
            message = f"Found {len(users)} user(s) to notify"

        self.logger.debug(
            "Claim processing result",
            source_company=company.document_number,
            target=claim.target,
            objection_code=claim.objection_code,
            rules_evaluated=len(evaluations),
            rules_applied=len(results),
            specificity_rank=rank,
            applied_rules=[
                {"name": r.evaluation.rule.name, "type": r.evaluation.rule.type, "reason": r.evaluation.reason}
                for r in results
            ],
            users=[{"id": u.id, "dud": u.user.dud} for u in users]
        )

        return ClaimProcessingResult(
            success=True,
            message=message,
            outcome=outcome,
            claim=claim,
            company=company,
            users=users,
            evaluations=evaluations,
            specificity_rank=rank
        )

    async def get_users_for_rule(self, rule_id: int) -> List[CandidateUser]:
        """Active users reachable from a rule, deduplicated by user id."""
        rule_roles = await self.rule_role_repository.find_by_rule_id(rule_id)
        if not rule_roles:
            return []

        seen: Dict[int, CandidateUser] = {}
        for rule_role in rule_roles:
            users = await self.user_role_repository.get_users_by_role(rule_role.role_id)
            for user in users:
                if user.id in seen or not user.is_active:
                    continue
                seen[user.id] = CandidateUser(user=user, role_id=rule_role.role_id)

        return list(seen.values())

    async def find_company_by_document_number(self, document_number: str) -> Optional[Company]:
        """Exact document lookup, then a scan comparing documents without dashes or spaces."""
        company = await self.company_repository.find_by_document_number(document_number)
        if company is not None:
            return company

        normalized = normalize_document(document_number)
        for candidate in await self.company_repository.find_all():
            if candidate.document_number and normalize_document(candidate.document_number) == normalized:
                return candidate

        return None

    async def get_company_rule_stats(self, company_id: int) -> Dict[str, Any]:
        """Rule counts for a company, overall and per type."""
        rules = await self.rule_repository.find_by_company(company_id) or []

        stats: Dict[str, Any] = {
            "total": len(rules),
            "active": sum(1 for rule in rules if rule.is_active),
            "inactive": sum(1 for rule in rules if not rule.is_active),
            "by_type": {},
        }

        for rule in rules:
            bucket = stats["by_type"].setdefault(rule.type, {"total": 0, "active": 0, "inactive": 0})
            bucket["total"] += 1
            bucket["active" if rule.is_active else "inactive"] += 1

        return stats

    async def test_rule_against_claim(self, rule_id: int, claim_data: Mapping[str, Any]) -> Dict[str, Any]:
        """Dry-run a single rule against claim data."""
        rule = await self.rule_repository.find_by_id(rule_id)
        if rule is None:
            raise NotFoundError(f"Rule with ID {rule_id} not found", {"rule_id": rule_id})

        claim = Claim.from_message(claim_data)
        evaluation = evaluate(rule, claim)
        users = await self.get_users_for_rule(rule.id) if evaluation.applies else []

        return {
            "rule": rule.summary(),
            "claim": claim.basic_info(),
            "applies": evaluation.applies,
            "reason": evaluation.reason,
            "affected_users": len(users),
            "users": [{"id": c.user.id, "name": c.user.name, "dud": c.user.dud} for c in users],
        }
