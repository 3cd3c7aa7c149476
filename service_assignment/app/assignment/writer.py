"""
Assignment persistence for processed claims.
"""

from datetime import datetime, timezone
from typing import Optional

from shared.errors import ValidationError
from shared.logging import get_logger

from ..domain.assignment import Assignment, AssignmentStatus
from ..domain.claim import Claim
from ..persistence.repositories import AssignmentRepository
from ..rules.processor import ClaimProcessingResult
from ..rules.specificity import EligibleUser


def determine_assignment_type(claim: Claim) -> str:
    """Tag an assignment by concept code, then objection code."""
    if claim.concept_application_code:
        return f"CLAIM_{claim.concept_application_code}"
    if claim.objection_code:
        return f"OBJECTION_{claim.objection_code}"
    return "CLAIM_PROCESSING"


class AssignmentWriter:
    """Builds and stores the assignment for one claim."""

    def __init__(self, assignment_repository: AssignmentRepository):
        self.assignment_repository = assignment_repository
        self.logger = get_logger("assignment.writer")

    def build(self,
              selected_user: Optional[EligibleUser],
              company_id: int,
              claim: Claim,
              result: Optional[ClaimProcessingResult] = None) -> Assignment:
        """Assigned to ``selected_user``, or pending with no user when it is None."""
        if result is not None and result.company is not None and result.company.id != company_id:
            raise ValidationError(
                "Assignment company must be the source company that owns the rules",
                {"company_id": company_id, "source_company_id": result.company.id}
            )

        now = datetime.now(timezone.utc)
        status = AssignmentStatus.ASSIGNED if selected_user is not None else AssignmentStatus.PENDING

        return Assignment(
            user_id=selected_user.id if selected_user is not None else None,
            company_id=company_id,
            status=status,
            type=determine_assignment_type(claim),
            start_date=now,
            assigned_at=now,
            created_at=now,
            updated_at=now,
            process_id=claim.process_id,
            source=claim.source,
            document_number=claim.document_number,
            invoice_amount=claim.invoice_amount,
            external_reference=claim.external_reference,
            claim_id=claim.claim_id,
            concept_application_code=claim.concept_application_code,
            objection_code=claim.objection_code,
            value=claim.value,
        )

    async def write(self,
                    selected_user: Optional[EligibleUser],
                    company_id: int,
                    claim: Claim,
                    result: Optional[ClaimProcessingResult] = None) -> Assignment:
        """Persist the assignment and return the saved entity."""
        assignment = self.build(selected_user, company_id, claim, result)
        saved = await self.assignment_repository.create(assignment)

        self.logger.info(
            "Assignment created",
            assignment_id=saved.id,
            status=saved.status.value,
            user_id=saved.user_id,
            company_id=saved.company_id,
            assignment_type=saved.type
        )
        return saved
