"""
Least-load reviewer selection.
"""

from typing import Optional, Sequence

from shared.logging import get_logger

from ..domain.assignment import AssignmentStatus
from ..persistence.repositories import AssignmentRepository
from ..rules.specificity import EligibleUser


class LeastLoadSelector:
    """Picks the candidate with the fewest open ("assigned") assignments.

    Counting and the later insert are not atomic; correctness relies on the
    consumer processing one message at a time.
    """

    def __init__(self, assignment_repository: AssignmentRepository):
        self.assignment_repository = assignment_repository
        self.logger = get_logger("assignment.selector")

    async def select_user(self, candidates: Sequence[EligibleUser]) -> Optional[EligibleUser]:
        """Return the least-loaded candidate; ties go to the earliest candidate."""
        selected: Optional[EligibleUser] = None
        lowest: Optional[int] = None
        loads = {}

        for candidate in candidates:
            open_count = await self.assignment_repository.count(
                user_id=candidate.id,
                status=AssignmentStatus.ASSIGNED
            )
            loads[candidate.id] = open_count

            if lowest is None or open_count < lowest:
                lowest = open_count
                selected = candidate

        if selected is not None:
            self.logger.debug(
                "Selected least loaded user",
                user_id=selected.id,
                open_assignments=lowest,
                loads=loads
            )

        return selected
