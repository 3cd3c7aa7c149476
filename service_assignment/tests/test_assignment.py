"""
Unit tests for the least-load selector, the assignment writer and the
Assignment entity.
"""

from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock

from service_assignment.app.assignment import AssignmentWriter, LeastLoadSelector, determine_assignment_type
from service_assignment.app.domain import Assignment, AssignmentStatus, Claim, Company, User
from service_assignment.app.rules.processor import ClaimProcessingResult, ProcessingOutcome
from service_assignment.app.rules.specificity import EligibleUser
from shared.errors import ValidationError


def eligible(user_id: int) -> EligibleUser:
    return EligibleUser(user=User(id=user_id, name=f"User {user_id}", dud=f"DUD{user_id}"))


def make_claim(**overrides) -> Claim:
    data = {
        "process_id": "PROC-1",
        "target": "800000513",
        "source": "900000514",
        "invoice_amount": 3_000_000.0,
        "claim_id": "C001",
        "value": 100_000.0,
        "document_number": "FE-1001",
        "objection_code": "OBJ-001",
    }
    data.update(overrides)
    return Claim(**data)


class TestLeastLoadSelector:
    """Test cases for LeastLoadSelector."""

    @pytest.fixture
    def selector(self, repositories):
        return LeastLoadSelector(repositories["assignments"])

    def _assigned(self, user_id: int) -> Assignment:
        return Assignment(company_id=1, user_id=user_id, status=AssignmentStatus.ASSIGNED)

    @pytest.mark.asyncio
    async def test_empty_candidates(self, selector):
        assert await selector.select_user([]) is None

    @pytest.mark.asyncio
    async def test_picks_least_loaded(self, selector, store):
        store.assignments.extend([self._assigned(1), self._assigned(1)])

        selected = await selector.select_user([eligible(1), eligible(2)])

        assert selected.id == 2

    @pytest.mark.asyncio
    async def test_first_candidate_wins_ties(self, selector, store):
        store.assignments.extend([self._assigned(1), self._assigned(2)])

        selected = await selector.select_user([eligible(2), eligible(1)])

        assert selected.id == 2

    @pytest.mark.asyncio
    async def test_only_assigned_status_counts(self, selector, store):
        store.assignments.extend([
            Assignment(company_id=1, user_id=1, status=AssignmentStatus.COMPLETED),
            Assignment(company_id=1, user_id=1, status=AssignmentStatus.PENDING),
            self._assigned(2),
        ])

        selected = await selector.select_user([eligible(2), eligible(1)])

        assert selected.id == 1

    @pytest.mark.asyncio
    async def test_counts_with_assigned_filter(self):
        repository = AsyncMock()
        repository.count.return_value = 0

        await LeastLoadSelector(repository).select_user([eligible(4)])

        repository.count.assert_awaited_once_with(user_id=4, status=AssignmentStatus.ASSIGNED)


class TestAssignmentWriter:
    """Test cases for AssignmentWriter."""

    @pytest.fixture
    def writer(self, repositories):
        return AssignmentWriter(repositories["assignments"])

    @pytest.mark.asyncio
    async def test_assigned_assignment(self, writer, store):
        saved = await writer.write(eligible(7), 1, make_claim())

        assert saved.id == 1
        assert saved.status == AssignmentStatus.ASSIGNED
        assert saved.user_id == 7
        assert saved.company_id == 1
        assert saved.claim_id == "C001"
        assert saved.document_number == "FE-1001"
        assert saved.type == "OBJECTION_OBJ-001"
        assert store.assignments == [saved]

    @pytest.mark.asyncio
    async def test_pending_assignment_keeps_claim_fields(self, writer):
        saved = await writer.write(None, 1, make_claim(external_reference="EXT-9"))

        assert saved.status == AssignmentStatus.PENDING
        assert saved.user_id is None
        assert saved.external_reference == "EXT-9"
        assert saved.invoice_amount == 3_000_000.0
        assert saved.process_id == "PROC-1"

    def test_company_is_the_source_company(self, writer):
        claim = make_claim()
        result = ClaimProcessingResult(
            success=True,
            message="ok",
            outcome=ProcessingOutcome.USERS_FOUND,
            claim=claim,
            company=Company(id=1, name="Source", document_number="900000514"),
        )

        assignment = writer.build(eligible(7), 1, claim, result)
        assert assignment.company_id == 1

        with pytest.raises(ValidationError):
            writer.build(eligible(7), 2, claim, result)

    @pytest.mark.parametrize("overrides,expected", [
        ({"concept_application_code": "GL01"}, "CLAIM_GL01"),
        ({"concept_application_code": "GL01", "objection_code": "OBJ"}, "CLAIM_GL01"),
        ({"objection_code": "OBJ-7"}, "OBJECTION_OBJ-7"),
        ({"objection_code": None}, "CLAIM_PROCESSING"),
    ])
    def test_assignment_type(self, overrides, expected):
        assert determine_assignment_type(make_claim(**overrides)) == expected


class TestAssignmentEntity:
    """Test cases for the Assignment domain entity."""

    def test_status_string_is_coerced(self):
        assert Assignment(company_id=1, status="assigned").status is AssignmentStatus.ASSIGNED

    def test_invalid_status(self):
        with pytest.raises(ValidationError):
            Assignment(company_id=1, status="closed")

    @pytest.mark.parametrize("company_id", [None, 0, -1, "1"])
    def test_invalid_company(self, company_id):
        with pytest.raises(ValidationError):
            Assignment(company_id=company_id)

    def test_end_date_must_follow_start_date(self):
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        with pytest.raises(ValidationError):
            Assignment(company_id=1, start_date=start, end_date=start)

    def test_lifecycle(self):
        assignment = Assignment(company_id=1)
        assert assignment.is_pending

        assignment.assign(3)
        assert assignment.user_id == 3
        assert assignment.status == AssignmentStatus.ACTIVE

        assignment.complete()
        assert assignment.is_completed

        assignment.cancel()
        assert assignment.status == AssignmentStatus.CANCELLED

    def test_dates(self):
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assignment = Assignment(company_id=1, start_date=start, end_date=start + timedelta(days=3))

        assert assignment.duration_days() == 3
        assert assignment.time_remaining_days(now=start + timedelta(days=1)) == 2
        assert assignment.is_overdue(now=start + timedelta(days=4)) is True

        other = Assignment(company_id=1, start_date=start + timedelta(days=2), end_date=start + timedelta(days=5))
        assert assignment.overlaps(other) is True

    def test_update_dates_validates(self):
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assignment = Assignment(company_id=1, start_date=start)

        with pytest.raises(ValidationError):
            assignment.update_dates(start, start - timedelta(days=1))
