"""
In-memory collaborators shared by the assignment service tests.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

import pytest

from service_assignment.app.domain import (
    Assignment,
    AssignmentStatus,
    Company,
    Configuration,
    Rule,
    RuleRole,
    User,
)


@dataclass
class FakeStore:
    """Rows backing the fake repositories."""
    companies: List[Company] = field(default_factory=list)
    rules: List[Rule] = field(default_factory=list)
    rule_roles: Dict[int, List[int]] = field(default_factory=dict)
    users_by_role: Dict[int, List[User]] = field(default_factory=dict)
    assignments: List[Assignment] = field(default_factory=list)
    configurations: Dict[int, Configuration] = field(default_factory=dict)


class FakeAssignmentRepository:
    def __init__(self, store: FakeStore):
        self.store = store

    async def create(self, assignment: Assignment) -> Assignment:
        saved = replace(assignment, id=len(self.store.assignments) + 1)
        self.store.assignments.append(saved)
        return saved

    async def count(self, *, user_id: int, status: AssignmentStatus) -> int:
        return sum(1 for a in self.store.assignments if a.user_id == user_id and a.status == status)


class FakeCompanyRepository:
    def __init__(self, store: FakeStore):
        self.store = store

    async def find_by_document_number(self, document_number: str) -> Optional[Company]:
        return next((c for c in self.store.companies if c.document_number == document_number), None)

    async def find_all(self) -> List[Company]:
        return list(self.store.companies)


class FakeRuleRepository:
    def __init__(self, store: FakeStore):
        self.store = store

    async def find_by_company(self, company_id: int) -> List[Rule]:
        return [r for r in self.store.rules if r.company_id == company_id]

    async def find_by_id(self, rule_id: int) -> Optional[Rule]:
        return next((r for r in self.store.rules if r.id == rule_id), None)


class FakeRuleRoleRepository:
    def __init__(self, store: FakeStore):
        self.store = store

    async def find_by_rule_id(self, rule_id: int) -> List[RuleRole]:
        return [RuleRole(rule_id=rule_id, role_id=role_id) for role_id in self.store.rule_roles.get(rule_id, [])]


class FakeUserRoleRepository:
    def __init__(self, store: FakeStore):
        self.store = store

    async def get_users_by_role(self, role_id: int) -> List[User]:
        return list(self.store.users_by_role.get(role_id, []))


class FakeConfigurationRepository:
    def __init__(self, store: FakeStore):
        self.store = store

    async def find_by_company_id(self, company_id: int) -> Optional[Configuration]:
        return self.store.configurations.get(company_id)


@pytest.fixture
def store():
    """Empty fake store."""
    return FakeStore()


@pytest.fixture
def repositories(store):
    """Fake repositories keyed the same way as ``build_repositories``."""
    return {
        "assignments": FakeAssignmentRepository(store),
        "companies": FakeCompanyRepository(store),
        "rules": FakeRuleRepository(store),
        "rule_roles": FakeRuleRoleRepository(store),
        "user_roles": FakeUserRoleRepository(store),
        "configurations": FakeConfigurationRepository(store),
    }


@pytest.fixture
def source_company():
    """Company owning the routing rules."""
    return Company(id=1, name="Source Health", document_number="900000514")


@pytest.fixture
def claim_message():
    """Valid claim payload as it arrives on the queue."""
    return {
        "ProcessId": "PROC-1",
        "Target": "800000513",
        "Source": "900000514",
        "DocumentNumber": "FE-1001",
        "InvoiceAmount": "3000000",
        "ClaimId": "C001",
        "Value": "100000",
        "ObjectionCode": "OBJ-001",
    }
