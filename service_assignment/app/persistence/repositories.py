"""
Repository interfaces consumed by the dispatcher.

The concrete storage is owned by the CRUD side of the platform; this service
only reads rules, roles, users, companies and configurations, and writes
assignments.
"""

from typing import List, Optional, Protocol

from ..domain.assignment import Assignment, AssignmentStatus
from ..domain.entities import Company, Configuration, RuleRole, User
from ..domain.rules import Rule


class AssignmentRepository(Protocol):
    async def create(self, assignment: Assignment) -> Assignment:
        """Persist a new assignment and return it with its generated id."""
        ...

    async def count(self, *, user_id: int, status: AssignmentStatus) -> int:
        """Count assignments of a user in a given status."""
        ...


class CompanyRepository(Protocol):
    async def find_by_document_number(self, document_number: str) -> Optional[Company]:
        ...

    async def find_all(self) -> List[Company]:
        ...


class RuleRepository(Protocol):
    async def find_by_company(self, company_id: int) -> List[Rule]:
        ...

    async def find_by_id(self, rule_id: int) -> Optional[Rule]:
        ...


class RuleRoleRepository(Protocol):
    async def find_by_rule_id(self, rule_id: int) -> List[RuleRole]:
        ...


class UserRoleRepository(Protocol):
    async def get_users_by_role(self, role_id: int) -> List[User]:
        ...


class ConfigurationRepository(Protocol):
    async def find_by_company_id(self, company_id: int) -> Optional[Configuration]:
        ...
