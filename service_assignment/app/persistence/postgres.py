"""
PostgreSQL persistence layer for the Claim Assignment Service.

The schema belongs to the configuration/CRUD side of the platform. This
module only reads rules, roles, users, companies and configurations, and
inserts assignments. Database errors are not caught here.
"""

import json
from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, List, Optional

import asyncpg

from shared.errors import AssignmentServiceError
from shared.logging import get_logger

from ..domain.assignment import Assignment, AssignmentStatus
from ..domain.entities import Company, Configuration, RuleRole, User
from ..domain.rules import Rule


class PostgreSQLPersistence:
    """Owns the asyncpg connection pool."""

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10, command_timeout: float = 30):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = get_logger("assignment.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout
            )
            self.logger.info("PostgreSQL persistence started")

        except Exception as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise AssignmentServiceError("POSTGRES_START_FAILED", str(e)) from e

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    async def health_check(self) -> bool:
        """Check database health."""
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception as e:
            self.logger.warning("PostgreSQL health check failed", error=str(e))
            return False


class _PoolRepository:
    def __init__(self, persistence: PostgreSQLPersistence):
        self.persistence = persistence

    @property
    def pool(self) -> asyncpg.Pool:
        if self.persistence.pool is None:
            raise AssignmentServiceError("POSTGRES_NOT_STARTED", "PostgreSQL persistence is not started")
        return self.persistence.pool


class PostgresAssignmentRepository(_PoolRepository):
    async def create(self, assignment: Assignment) -> Assignment:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                INSERT INTO assignments (
                    user_id, company_id, status, type, start_date, end_date,
                    assigned_at, created_at, updated_at,
                    "ProcessId", "Source", "DocumentNumber", "InvoiceAmount",
                    "ExternalReference", "ClaimId", "ConceptApplicationCode",
                    "ObjectionCode", "Value"
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17, $18)
                RETURNING id
            """,
                assignment.user_id, assignment.company_id, assignment.status.value, assignment.type,
                assignment.start_date, assignment.end_date, assignment.assigned_at,
                assignment.created_at, assignment.updated_at,
                assignment.process_id, assignment.source, assignment.document_number,
                assignment.invoice_amount, assignment.external_reference, assignment.claim_id,
                assignment.concept_application_code, assignment.objection_code, assignment.value
            )

        return replace(assignment, id=row["id"])

    async def count(self, *, user_id: int, status: AssignmentStatus) -> int:
        async with self.pool.acquire() as conn:
            count = await conn.fetchval(
                "SELECT COUNT(*) FROM assignments WHERE user_id = $1 AND status = $2",
                user_id, AssignmentStatus(status).value
            )
        return count or 0


class PostgresCompanyRepository(_PoolRepository):
    async def find_by_document_number(self, document_number: str) -> Optional[Company]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM companies WHERE document_number = $1 LIMIT 1",
                document_number
            )
        return row_to_company(row) if row else None

    async def find_all(self) -> List[Company]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("SELECT * FROM companies ORDER BY id ASC")
        return [row_to_company(row) for row in rows]


class PostgresRuleRepository(_PoolRepository):
    async def find_by_company(self, company_id: int) -> List[Rule]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT * FROM rules WHERE company_id = $1 ORDER BY id ASC",
                company_id
            )
        return [row_to_rule(row) for row in rows]

    async def find_by_id(self, rule_id: int) -> Optional[Rule]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM rules WHERE id = $1", rule_id)
        return row_to_rule(row) if row else None


class PostgresRuleRoleRepository(_PoolRepository):
    async def find_by_rule_id(self, rule_id: int) -> List[RuleRole]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT rule_id, role_id FROM rule_roles WHERE rule_id = $1 ORDER BY role_id ASC",
                rule_id
            )
        return [RuleRole(rule_id=row["rule_id"], role_id=row["role_id"]) for row in rows]


class PostgresUserRoleRepository(_PoolRepository):
    async def get_users_by_role(self, role_id: int) -> List[User]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT u.* FROM users u
                JOIN user_roles ur ON ur.user_id = u.id
                WHERE ur.role_id = $1
                ORDER BY u.id ASC
            """, role_id)
        return [row_to_user(row) for row in rows]


class PostgresConfigurationRepository(_PoolRepository):
    async def find_by_company_id(self, company_id: int) -> Optional[Configuration]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM configurations WHERE company_id = $1 ORDER BY id DESC LIMIT 1",
                company_id
            )
        return row_to_configuration(row) if row else None


def _number(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return float(value)
    return value


def _json(value: Any) -> Any:
    """JSON/JSONB columns come back as text unless a codec is registered."""
    if isinstance(value, str):
        return json.loads(value) if value else None
    return value


def row_to_company(row) -> Company:
    return Company(
        id=row["id"],
        name=row["name"],
        document_number=row["document_number"],
        document_type=row.get("document_type"),
        type=row.get("type"),
        description=row.get("description"),
        is_active=row.get("is_active", True),
    )


def row_to_rule(row) -> Rule:
    rule = Rule(
        id=row["id"],
        name=row["name"],
        company_id=row["company_id"],
        type=row["type"],
        description=row.get("description"),
        is_active=row.get("is_active", True),
        minimum_amount=_number(row.get("minimum_amount")),
        maximum_amount=_number(row.get("maximum_amount")),
        nit_associated_company=row.get("nit_associated_company"),
        code=row.get("code"),
    )
    if row.get("created_at") is not None:
        rule.created_at = row["created_at"]
    return rule


def row_to_user(row) -> User:
    return User(
        id=row["id"],
        name=row["name"],
        dud=row["dud"],
        company_id=row.get("company_id"),
        is_active=row.get("is_active", True),
    )


def row_to_configuration(row) -> Configuration:
    return Configuration(
        id=row["id"],
        company_id=row["company_id"],
        token_endpoint=row["token_endpoint"],
        token_method=row.get("token_method"),
        list_query_endpoint=row.get("list_query_endpoint"),
        list_query_method=row.get("list_query_method") or "GET",
        notification_endpoint=row["notification_endpoint"],
        notification_method=row.get("notification_method"),
        auth_type=row["auth_type"],
        auth_username=row.get("auth_username"),
        auth_password=row.get("auth_password"),
        auth_api_key=row.get("auth_api_key"),
        auth_additional_fields=_json(row.get("auth_additional_fields")),
        path_variable_mapping=_json(row.get("path_variable_mapping")),
        body_variable_mapping=_json(row.get("body_variable_mapping")),
        custom_headers=_json(row.get("custom_headers")) or {},
        is_active=row.get("is_active", True),
        description=row.get("description"),
    )


def build_repositories(persistence: PostgreSQLPersistence) -> Dict[str, Any]:
    """All repositories sharing one pool, keyed by collaborator name."""
    return {
        "assignments": PostgresAssignmentRepository(persistence),
        "companies": PostgresCompanyRepository(persistence),
        "rules": PostgresRuleRepository(persistence),
        "rule_roles": PostgresRuleRoleRepository(persistence),
        "user_roles": PostgresUserRoleRepository(persistence),
        "configurations": PostgresConfigurationRepository(persistence),
    }
