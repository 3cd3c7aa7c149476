"""
Unit tests for the PostgreSQL persistence layer.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from service_assignment.app.domain import Assignment, AssignmentStatus
from service_assignment.app.persistence.postgres import (
    PostgreSQLPersistence,
    build_repositories,
    row_to_configuration,
    row_to_rule,
)
from shared.errors import AssignmentServiceError


class FakeAcquire:
    """Async context manager returned by ``pool.acquire()``."""

    def __init__(self, conn):
        self.conn = conn

    async def __aenter__(self):
        return self.conn

    async def __aexit__(self, exc_type, exc, tb):
        return False


@pytest.fixture
def conn():
    return AsyncMock()


@pytest.fixture
def persistence(conn):
    persistence = PostgreSQLPersistence("postgres://user:pw@localhost/assignments")
    persistence.pool = MagicMock()
    persistence.pool.acquire.return_value = FakeAcquire(conn)
    persistence.pool.close = AsyncMock()
    return persistence


@pytest.fixture
def repositories(persistence):
    return build_repositories(persistence)


class TestPostgreSQLPersistence:
    """Test cases for pool lifecycle."""

    @pytest.mark.asyncio
    async def test_start(self):
        pool = MagicMock()
        with patch("asyncpg.create_pool", new=AsyncMock(return_value=pool)) as create_pool:
            persistence = PostgreSQLPersistence("postgres://localhost/db")
            await persistence.start()

        create_pool.assert_awaited_once_with("postgres://localhost/db", min_size=2, max_size=10, command_timeout=30)
        assert persistence.pool is pool

    @pytest.mark.asyncio
    async def test_start_failure(self):
        with patch("asyncpg.create_pool", new=AsyncMock(side_effect=OSError("refused"))):
            persistence = PostgreSQLPersistence("postgres://localhost/db")

            with pytest.raises(AssignmentServiceError) as exc_info:
                await persistence.start()

        assert exc_info.value.code == "POSTGRES_START_FAILED"

    @pytest.mark.asyncio
    async def test_health_check(self, persistence, conn):
        conn.fetchval.return_value = 1
        assert await persistence.health_check() is True

        conn.fetchval.side_effect = OSError("gone")
        assert await persistence.health_check() is False

    @pytest.mark.asyncio
    async def test_health_check_before_start(self):
        assert await PostgreSQLPersistence("postgres://localhost/db").health_check() is False

    @pytest.mark.asyncio
    async def test_stop(self, persistence):
        pool = persistence.pool
        await persistence.stop()

        pool.close.assert_awaited_once()
        assert persistence.pool is None

    @pytest.mark.asyncio
    async def test_repository_before_start(self):
        repositories = build_repositories(PostgreSQLPersistence("postgres://localhost/db"))

        with pytest.raises(AssignmentServiceError):
            await repositories["rules"].find_by_company(1)


class TestRepositories:
    """Test cases for the asyncpg-backed repositories."""

    @pytest.mark.asyncio
    async def test_create_assignment(self, repositories, conn):
        conn.fetchrow.return_value = {"id": 42}
        assignment = Assignment(company_id=1, user_id=5, status=AssignmentStatus.ASSIGNED, claim_id="C001")

        saved = await repositories["assignments"].create(assignment)

        assert saved.id == 42
        assert assignment.id is None
        args = conn.fetchrow.await_args.args
        assert "INSERT INTO assignments" in args[0]
        assert args[1:4] == (5, 1, "assigned")
        assert "C001" in args

    @pytest.mark.asyncio
    async def test_count_assignments(self, repositories, conn):
        conn.fetchval.return_value = 3

        count = await repositories["assignments"].count(user_id=5, status=AssignmentStatus.ASSIGNED)

        assert count == 3
        assert conn.fetchval.await_args.args[1:] == (5, "assigned")

    @pytest.mark.asyncio
    async def test_find_company(self, repositories, conn):
        conn.fetchrow.return_value = {"id": 1, "name": "Source", "document_number": "900000514", "is_active": True}

        company = await repositories["companies"].find_by_document_number("900000514")

        assert company.id == 1
        assert company.document_type is None

    @pytest.mark.asyncio
    async def test_find_company_missing(self, repositories, conn):
        conn.fetchrow.return_value = None
        assert await repositories["companies"].find_by_document_number("1") is None

    @pytest.mark.asyncio
    async def test_users_by_role(self, repositories, conn):
        conn.fetch.return_value = [
            {"id": 1, "name": "Ana", "dud": "D1", "company_id": 1, "is_active": True},
            {"id": 2, "name": "Luis", "dud": "D2", "company_id": 1, "is_active": False},
        ]

        users = await repositories["user_roles"].get_users_by_role(10)

        assert [u.id for u in users] == [1, 2]
        assert users[1].is_active is False

    @pytest.mark.asyncio
    async def test_rule_roles(self, repositories, conn):
        conn.fetch.return_value = [{"rule_id": 1, "role_id": 10}, {"rule_id": 1, "role_id": 11}]

        rule_roles = await repositories["rule_roles"].find_by_rule_id(1)

        assert [rr.role_id for rr in rule_roles] == [10, 11]

    @pytest.mark.asyncio
    async def test_database_errors_propagate(self, repositories, conn):
        conn.fetch.side_effect = ConnectionResetError("reset")

        with pytest.raises(ConnectionResetError):
            await repositories["rules"].find_by_company(1)


class TestRowMappers:
    """Test cases for row to entity conversion."""

    def test_rule_amounts_become_floats(self):
        created = datetime(2026, 1, 1, tzinfo=timezone.utc)
        rule = row_to_rule({
            "id": 1, "name": "R", "company_id": 1, "type": "CODE-AMOUNT", "description": "d",
            "is_active": True, "minimum_amount": Decimal("1000.50"), "maximum_amount": None,
            "nit_associated_company": None, "code": "OBJ", "created_at": created,
        })

        assert rule.minimum_amount == 1000.5
        assert isinstance(rule.minimum_amount, float)
        assert rule.created_at == created

    def test_configuration_json_columns(self):
        configuration = row_to_configuration({
            "id": 3, "company_id": 1,
            "token_endpoint": "https://o.test/token", "token_method": "post",
            "notification_endpoint": "https://o.test/notify", "notification_method": None,
            "auth_type": "bearer",
            "path_variable_mapping": json.dumps({"nit": "company.documentNumber"}),
            "body_variable_mapping": None,
            "custom_headers": {"X-Env": "qa"},
            "auth_additional_fields": "",
            "is_active": True,
        })

        assert configuration.auth_type == "BEARER"
        assert configuration.token_method == "POST"
        assert configuration.notification_method == "POST"
        assert configuration.path_variable_mapping == {"nit": "company.documentNumber"}
        assert configuration.custom_headers == {"X-Env": "qa"}
        assert configuration.auth_additional_fields is None
