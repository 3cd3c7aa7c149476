from .postgres import (
    PostgreSQLPersistence,
    PostgresAssignmentRepository,
    PostgresCompanyRepository,
    PostgresConfigurationRepository,
    PostgresRuleRepository,
    PostgresRuleRoleRepository,
    PostgresUserRoleRepository,
    build_repositories,
)
from .repositories import (
    AssignmentRepository,
    CompanyRepository,
    ConfigurationRepository,
    RuleRepository,
    RuleRoleRepository,
    UserRoleRepository,
)

__all__ = [
    "AssignmentRepository",
    "CompanyRepository",
    "ConfigurationRepository",
    "PostgreSQLPersistence",
    "PostgresAssignmentRepository",
    "PostgresCompanyRepository",
    "PostgresConfigurationRepository",
    "PostgresRuleRepository",
    "PostgresRuleRoleRepository",
    "PostgresUserRoleRepository",
    "RuleRepository",
    "RuleRoleRepository",
    "UserRoleRepository",
    "build_repositories",
]
