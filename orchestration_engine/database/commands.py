# orchestration_engine/database/commands.py
"""Command builders and output parsing for database work."""

import re
from typing import List, Sequence

from orchestration_engine.core.environments import Environment
from orchestration_engine.core.errors import OrchestrationValidationError
from orchestration_engine.core.models import compact_timestamp


MIGRATION_OUTPUT_LIMIT = 500

APPLIED_MIGRATIONS_PATTERN = re.compile(r"Applied (\d+) migration", re.IGNORECASE)

BACKUP_MANIFEST_NAME = "backup-manifest.json"


# Fixed, ordered statement lists per cleanup type
CLEANUP_STATEMENTS = {
    "logs-only": [
        'DELETE FROM logs WHERE created_at < datetime("now", "-30 days");',
    ],
    "partial": [
        'DELETE FROM logs WHERE created_at < datetime("now", "-7 days");',
        'DELETE FROM sessions WHERE expires_at < datetime("now");',
        'UPDATE users SET last_cleanup = datetime("now") WHERE last_cleanup IS NULL;',
    ],
    "full": [
        "DELETE FROM logs;",
        "DELETE FROM sessions;",
        "DELETE FROM files;",
        "DELETE FROM user_profiles;",
        "DELETE FROM users;",
    ],
}


def cleanup_statements(cleanup_type: str) -> List[str]:
    statements = CLEANUP_STATEMENTS.get(cleanup_type)
    if statements is None:
        raise OrchestrationValidationError(
            f"Unknown cleanup type: {cleanup_type} (expected one of {', '.join(CLEANUP_STATEMENTS)})"
        )
    return list(statements)


def migrations_apply_command(
    cli: Sequence[str], resource: str, database_name: str, is_remote: bool
) -> List[str]:
    """`<cli> d1 migrations apply <db> --local|--remote`; always the database name."""
    return [*cli, resource, "migrations", "apply", database_name, "--remote" if is_remote else "--local"]


def export_command(
    cli: Sequence[str], resource: str, database_name: str, environment: Environment, output_file: str
) -> List[str]:
    return [
        *cli, resource, "export", database_name,
        "--env", environment.name,
        environment.remote_flag,
        "--output", output_file,
    ]


def execute_command(
    cli: Sequence[str], resource: str, database_name: str, environment: Environment, sql: str
) -> List[str]:
    return [
        *cli, resource, "execute", database_name,
        "--env", environment.name,
        environment.remote_flag,
        "--command", sql,
    ]


def parse_migration_output(output: str) -> int:
    """Number of applied migrations reported by the CLI; 0 when not reported."""
    match = APPLIED_MIGRATIONS_PATTERN.search(output or "")
    return int(match.group(1)) if match else 0


def truncate_output(output: str, limit: int = MIGRATION_OUTPUT_LIMIT) -> str:
    return (output or "")[:limit]


def backup_id(environment: str) -> str:
    return f"backup-{environment}-{compact_timestamp()}"


def cleanup_id(environment: str) -> str:
    return f"cleanup-{environment}-{compact_timestamp()}"


def migration_id() -> str:
    return f"migration-{compact_timestamp()}"


def backup_file_name(database_name: str, environment: str) -> str:
    return f"{database_name}-{environment}.sql"
