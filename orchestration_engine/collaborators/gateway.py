# orchestration_engine/collaborators/gateway.py
"""Database provisioning gateway backed by the platform CLI."""

import json
import logging
import re
from typing import List, Protocol

from orchestration_engine.core.errors import TransientExecutionError
from orchestration_engine.executor.retry import CommandExecutor

logger = logging.getLogger(__name__)


DATABASE_ID_PATTERN = re.compile(
    r"database_id\s*=\s*\"?([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})\"?",
    re.IGNORECASE,
)


class DatabaseGateway(Protocol):
    """Contract for database discovery and provisioning."""

    async def database_exists(self, name: str) -> bool:
        ...

    async def create_database(self, name: str) -> str:
        ...


class CliDatabaseGateway:
    """Talks to the platform through `<cli> d1 list/create`."""

    def __init__(
        self,
        executor: CommandExecutor,
        *,
        cli: List[str],
        resource: str = "d1",
        timeout: float = 60.0,
    ):
        self._executor = executor
        self._cli = list(cli)
        self._resource = resource
        self._timeout = timeout

    async def list_databases(self) -> List[dict]:
        stdout = await self._executor.execute(
            [*self._cli, self._resource, "list", "--json"],
            timeout=self._timeout,
        )
        try:
            data = json.loads(stdout or "[]")
        except json.JSONDecodeError as e:
            raise TransientExecutionError(f"Unparseable database list: {e}")
        return data if isinstance(data, list) else []

    async def database_exists(self, name: str) -> bool:
        return any(db.get("name") == name for db in await self.list_databases())

    async def create_database(self, name: str) -> str:
        logger.info(f"[gateway] creating database {name}")
        stdout = await self._executor.execute(
            [*self._cli, self._resource, "create", name],
            timeout=self._timeout,
        )
        match = DATABASE_ID_PATTERN.search(stdout)
        if not match:
            raise TransientExecutionError(f"Database {name} created but no id found in output")
        return match.group(1)
