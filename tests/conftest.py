#tests\conftest.py

"""Pytest configuration and fixtures."""

from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from orchestration_engine.core.config import OrchestratorSettings
from orchestration_engine.executor.command_runner import CommandResult
from orchestration_engine.orchestrator.context import OrchestrationContext


ACCOUNT_ID = "0123456789abcdef0123456789abcdef"
ZONE_ID = "fedcba9876543210fedcba9876543210"


def domain_config(name: str, db_prefix: Optional[str] = None) -> Dict[str, Any]:
    prefix = db_prefix or name.split(".")[0]
    return {
        "name": name,
        "account_id": ACCOUNT_ID,
        "zone_id": ZONE_ID,
        "databases": {
            "development": {"name": f"{prefix}-dev-db"},
            "staging": {"name": f"{prefix}-staging-db"},
            "production": {"name": f"{prefix}-db"},
        },
    }


CATALOG = {
    "alpha.example.com": domain_config("alpha.example.com"),
    "beta.example.com": domain_config("beta.example.com"),
    "gamma.example.com": domain_config("gamma.example.com"),
}


# ============================================
# FAKE COLLABORATORS
# ============================================

class FakeCommandRunner:
    """Records every command; responses are configured with on()."""

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self._rules: List[Dict[str, Any]] = []

    def on(
        self,
        *tokens: str,
        stdout: str = "",
        exit_code: int = 0,
        stderr: str = "",
        times: Optional[int] = None,
        raises: Optional[Exception] = None,
    ) -> "FakeCommandRunner":
        """First matching rule wins; a rule matches when all tokens are in the argv."""
        self._rules.append({
            "tokens": tokens,
            "result": CommandResult(stdout=stdout, exit_code=exit_code, stderr=stderr),
            "times": times,
            "raises": raises,
        })
        return self

    async def run(self, command, *, timeout=None, cwd=None, input=None) -> CommandResult:
        argv = list(command)
        self.calls.append({"command": argv, "timeout": timeout, "cwd": cwd, "input": input})

        for rule in self._rules:
            if rule["times"] == 0:
                continue
            if all(token in argv for token in rule["tokens"]):
                if rule["times"] is not None:
                    rule["times"] -= 1
                if rule["raises"] is not None:
                    raise rule["raises"]
                result = rule["result"]
                break
        else:
            result = CommandResult(stdout="", exit_code=0)

        if result.ok and "export" in argv and "--output" in argv:
            output = Path(argv[argv.index("--output") + 1])
            output.write_text("-- dump\n", encoding="utf-8")

        return result

    def commands_with(self, *tokens: str) -> List[List[str]]:
        return [c["command"] for c in self.calls if all(t in c["command"] for t in tokens)]


class FakeDatabaseGateway:
    def __init__(self, existing=(), fail_with: Optional[Exception] = None):
        self.existing = set(existing)
        self.created: List[str] = []
        self.checked: List[str] = []
        self.fail_with = fail_with

    async def database_exists(self, name: str) -> bool:
        self.checked.append(name)
        if self.fail_with is not None:
            raise self.fail_with
        return name in self.existing

    async def create_database(self, name: str) -> str:
        self.created.append(name)
        self.existing.add(name)
        return f"00000000-0000-0000-0000-{len(self.created):012d}"


class FakeHealthChecker:
    """Returns queued responses (dicts or exceptions), then the default."""

    def __init__(self, *responses, default=None):
        self.responses = list(responses)
        self.default = default if default is not None else {"status": "ok"}
        self.urls: List[str] = []

    async def check(self, base_url: str) -> Dict[str, Any]:
        self.urls.append(base_url)
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        return response


# ============================================
# FIXTURES
# ============================================

@pytest.fixture
def runner():
    return FakeCommandRunner()


@pytest.fixture
def gateway():
    return FakeDatabaseGateway(existing={"alpha-db", "beta-db", "gamma-db"})


@pytest.fixture
def health_checker():
    return FakeHealthChecker()


@pytest.fixture
def settings(tmp_path):
    """Production settings bound to a temporary project root."""
    return OrchestratorSettings(
        environment="production",
        project_root=tmp_path,
        enable_persistence=True,
        retry_attempts=3,
        retry_delay=0,
        health_check_delay=0,
        audit_user="tester",
    )


@pytest.fixture
def make_context(settings, runner, gateway, health_checker):
    """Build a context; keyword arguments override settings fields."""

    def _make(**overrides):
        secrets = overrides.pop("secrets", None)
        confirm_cleanup = overrides.pop("confirm_cleanup", None)
        merged = OrchestratorSettings.model_validate({**settings.model_dump(), **overrides})
        return OrchestrationContext.create(
            merged,
            catalog=CATALOG,
            runner=runner,
            gateway=gateway,
            health_checker=health_checker,
            secrets=secrets,
            confirm_cleanup=confirm_cleanup,
        )

    return _make


@pytest.fixture
def context(make_context):
    return make_context()
