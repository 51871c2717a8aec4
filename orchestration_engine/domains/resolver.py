# orchestration_engine/domains/resolver.py
"""Domain resolver - turns names or inline configs into validated Domains."""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from orchestration_engine.collaborators.gateway import DatabaseGateway
from orchestration_engine.core.errors import OrchestrationValidationError
from orchestration_engine.core.environments import ENVIRONMENTS
from orchestration_engine.core.models import Domain, ValidationReport
from orchestration_engine.domains.schemas import DomainConfig

logger = logging.getLogger(__name__)


DOMAIN_NAME_PATTERN = re.compile(r"^(?=.{1,253}$)([a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,}$")
CLOUD_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")

DomainInput = Union[str, Mapping[str, Any], DomainConfig, Domain]


@dataclass
class DomainResolution:
    """Outcome of resolving one requested domain."""
    name: str
    domain: Optional[Domain] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.domain is not None


def load_catalog(path: Union[str, Path]) -> Dict[str, Dict[str, Any]]:
    """
    Load a domain catalog from JSON.

    Accepts either ``{"domains": [{...}, ...]}``, a list of configs, or a
    mapping of name -> config.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise OrchestrationValidationError(f"Cannot load domain catalog {path}: {e}")

    if isinstance(data, dict) and "domains" in data:
        data = data["domains"]

    if isinstance(data, list):
        return {str(item["name"]).lower(): dict(item) for item in data if "name" in item}

    if isinstance(data, dict):
        return {
            str(name).lower(): {"name": name, **config}
            for name, config in data.items()
        }

    raise OrchestrationValidationError(f"Domain catalog {path} has an unsupported shape")


class DomainResolver:
    """
    Resolves domain names against a catalog of known configurations.

    Unknown names are a validation error unless inline configuration is
    supplied. Resolved domains are cached for the resolver's lifetime.
    """

    def __init__(
        self,
        catalog: Optional[Mapping[str, Mapping[str, Any]]] = None,
        *,
        environment: str = "production",
        database_gateway: Optional[DatabaseGateway] = None,
        cache_enabled: bool = True,
    ):
        self.environment = environment
        self._catalog = {name.lower(): dict(cfg) for name, cfg in (catalog or {}).items()}
        self._gateway = database_gateway
        self._cache_enabled = cache_enabled
        self._cache: Dict[str, Domain] = {}

    # -------------------------
    # RESOLUTION
    # -------------------------

    def resolve_domain(self, name_or_config: DomainInput) -> Domain:
        if isinstance(name_or_config, Domain):
            return name_or_config

        if isinstance(name_or_config, (Mapping, DomainConfig)):
            return self._parse(name_or_config)

        name = str(name_or_config).strip().lower()
        if self._cache_enabled and name in self._cache:
            return self._cache[name]

        raw = self._catalog.get(name)
        if raw is None:
            raise OrchestrationValidationError(
                f"Unknown domain: {name} (no catalog entry and no inline configuration)"
            )

        domain = self._parse({"name": name, **raw})
        if self._cache_enabled:
            self._cache[name] = domain
        return domain

    def resolve_multiple_domains(self, names: Iterable[DomainInput]) -> List[DomainResolution]:
        resolutions = []
        for item in names:
            label = self._label(item)
            try:
                resolutions.append(DomainResolution(name=label, domain=self.resolve_domain(item)))
            except OrchestrationValidationError as e:
                logger.warning(f"[resolver] could not resolve {label}: {e}")
                resolutions.append(DomainResolution(name=label, error=str(e)))
        return resolutions

    # -------------------------
    # VALIDATION
    # -------------------------

    async def validate_domain_prerequisites(
        self,
        domain: Domain,
        environment: Optional[str] = None,
        *,
        check_reachability: bool = False,
    ) -> ValidationReport:
        """Check required fields and, optionally, that the database is reachable."""
        environment = environment or self.environment
        report = ValidationReport(domain=domain.name)

        if not DOMAIN_NAME_PATTERN.match(domain.name):
            report.add_issue(f"Invalid domain format: {domain.name}")

        if not domain.account_id:
            report.add_issue("Missing cloud account id")
        elif not CLOUD_ID_PATTERN.match(domain.account_id):
            report.add_issue(f"Invalid account id format: {domain.account_id}")

        if not domain.zone_id:
            report.add_issue("Missing zone id")
        elif not CLOUD_ID_PATTERN.match(domain.zone_id):
            report.add_issue(f"Invalid zone id format: {domain.zone_id}")

        if environment not in ENVIRONMENTS:
            report.add_issue(f"Unknown environment: {environment}")

        database = domain.database_for(environment)
        if database is None:
            report.add_issue(f"No {environment} database configured")

        if check_reachability and database is not None and self._gateway is not None:
            try:
                if not await self._gateway.database_exists(database.name):
                    report.warnings.append(
                        f"Database {database.name} does not exist yet (will be created during deployment)"
                    )
            except Exception as e:
                report.add_issue(f"Reachability check failed for {database.name}: {e}")

        if "localhost" in domain.name:
            report.warnings.append("Using local domain - may not be accessible externally")

        return report

    # -------------------------
    # INTERNALS
    # -------------------------

    @staticmethod
    def _label(item: DomainInput) -> str:
        if isinstance(item, Domain):
            return item.name
        if isinstance(item, DomainConfig):
            return item.name
        if isinstance(item, Mapping):
            return str(item.get("name", "<inline>")).strip().lower()
        return str(item).strip().lower()

    @staticmethod
    def _parse(config: Union[Mapping[str, Any], DomainConfig]) -> Domain:
        if isinstance(config, DomainConfig):
            return config.to_domain()
        try:
            return DomainConfig.model_validate(dict(config)).to_domain()
        except ValidationError as e:
            name = config.get("name", "<inline>")
            raise OrchestrationValidationError(f"Invalid configuration for domain {name}: {e}")
