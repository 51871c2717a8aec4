"""Pydantic schemas for raw domain configuration."""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from orchestration_engine.core.environments import ENVIRONMENTS
from orchestration_engine.core.models import DatabaseDescriptor, Domain


class DatabaseConfig(BaseModel):
    name: str = Field(min_length=1)
    binding: str = "DB"
    id: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class DomainConfig(BaseModel):
    """Raw domain configuration, from the catalog or supplied inline."""

    name: str = Field(min_length=1)
    account_id: str = ""
    zone_id: str = ""
    databases: Dict[str, DatabaseConfig] = Field(default_factory=dict)
    services: List[str] = Field(default_factory=list)
    features: Dict[str, bool] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("databases")
    @classmethod
    def _known_environments(cls, value: Dict[str, DatabaseConfig]) -> Dict[str, DatabaseConfig]:
        unknown = set(value) - set(ENVIRONMENTS)
        if unknown:
            raise ValueError(f"unknown environment(s) in databases: {', '.join(sorted(unknown))}")
        return value

    def to_domain(self) -> Domain:
        return Domain(
            name=self.name,
            account_id=self.account_id.strip(),
            zone_id=self.zone_id.strip(),
            databases={
                env: DatabaseDescriptor(name=db.name, binding=db.binding, database_id=db.id)
                for env, db in self.databases.items()
            },
            services=tuple(self.services),
            features=dict(self.features),
        )
