"""Secret source for per-domain deployment secrets."""

from typing import Dict, Mapping, Optional, Protocol


class SecretProvider(Protocol):
    async def secrets_for(self, domain: str, environment: str) -> Dict[str, str]:
        ...


class StaticSecretProvider:
    """Secrets from an in-memory mapping: {domain: {environment: {NAME: value}}}."""

    def __init__(self, secrets: Optional[Mapping[str, Mapping[str, Mapping[str, str]]]] = None):
        self._secrets = {
            domain: {env: dict(values) for env, values in by_env.items()}
            for domain, by_env in (secrets or {}).items()
        }

    async def secrets_for(self, domain: str, environment: str) -> Dict[str, str]:
        return dict(self._secrets.get(domain, {}).get(environment, {}))
