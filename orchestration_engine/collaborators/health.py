# orchestration_engine/collaborators/health.py
"""Post-deployment health check client."""

import asyncio
import logging
import time
from typing import Any, Dict, Protocol

import requests

logger = logging.getLogger(__name__)


HEALTHY_STATUSES = {"ok", "healthy", "pass"}


class HealthChecker(Protocol):
    """Contract: check a deployment and return {"status": ..., ...}."""

    async def check(self, base_url: str) -> Dict[str, Any]:
        ...


def is_healthy(report: Dict[str, Any]) -> bool:
    return str(report.get("status", "")).lower() in HEALTHY_STATUSES


class HttpHealthChecker:
    """Checks ``<base_url>/health`` over HTTP."""

    def __init__(self, timeout: float = 15.0, user_agent: str = "orchestration-engine/1.0"):
        """
        Args:
            timeout: Request timeout in seconds
            user_agent: Sent with every request
        """
        self.timeout = timeout
        self.user_agent = user_agent

    async def check(self, base_url: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self._check_sync, base_url)

    def _check_sync(self, base_url: str) -> Dict[str, Any]:
        url = f"{base_url.rstrip('/')}/health"
        started = time.monotonic()

        response = requests.get(
            url,
            headers={"User-Agent": self.user_agent},
            timeout=self.timeout,
        )
        elapsed_ms = int((time.monotonic() - started) * 1000)

        report: Dict[str, Any] = {
            "url": url,
            "http_status": response.status_code,
            "response_time_ms": elapsed_ms,
        }

        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and "status" in body:
            report.update(body)
            report["status"] = str(body["status"])
        else:
            report["status"] = "ok" if response.status_code == 200 else "unhealthy"

        if response.status_code != 200:
            report["status"] = "unhealthy"

        logger.debug(f"[health] {url} -> {response.status_code} ({elapsed_ms}ms)")
        return report
