"""Lifecycle hook registry for orchestration events."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from orchestration_engine.core.errors import HookExecutionError
from orchestration_engine.executor.retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)


class HookEvent(Enum):
    PRE_DEPLOY = "pre-deploy"
    POST_DEPLOY = "post-deploy"
    DEPLOY_FAILED = "deploy-failed"
    PRE_ROLLBACK = "pre-rollback"
    POST_ROLLBACK = "post-rollback"


HookCallback = Callable[[Dict[str, Any]], Awaitable[Any]]


@dataclass
class Hook:
    name: str
    event: HookEvent
    callback: HookCallback


@dataclass
class HookOutcome:
    name: str
    event: HookEvent
    success: bool
    result: Any = None
    error: Optional[str] = None


@dataclass
class HookRegistry:
    """
    Typed registry keyed by HookEvent.

    Every hook runs under the same timeout/retry contract as external
    commands. Hooks run in registration order.
    """
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    timeout: float = 30.0
    _hooks: Dict[HookEvent, List[Hook]] = field(default_factory=dict, init=False, repr=False)

    def register(self, event: HookEvent, name: str, callback: HookCallback) -> None:
        if not isinstance(event, HookEvent):
            raise ValueError(f"Invalid hook event: {event}")
        if any(h.name == name for h in self._hooks.get(event, [])):
            raise ValueError(f"Hook {name} already registered for {event.value}")
        self._hooks.setdefault(event, []).append(Hook(name=name, event=event, callback=callback))

    def unregister(self, event: HookEvent, name: str) -> bool:
        hooks = self._hooks.get(event, [])
        remaining = [h for h in hooks if h.name != name]
        self._hooks[event] = remaining
        return len(remaining) != len(hooks)

    def hooks_for(self, event: HookEvent) -> List[Hook]:
        return list(self._hooks.get(event, []))

    async def run(self, event: HookEvent, payload: Dict[str, Any]) -> List[HookOutcome]:
        """Run every hook for the event; failures are captured per hook."""
        outcomes = []
        for hook in self.hooks_for(event):
            try:
                result = await retry_async(
                    lambda hook=hook: hook.callback(dict(payload)),
                    self.policy,
                    description=f"hook {hook.name} ({event.value})",
                    timeout=self.timeout,
                )
                outcomes.append(HookOutcome(hook.name, event, True, result=result))
            except Exception as e:
                logger.error(f"[hooks] {hook.name} failed for {event.value}: {e}")
                outcomes.append(HookOutcome(hook.name, event, False, error=str(e)))
        return outcomes

    async def run_required(self, event: HookEvent, payload: Dict[str, Any]) -> List[HookOutcome]:
        """Run hooks and raise if any of them failed."""
        outcomes = await self.run(event, payload)
        failed = [o for o in outcomes if not o.success]
        if failed:
            names = ", ".join(o.name for o in failed)
            raise HookExecutionError(f"{event.value} hook(s) failed: {names}: {failed[0].error}")
        return outcomes
