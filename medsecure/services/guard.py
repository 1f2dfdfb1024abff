from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

from ..models.actor import Actor
from ..models.resource import ResourceInstance
from .authorizer import Authorizer

log = logging.getLogger("medsecure.guard")

LOADING_PLACEHOLDER = "Checking permissions..."

_UNSET: Any = object()


class ActorSource(Protocol):
    actor: Optional[Actor]

    def subscribe(self, listener: Callable[[Optional[Actor]], None]) -> Callable[[], None]: ...


class GuardStatus(str, Enum):
    LOADING = "loading"
    ALLOWED = "allowed"
    DENIED = "denied"
    ERROR = "error"


@dataclass(frozen=True)
class GuardState:
    status: GuardStatus
    error: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.status is GuardStatus.ALLOWED

    @property
    def loading(self) -> bool:
        return self.status is GuardStatus.LOADING


class PermissionGuard:
    """
    Declarative gate around protected content.

    Re-evaluates whenever the actor or the inputs change. Each evaluation
    carries a generation number; a result whose generation is no longer
    current is dropped, so out-of-order completions cannot overwrite a newer
    answer. Evaluation errors resolve to deny and are shown only when
    error_on_failure is set.

    Usage:
        guard = PermissionGuard(authorizer, session, action="view", resource_type="billing").mount()
        await guard.wait()
        guard.render(invoice_table)
    """

    def __init__(
        self,
        authorizer: Authorizer,
        session: Optional[ActorSource],
        *,
        action: str,
        resource_type: str,
        resource_instance: Union[ResourceInstance, Dict[str, Any], None] = None,
        fallback: Any = None,
        show_loading: bool = True,
        error_on_failure: bool = False,
        loading: Any = LOADING_PLACEHOLDER,
    ):
        self.authorizer = authorizer
        self.session = session
        self.action = action
        self.resource_type = resource_type
        self.resource_instance = ResourceInstance.coerce(resource_instance)
        self.fallback = fallback
        self.show_loading = show_loading
        self.error_on_failure = error_on_failure
        self.loading = loading

        self.state = GuardState(GuardStatus.LOADING)
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._listeners: List[Callable[[GuardState], None]] = []

    @property
    def actor(self) -> Optional[Actor]:
        return self.session.actor if self.session is not None else None

    def on_change(self, listener: Callable[[GuardState], None]) -> None:
        self._listeners.append(listener)

    # -----------------------------
    # Lifecycle
    # -----------------------------
    def mount(self) -> "PermissionGuard":
        if self.session is not None and self._unsubscribe is None:
            self._unsubscribe = self.session.subscribe(lambda _actor: self._schedule())
        self._schedule()
        return self

    def unmount(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        # in-flight work keeps running but its result is ignored
        self._generation += 1
        self._task = None

    def update(
        self,
        *,
        action: str = _UNSET,
        resource_type: str = _UNSET,
        resource_instance: Union[ResourceInstance, Dict[str, Any], None] = _UNSET,
    ) -> bool:
        """Apply new inputs; schedules a re-evaluation and returns True when anything changed."""
        changed = False
        if action is not _UNSET and action != self.action:
            self.action = action
            changed = True
        if resource_type is not _UNSET and resource_type != self.resource_type:
            self.resource_type = resource_type
            changed = True
        if resource_instance is not _UNSET:
            instance = ResourceInstance.coerce(resource_instance)
            if instance != self.resource_instance:
                self.resource_instance = instance
                changed = True
        if changed:
            self._schedule()
        return changed

    async def wait(self) -> GuardState:
        """Wait for the latest scheduled evaluation to settle."""
        while self._task is not None and not self._task.done():
            task = self._task
            await asyncio.wait({task})
        return self.state

    async def evaluate(self) -> GuardState:
        """Evaluate the current inputs now and return the resulting state."""
        generation = self._begin()
        return await self._run(generation)

    # -----------------------------
    # Evaluation
    # -----------------------------
    def _begin(self) -> int:
        self._generation += 1
        self._set_state(GuardState(GuardStatus.LOADING))
        return self._generation

    def _schedule(self) -> asyncio.Task:
        generation = self._begin()
        self._task = asyncio.ensure_future(self._run(generation))
        return self._task

    async def _run(self, generation: int) -> GuardState:
        actor = self.actor
        action = self.action
        resource_type = self.resource_type
        instance = self.resource_instance

        outcome = await self._check(actor, action, resource_type, instance)

        if generation != self._generation:
            log.debug("discarding stale guard result action=%s resource=%s", action, resource_type)
            return outcome

        self._set_state(outcome)
        return outcome

    async def _check(
        self,
        actor: Optional[Actor],
        action: str,
        resource_type: str,
        instance: Optional[ResourceInstance],
    ) -> GuardState:
        if actor is None:
            return GuardState(GuardStatus.DENIED)

        try:
            if instance is not None:
                permitted = await self.authorizer.check_resource(
                    actor, action, instance.with_default_type(resource_type), actor.tenant
                )
            else:
                permitted = await self.authorizer.check(actor, action, resource_type, actor.tenant)
        except Exception as e:
            log.warning("permission check failed user=%s action=%s resource=%s err=%s",
                        actor.id, action, resource_type, e)
            if self.error_on_failure:
                return GuardState(GuardStatus.ERROR, error=f"Error checking permissions: {e}")
            return GuardState(GuardStatus.DENIED)

        return GuardState(GuardStatus.ALLOWED if permitted else GuardStatus.DENIED)

    def _set_state(self, state: GuardState) -> None:
        self.state = state
        for listener in list(self._listeners):
            listener(state)

    # -----------------------------
    # Rendering
    # -----------------------------
    def render(self, content: Any) -> Any:
        s = self.state
        if s.loading and self.show_loading:
            return self.loading
        if s.status is GuardStatus.ERROR:
            return s.error
        if s.allowed:
            return content
        return self.fallback
