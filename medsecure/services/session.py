from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

import orjson
from pydantic import ValidationError

from ..errors import ActorAbsent, AuthorizationError
from ..models.actor import Actor
from .authorizer import Authorizer
from .directory import UserDirectory

log = logging.getLogger("medsecure.session")

SessionListener = Callable[[Optional[Actor]], None]


# ------------------------------------------------------------------------------
# Durable key/value storage for the signed-in actor
# ------------------------------------------------------------------------------
class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryStorage:
    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileStorage:
    """
    JSON file holding a flat key -> value map. Single-process use only.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        raw = self.path.read_bytes()
        if not raw:
            return {}
        data = orjson.loads(raw)
        return data if isinstance(data, dict) else {}

    def _dump(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_bytes(orjson.dumps(data))
        tmp.replace(self.path)

    def get(self, key: str) -> Optional[Any]:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._dump(data)

    def delete(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._dump(data)


# ------------------------------------------------------------------------------
# Session store
# ------------------------------------------------------------------------------
class SessionStore:
    """
    Holds the signed-in actor and persists it under a fixed storage key.

    Syncing the actor to the policy engine is best effort: failures are logged
    and never block login or restore.
    """

    STORAGE_KEY = "user"

    def __init__(
        self,
        authorizer: Authorizer,
        *,
        directory: UserDirectory,
        storage: Optional[KeyValueStorage] = None,
        storage_key: str = STORAGE_KEY,
    ):
        self.authorizer = authorizer
        self.directory = directory
        self.storage: KeyValueStorage = storage if storage is not None else InMemoryStorage()
        self.storage_key = storage_key

        self.actor: Optional[Actor] = None
        self.is_loading = False
        self.error: Optional[str] = None
        self._listeners: List[SessionListener] = []

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_actor(self, actor: Optional[Actor]) -> None:
        changed = actor != self.actor
        self.actor = actor
        if changed:
            for listener in list(self._listeners):
                listener(actor)

    async def _sync(self, actor: Actor) -> None:
        try:
            ok = await self.authorizer.sync_actor(actor)
        except AuthorizationError as e:
            log.warning("user sync failed user=%s err=%s", actor.id, e)
            return
        if not ok:
            log.warning("user sync incomplete user=%s", actor.id)

    async def init(self) -> Optional[Actor]:
        raw = self.storage.get(self.storage_key)
        if not raw:
            return None
        try:
            actor = Actor.model_validate(raw)
        except ValidationError as e:
            log.warning("discarding unreadable session key=%s err=%s", self.storage_key, e)
            self.storage.delete(self.storage_key)
            return None

        self._set_actor(actor)
        await self._sync(actor)
        return actor

    async def login(self, email: str, password: str) -> bool:
        self.is_loading = True
        self.error = None
        try:
            actor = self.directory.authenticate(email, password)
            if actor is None:
                self.error = "Invalid email or password"
                log.info("login failed email=%s", email)
                return False

            await self._sync(actor)
            self.storage.set(self.storage_key, actor.model_dump(mode="json"))
            self._set_actor(actor)
            log.info("login ok user=%s role=%s", actor.id, actor.primary_role.value if actor.primary_role else None)
            return True
        finally:
            self.is_loading = False

    def require_actor(self) -> Actor:
        if self.actor is None:
            raise ActorAbsent("No user signed in")
        return self.actor

    def logout(self) -> None:
        self.storage.delete(self.storage_key)
        if self.actor:
            log.info("logout user=%s", self.actor.id)
        self._set_actor(None)
