"""Durable key-value state: processed listings, counters, profile and credentials."""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Protocol, Set

from pydantic import ValidationError

from jobnick_agent.core.models import UserPreferences, UserProfile
from jobnick_agent.utils.logging import get_logger

logger = get_logger(__name__)

PROCESSED_IDENTITY_SET = "processedIdentitySet"
APPLICATION_COUNTER = "applicationCounter"
LAST_SEARCH_URL = "lastSearchUrl"
USER_PROFILE = "userProfile"
USER_PREFERENCES = "userPreferences"
API_CREDENTIAL = "apiCredential"
RESUME_TEXT = "resumeText"
SUBMISSION_MODE = "submissionMode"


class StateStore(Protocol):
    """Best-effort async key-value store."""

    async def get(self, key: str, default: Any = None) -> Any:
        ...

    async def set(self, key: str, value: Any) -> None:
        ...


class InMemoryStateStore:
    """Process-local store, used in tests and when no state file is configured."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    async def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._data)


class JsonFileStateStore:
    """
    JSON file backed store.

    The whole document is cached after the first read; every ``set`` rewrites
    the file atomically via a temporary sibling. Writes are serialized so
    concurrent updates never share the temporary file. Read or write
    failures are logged and never raised.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self._cache: Optional[Dict[str, Any]] = None
        self._write_lock = asyncio.Lock()
        self.logger = logger.bind(component="state_store", path=str(self.path))

    async def get(self, key: str, default: Any = None) -> Any:
        data = await self._load()
        return data.get(key, default)

    async def set(self, key: str, value: Any) -> None:
        data = await self._load()
        data[key] = value
        async with self._write_lock:
            try:
                await asyncio.to_thread(self._write, dict(data))
            except (OSError, TypeError, ValueError) as e:
                self.logger.error("Failed to persist state", key=key, error=str(e))

    async def _load(self) -> Dict[str, Any]:
        if self._cache is None:
            try:
                loaded = await asyncio.to_thread(self._read)
            except (OSError, ValueError) as e:
                self.logger.warning("Failed to read state file, starting empty", error=str(e))
                loaded = {}
            # another caller may have loaded and updated the cache meanwhile
            if self._cache is None:
                self._cache = loaded
        return self._cache

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        content = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        return content if isinstance(content, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
        tmp.replace(self.path)


class ProcessedSet:
    """Identities of listings already evaluated in any run."""

    def __init__(self, store: StateStore):
        self.store = store
        self._identities: Set[str] = set()
        self._loaded = False

    async def load(self) -> "ProcessedSet":
        raw = await self.store.get(PROCESSED_IDENTITY_SET, [])
        self._identities = {str(item) for item in raw} if isinstance(raw, (list, tuple, set)) else set()
        self._loaded = True
        return self

    @property
    def loaded(self) -> bool:
        return self._loaded

    def __contains__(self, identity: object) -> bool:
        return identity in self._identities

    def __len__(self) -> int:
        return len(self._identities)

    def __iter__(self):
        return iter(sorted(self._identities))

    async def mark(self, identity: str) -> None:
        """Add an identity and persist the set."""
        if not identity or identity in self._identities:
            return
        self._identities.add(identity)
        await self.store.set(PROCESSED_IDENTITY_SET, sorted(self._identities))

    async def mark_many(self, identities: Iterable[str]) -> None:
        new = {i for i in identities if i and i not in self._identities}
        if new:
            self._identities |= new
            await self.store.set(PROCESSED_IDENTITY_SET, sorted(self._identities))


class AgentStateRepository:
    """Typed accessors over the store with safe defaults for absent keys."""

    def __init__(self, store: StateStore):
        self.store = store
        self.logger = logger.bind(component="state_repository")

    async def application_count(self) -> int:
        value = await self.store.get(APPLICATION_COUNTER, 0)
        try:
            return int(value or 0)
        except (TypeError, ValueError):
            return 0

    async def increment_application_count(self) -> int:
        count = await self.application_count() + 1
        await self.store.set(APPLICATION_COUNTER, count)
        return count

    async def reset_application_count(self) -> None:
        await self.store.set(APPLICATION_COUNTER, 0)

    async def last_search_url(self) -> str:
        return str(await self.store.get(LAST_SEARCH_URL, "") or "")

    async def set_last_search_url(self, url: str) -> None:
        await self.store.set(LAST_SEARCH_URL, url)

    async def profile(self) -> UserProfile:
        raw = await self.store.get(USER_PROFILE, {}) or {}
        try:
            return UserProfile.model_validate(raw)
        except ValidationError as e:
            self.logger.warning("Stored profile is invalid, using blank profile", error=str(e))
            return UserProfile()

    async def save_profile(self, profile: UserProfile) -> None:
        await self.store.set(USER_PROFILE, profile.model_dump())

    async def preferences(self) -> UserPreferences:
        raw = await self.store.get(USER_PREFERENCES, {}) or {}
        try:
            return UserPreferences.model_validate(raw)
        except ValidationError as e:
            self.logger.warning("Stored preferences are invalid, using defaults", error=str(e))
            return UserPreferences()

    async def save_preferences(self, preferences: UserPreferences) -> None:
        await self.store.set(USER_PREFERENCES, preferences.model_dump())

    async def credential(self) -> str:
        return str(await self.store.get(API_CREDENTIAL, "") or "").strip()

    async def set_credential(self, key: str) -> None:
        await self.store.set(API_CREDENTIAL, key.strip())

    async def resume_text(self) -> str:
        return str(await self.store.get(RESUME_TEXT, "") or "")

    async def set_resume_text(self, text: str) -> None:
        await self.store.set(RESUME_TEXT, text)

    async def submission_live(self) -> bool:
        """Live submission unless explicitly switched to dry-run."""
        return await self.store.get(SUBMISSION_MODE, True) is not False

    async def set_submission_live(self, live: bool) -> None:
        await self.store.set(SUBMISSION_MODE, bool(live))
