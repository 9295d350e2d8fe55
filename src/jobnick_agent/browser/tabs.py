"""Tracking, reuse and reclamation of browser tab resources."""

import asyncio
import time
from typing import Callable, Dict, List, Optional

from jobnick_agent.browser.surface import PageAutomationSurface, SurfaceAction, is_target_site
from jobnick_agent.config import settings
from jobnick_agent.core.errors import JobnickError, TransportError
from jobnick_agent.core.events import StatusChannel
from jobnick_agent.core.models import TabResource, TabStatus
from jobnick_agent.utils.logging import get_logger

logger = get_logger(__name__)


class ResourceTracker:
    """
    Registry of the tabs the agent works in.

    A tab becomes tracked when it is created through ``acquire`` or
    ``force_new`` and stops being tracked when it is released. Released ids
    are remembered so a closed tab can never come back under the same id.
    """

    def __init__(
        self,
        surface: PageAutomationSurface,
        events: Optional[StatusChannel] = None,
        start_url: Optional[str] = None,
        target_domain: Optional[str] = None,
        settle_seconds: Optional[float] = None,
        readiness_attempts: Optional[int] = None,
        readiness_interval: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.surface = surface
        self.events = events or StatusChannel()
        self.start_url = start_url or settings.target_jobs_url
        self.target_domain = target_domain or settings.target_site_domain
        self.settle_seconds = settings.tab_settle_seconds if settle_seconds is None else settle_seconds
        self.readiness_attempts = readiness_attempts or settings.readiness_attempts
        self.readiness_interval = (
            settings.readiness_interval_seconds if readiness_interval is None else readiness_interval
        )
        self.clock = clock

        self._resources: Dict[str, TabResource] = {}
        self._closed_ids: set = set()
        self._current_id: Optional[str] = None
        self.last_activity_at: float = clock()
        self.logger = logger.bind(component="resource_tracker")

    @property
    def current(self) -> Optional[TabResource]:
        if self._current_id is None:
            return None
        return self._resources.get(self._current_id)

    def get(self, resource_id: str) -> Optional[TabResource]:
        return self._resources.get(resource_id)

    def list_resources(self) -> List[TabResource]:
        return list(self._resources.values())

    def touch(self, resource_id: str, url: Optional[str] = None) -> Optional[TabResource]:
        """Record activity on a resource, optionally updating its URL."""
        resource = self._resources.get(resource_id)
        if resource is None:
            return None
        now = self.clock()
        resource.last_activity_at = now
        if url is not None:
            resource.current_url = url
        self.last_activity_at = now
        return resource

    async def acquire(self) -> TabResource:
        """Return the current tracked tab, or open and wait for a new one."""
        existing = self.current or next(iter(self._resources.values()), None)
        if existing is not None:
            self._current_id = existing.id
            self.touch(existing.id)
            self.logger.debug("Reusing tracked tab", tab_id=existing.id)
            return existing

        return await self._create(TabStatus.READY)

    async def force_new(self) -> TabResource:
        """Always open a new tab, bypassing reuse."""
        resource = await self._create(TabStatus.FORCED_NEW)
        self.events.info(f"Opened a new tab ({resource.id}) on request")
        return resource

    async def release(self, resource_id: str) -> bool:
        """Close a tab and stop tracking it. Close failures are only logged."""
        resource = self._resources.pop(resource_id, None)
        if resource is None:
            return False

        try:
            await self.surface.close_tab(resource_id)
        except JobnickError as e:
            self.logger.warning("Failed to close tab", tab_id=resource_id, error=str(e))

        resource.status = TabStatus.CLOSED
        self._closed_ids.add(resource_id)
        self.last_activity_at = self.clock()
        if self._current_id == resource_id:
            self._current_id = next(iter(self._resources), None)

        self.logger.info("Tab released", tab_id=resource_id, remaining=len(self._resources))
        return True

    def discard(self, resource_id: str, reason: str = "tab is no longer available") -> bool:
        """Stop tracking a tab that was closed outside the agent, without closing it again."""
        resource = self._resources.pop(resource_id, None)
        if resource is None:
            return False

        resource.status = TabStatus.CLOSED
        self._closed_ids.add(resource_id)
        self.last_activity_at = self.clock()
        if self._current_id == resource_id:
            self._current_id = next(iter(self._resources), None)

        self.events.warning(f"Lost tab {resource_id}: {reason}")
        self.logger.warning("Tab discarded", tab_id=resource_id, reason=reason)
        return True

    def is_closed(self, resource_id: str) -> bool:
        return resource_id in self._closed_ids

    async def reclaim_stale(self, max_age_seconds: Optional[float] = None) -> int:
        """Release every tab idle for longer than ``max_age_seconds``."""
        max_age = settings.stale_tab_age_seconds if max_age_seconds is None else max_age_seconds
        now = self.clock()
        stale = [r.id for r in self._resources.values() if now - r.last_activity_at > max_age]

        for resource_id in stale:
            await self.release(resource_id)

        if stale:
            self.events.info(f"Closed {len(stale)} stale tab(s)")
            self.logger.info("Reclaimed stale tabs", count=len(stale), max_age_seconds=max_age)
        return len(stale)

    async def reset(self) -> int:
        """Release every tracked tab."""
        ids = list(self._resources)
        for resource_id in ids:
            await self.release(resource_id)
        self._current_id = None
        return len(ids)

    def observe_navigation(self, resource_id: str, url: str) -> Optional[TabResource]:
        """Update a tab after its URL changed outside the agent's control."""
        resource = self.touch(resource_id, url)
        if resource is None:
            return None
        if is_target_site(url, self.target_domain):
            resource.status = TabStatus.READY
        else:
            resource.status = TabStatus.NAVIGATED_AWAY
            self.logger.info("Tab navigated away from target site", tab_id=resource_id, url=url)
        return resource

    async def _create(self, status: TabStatus) -> TabResource:
        tab_id, url = await self.surface.open_tab(self.start_url)
        if tab_id in self._closed_ids:
            raise TransportError(f"Surface reused closed tab id {tab_id}", tab_id=tab_id)

        now = self.clock()
        resource = TabResource(
            id=tab_id,
            current_url=url or self.start_url,
            created_at=now,
            last_activity_at=now,
            status=status,
        )
        self._resources[tab_id] = resource
        self._current_id = tab_id
        self.last_activity_at = now
        self.logger.info("Tab created", tab_id=tab_id, status=status.value)

        if self.settle_seconds:
            await asyncio.sleep(self.settle_seconds)

        if not await self._wait_until_ready(tab_id):
            resource.degraded = True
            if status == TabStatus.READY:
                resource.status = TabStatus.PARTIAL
            self.events.warning(
                f"Tab {tab_id} did not become ready after {self.readiness_attempts} checks; continuing"
            )
        self.touch(tab_id)
        return resource

    async def _wait_until_ready(self, tab_id: str) -> bool:
        for attempt in range(1, self.readiness_attempts + 1):
            try:
                response = await self.surface.send(tab_id, SurfaceAction.PING)
                if response.get("success") and response.get("ready", True):
                    self.logger.debug("Tab ready", tab_id=tab_id, attempt=attempt)
                    return True
            except TransportError as e:
                self.logger.debug("Tab not ready", tab_id=tab_id, attempt=attempt, error=str(e))
            if attempt < self.readiness_attempts and self.readiness_interval:
                await asyncio.sleep(self.readiness_interval)
        return False
