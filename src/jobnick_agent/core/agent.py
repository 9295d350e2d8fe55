"""Main Jobnick agent: the control surface over the orchestration loop."""

from typing import Any, Dict, List, Optional

from jobnick_agent.browser.playwright_surface import PlaywrightSurface
from jobnick_agent.browser.surface import PageAutomationSurface
from jobnick_agent.config import settings
from jobnick_agent.core.events import StatusChannel
from jobnick_agent.core.models import (
    SearchSettings,
    StatusEvent,
    TabResource,
    UserPreferences,
    UserProfile,
)
from jobnick_agent.core.orchestrator import LoopState, OrchestrationLoop
from jobnick_agent.jobs.completion import LangChainCompletionService, TextCompletionService
from jobnick_agent.memory.store import JsonFileStateStore, StateStore
from jobnick_agent.utils.logging import get_logger

logger = get_logger(__name__)

MISSING_KEY_MESSAGE = "API key not set. Configure your API key before starting the job search."


class JobnickAgent:
    """
    Commands accepted from the outside world.

    Every command returns plain data so the HTTP API and the CLI can relay
    results without knowing about the components behind them.
    """

    def __init__(
        self,
        surface: PageAutomationSurface,
        completion: TextCompletionService,
        store: StateStore,
        events: Optional[StatusChannel] = None,
        loop: Optional[OrchestrationLoop] = None,
    ):
        self.surface = surface
        self.completion = completion
        self.events = events or StatusChannel(buffer_size=settings.status_buffer_size)
        self.loop = loop or OrchestrationLoop(surface, completion, store=store, events=self.events)
        self.repository = self.loop.repository
        self.tracker = self.loop.tracker
        self.logger = logger.bind(component="jobnick_agent")

    @property
    def is_running(self) -> bool:
        return self.loop.state == LoopState.RUNNING

    async def start(self, options: Optional[SearchSettings] = None) -> Dict[str, Any]:
        """Start the job search loop in the background."""
        if self.is_running:
            message = "AI job search is already running"
            self.events.warning(message)
            return {"success": False, "error": message}

        if not self.completion.is_configured:
            stored = await self.repository.credential()
            if stored:
                self.completion.set_credential(stored)

        if not self.completion.is_configured:
            self.events.error(MISSING_KEY_MESSAGE)
            return {"success": False, "error": MISSING_KEY_MESSAGE}

        options = options or SearchSettings()
        self.loop.start(options)
        self.events.info("AI job search started")
        self.logger.info("Job search started", **options.model_dump())
        return {"success": True}

    async def stop(self) -> Dict[str, Any]:
        """Request the loop to stop; it finishes its in-flight step first."""
        if not self.is_running:
            return {"success": False, "error": "Job search is not running"}
        self.loop.stop("Stopped by user")
        self.events.info("Stopping job search")
        return {"success": True}

    async def set_credential(self, key: str) -> Dict[str, Any]:
        key = (key or "").strip()
        if not key:
            return {"success": False, "error": "API key must not be empty"}
        await self.repository.set_credential(key)
        self.completion.set_credential(key)
        self.events.success("API key saved")
        return {"success": True}

    async def set_submission_mode(self, live: bool) -> Dict[str, Any]:
        """Switch between live submission and dry-run form filling."""
        await self.repository.set_submission_live(live)
        self.events.info("Submission mode: live" if live else "Submission mode: dry-run (no submission)")
        return {"success": True, "live": live}

    async def set_profile(self, profile: UserProfile) -> None:
        await self.repository.save_profile(profile)

    async def set_preferences(self, preferences: UserPreferences) -> None:
        await self.repository.save_preferences(preferences)

    async def set_resume_text(self, text: str) -> None:
        await self.repository.set_resume_text(text)

    async def get_status(self) -> Dict[str, Any]:
        last_event: Optional[StatusEvent] = self.events.last_event
        return {
            **self.loop.status(),
            "submission_live": await self.repository.submission_live(),
            "total_applications": await self.repository.application_count(),
            "last_search_url": await self.repository.last_search_url(),
            "has_credential": self.completion.is_configured or bool(await self.repository.credential()),
            "resource_count": len(self.tracker.list_resources()),
            "last_activity_at": self.tracker.last_activity_at,
            "last_event": last_event.model_dump(mode="json") if last_event else None,
        }

    def list_resources(self) -> List[Dict[str, Any]]:
        current = self.tracker.current
        return [
            {**resource.model_dump(mode="json"), "is_current": current is not None and resource.id == current.id}
            for resource in self.tracker.list_resources()
        ]

    async def close_resource(self, resource_id: str) -> Dict[str, Any]:
        closed = await self.tracker.release(resource_id)
        if closed:
            self.events.info(f"Closed tab {resource_id}")
            return {"success": True}
        return {"success": False, "error": f"Unknown resource {resource_id}"}

    async def reset_resources(self) -> Dict[str, Any]:
        count = await self.tracker.reset()
        self.events.info(f"Closed {count} tab(s)")
        return {"success": True, "closed": count}

    async def reclaim_stale(self, max_age_seconds: Optional[float] = None) -> Dict[str, Any]:
        count = await self.tracker.reclaim_stale(max_age_seconds)
        return {"success": True, "closed": count}

    async def force_new_resource(self) -> TabResource:
        return await self.tracker.force_new()

    def recent_events(self, limit: Optional[int] = None) -> List[StatusEvent]:
        return self.events.recent(limit)

    async def shutdown(self) -> None:
        """Stop the loop and release the browser."""
        self.logger.info("Shutting down Jobnick agent")
        self.loop.stop("Shutting down")
        await self.loop.wait_stopped()
        close = getattr(self.surface, "close", None)
        if close is not None:
            await close()
        self.logger.info("Shutdown completed")


def create_jobnick_agent(
    surface: Optional[PageAutomationSurface] = None,
    completion: Optional[TextCompletionService] = None,
    store: Optional[StateStore] = None,
) -> JobnickAgent:
    """
    Create an agent wired to the default Playwright, LangChain and JSON file backends.

    Args:
        surface: Page automation surface; Playwright when omitted
        completion: Text completion service; LangChain when omitted
        store: Durable state; JSON file at ``settings.state_file`` when omitted

    Returns:
        Configured agent instance
    """
    if surface is None:
        surface = PlaywrightSurface(
            headless=settings.browser_headless,
            user_data_dir=settings.browser_user_data_dir,
        )
    if completion is None:
        completion = LangChainCompletionService()
    if store is None:
        store = JsonFileStateStore(settings.state_file)

    return JobnickAgent(surface=surface, completion=completion, store=store)
