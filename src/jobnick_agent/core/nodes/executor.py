"""Executor Node for performing planned actions against the page automation surface."""

import asyncio
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from jobnick_agent.browser.surface import PageAutomationSurface, SurfaceAction
from jobnick_agent.browser.tabs import ResourceTracker
from jobnick_agent.config import settings
from jobnick_agent.core.errors import SurfaceNotReadyError, TransportError
from jobnick_agent.core.models import (
    ActionKind,
    ActionResult,
    ListingRecord,
    PlannedAction,
    TabResource,
    UserProfile,
)
from jobnick_agent.utils.logging import get_logger

logger = get_logger(__name__)

Handler = Callable[[PlannedAction, TabResource], Awaitable[ActionResult]]
AnswerProvider = Callable[[str], Awaitable[Optional[str]]]

# SEARCH parameter name -> surface payload key
SEARCH_FILTERS = {
    "experience_filters": "experienceFilters",
    "date_posted": "datePosted",
    "job_type_filters": "jobTypeFilters",
}


class ExecutorState(str, Enum):
    """Lifecycle of the executor."""
    IDLE = "idle"
    EXECUTING = "executing"
    FAILED = "failed"


class ExecutorNode:
    """
    Executor Node for performing one planned action at a time.

    Each action kind maps to one surface request followed by a settle delay.
    Failures come back as ``ActionResult(success=False)``; nothing is retried
    here. A failure caused by a tab that is not ready yet is flagged with
    ``data["retryable"]`` so the caller can decide to try again.
    """

    def __init__(
        self,
        surface: PageAutomationSurface,
        tracker: Optional[ResourceTracker] = None,
        target_url: Optional[str] = None,
        settle_delays: Optional[Dict[ActionKind, float]] = None,
        history_size: int = 100,
    ):
        """
        Initialize the Executor Node.

        Args:
            surface: Page automation surface the actions are sent to
            tracker: Resource tracker notified of URL changes
            target_url: Destination of NAVIGATE steps without a url parameter
            settle_delays: Per-kind delay overrides in seconds
            history_size: Number of results kept in ``history``
        """
        self.surface = surface
        self.tracker = tracker
        self.target_url = target_url or settings.target_jobs_url
        self.settle_delays: Dict[ActionKind, float] = {
            ActionKind.NAVIGATE: settings.navigate_settle_seconds,
            ActionKind.SEARCH: settings.search_settle_seconds,
            ActionKind.NEXT_PAGE: settings.next_page_settle_seconds,
            ActionKind.GO_BACK: settings.go_back_settle_seconds,
            ActionKind.SCROLL: settings.scroll_settle_seconds,
        }
        if settle_delays:
            self.settle_delays.update(settle_delays)
        self.history_size = history_size

        self.state = ExecutorState.IDLE
        self.current_action: Optional[PlannedAction] = None
        self.history: List[ActionResult] = []
        self.logger = logger.bind(component="executor_node")

        self._handlers: Dict[ActionKind, Handler] = {
            ActionKind.NAVIGATE: self._execute_navigate,
            ActionKind.SEARCH: self._execute_search,
            ActionKind.EXTRACT: self._execute_extract,
            ActionKind.ANALYZE: self._execute_bookkeeping,
            ActionKind.APPLY_BEST: self._execute_bookkeeping,
            ActionKind.NEXT_PAGE: self._execute_next_page,
            ActionKind.SCROLL: self._execute_scroll,
            ActionKind.GO_BACK: self._execute_go_back,
            ActionKind.WAIT: self._execute_wait,
            ActionKind.COMPLETE: self._execute_bookkeeping,
        }

    @property
    def is_busy(self) -> bool:
        return self.state == ExecutorState.EXECUTING

    async def execute(self, action: PlannedAction, resource: TabResource) -> ActionResult:
        """
        Execute a single planned action.

        Args:
            action: Step to perform
            resource: Tab the step runs in

        Returns:
            Structured result; never raises for surface failures
        """
        if self.is_busy:
            self.logger.warning(
                "Rejected concurrent action",
                requested=str(getattr(action.kind, "value", action.kind)),
                in_flight=self.current_action.kind.value if self.current_action else None,
            )
            return ActionResult(
                kind=action.kind if isinstance(action.kind, ActionKind) else None,
                success=False,
                error="Executor is busy with another action",
            )

        handler = self._handlers.get(action.kind) if isinstance(action.kind, ActionKind) else None
        if handler is None:
            result = ActionResult(success=False, error=f"Unknown action kind: {action.kind}")
            self.state = ExecutorState.FAILED
            return self._record(result)

        self.state = ExecutorState.EXECUTING
        self.current_action = action
        start_time = datetime.utcnow()

        self.logger.info("Executing action", kind=action.kind.value, tab_id=resource.id)
        try:
            result = await handler(action, resource)
        except TransportError as e:
            result = ActionResult(
                kind=action.kind,
                success=False,
                error=str(e),
                data={"retryable": isinstance(e, SurfaceNotReadyError)},
            )
        except Exception as e:
            self.logger.error("Action raised unexpectedly", kind=action.kind.value, error=str(e))
            result = ActionResult(kind=action.kind, success=False, error=str(e))
        finally:
            self.current_action = None

        result.execution_time = (datetime.utcnow() - start_time).total_seconds()
        self.state = ExecutorState.IDLE if result.success else ExecutorState.FAILED
        if not result.success:
            self.logger.warning("Action failed", kind=action.kind.value, error=result.error)
        return self._record(result)

    async def apply(
        self,
        resource: TabResource,
        record: ListingRecord,
        profile: Optional[UserProfile],
        dry_run: bool,
        answer_question: Optional[AnswerProvider] = None,
    ) -> ActionResult:
        """
        Submit (or, in dry-run mode, only fill) an application for ``record``.

        When the form has text questions the surface could not fill from the
        profile, it reports them as pending; each is answered through
        ``answer_question`` and the answers are sent back to complete the form.
        """
        if self.is_busy:
            return ActionResult(
                kind=ActionKind.APPLY_BEST,
                success=False,
                error="Executor is busy with another action",
            )

        payload = {
            "job": {
                "title": record.title,
                "company": record.employer,
                "location": record.location,
                "link": record.link,
                "identity": record.identity,
            },
            "profile": (profile or UserProfile()).model_dump(),
            "testMode": dry_run,
        }
        data: Dict[str, Any] = {"identity": record.identity, "dry_run": dry_run}

        self.state = ExecutorState.EXECUTING
        self.current_action = PlannedAction(
            kind=ActionKind.APPLY_BEST,
            description=f"Apply to {record.title}",
            parameters={"identity": record.identity, "dry_run": dry_run},
        )
        try:
            response = await self.surface.send(resource.id, SurfaceAction.APPLY_TO_JOB, payload)
            if response.get("success") and response.get("pending"):
                answers = await self._answer_questions(response.get("questions") or [], answer_question)
                data["answered"] = len(answers)
                response = await self.surface.send(
                    resource.id,
                    SurfaceAction.FILL_ANSWERS,
                    {"answers": answers, "testMode": dry_run},
                )
        except TransportError as e:
            self.logger.warning("Application request failed", identity=record.identity, error=str(e))
            response = {"success": False, "error": str(e)}
        except Exception as e:
            self.logger.error("Application raised unexpectedly", identity=record.identity, error=str(e))
            response = {"success": False, "error": str(e)}
        finally:
            self.current_action = None

        success = bool(response.get("success"))
        self.state = ExecutorState.IDLE if success else ExecutorState.FAILED
        if self.tracker is not None:
            self.tracker.touch(resource.id)
        return self._record(ActionResult(
            kind=ActionKind.APPLY_BEST,
            success=success,
            message=f"{'Filled' if dry_run else 'Applied to'} {record.title}" if success else None,
            error=None if success else response.get("error", "Application was not completed"),
            data={**data, "submitted": bool(response.get("submitted", success and not dry_run))},
        ))

    async def _answer_questions(
        self,
        questions: List[str],
        answer_question: Optional[AnswerProvider],
    ) -> Dict[str, str]:
        answers: Dict[str, str] = {}
        if answer_question is None:
            return answers
        for question in questions:
            answer = await answer_question(question)
            if answer:
                answers[question] = answer
        self.logger.info("Answered form questions", asked=len(questions), answered=len(answers))
        return answers

    async def _execute_navigate(self, action: PlannedAction, resource: TabResource) -> ActionResult:
        url = action.parameters.get("url") or self.target_url
        response = await self.surface.send(resource.id, SurfaceAction.NAVIGATE, {"url": url})
        return await self._settled(action, resource, response, url=response.get("url", url))

    async def _execute_search(self, action: PlannedAction, resource: TabResource) -> ActionResult:
        payload = {
            "query": action.parameters.get("query", ""),
            "location": action.parameters.get("location", ""),
        }
        for name, key in SEARCH_FILTERS.items():
            if action.parameters.get(name):
                payload[key] = action.parameters[name]
        response = await self.surface.send(resource.id, SurfaceAction.PERFORM_SEARCH, payload)
        return await self._settled(action, resource, response, url=response.get("url"), data=payload)

    async def _execute_extract(self, action: PlannedAction, resource: TabResource) -> ActionResult:
        response = await self.surface.send(resource.id, SurfaceAction.EXTRACT_LISTINGS)
        jobs = response.get("jobs") or []
        return ActionResult(
            kind=action.kind,
            success=bool(response.get("success", True)),
            message=f"Found {len(jobs)} listing(s)",
            data={"jobs_found": len(jobs), "jobs": jobs},
        )

    async def _execute_next_page(self, action: PlannedAction, resource: TabResource) -> ActionResult:
        response = await self.surface.send(resource.id, SurfaceAction.NAVIGATE_NEXT_PAGE)
        return await self._settled(action, resource, response)

    async def _execute_go_back(self, action: PlannedAction, resource: TabResource) -> ActionResult:
        payload = {"url": action.parameters["url"]} if action.parameters.get("url") else {}
        response = await self.surface.send(resource.id, SurfaceAction.GO_BACK, payload)
        return await self._settled(action, resource, response, url=response.get("url"))

    async def _execute_scroll(self, action: PlannedAction, resource: TabResource) -> ActionResult:
        response = await self.surface.send(resource.id, SurfaceAction.SCROLL, dict(action.parameters))
        return await self._settled(action, resource, response)

    async def _execute_wait(self, action: PlannedAction, resource: TabResource) -> ActionResult:
        duration_ms = int(action.parameters.get("duration_ms", settings.default_wait_ms))
        if duration_ms > 0:
            await asyncio.sleep(duration_ms / 1000)
        return ActionResult(kind=action.kind, success=True, message=f"Waited {duration_ms}ms")

    async def _execute_bookkeeping(self, action: PlannedAction, resource: TabResource) -> ActionResult:
        return ActionResult(
            kind=action.kind,
            success=True,
            message=action.description or action.kind.value,
            data=dict(action.parameters),
        )

    async def _settled(
        self,
        action: PlannedAction,
        resource: TabResource,
        response: Dict[str, Any],
        url: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> ActionResult:
        success = bool(response.get("success"))
        if success:
            delay = self.settle_delays.get(action.kind, 0)
            if delay:
                await asyncio.sleep(delay)
        if self.tracker is not None:
            if url:
                self.tracker.observe_navigation(resource.id, url)
            else:
                self.tracker.touch(resource.id)

        return ActionResult(
            kind=action.kind,
            success=success,
            message=action.description if success else None,
            error=None if success else response.get("error", f"{action.kind.value} failed"),
            data={**(data or {}), **({"url": url} if url else {})},
        )

    def _record(self, result: ActionResult) -> ActionResult:
        self.history.append(result)
        if len(self.history) > self.history_size:
            del self.history[: len(self.history) - self.history_size]
        return result


def create_executor_node(
    surface: PageAutomationSurface,
    tracker: Optional[ResourceTracker] = None,
    settle_delays: Optional[Dict[ActionKind, float]] = None,
) -> ExecutorNode:
    """
    Factory function to create an Executor Node.

    Args:
        surface: Page automation surface
        tracker: Resource tracker notified of URL changes
        settle_delays: Per-kind delay overrides

    Returns:
        Configured ExecutorNode instance
    """
    return ExecutorNode(surface=surface, tracker=tracker, settle_delays=settle_delays)
