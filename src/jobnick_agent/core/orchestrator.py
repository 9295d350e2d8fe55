"""Orchestration loop: observe the tab, plan, act, screen and apply until done."""

import asyncio
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from jobnick_agent.browser.surface import PageAutomationSurface, classify_page
from jobnick_agent.browser.tabs import ResourceTracker
from jobnick_agent.config import settings
from jobnick_agent.core.completion import CompletionCriteria, CompletionTracker
from jobnick_agent.core.errors import TransportError
from jobnick_agent.core.events import StatusChannel
from jobnick_agent.core.models import (
    ActionKind,
    ActionResult,
    ListingRecord,
    PageType,
    Plan,
    PlannedAction,
    RunContext,
    SearchSettings,
    TabResource,
    UserPreferences,
    UserProfile,
)
from jobnick_agent.core.nodes.executor import ExecutorNode
from jobnick_agent.core.nodes.planner import PlannerNode
from jobnick_agent.core.retry import RetryPolicy
from jobnick_agent.jobs.answers import AnswerGenerator
from jobnick_agent.jobs.completion import TextCompletionService
from jobnick_agent.jobs.evaluator import EvaluationOutcome, TwoStageEvaluator
from jobnick_agent.jobs.extractor import ContentExtractor, canonical_link
from jobnick_agent.memory.store import AgentStateRepository, InMemoryStateStore, ProcessedSet, StateStore
from jobnick_agent.utils.logging import get_logger, log_run_context

logger = get_logger(__name__)


class LoopState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class OrchestrationLoop:
    """
    Cancellable control loop over one browser tab at a time.

    The loop owns every piece of mutable run state: the resource tracker,
    the processed set and the run counters. Each iteration classifies the
    page in the working tab, asks the planner for steps, runs them through
    the executor, extractor and evaluator, and applies to qualifying
    listings. An exception inside an iteration is reported and followed by a
    cool-down; it never ends the loop.
    """

    def __init__(
        self,
        surface: PageAutomationSurface,
        completion: TextCompletionService,
        store: Optional[StateStore] = None,
        events: Optional[StatusChannel] = None,
        tracker: Optional[ResourceTracker] = None,
        extractor: Optional[ContentExtractor] = None,
        evaluator: Optional[TwoStageEvaluator] = None,
        executor: Optional[ExecutorNode] = None,
        planner: Optional[PlannerNode] = None,
        retry_policy: Optional[RetryPolicy] = None,
        max_idle_iterations: Optional[int] = None,
        error_cooldown: Optional[float] = None,
        stale_tab_age: Optional[float] = None,
        answers: Optional[AnswerGenerator] = None,
        target_domain: Optional[str] = None,
    ):
        self.surface = surface
        self.completion = completion
        self.events = events or StatusChannel(buffer_size=settings.status_buffer_size)
        self.repository = AgentStateRepository(store or InMemoryStateStore())
        self.processed = (
            extractor.processed if extractor is not None else ProcessedSet(self.repository.store)
        )
        self.retry_policy = retry_policy or RetryPolicy.from_settings()

        self.tracker = tracker or ResourceTracker(surface, events=self.events)
        self.extractor = extractor or ContentExtractor(
            surface, self.processed, events=self.events, retry_policy=self.retry_policy
        )
        self.evaluator = evaluator or TwoStageEvaluator(
            completion, self.extractor, self.processed, events=self.events
        )
        self.executor = executor or ExecutorNode(surface, tracker=self.tracker)
        self.answers = answers or AnswerGenerator(completion, events=self.events)
        self.planner = planner or PlannerNode()

        self.max_idle_iterations = max_idle_iterations or settings.max_idle_iterations
        self.error_cooldown = settings.error_cooldown_seconds if error_cooldown is None else error_cooldown
        self.stale_tab_age = settings.stale_tab_age_seconds if stale_tab_age is None else stale_tab_age
        self.target_domain = target_domain or settings.target_site_domain

        self.state = LoopState.STOPPED
        self.options = SearchSettings()
        self.completion_tracker = CompletionTracker(CompletionCriteria.from_settings(self.options.max_applications))
        self.iteration = 0
        self.idle_iterations = 0
        self.stop_reason: Optional[str] = None
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.logger = logger.bind(component="orchestration_loop")

    @property
    def is_running(self) -> bool:
        return self.state == LoopState.RUNNING and not self._stop_event.is_set()

    def start(self, options: Optional[SearchSettings] = None) -> Optional[asyncio.Task]:
        """Start the loop in a background task; ``None`` when it is already running."""
        if not self._begin(options):
            return None
        self._task = asyncio.create_task(self._loop())
        return self._task

    async def run(self, options: Optional[SearchSettings] = None) -> None:
        """Run the loop in the current task until it stops."""
        if self._begin(options):
            await self._loop()

    def stop(self, reason: str = "Stop requested") -> None:
        """Ask the loop to stop at its next checkpoint."""
        if self.state == LoopState.RUNNING and not self._stop_event.is_set():
            self.stop_reason = reason
            self._stop_event.set()
            self.logger.info("Stop requested", reason=reason)

    async def wait_stopped(self) -> None:
        if self._task is not None:
            await self._task

    def status(self) -> Dict[str, Any]:
        stats = self.completion_tracker.stats
        current = self.tracker.current
        return {
            "state": self.state.value,
            "iteration": self.iteration,
            "idle_iterations": self.idle_iterations,
            "jobs_found": stats.jobs_found,
            "jobs_evaluated": stats.jobs_evaluated,
            "applications_submitted": stats.applications_submitted,
            "pages_visited": stats.pages_visited,
            "processed_count": len(self.processed),
            "current_resource_id": current.id if current else None,
            "stop_reason": self.stop_reason,
        }

    def _begin(self, options: Optional[SearchSettings]) -> bool:
        if self.state == LoopState.RUNNING:
            self.events.warning("Job search is already running")
            return False
        self.options = options or SearchSettings()
        self.planner.max_applications = self.options.max_applications
        self.completion_tracker = CompletionTracker(
            CompletionCriteria.from_settings(self.options.max_applications)
        )
        self.iteration = 0
        self.idle_iterations = 0
        self.stop_reason = None
        self._stop_event = asyncio.Event()
        self.state = LoopState.RUNNING
        return True

    async def _loop(self) -> None:
        self.logger.info("Loop started", **self.options.model_dump())
        self.events.info("Job search loop started")
        try:
            if not self.processed.loaded:
                await self.processed.load()

            while self.is_running:
                self.iteration += 1
                self.completion_tracker.stats.iterations = self.iteration
                try:
                    new_listings = await self.run_iteration()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    self.logger.error("Iteration failed", iteration=self.iteration, error=str(e))
                    self.events.error(f"Error in iteration {self.iteration}: {e}")
                    await self._pause(self.error_cooldown)
                    continue

                if not self._after_iteration(new_listings):
                    break
                await self._pause(self.options.search_delay_seconds)
        finally:
            self.state = LoopState.STOPPED
            self.events.info("Job search loop stopped")
            self.logger.info("Loop stopped", reason=self.stop_reason, iterations=self.iteration)

    def _after_iteration(self, new_listings: int) -> bool:
        if new_listings == 0:
            self.idle_iterations += 1
            if self.idle_iterations >= self.max_idle_iterations:
                self._finish(
                    f"No new listings for {self.idle_iterations} iterations. Search exhausted, stopping."
                )
                return False
            self.events.warning(
                f"No new listings ({self.idle_iterations}/{self.max_idle_iterations}), trying again"
            )
        else:
            self.idle_iterations = 0
            self.completion_tracker.stats.jobs_found += new_listings

        check = self.completion_tracker.check()
        if check.should_complete:
            self._finish(f"Run complete: {check.reason}")
            return False
        return self.is_running

    def _finish(self, message: str) -> None:
        self.events.success(message)
        self.stop(message)

    async def run_iteration(self) -> int:
        """Run one observe-plan-act cycle and return the number of new listings seen."""
        await self.tracker.reclaim_stale(self.stale_tab_age)
        resource, url = await self._working_tab()
        page_type = classify_page(url, self.target_domain)
        self.events.info(f"Iteration {self.iteration}: current page {page_type.value}")

        profile = await self.repository.profile()
        preferences = await self.repository.preferences()
        resume_text = await self.repository.resume_text()

        if page_type == PageType.INDIVIDUAL_JOB:
            return await self._handle_individual_job(resource, url, profile, preferences, resume_text)

        records: Optional[List[ListingRecord]] = None
        if page_type == PageType.JOB_SEARCH:
            await self.repository.set_last_search_url(url)
            records = await self.extractor.extract_listings(resource)
            self.events.info(f"Found {self.extractor.last_page_count} listing(s), {len(records)} new")

        context = RunContext(
            page_type=page_type,
            url=url,
            jobs_found_count=self.extractor.last_page_count if records is not None else 0,
            user_preferences=preferences,
            user_profile=profile,
        )
        self.logger.debug("Run context", **log_run_context(context))

        plan = self.planner.next_plan(context)
        return await self._run_plan(plan, resource, records, profile, preferences, resume_text)

    async def _run_plan(
        self,
        plan: Plan,
        resource: TabResource,
        records: Optional[List[ListingRecord]],
        profile: UserProfile,
        preferences: UserPreferences,
        resume_text: str,
    ) -> int:
        outcomes: List[EvaluationOutcome] = []
        new_listings = 0

        while not plan.is_complete and self.is_running:
            step = plan.next_step()

            if step.kind == ActionKind.EXTRACT:
                if records is None:
                    records = await self.extractor.extract_listings(resource)
                    self.events.info(f"Found {len(records)} new listing(s) after search")
                new_listings = len(records)

            elif step.kind == ActionKind.ANALYZE:
                if records:
                    self.events.info(f"Screening {len(records)} listing(s)")
                    outcomes = await self.evaluator.evaluate_batch(
                        records,
                        resource,
                        profile,
                        preferences,
                        resume_text,
                        should_continue=lambda: self.is_running,
                    )
                    self.completion_tracker.stats.jobs_evaluated += len(outcomes)

            elif step.kind == ActionKind.APPLY_BEST:
                await self._apply_qualifying(outcomes, resource, profile, resume_text)

            elif step.kind == ActionKind.NEXT_PAGE:
                await self._return_to_results(resource)
                result = await self._execute(step, resource)
                if result.success:
                    self.completion_tracker.stats.pages_visited += 1
                    self.events.info("Moved to the next results page")
                else:
                    self.events.warning(f"Could not move to the next page: {result.error}")

            else:
                result = await self._execute(step, resource)
                if step.kind in (ActionKind.NAVIGATE, ActionKind.SEARCH):
                    records = None
                    if not result.success:
                        self.events.warning(f"{step.kind.value} failed: {result.error}")
                if step.kind == ActionKind.SEARCH and result.success:
                    self.events.info(step.description or "Search submitted")
                    if result.data.get("url"):
                        await self.repository.set_last_search_url(result.data["url"])

        return new_listings

    async def _apply_qualifying(
        self,
        outcomes: List[EvaluationOutcome],
        resource: TabResource,
        profile: UserProfile,
        resume_text: str = "",
    ) -> int:
        applied = 0
        for outcome in outcomes:
            if not self.is_running:
                break
            record = outcome.record
            final = outcome.final

            if not outcome.qualifies(self.options.confidence_threshold):
                reason = (final.rationale or "not a fit")[:180]
                self.events.info(f"No match: {record.title}. Reason: {reason}")
                continue

            if self.completion_tracker.stats.applications_submitted >= self.options.max_applications:
                break

            live = await self.repository.submission_live()
            if live:
                self.events.info(f"Live mode: applying to '{record.title}'")
            else:
                self.events.info(f"Dry-run mode: filling form for '{record.title}' without submitting")

            result = await self.executor.apply(
                resource,
                record,
                profile,
                dry_run=not live,
                answer_question=lambda question: self.answers.generate_answer(question, resume_text, profile),
            )
            if result.success:
                applied += 1
                self.completion_tracker.stats.applications_submitted += 1
                total = await self.repository.increment_application_count()
                verb = "Applied to" if live else "Filled form for"
                self.events.success(f"{verb} '{record.title}' ({total} total)")
            else:
                self.events.warning(f"Application failed for '{record.title}': {result.error}")

            await self._pause(self.options.apply_delay_seconds)
        return applied

    async def _handle_individual_job(
        self,
        resource: TabResource,
        url: str,
        profile: UserProfile,
        preferences: UserPreferences,
        resume_text: str,
    ) -> int:
        identity = canonical_link(url) or url
        evaluated = 0

        if identity in self.processed:
            self.events.info("Listing on this page was already screened")
        else:
            base = ListingRecord(identity=identity, title="", link=identity, page_url=url)
            detail = await self.extractor.extract_detail(resource, base)
            if not detail.record.title:
                self.events.warning("Could not read the listing on this page")
            else:
                self.events.info(f"Screening open listing: {detail.record.title}")
                outcome = await self.evaluator.evaluate(
                    detail.record, resource, profile, preferences, resume_text
                )
                evaluated = 1
                self.completion_tracker.stats.jobs_evaluated += 1
                await self._apply_qualifying([outcome], resource, profile, resume_text)

        await self._return_to_results(resource, force=True)
        return evaluated

    async def _return_to_results(self, resource: TabResource, force: bool = False) -> None:
        if not force:
            url = await self._current_url(resource)
            if classify_page(url, self.target_domain) != PageType.INDIVIDUAL_JOB:
                return
        last_search_url = await self.repository.last_search_url()
        step = PlannedAction(
            kind=ActionKind.GO_BACK,
            description="Return to search results",
            parameters={"url": last_search_url} if last_search_url else {},
        )
        result = await self._execute(step, resource)
        if result.success:
            self.events.info("Returned to search results")
        else:
            self.events.warning(f"Could not return to search results: {result.error}")

    async def _execute(self, step: PlannedAction, resource: TabResource) -> ActionResult:
        attempt = 1
        while True:
            result = await self.executor.execute(step, resource)
            if result.success or not result.data.get("retryable") or attempt >= self.retry_policy.max_attempts:
                return result
            delay = self.retry_policy.delay_for(attempt)
            self.logger.warning(
                "Retrying action", kind=step.kind.value, attempt=attempt, delay_seconds=delay
            )
            await self._pause(delay)
            if not self.is_running:
                return result
            attempt += 1

    async def _working_tab(self) -> Tuple[TabResource, str]:
        """Acquire the working tab; a tab that no longer answers is dropped and replaced once."""
        resource = await self.tracker.acquire()
        try:
            return resource, await self._read_url(resource)
        except TransportError as e:
            self.tracker.discard(resource.id, reason=str(e))

        resource = await self.tracker.acquire()
        return resource, await self._read_url(resource)

    async def _read_url(self, resource: TabResource) -> str:
        url = await self.retry_policy.run(
            lambda: self.surface.tab_url(resource.id), description="read tab url"
        )
        self.tracker.observe_navigation(resource.id, url)
        return url

    async def _current_url(self, resource: TabResource) -> str:
        try:
            return await self._read_url(resource)
        except TransportError as e:
            self.logger.warning("Could not read tab url", tab_id=resource.id, error=str(e))
            return resource.current_url

    async def _pause(self, seconds: float) -> None:
        if not seconds or seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
