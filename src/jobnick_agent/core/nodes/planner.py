"""
Planner Node: rule-based step generation for one loop iteration.

Plans are built from the observed RunContext only; no model call is needed
to decide what to do next on a job board.
"""

from typing import Any, Dict, List, Optional

from jobnick_agent.browser.surface import is_target_site
from jobnick_agent.config import settings
from jobnick_agent.core.models import ActionKind, PageType, Plan, PlannedAction, RunContext
from jobnick_agent.utils.logging import get_logger, log_function_call, log_run_context

logger = get_logger(__name__)


class PlannerNode:
    """
    Planner Node for deterministic plan generation.

    This node is responsible for:
    1. Returning to the target site when the tab wandered off
    2. Searching when the current page shows no listings
    3. Always ending with extract, analyze, apply and paginate steps
    4. Falling back to a minimal plan instead of failing
    """

    def __init__(
        self,
        target_domain: Optional[str] = None,
        target_url: Optional[str] = None,
        default_query: Optional[str] = None,
        default_location: Optional[str] = None,
        max_steps: Optional[int] = None,
        max_applications: int = 10,
        wait_ms: Optional[int] = None,
    ):
        self.target_domain = target_domain or settings.target_site_domain
        self.target_url = target_url or settings.target_jobs_url
        self.default_query = default_query or settings.default_search_query
        self.default_location = default_location or settings.default_search_location
        self.max_steps = max_steps or settings.max_plan_steps
        self.max_applications = max_applications
        self.wait_ms = settings.default_wait_ms if wait_ms is None else wait_ms
        self.logger = logger.bind(node="planner")

    def __call__(self, context: RunContext) -> Plan:
        return self.next_plan(context)

    def next_plan(self, context: RunContext) -> Plan:
        """
        Build the plan for the current observation.

        Args:
            context: Observation of the live session

        Returns:
            Ordered plan; the minimal search-and-extract plan on any failure
        """
        self.logger.debug(
            "Planning next steps",
            **log_function_call("next_plan"),
            **log_run_context(context),
        )

        try:
            steps = self._build_steps(context)
            plan = Plan(steps=steps, max_steps=self.max_steps)
            self.logger.info("Plan generated", steps=[kind.value for kind in plan.kinds])
            return plan

        except Exception as e:
            self.logger.error("Plan generation failed, using fallback plan", error=str(e))
            return self._create_fallback_plan()

    def _build_steps(self, context: RunContext) -> List[PlannedAction]:
        steps: List[PlannedAction] = []

        if not is_target_site(context.url, self.target_domain) or context.page_type == PageType.UNKNOWN:
            steps.append(PlannedAction(
                kind=ActionKind.NAVIGATE,
                description="Open the job search page",
                parameters={"url": self.target_url},
                expected_outcome="Tab shows the target job board",
            ))

        if context.jobs_found_count == 0:
            query, location = self._search_terms(context)
            steps.append(PlannedAction(
                kind=ActionKind.SEARCH,
                description=f"Search for '{query}' in {location}",
                parameters={"query": query, "location": location, **self._search_filters(context)},
                expected_outcome="Search results are listed",
            ))
            steps.append(PlannedAction(
                kind=ActionKind.WAIT,
                description="Let the results load",
                parameters={"duration_ms": self.wait_ms},
            ))

        steps.extend([
            PlannedAction(
                kind=ActionKind.EXTRACT,
                description="Extract listings from the page",
                expected_outcome="Unseen listings are collected",
            ),
            PlannedAction(
                kind=ActionKind.ANALYZE,
                description="Screen the new listings",
                parameters={"criteria": context.user_preferences.model_dump()},
                expected_outcome="Each listing has an evaluation",
            ),
            PlannedAction(
                kind=ActionKind.APPLY_BEST,
                description="Apply to the listings that passed screening",
                parameters={"max_applications": self.max_applications},
                expected_outcome="Qualifying applications are submitted",
            ),
            PlannedAction(
                kind=ActionKind.NEXT_PAGE,
                description="Move to the next results page",
                expected_outcome="Next page of listings is shown",
            ),
        ])
        return steps

    def _search_terms(self, context: RunContext) -> tuple:
        preferences = context.user_preferences
        query = context.search_query or _first(preferences.job_titles) or self.default_query
        location = context.location or _first(preferences.location_preference) or self.default_location
        return query, location

    @staticmethod
    def _search_filters(context: RunContext) -> Dict[str, Any]:
        """Site filters from preferences; unset filters are left out."""
        preferences = context.user_preferences
        filters: Dict[str, Any] = {}
        if preferences.experience_filters:
            filters["experience_filters"] = list(preferences.experience_filters)
        if preferences.date_posted and preferences.date_posted != "any":
            filters["date_posted"] = preferences.date_posted
        if preferences.job_type_filters:
            filters["job_type_filters"] = list(preferences.job_type_filters)
        return filters

    def _create_fallback_plan(self) -> Plan:
        return Plan(
            steps=[
                PlannedAction(
                    kind=ActionKind.SEARCH,
                    description="Search with default terms",
                    parameters={"query": self.default_query, "location": self.default_location},
                ),
                PlannedAction(kind=ActionKind.EXTRACT, description="Extract listings from the page"),
            ],
            max_steps=self.max_steps,
            is_fallback=True,
        )


def _first(value: str) -> str:
    for part in (value or "").split(","):
        if part.strip():
            return part.strip()
    return ""


def create_planner_node(max_applications: int = 10, **overrides) -> PlannerNode:
    """
    Factory function to create a planner node.

    Args:
        max_applications: Cap carried by the APPLY_BEST step
        **overrides: Constructor overrides, mostly for tests

    Returns:
        Configured PlannerNode instance
    """
    return PlannerNode(max_applications=max_applications, **overrides)
