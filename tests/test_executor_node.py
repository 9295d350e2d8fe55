"""Tests for the Executor Node."""

import asyncio

import pytest
import pytest_asyncio

from jobnick_agent.browser.surface import SurfaceAction
from jobnick_agent.core.errors import SurfaceActionError, SurfaceNotReadyError
from jobnick_agent.core.models import ActionKind, PlannedAction, TabStatus, UserProfile
from jobnick_agent.core.nodes.executor import ExecutorNode, ExecutorState, create_executor_node
from jobnick_agent.jobs.extractor import normalize_listing

from conftest import make_job

NO_DELAYS = {kind: 0 for kind in ActionKind}


class TestExecutorNode:
    """Test cases for ExecutorNode functionality."""

    @pytest.fixture
    def executor(self, surface, tracker):
        return create_executor_node(surface, tracker=tracker, settle_delays=NO_DELAYS)

    @pytest_asyncio.fixture
    async def resource(self, tracker):
        return await tracker.acquire()

    @pytest.mark.asyncio
    async def test_navigate_updates_tracker(self, executor, surface, tracker, resource):
        action = PlannedAction(kind=ActionKind.NAVIGATE, parameters={"url": "https://example.com/"})

        result = await executor.execute(action, resource)

        assert result.success is True
        assert result.data["url"] == "https://example.com/"
        assert tracker.get(resource.id).status == TabStatus.NAVIGATED_AWAY
        assert executor.state == ExecutorState.IDLE
        assert result.execution_time is not None

    @pytest.mark.asyncio
    async def test_navigate_defaults_to_target_url(self, surface, tracker, resource):
        executor = ExecutorNode(surface, tracker=tracker, target_url="https://www.linkedin.com/jobs/",
                                settle_delays=NO_DELAYS)

        await executor.execute(PlannedAction(kind=ActionKind.NAVIGATE), resource)

        assert surface.payloads(SurfaceAction.NAVIGATE) == [{"url": "https://www.linkedin.com/jobs/"}]

    @pytest.mark.asyncio
    async def test_search_sends_query_and_location(self, executor, surface, resource):
        action = PlannedAction(kind=ActionKind.SEARCH, parameters={"query": "python", "location": "Haifa"})

        result = await executor.execute(action, resource)

        assert result.success is True
        assert surface.payloads(SurfaceAction.PERFORM_SEARCH) == [{"query": "python", "location": "Haifa"}]
        assert "keywords=python" in result.data["url"]

    @pytest.mark.asyncio
    async def test_extract_reports_count(self, executor, surface, resource):
        surface.pages = [[make_job(1), make_job(2)]]

        result = await executor.execute(PlannedAction(kind=ActionKind.EXTRACT), resource)

        assert result.data["jobs_found"] == 2

    @pytest.mark.asyncio
    async def test_next_page_failure_is_structured(self, executor, resource):
        result = await executor.execute(PlannedAction(kind=ActionKind.NEXT_PAGE), resource)

        assert result.success is False
        assert result.error == "No next page"
        assert executor.state == ExecutorState.FAILED

    @pytest.mark.asyncio
    async def test_go_back_passes_url(self, executor, surface, resource):
        action = PlannedAction(kind=ActionKind.GO_BACK, parameters={"url": "https://www.linkedin.com/jobs/search/"})

        result = await executor.execute(action, resource)

        assert result.success is True
        assert surface.payloads(SurfaceAction.GO_BACK) == [{"url": "https://www.linkedin.com/jobs/search/"}]

    @pytest.mark.asyncio
    async def test_wait_and_bookkeeping_steps(self, executor, resource):
        wait = await executor.execute(PlannedAction(kind=ActionKind.WAIT, parameters={"duration_ms": 0}), resource)
        analyze = await executor.execute(PlannedAction(kind=ActionKind.ANALYZE, description="Screen"), resource)

        assert wait.success is True
        assert analyze.success is True
        assert analyze.message == "Screen"

    @pytest.mark.asyncio
    async def test_unknown_kind_is_structured_failure(self, executor, resource):
        """An action kind outside the dispatch table never raises."""
        action = PlannedAction.model_construct(kind="TELEPORT", description="", parameters={})

        result = await executor.execute(action, resource)

        assert result.success is False
        assert "Unknown action kind" in result.error
        assert executor.state == ExecutorState.FAILED

    @pytest.mark.asyncio
    async def test_not_ready_failure_is_retryable(self, executor, surface, resource):
        surface.fail(SurfaceAction.NAVIGATE, SurfaceNotReadyError("loading"))

        result = await executor.execute(PlannedAction(kind=ActionKind.NAVIGATE), resource)

        assert result.success is False
        assert result.data["retryable"] is True

    @pytest.mark.asyncio
    async def test_action_failure_is_not_retryable(self, executor, surface, resource):
        surface.fail(SurfaceAction.SCROLL, SurfaceActionError("detached"))

        result = await executor.execute(PlannedAction(kind=ActionKind.SCROLL), resource)

        assert result.success is False
        assert result.data["retryable"] is False

    @pytest.mark.asyncio
    async def test_single_flight(self, surface, tracker, resource):
        """A second action is rejected while one is executing."""
        release = asyncio.Event()
        original_send = surface.send

        async def slow_send(tab_id, action, payload=None):
            if action == SurfaceAction.NAVIGATE:
                await release.wait()
            return await original_send(tab_id, action, payload)

        surface.send = slow_send
        executor = ExecutorNode(surface, tracker=tracker, settle_delays=NO_DELAYS)

        first = asyncio.create_task(executor.execute(PlannedAction(kind=ActionKind.NAVIGATE), resource))
        await asyncio.sleep(0)
        assert executor.is_busy

        second = await executor.execute(PlannedAction(kind=ActionKind.SCROLL), resource)
        release.set()
        first_result = await first

        assert second.success is False
        assert "busy" in second.error
        assert first_result.success is True
        assert surface.actions(SurfaceAction.SCROLL) == []

    @pytest.mark.asyncio
    async def test_history_is_bounded(self, surface, tracker, resource):
        executor = ExecutorNode(surface, tracker=tracker, settle_delays=NO_DELAYS, history_size=3)

        for _ in range(5):
            await executor.execute(PlannedAction(kind=ActionKind.SCROLL), resource)

        assert len(executor.history) == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("dry_run", [True, False])
    async def test_apply_forwards_dry_run_flag(self, executor, surface, resource, dry_run):
        record = normalize_listing(make_job(1))
        profile = UserProfile(full_name="Dana Levi", email="dana@example.com", phone="050-0000000")

        result = await executor.apply(resource, record, profile, dry_run=dry_run)

        payload = surface.payloads(SurfaceAction.APPLY_TO_JOB)[0]
        assert payload["testMode"] is dry_run
        assert payload["profile"]["email"] == "dana@example.com"
        assert payload["job"]["identity"] == record.identity
        assert result.success is True
        assert result.data["dry_run"] is dry_run
        assert result.data["submitted"] is (not dry_run)

    @pytest.mark.asyncio
    async def test_apply_transport_failure(self, executor, surface, resource):
        surface.fail(SurfaceAction.APPLY_TO_JOB, SurfaceActionError("no apply button"))

        result = await executor.apply(resource, normalize_listing(make_job(1)), None, dry_run=False)

        assert result.success is False
        assert executor.state == ExecutorState.FAILED

    @pytest.mark.asyncio
    async def test_apply_unexpected_error_frees_executor(self, executor, surface, resource):
        """A non-transport error inside apply never leaves the executor busy."""
        surface.fail(SurfaceAction.APPLY_TO_JOB, ValueError("form layout changed"))

        result = await executor.apply(resource, normalize_listing(make_job(1)), None, dry_run=True)

        assert result.success is False
        assert "form layout changed" in result.error
        assert executor.state == ExecutorState.FAILED
        assert executor.current_action is None
        assert executor.is_busy is False
        follow_up = await executor.execute(PlannedAction(kind=ActionKind.WAIT, parameters={"duration_ms": 0}), resource)
        assert follow_up.success is True

    @pytest.mark.asyncio
    async def test_apply_answers_pending_questions(self, executor, surface, resource):
        surface.responses[SurfaceAction.APPLY_TO_JOB] = {
            "success": True,
            "pending": True,
            "questions": ["Why this company?", "Anything else?"],
        }
        asked = []

        async def answer(question):
            asked.append(question)
            return "Because of the product" if question == "Why this company?" else ""

        result = await executor.apply(
            resource, normalize_listing(make_job(1)), None, dry_run=True, answer_question=answer
        )

        assert asked == ["Why this company?", "Anything else?"]
        assert surface.payloads(SurfaceAction.FILL_ANSWERS) == [
            {"answers": {"Why this company?": "Because of the product"}, "testMode": True}
        ]
        assert result.success is True
        assert result.data["answered"] == 1
        assert result.data["submitted"] is False

    @pytest.mark.asyncio
    async def test_apply_without_answer_source_still_completes_form(self, executor, surface, resource):
        surface.responses[SurfaceAction.APPLY_TO_JOB] = {"success": True, "pending": True, "questions": ["Why?"]}

        result = await executor.apply(resource, normalize_listing(make_job(1)), None, dry_run=False)

        assert surface.payloads(SurfaceAction.FILL_ANSWERS) == [{"answers": {}, "testMode": False}]
        assert result.data["submitted"] is True

    @pytest.mark.asyncio
    async def test_search_forwards_site_filters(self, executor, surface, resource):
        action = PlannedAction(
            kind=ActionKind.SEARCH,
            parameters={
                "query": "python",
                "location": "Haifa",
                "experience_filters": ["entry", "associate"],
                "date_posted": "week",
                "job_type_filters": ["full-time"],
            },
        )

        await executor.execute(action, resource)

        assert surface.payloads(SurfaceAction.PERFORM_SEARCH) == [{
            "query": "python",
            "location": "Haifa",
            "experienceFilters": ["entry", "associate"],
            "datePosted": "week",
            "jobTypeFilters": ["full-time"],
        }]
