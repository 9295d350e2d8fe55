"""Shared fakes and fixtures for the Jobnick Agent tests."""

import json
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pytest

from jobnick_agent.browser.surface import SurfaceAction
from jobnick_agent.browser.tabs import ResourceTracker
from jobnick_agent.core.events import StatusChannel
from jobnick_agent.core.retry import RetryPolicy
from jobnick_agent.memory.store import InMemoryStateStore, ProcessedSet

SEARCH_URL = "https://www.linkedin.com/jobs/search/"
JOBS_URL = "https://www.linkedin.com/jobs/"


def make_job(n: int, **overrides: Any) -> Dict[str, Any]:
    """Raw listing card as returned by extractListings."""
    job = {
        "title": f"Python Developer {n}",
        "company": f"Company {n}",
        "location": "Tel Aviv, Israel",
        "description": f"Backend role number {n} working with Python and FastAPI",
        "link": f"https://www.linkedin.com/jobs/view/{1000 + n}/?trk=search",
    }
    job.update(overrides)
    return job


def make_detail(n: int, length: int = 400) -> Dict[str, Any]:
    """Raw detail payload as returned by extractDetail."""
    return {
        "title": f"Python Developer {n}",
        "company": f"Company {n}",
        "location": "Tel Aviv, Israel",
        "description": ("Full description for role %d. " % n) * (length // 30 + 1),
        "salary": "$120k - $150k",
    }


def result_json(should_apply: bool, confidence: float, reasoning: str = "scripted") -> str:
    return json.dumps({
        "shouldApply": should_apply,
        "confidence": confidence,
        "reasoning": reasoning,
        "score": int(confidence * 100),
    })


class FakeSurface:
    """
    In-memory page automation surface.

    Result pages are scripted as lists of raw cards; ``search`` and
    ``navigateNextPage`` move between them. Failures can be queued per
    action as exceptions raised on the next matching request.
    """

    def __init__(
        self,
        pages: Optional[List[List[Dict[str, Any]]]] = None,
        details: Optional[Dict[str, Dict[str, Any]]] = None,
        start_url: str = SEARCH_URL,
        not_ready_pings: int = 0,
    ):
        self.pages = pages if pages is not None else [[]]
        self.details = details or {}
        self.start_url = start_url
        self.not_ready_pings = not_ready_pings
        self.page_index = 0
        self.urls: Dict[str, str] = {}
        self.closed: List[str] = []
        self.calls: List[Tuple[str, SurfaceAction, Dict[str, Any]]] = []
        self.failures: Dict[SurfaceAction, List[Exception]] = {}
        self.responses: Dict[SurfaceAction, Dict[str, Any]] = {}
        self.next_ids: List[str] = []
        self._counter = 0

    def fail(self, action: SurfaceAction, *errors: Exception) -> None:
        self.failures.setdefault(action, []).extend(errors)

    def actions(self, action: Optional[SurfaceAction] = None) -> List[SurfaceAction]:
        return [a for _, a, _ in self.calls if action is None or a == action]

    def payloads(self, action: SurfaceAction) -> List[Dict[str, Any]]:
        return [p for _, a, p in self.calls if a == action]

    async def open_tab(self, url: str) -> Tuple[str, str]:
        if self.next_ids:
            tab_id = self.next_ids.pop(0)
        else:
            self._counter += 1
            tab_id = f"tab-{self._counter}"
        self.urls[tab_id] = self.start_url
        return tab_id, self.start_url

    async def close_tab(self, tab_id: str) -> None:
        self.closed.append(tab_id)
        self.urls.pop(tab_id, None)

    async def tab_url(self, tab_id: str) -> str:
        return self.urls.get(tab_id, "")

    async def send(
        self,
        tab_id: str,
        action: SurfaceAction,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        payload = payload or {}
        self.calls.append((tab_id, action, payload))

        queued = self.failures.get(action)
        if queued:
            raise queued.pop(0)
        if action in self.responses:
            return self.responses[action]

        if action == SurfaceAction.PING:
            if self.not_ready_pings > 0:
                self.not_ready_pings -= 1
                return {"success": True, "ready": False}
            return {"success": True, "ready": True}

        if action == SurfaceAction.EXTRACT_LISTINGS:
            jobs = self.pages[self.page_index] if self.page_index < len(self.pages) else []
            return {"success": True, "jobs": [dict(job) for job in jobs]}

        if action == SurfaceAction.EXTRACT_DETAIL:
            link = payload.get("link") or self.urls.get(tab_id, "")
            detail = self.details.get(link.split("?")[0].rstrip("/"), {})
            return {"success": True, "jobData": dict(detail)}

        if action == SurfaceAction.PERFORM_SEARCH:
            self.page_index = 0
            self.urls[tab_id] = f"{SEARCH_URL}?keywords={payload.get('query', '')}"
            return {"success": True, "url": self.urls[tab_id]}

        if action == SurfaceAction.NAVIGATE:
            self.urls[tab_id] = payload["url"]
            return {"success": True, "url": payload["url"]}

        if action == SurfaceAction.NAVIGATE_NEXT_PAGE:
            if self.page_index + 1 >= len(self.pages):
                return {"success": False, "error": "No next page"}
            self.page_index += 1
            return {"success": True}

        if action == SurfaceAction.GO_BACK:
            if payload.get("url"):
                self.urls[tab_id] = payload["url"]
            return {"success": True, "url": self.urls.get(tab_id, "")}

        if action == SurfaceAction.APPLY_TO_JOB:
            return {"success": True, "submitted": not payload.get("testMode", False)}

        if action == SurfaceAction.FILL_ANSWERS:
            return {"success": True, "submitted": not payload.get("testMode", False)}

        return {"success": True}


Script = Union[str, Exception, Callable[[str], str]]


class ScriptedCompletion:
    """Completion service answering prescreen, deep and form-question prompts from a script."""

    def __init__(
        self,
        prescreen: Script = "",
        deep: Script = "",
        configured: bool = True,
        answer: Script = "Scripted answer",
    ):
        self.prescreen = prescreen
        self.deep = deep
        self.answer = answer
        self.configured = configured
        self.prompts: List[str] = []
        self.credentials: List[str] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    def set_credential(self, api_key: str) -> None:
        self.credentials.append(api_key)
        self.configured = bool(api_key)

    @property
    def deep_prompts(self) -> List[str]:
        return [p for p in self.prompts if "JOB DESCRIPTION (full text)" in p]

    @property
    def answer_prompts(self) -> List[str]:
        return [p for p in self.prompts if "QUESTION:" in p]

    @property
    def prescreen_prompts(self) -> List[str]:
        return [p for p in self.prompts if "JOB CARD:" in p]

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if "QUESTION:" in prompt:
            script = self.answer
        elif "JOB DESCRIPTION (full text)" in prompt:
            script = self.deep
        else:
            script = self.prescreen
        if isinstance(script, Exception):
            raise script
        if callable(script):
            return script(prompt)
        return script


@pytest.fixture
def fast_retry():
    """Retry policy without delays."""
    return RetryPolicy(max_attempts=3, base_delay=0, backoff_factor=2.0, max_delay=0)


@pytest.fixture
def events():
    return StatusChannel(buffer_size=500)


@pytest.fixture
def store():
    return InMemoryStateStore()


@pytest.fixture
def processed(store):
    return ProcessedSet(store)


@pytest.fixture
def surface():
    return FakeSurface()


@pytest.fixture
def tracker(surface, events):
    return ResourceTracker(
        surface,
        events=events,
        settle_seconds=0,
        readiness_attempts=3,
        readiness_interval=0,
    )
