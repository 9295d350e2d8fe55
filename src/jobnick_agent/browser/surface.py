"""Contract of the page automation surface that drives browser tabs."""

from enum import Enum
from typing import Any, Dict, Optional, Protocol, Tuple

from jobnick_agent.core.models import PageType


class SurfaceAction(str, Enum):
    """Request names understood by the surface inside a tab."""
    PING = "ping"
    PERFORM_SEARCH = "performSearch"
    EXTRACT_LISTINGS = "extractListings"
    EXTRACT_DETAIL = "extractDetail"
    EXPAND_DESCRIPTION = "expandDescription"
    NAVIGATE = "navigate"
    NAVIGATE_NEXT_PAGE = "navigateNextPage"
    GO_BACK = "goBack"
    SCROLL = "scroll"
    APPLY_TO_JOB = "applyToJob"
    FILL_ANSWERS = "fillAnswers"


class PageAutomationSurface(Protocol):
    """
    Request/response surface over browser tabs.

    Every method may raise ``SurfaceNotReadyError`` while the tab is still
    loading; callers retry those. ``send`` returns a mapping that carries at
    least a boolean ``success`` key, plus:

    - ``ping``: ``ready``
    - ``extractListings``: ``jobs`` (list of raw card mappings)
    - ``extractDetail``: ``jobData`` (raw detail mapping)
    - ``applyToJob``: ``submitted``, or ``pending`` with ``questions`` when
      text questions are left for ``fillAnswers`` to complete
    - ``fillAnswers``: ``submitted``
    """

    async def open_tab(self, url: str) -> Tuple[str, str]:
        """Open a tab and return its id and the URL it settled on."""
        ...

    async def close_tab(self, tab_id: str) -> None:
        ...

    async def tab_url(self, tab_id: str) -> str:
        ...

    async def send(
        self,
        tab_id: str,
        action: SurfaceAction,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        ...


def classify_page(url: Optional[str], target_domain: str) -> PageType:
    """Classify a URL as a search results page, a single listing or unknown."""
    if not url or target_domain not in url:
        return PageType.UNKNOWN
    if "/jobs/" in url and "/view/" in url:
        return PageType.INDIVIDUAL_JOB
    if "/jobs" in url:
        return PageType.JOB_SEARCH
    return PageType.UNKNOWN


def is_target_site(url: Optional[str], target_domain: str) -> bool:
    return bool(url) and target_domain in url
