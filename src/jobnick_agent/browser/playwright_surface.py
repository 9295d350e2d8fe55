"""Page automation surface backed by Playwright."""

import asyncio
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode
from uuid import uuid4

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from jobnick_agent.browser.surface import SurfaceAction
from jobnick_agent.config import settings
from jobnick_agent.core.errors import SurfaceActionError, SurfaceNotReadyError
from jobnick_agent.utils.logging import get_logger

logger = get_logger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_SELECTORS: Dict[str, str] = {
    "job_card": "li.jobs-search-results__list-item, li.scaffold-layout__list-item, div.job-card-container",
    "card_title": "a.job-card-list__title--link, .job-card-list__title, .job-card-container__link",
    "card_company": ".artdeco-entity-lockup__subtitle, .job-card-container__primary-description",
    "card_location": ".artdeco-entity-lockup__caption, .job-card-container__metadata-item",
    "card_snippet": ".job-card-list__insight, .job-card-container__footer-item",
    "card_link": "a[href*='/jobs/view/']",
    "detail_title": ".job-details-jobs-unified-top-card__job-title, h1",
    "detail_company": ".job-details-jobs-unified-top-card__company-name",
    "detail_location": ".job-details-jobs-unified-top-card__primary-description-container",
    "detail_description": "#job-details, .jobs-description__content",
    "detail_salary": ".job-details-jobs-unified-top-card__job-insight, .salary",
    "see_more": "button.jobs-description__footer-button, button[aria-label*='see more' i]",
    "next_page": "button[aria-label='View next page'], button.jobs-search-pagination__button--next",
    "apply_button": "button.jobs-apply-button",
    "phone_input": "input[id*='phoneNumber']",
    "email_input": "input[id*='email']",
    "submit_button": "button[aria-label='Submit application']",
    "form_modal": ".jobs-easy-apply-modal, div[role='dialog']",
    "text_question": "textarea, input[type='text']",
}

EXPERIENCE_CODES = {
    "internship": "1",
    "entry": "2",
    "entry level": "2",
    "associate": "3",
    "mid-senior": "4",
    "mid-senior level": "4",
    "director": "5",
    "executive": "6",
}
DATE_POSTED_CODES = {"past 24 hours": "r86400", "day": "r86400", "week": "r604800", "month": "r2592000"}
JOB_TYPE_CODES = {
    "full-time": "F",
    "part-time": "P",
    "contract": "C",
    "temporary": "T",
    "internship": "I",
    "volunteer": "V",
}


def _codes(values: Any, mapping: Dict[str, str]) -> str:
    if isinstance(values, str):
        values = values.split(",")
    codes: List[str] = []
    for value in values or []:
        value = str(value).strip()
        code = mapping.get(value.lower(), value)
        if code and code not in codes:
            codes.append(code)
    return ",".join(codes)


def build_search_params(payload: Dict[str, Any]) -> Dict[str, str]:
    """
    Query parameters for a search URL.

    Filter values may be names ("entry", "week", "full-time") or the site's
    own codes, which pass through unchanged.
    """
    params = {"keywords": payload.get("query", ""), "location": payload.get("location", "")}
    experience = _codes(payload.get("experienceFilters"), EXPERIENCE_CODES)
    if experience:
        params["f_E"] = experience
    date_posted = str(payload.get("datePosted") or "").strip()
    if date_posted and date_posted.lower() != "any":
        params["f_TPR"] = DATE_POSTED_CODES.get(date_posted.lower(), date_posted)
    job_types = _codes(payload.get("jobTypeFilters"), JOB_TYPE_CODES)
    if job_types:
        params["f_JT"] = job_types
    return params


class PlaywrightSurface:
    """
    Drives one Chromium context; every tab id maps to one Playwright page.

    Timeouts are reported as ``SurfaceNotReadyError`` so callers retry them;
    any other Playwright failure becomes ``SurfaceActionError``.
    """

    def __init__(
        self,
        headless: bool = True,
        user_data_dir: Optional[str] = None,
        viewport_size: tuple = (1920, 1080),
        timeout_seconds: Optional[int] = None,
        search_url: str = "https://www.linkedin.com/jobs/search/",
        selectors: Optional[Dict[str, str]] = None,
    ):
        self.headless = headless
        self.user_data_dir = user_data_dir
        self.viewport_size = viewport_size
        self.timeout_ms = int((timeout_seconds or settings.browser_timeout) * 1000)
        self.search_url = search_url
        self.selectors = {**DEFAULT_SELECTORS, **(selectors or {})}
        self.logger = logger.bind(component="playwright_surface")

        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.pages: Dict[str, Page] = {}
        self.is_initialized = False

    async def initialize(self) -> None:
        """Launch the browser and create the shared context."""
        if self.is_initialized:
            return

        viewport = {"width": self.viewport_size[0], "height": self.viewport_size[1]}
        self.playwright = await async_playwright().start()
        if self.user_data_dir:
            self.context = await self.playwright.chromium.launch_persistent_context(
                self.user_data_dir,
                headless=self.headless,
                viewport=viewport,
                user_agent=USER_AGENT,
            )
        else:
            self.browser = await self.playwright.chromium.launch(headless=self.headless)
            self.context = await self.browser.new_context(viewport=viewport, user_agent=USER_AGENT)
        self.context.set_default_timeout(self.timeout_ms)

        self.is_initialized = True
        self.logger.info(
            "Playwright surface initialized",
            headless=self.headless,
            persistent=bool(self.user_data_dir),
        )

    async def open_tab(self, url: str) -> Tuple[str, str]:
        await self.initialize()
        page = await self.context.new_page()
        tab_id = uuid4().hex[:12]
        self.pages[tab_id] = page
        try:
            await page.goto(url, wait_until="domcontentloaded")
        except PlaywrightTimeoutError:
            self.logger.warning("Initial navigation timed out", tab_id=tab_id, url=url)
        self.logger.info("Tab opened", tab_id=tab_id, url=page.url)
        return tab_id, page.url

    async def close_tab(self, tab_id: str) -> None:
        page = self.pages.pop(tab_id, None)
        if page is None:
            raise SurfaceActionError(f"Unknown tab {tab_id}", tab_id=tab_id)
        try:
            await page.close()
        except PlaywrightError as e:
            raise SurfaceActionError(str(e), tab_id=tab_id) from e

    async def tab_url(self, tab_id: str) -> str:
        return self._page(tab_id).url

    async def send(
        self,
        tab_id: str,
        action: SurfaceAction,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        page = self._page(tab_id)
        payload = payload or {}
        handlers = {
            SurfaceAction.PING: self._ping,
            SurfaceAction.PERFORM_SEARCH: self._perform_search,
            SurfaceAction.EXTRACT_LISTINGS: self._extract_listings,
            SurfaceAction.EXTRACT_DETAIL: self._extract_detail,
            SurfaceAction.EXPAND_DESCRIPTION: self._expand_description,
            SurfaceAction.NAVIGATE: self._navigate,
            SurfaceAction.NAVIGATE_NEXT_PAGE: self._next_page,
            SurfaceAction.GO_BACK: self._go_back,
            SurfaceAction.SCROLL: self._scroll,
            SurfaceAction.APPLY_TO_JOB: self._apply_to_job,
            SurfaceAction.FILL_ANSWERS: self._fill_answers,
        }
        try:
            return await handlers[action](page, payload)
        except PlaywrightTimeoutError as e:
            raise SurfaceNotReadyError(str(e), action=action.value, tab_id=tab_id) from e
        except PlaywrightError as e:
            raise SurfaceActionError(str(e), action=action.value, tab_id=tab_id) from e

    async def close(self) -> None:
        """Close every page and the browser."""
        for page in list(self.pages.values()):
            try:
                await page.close()
            except PlaywrightError as e:
                self.logger.debug("Page already closed", error=str(e))
        self.pages.clear()
        if self.context:
            await self.context.close()
        if self.browser:
            await self.browser.close()
        if self.playwright:
            await self.playwright.stop()
        self.is_initialized = False
        self.logger.info("Playwright surface closed")

    def _page(self, tab_id: str) -> Page:
        page = self.pages.get(tab_id)
        if page is None or page.is_closed():
            raise SurfaceNotReadyError(f"Tab {tab_id} is not available", tab_id=tab_id)
        return page

    async def _ping(self, page: Page, payload: Dict[str, Any]) -> Dict[str, Any]:
        state = await page.evaluate("document.readyState")
        return {"success": True, "ready": state in ("interactive", "complete")}

    async def _perform_search(self, page: Page, payload: Dict[str, Any]) -> Dict[str, Any]:
        params = build_search_params(payload)
        await page.goto(f"{self.search_url}?{urlencode(params)}", wait_until="domcontentloaded")
        return {"success": True, "url": page.url}

    async def _navigate(self, page: Page, payload: Dict[str, Any]) -> Dict[str, Any]:
        await page.goto(payload["url"], wait_until="domcontentloaded")
        return {"success": True, "url": page.url}

    async def _extract_listings(self, page: Page, payload: Dict[str, Any]) -> Dict[str, Any]:
        jobs: List[Dict[str, Any]] = []
        for card in await page.query_selector_all(self.selectors["job_card"]):
            link_el = await card.query_selector(self.selectors["card_link"])
            href = await link_el.get_attribute("href") if link_el else None
            jobs.append({
                "title": await self._text(card, "card_title"),
                "company": await self._text(card, "card_company"),
                "location": await self._text(card, "card_location"),
                "description": await self._text(card, "card_snippet"),
                "link": self._absolute(page, href),
            })
        return {"success": True, "jobs": jobs}

    async def _extract_detail(self, page: Page, payload: Dict[str, Any]) -> Dict[str, Any]:
        link = payload.get("link")
        if link and not page.url.startswith(link):
            path = "/" + link.split("/", 3)[-1] if link.startswith("http") else link
            card_link = await page.query_selector(f"a[href*='{path}']")
            if card_link is not None:
                await card_link.click()
            else:
                await page.goto(link, wait_until="domcontentloaded")

        description = await self._text(page, "detail_description")
        return {
            "success": True,
            "jobData": {
                "title": await self._text(page, "detail_title"),
                "company": await self._text(page, "detail_company"),
                "location": await self._text(page, "detail_location"),
                "description": description,
                "salary": await self._text(page, "detail_salary"),
                "link": page.url,
            },
        }

    async def _expand_description(self, page: Page, payload: Dict[str, Any]) -> Dict[str, Any]:
        button = await page.query_selector(self.selectors["see_more"])
        if button is None:
            return {"success": False, "error": "No expand control"}
        await button.click()
        return {"success": True}

    async def _next_page(self, page: Page, payload: Dict[str, Any]) -> Dict[str, Any]:
        button = await page.query_selector(self.selectors["next_page"])
        if button is None or not await button.is_enabled():
            return {"success": False, "error": "No next page"}
        await button.click()
        return {"success": True}

    async def _go_back(self, page: Page, payload: Dict[str, Any]) -> Dict[str, Any]:
        target = payload.get("url")
        if target:
            await page.goto(target, wait_until="domcontentloaded")
        else:
            await page.go_back(wait_until="domcontentloaded")
        return {"success": True, "url": page.url}

    async def _scroll(self, page: Page, payload: Dict[str, Any]) -> Dict[str, Any]:
        await page.mouse.wheel(0, int(payload.get("pixels", 2000)))
        return {"success": True}

    async def _apply_to_job(self, page: Page, payload: Dict[str, Any]) -> Dict[str, Any]:
        job = payload.get("job", {})
        profile = payload.get("profile", {})
        dry_run = bool(payload.get("testMode", False))

        if job.get("link") and job["link"] != page.url:
            await page.goto(job["link"], wait_until="domcontentloaded")

        button = await page.query_selector(self.selectors["apply_button"])
        if button is None:
            return {"success": False, "error": "No apply button on listing"}
        await button.click()
        await asyncio.sleep(1)

        for field_name, key in (("phone_input", "phone"), ("email_input", "email")):
            value = profile.get(key)
            field = await page.query_selector(self.selectors[field_name])
            if value and field is not None and not await field.input_value():
                await field.fill(value)

        questions = [label for label, _ in await self._open_questions(page)]
        if questions:
            return {"success": True, "pending": True, "questions": questions}
        return await self._finish_application(page, dry_run)

    async def _fill_answers(self, page: Page, payload: Dict[str, Any]) -> Dict[str, Any]:
        answers = payload.get("answers") or {}
        for label, field in await self._open_questions(page):
            if answers.get(label):
                await field.fill(answers[label])
        return await self._finish_application(page, bool(payload.get("testMode", False)))

    async def _open_questions(self, page: Page) -> List[Tuple[str, Any]]:
        """Empty free-text fields in the application form, keyed by their label."""
        root = await page.query_selector(self.selectors["form_modal"]) or page
        found: List[Tuple[str, Any]] = []
        for field in await root.query_selector_all(self.selectors["text_question"]):
            if await field.input_value():
                continue
            label = await field.evaluate(
                "el => ((el.labels && el.labels[0] && el.labels[0].innerText)"
                " || el.getAttribute('aria-label') || el.placeholder || '').trim()"
            )
            if label:
                found.append((label, field))
        return found

    async def _finish_application(self, page: Page, dry_run: bool) -> Dict[str, Any]:
        if dry_run:
            await page.keyboard.press("Escape")
            return {"success": True, "submitted": False}

        submit = await page.query_selector(self.selectors["submit_button"])
        if submit is None:
            return {"success": False, "error": "Multi-step application form is not supported"}
        await submit.click()
        return {"success": True, "submitted": True}

    async def _text(self, root: Any, selector_key: str) -> str:
        element = await root.query_selector(self.selectors[selector_key])
        if element is None:
            return ""
        return (await element.inner_text()).strip()

    @staticmethod
    def _absolute(page: Page, href: Optional[str]) -> Optional[str]:
        if not href:
            return None
        href = href.split("?")[0]
        if href.startswith("http"):
            return href
        origin = "/".join(page.url.split("/")[:3])
        return f"{origin}{href}"
