"""Normalization of raw listing data returned by the page automation surface."""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Set

from jobnick_agent.browser.surface import PageAutomationSurface, SurfaceAction
from jobnick_agent.config import settings
from jobnick_agent.core.errors import TransportError
from jobnick_agent.core.events import StatusChannel
from jobnick_agent.core.models import ListingMetadata, ListingRecord, TabResource
from jobnick_agent.core.retry import RetryPolicy
from jobnick_agent.memory.store import ProcessedSet
from jobnick_agent.utils.logging import get_logger

logger = get_logger(__name__)

SENIOR_TERMS = ("senior", "lead", "principal")
JUNIOR_TERMS = ("junior", "entry", "associate")
MANAGEMENT_TERMS = ("manager", "director", "head")


@dataclass
class DetailExtraction:
    """Result of enriching a listing with its detail page."""
    record: ListingRecord
    degraded: bool = False
    attempts: int = 0


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split())


def canonical_link(link: Optional[str]) -> Optional[str]:
    """Drop tracking parameters and trailing slashes from a listing link."""
    if not link:
        return None
    link = str(link).strip().split("?")[0].split("#")[0].rstrip("/")
    return link or None


def listing_identity(raw: Mapping[str, Any]) -> str:
    """Stable key for a raw listing: its canonical link, else title|company|location."""
    link = canonical_link(raw.get("link"))
    if link:
        return link
    return "|".join(
        _clean(raw.get(key)) for key in ("title", "company", "location")
    )


def derive_metadata(title: str, location: str, description: str = "") -> ListingMetadata:
    """Keyword rules for level, remoteness and urgency."""
    title_lower = (title or "").lower()
    location_lower = (location or "").lower()
    text = f"{title_lower} {(description or '').lower()}"

    if any(term in title_lower for term in SENIOR_TERMS):
        level = "senior"
    elif any(term in title_lower for term in JUNIOR_TERMS):
        level = "junior"
    elif any(term in title_lower for term in MANAGEMENT_TERMS):
        level = "management"
    else:
        level = "mid"

    if "remote" in location_lower or "work from home" in location_lower:
        remoteness = "remote"
    elif "hybrid" in location_lower:
        remoteness = "hybrid"
    else:
        remoteness = "onsite"

    if "urgent" in text or "immediate" in text:
        urgency = "high"
    elif "asap" in text:
        urgency = "medium"
    else:
        urgency = "low"

    return ListingMetadata(level=level, remoteness=remoteness, urgency=urgency)


def normalize_listing(raw: Mapping[str, Any], page_url: str = "") -> Optional[ListingRecord]:
    """Build a record from a raw card; cards without a title are rejected."""
    title = _clean(raw.get("title"))
    if not title:
        return None

    employer = _clean(raw.get("company") or raw.get("employer"))
    location = _clean(raw.get("location"))
    snippet = _clean(raw.get("description") or raw.get("snippet"))

    return ListingRecord(
        identity=listing_identity({**raw, "title": title, "company": employer, "location": location}),
        title=title,
        employer=employer,
        location=location,
        short_description=snippet,
        link=canonical_link(raw.get("link")),
        metadata=derive_metadata(title, location, snippet),
        page_url=page_url,
    )


class ContentExtractor:
    """Turns surface responses into de-duplicated listing records."""

    def __init__(
        self,
        surface: PageAutomationSurface,
        processed: ProcessedSet,
        events: Optional[StatusChannel] = None,
        retry_policy: Optional[RetryPolicy] = None,
        detail_attempts: Optional[int] = None,
        min_description_length: Optional[int] = None,
        settle_seconds: Optional[float] = None,
    ):
        self.surface = surface
        self.processed = processed
        self.events = events or StatusChannel()
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.detail_attempts = detail_attempts or settings.detail_attempts
        self.min_description_length = (
            settings.detail_min_description_length if min_description_length is None else min_description_length
        )
        self.settle_seconds = settings.detail_settle_seconds if settle_seconds is None else settle_seconds
        self.last_page_count = 0
        self.logger = logger.bind(component="content_extractor")

    async def extract_listings(self, resource: TabResource) -> List[ListingRecord]:
        """
        Extract the listings visible in a tab.

        Returns only records not seen earlier in this call and not already in
        the processed set. Transport failures yield an empty list.
        """
        try:
            response = await self.retry_policy.run(
                lambda: self.surface.send(resource.id, SurfaceAction.EXTRACT_LISTINGS),
                description="extract listings",
            )
        except TransportError as e:
            self.events.warning(f"Could not read listings: {e}")
            self.logger.warning("Listing extraction failed", tab_id=resource.id, error=str(e))
            self.last_page_count = 0
            return []

        raw_jobs = (response.get("jobs") or []) if response.get("success", True) else []
        self.last_page_count = len(raw_jobs)

        records: List[ListingRecord] = []
        seen: Set[str] = set()
        skipped = 0
        for raw in raw_jobs:
            if not isinstance(raw, Mapping):
                skipped += 1
                continue
            record = normalize_listing(raw, page_url=resource.current_url)
            if record is None:
                skipped += 1
                continue
            if record.identity in seen or record.identity in self.processed:
                continue
            seen.add(record.identity)
            records.append(record)

        self.logger.info(
            "Listings extracted",
            tab_id=resource.id,
            on_page=len(raw_jobs),
            new=len(records),
            malformed=skipped,
        )
        return records

    async def extract_detail(self, resource: TabResource, base: ListingRecord) -> DetailExtraction:
        """
        Enrich ``base`` with the listing's detail page.

        Each attempt merges whatever the page returned into the best record so
        far; when the description stays short the page is expanded and
        scrolled before the next attempt. The base record is never mutated.
        """
        best = base
        for attempt in range(1, self.detail_attempts + 1):
            try:
                response = await self.retry_policy.run(
                    lambda: self.surface.send(
                        resource.id, SurfaceAction.EXTRACT_DETAIL, {"link": base.link}
                    ),
                    description="extract detail",
                )
                best = self._merge_detail(best, response.get("jobData") or {})
            except TransportError as e:
                self.logger.debug("Detail extraction attempt failed", attempt=attempt, error=str(e))

            if len(best.full_description or "") >= self.min_description_length:
                self.logger.debug("Detail extracted", identity=base.identity, attempt=attempt)
                return DetailExtraction(record=best, degraded=False, attempts=attempt)

            if attempt < self.detail_attempts:
                await self._expand(resource)

        self.events.warning(
            f"Full description unavailable for '{base.title}' after {self.detail_attempts} attempts; "
            "evaluating with partial data"
        )
        return DetailExtraction(record=best, degraded=True, attempts=self.detail_attempts)

    async def _expand(self, resource: TabResource) -> None:
        for action in (SurfaceAction.EXPAND_DESCRIPTION, SurfaceAction.SCROLL):
            try:
                await self.surface.send(resource.id, action)
            except TransportError as e:
                self.logger.debug("Ignoring expansion failure", action=action.value, error=str(e))
        if self.settle_seconds:
            await asyncio.sleep(self.settle_seconds)

    @staticmethod
    def _merge_detail(record: ListingRecord, detail: Dict[str, Any]) -> ListingRecord:
        update: Dict[str, Any] = {}

        description = _clean(detail.get("description"))
        if len(description) > len(record.full_description or ""):
            update["full_description"] = description

        for field, key in (
            ("requirements", "requirements"),
            ("benefits", "benefits"),
            ("compensation", "salary"),
        ):
            value = _clean(detail.get(key))
            if value and not getattr(record, field):
                update[field] = value

        for field, key in (("title", "title"), ("employer", "company"), ("location", "location")):
            value = _clean(detail.get(key))
            if value and not getattr(record, field):
                update[field] = value

        if not update:
            return record

        merged = record.model_copy(update=update)
        metadata = derive_metadata(
            merged.title, merged.location, merged.full_description or merged.short_description
        )
        return merged.model_copy(update={"metadata": metadata})
