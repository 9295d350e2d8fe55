"""Tests for listing normalization and the content extractor."""

import pytest

from jobnick_agent.browser.surface import SurfaceAction
from jobnick_agent.core.errors import SurfaceActionError, SurfaceNotReadyError
from jobnick_agent.core.models import ListingRecord, Severity, TabResource
from jobnick_agent.jobs.extractor import (
    ContentExtractor,
    canonical_link,
    derive_metadata,
    listing_identity,
    normalize_listing,
)

from conftest import FakeSurface, make_detail, make_job


def resource() -> TabResource:
    return TabResource(
        id="tab-1",
        current_url="https://www.linkedin.com/jobs/search/",
        created_at=0.0,
        last_activity_at=0.0,
    )


class TestNormalization:
    """Test cases for raw card normalization."""

    def test_canonical_link_strips_tracking(self):
        assert canonical_link("https://www.linkedin.com/jobs/view/1/?trk=abc#x") == \
            "https://www.linkedin.com/jobs/view/1"
        assert canonical_link("") is None
        assert canonical_link(None) is None

    def test_identity_prefers_link(self):
        raw = make_job(1)
        assert listing_identity(raw) == "https://www.linkedin.com/jobs/view/1001"

    def test_identity_without_link(self):
        raw = make_job(1, link=None)
        assert listing_identity(raw) == "Python Developer 1|Company 1|Tel Aviv, Israel"

    def test_card_without_title_is_rejected(self):
        assert normalize_listing(make_job(1, title="   ")) is None

    def test_whitespace_is_collapsed(self):
        record = normalize_listing(make_job(1, title="  Senior \n Engineer  "))
        assert record.title == "Senior Engineer"
        assert record.metadata.level == "senior"

    def test_metadata_rules(self):
        assert derive_metadata("Junior QA", "Remote").remoteness == "remote"
        assert derive_metadata("Junior QA", "Remote").level == "junior"
        assert derive_metadata("Engineering Manager", "Haifa (Hybrid)").level == "management"
        assert derive_metadata("Engineering Manager", "Haifa (Hybrid)").remoteness == "hybrid"
        assert derive_metadata("Developer", "Haifa", "Urgent hire").urgency == "high"
        assert derive_metadata("Developer", "Haifa", "start asap").urgency == "medium"
        assert derive_metadata("Developer", "Haifa").level == "mid"


class TestContentExtractor:
    """Test cases for ContentExtractor functionality."""

    @pytest.fixture
    def extractor_for(self, processed, events, fast_retry):
        def build(surface, **overrides):
            options = dict(
                events=events,
                retry_policy=fast_retry,
                detail_attempts=3,
                min_description_length=200,
                settle_seconds=0,
            )
            options.update(overrides)
            return ContentExtractor(surface, processed, **options)
        return build

    @pytest.mark.asyncio
    async def test_extract_listings_normalizes_and_dedupes(self, extractor_for):
        surface = FakeSurface(pages=[[make_job(1), make_job(2), make_job(1), {"title": ""}, "junk"]])
        extractor = extractor_for(surface)

        records = await extractor.extract_listings(resource())

        assert [r.title for r in records] == ["Python Developer 1", "Python Developer 2"]
        assert extractor.last_page_count == 5
        assert records[0].link == "https://www.linkedin.com/jobs/view/1001"

    @pytest.mark.asyncio
    async def test_processed_identities_are_never_returned(self, extractor_for, processed):
        """Items marked processed are excluded from later extraction passes."""
        surface = FakeSurface(pages=[[make_job(1), make_job(2)]])
        extractor = extractor_for(surface)

        first = await extractor.extract_listings(resource())
        await processed.mark(first[0].identity)
        second = await extractor.extract_listings(resource())

        assert [r.identity for r in second] == [first[1].identity]

    @pytest.mark.asyncio
    async def test_overlapping_passes_exclude_processed_item(self, extractor_for, processed):
        surface = FakeSurface(pages=[[make_job(1), make_job(2)], [make_job(2), make_job(3)]])
        extractor = extractor_for(surface)

        first = await extractor.extract_listings(resource())
        await processed.mark_many(r.identity for r in first)
        surface.page_index = 1
        second = await extractor.extract_listings(resource())

        assert [r.title for r in second] == ["Python Developer 3"]
        assert extractor.last_page_count == 2

    @pytest.mark.asyncio
    async def test_extract_listings_retries_not_ready(self, extractor_for):
        surface = FakeSurface(pages=[[make_job(1)]])
        surface.fail(SurfaceAction.EXTRACT_LISTINGS, SurfaceNotReadyError("loading"))
        extractor = extractor_for(surface)

        records = await extractor.extract_listings(resource())

        assert len(records) == 1
        assert len(surface.actions(SurfaceAction.EXTRACT_LISTINGS)) == 2

    @pytest.mark.asyncio
    async def test_extract_listings_transport_failure_yields_empty(self, extractor_for, events):
        surface = FakeSurface(pages=[[make_job(1)]])
        surface.fail(SurfaceAction.EXTRACT_LISTINGS, SurfaceActionError("selector missing"))
        extractor = extractor_for(surface)

        assert await extractor.extract_listings(resource()) == []
        assert extractor.last_page_count == 0
        assert events.last_event.severity == Severity.WARNING

    @pytest.mark.asyncio
    async def test_unsuccessful_response_yields_empty(self, extractor_for):
        surface = FakeSurface()
        surface.responses[SurfaceAction.EXTRACT_LISTINGS] = {"success": False, "jobs": [make_job(1)]}
        extractor = extractor_for(surface)

        assert await extractor.extract_listings(resource()) == []

    @pytest.mark.asyncio
    async def test_extract_detail_merges_without_mutating_base(self, extractor_for):
        base = normalize_listing(make_job(1))
        surface = FakeSurface(details={base.link: make_detail(1)})
        extractor = extractor_for(surface)

        detail = await extractor.extract_detail(resource(), base)

        assert detail.degraded is False
        assert detail.attempts == 1
        assert len(detail.record.full_description) >= 200
        assert detail.record.compensation == "$120k - $150k"
        assert base.full_description is None
        assert base.compensation is None

    @pytest.mark.asyncio
    async def test_extract_detail_expands_short_descriptions(self, extractor_for):
        base = normalize_listing(make_job(1))
        surface = FakeSurface()
        responses = iter([
            {"success": True, "jobData": {"description": "short"}},
            {"success": True, "jobData": make_detail(1)},
        ])
        original_send = surface.send

        async def send(tab_id, action, payload=None):
            if action == SurfaceAction.EXTRACT_DETAIL:
                surface.calls.append((tab_id, action, payload or {}))
                return next(responses)
            return await original_send(tab_id, action, payload)

        surface.send = send
        extractor = extractor_for(surface)

        detail = await extractor.extract_detail(resource(), base)

        assert detail.degraded is False
        assert detail.attempts == 2
        assert surface.actions(SurfaceAction.EXPAND_DESCRIPTION)
        assert surface.actions(SurfaceAction.SCROLL)

    @pytest.mark.asyncio
    async def test_extract_detail_degraded_after_exhausted_attempts(self, extractor_for, events):
        """Exhausted attempts return the best partial record flagged degraded."""
        base = normalize_listing(make_job(1))
        surface = FakeSurface(details={base.link: {"description": "too short", "salary": "100k"}})
        extractor = extractor_for(surface)

        detail = await extractor.extract_detail(resource(), base)

        assert detail.degraded is True
        assert detail.attempts == 3
        assert detail.record.full_description == "too short"
        assert detail.record.compensation == "100k"
        assert len(surface.actions(SurfaceAction.EXTRACT_DETAIL)) == 3
        assert len(surface.actions(SurfaceAction.EXPAND_DESCRIPTION)) == 2
        assert events.last_event.severity == Severity.WARNING

    @pytest.mark.asyncio
    async def test_extract_detail_tolerates_transport_errors(self, extractor_for):
        base = normalize_listing(make_job(1))
        surface = FakeSurface(details={base.link: make_detail(1)})
        surface.fail(SurfaceAction.EXTRACT_DETAIL, SurfaceActionError("detail pane missing"))
        surface.fail(SurfaceAction.EXPAND_DESCRIPTION, SurfaceActionError("no button"))
        extractor = extractor_for(surface)

        detail = await extractor.extract_detail(resource(), base)

        assert detail.degraded is False
        assert detail.attempts == 2

    @pytest.mark.asyncio
    async def test_extract_detail_fills_missing_card_fields(self, extractor_for):
        base = ListingRecord(identity="https://www.linkedin.com/jobs/view/7", title="",
                             link="https://www.linkedin.com/jobs/view/7")
        surface = FakeSurface(details={base.link: make_detail(7)})
        extractor = extractor_for(surface)

        detail = await extractor.extract_detail(resource(), base)

        assert detail.record.title == "Python Developer 7"
        assert detail.record.employer == "Company 7"
        assert detail.record.identity == base.identity
