"""Core data models for the Jobnick Agent."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class Severity(str, Enum):
    """Severity of a status event."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class PageType(str, Enum):
    """Classification of the page a tab is showing."""
    JOB_SEARCH = "jobSearch"
    INDIVIDUAL_JOB = "individualJob"
    UNKNOWN = "unknown"


class ActionKind(str, Enum):
    """Closed vocabulary of actions the planner can emit."""
    NAVIGATE = "NAVIGATE"
    SEARCH = "SEARCH"
    EXTRACT = "EXTRACT"
    ANALYZE = "ANALYZE"
    APPLY_BEST = "APPLY_BEST"
    NEXT_PAGE = "NEXT_PAGE"
    SCROLL = "SCROLL"
    GO_BACK = "GO_BACK"
    WAIT = "WAIT"
    COMPLETE = "COMPLETE"


class EvaluationStage(str, Enum):
    """Which screen produced an evaluation."""
    PRESCREEN = "prescreen"
    DEEP = "deep"


class TabStatus(str, Enum):
    """Lifecycle state of a tracked tab resource."""
    READY = "ready"
    PARTIAL = "partial"
    NAVIGATED_AWAY = "navigated_away"
    FORCED_NEW = "forced_new"
    CLOSED = "closed"


class UserProfile(BaseModel):
    """Candidate personal details used in prompts and application forms."""
    full_name: str = Field("", description="Full name")
    email: str = Field("", description="Email address")
    phone: str = Field("", description="Phone number")
    location: str = Field("", description="Current location")
    current_company: str = Field("", description="Current employer")


class UserPreferences(BaseModel):
    """Job search preferences; comma separated strings as entered by the user."""
    job_titles: str = Field("", description="Desired job titles")
    keywords: str = Field("", description="Keywords to match")
    exclude_keywords: str = Field("", description="Keywords that disqualify a listing")
    location_preference: str = Field("", description="Preferred locations")
    experience_level: str = Field("", description="Entry, mid, senior, executive")
    company_size: str = Field("", description="Preferred company size")
    experience_filters: List[str] = Field(default_factory=list, description="Site experience filters")
    date_posted: str = Field("any", description="Site date-posted filter")
    job_type_filters: List[str] = Field(default_factory=list, description="Site job type filters")


class ListingMetadata(BaseModel):
    """Keyword-derived listing attributes."""
    level: str = Field("mid", description="junior, mid, senior or management")
    remoteness: str = Field("onsite", description="remote, hybrid or onsite")
    urgency: str = Field("low", description="high, medium or low")


class ListingRecord(BaseModel):
    """One job posting observed on the target site."""
    identity: str = Field(..., description="Stable key: canonical link or title|employer|location")
    title: str = Field(..., description="Job title")
    employer: str = Field("", description="Company name")
    location: str = Field("", description="Job location")
    short_description: str = Field("", description="Card snippet")
    link: Optional[str] = Field(None, description="Canonical job link")
    full_description: Optional[str] = Field(None, description="Full description after enrichment")
    requirements: Optional[str] = Field(None, description="Requirements section")
    benefits: Optional[str] = Field(None, description="Benefits section")
    compensation: Optional[str] = Field(None, description="Salary or compensation text")
    metadata: ListingMetadata = Field(default_factory=ListingMetadata, description="Derived metadata")
    page_url: str = Field("", description="Page the record was extracted from")
    extracted_at: datetime = Field(default_factory=datetime.utcnow, description="Extraction time")

    @property
    def description_text(self) -> str:
        """Best available description."""
        return (self.full_description or self.short_description or "").strip()


class EvaluationResult(BaseModel):
    """Outcome of one screening stage."""
    decision: bool = Field(..., description="Whether the candidate should apply")
    confidence: float = Field(0.0, description="Confidence in the decision (0-1)")
    score: int = Field(0, description="Overall fit score (0-100)")
    rationale: str = Field("", description="Reasoning behind the decision")
    stage: EvaluationStage = Field(..., description="Screen that produced this result")

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: Any) -> float:
        try:
            value = float(value)
        except (TypeError, ValueError, OverflowError):
            return 0.0
        return min(1.0, max(0.0, value))

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, value: Any) -> int:
        try:
            value = int(round(float(value)))
        except (TypeError, ValueError, OverflowError):
            return 0
        return min(100, max(0, value))


class PlannedAction(BaseModel):
    """One step of a plan."""
    kind: ActionKind = Field(..., description="Action to perform")
    description: str = Field("", description="Human readable step description")
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Action parameters")
    expected_outcome: str = Field("", description="What success looks like")


class Plan(BaseModel):
    """Ordered plan consumed one action at a time."""
    steps: List[PlannedAction] = Field(default_factory=list, description="Plan steps")
    current_step: int = Field(0, description="Cursor into steps")
    max_steps: int = Field(100, description="Ceiling on cursor advances")
    is_fallback: bool = Field(False, description="Whether this is the minimal fallback plan")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Plan creation time")

    @property
    def is_complete(self) -> bool:
        return self.current_step >= len(self.steps) or self.current_step >= self.max_steps

    def next_step(self) -> Optional[PlannedAction]:
        """Return the next action and advance the cursor, or None when complete."""
        if self.is_complete:
            return None
        step = self.steps[self.current_step]
        self.current_step += 1
        return step

    @property
    def kinds(self) -> List[ActionKind]:
        return [step.kind for step in self.steps]


class ActionResult(BaseModel):
    """Result of executing one action."""
    kind: Optional[ActionKind] = Field(None, description="Action that was executed")
    success: bool = Field(..., description="Whether the action succeeded")
    message: Optional[str] = Field(None, description="Outcome message")
    error: Optional[str] = Field(None, description="Error message if failed")
    data: Dict[str, Any] = Field(default_factory=dict, description="Action result data")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Action timestamp")
    execution_time: Optional[float] = Field(None, description="Execution time in seconds")


class TabResource(BaseModel):
    """A browsing context tracked by the resource tracker."""
    id: str = Field(..., description="Tab identifier from the automation surface")
    current_url: str = Field("", description="Last known URL")
    created_at: float = Field(..., description="Creation time (epoch seconds)")
    last_activity_at: float = Field(..., description="Last mutation time (epoch seconds)")
    status: TabStatus = Field(TabStatus.READY, description="Lifecycle status")
    degraded: bool = Field(False, description="Readiness checks ran out before the tab answered")


class RunContext(BaseModel):
    """Observation of the live session, rebuilt every loop iteration."""
    page_type: PageType = Field(PageType.UNKNOWN, description="Current page classification")
    url: str = Field("", description="Current page URL")
    jobs_found_count: int = Field(0, description="Listings observed on the page")
    search_query: str = Field("", description="Search query in effect")
    location: str = Field("", description="Search location in effect")
    user_preferences: UserPreferences = Field(default_factory=UserPreferences)
    user_profile: Optional[UserProfile] = Field(None)


class SearchSettings(BaseModel):
    """Options accepted by start()."""
    confidence_threshold: float = Field(0.7, description="Minimum deep-screen confidence to act")
    apply_delay_seconds: int = Field(30, description="Pause after each application")
    search_delay_seconds: int = Field(10, description="Pause between loop iterations")
    max_applications: int = Field(10, description="Applications before the run completes")


class StatusEvent(BaseModel):
    """Progress notification delivered to observers."""
    message: str = Field(..., description="Human readable message")
    severity: Severity = Field(Severity.INFO, description="Event severity")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Emission time")
