"""API models for request/response schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from jobnick_agent.core.models import Severity, TabStatus


class CommandResponse(BaseModel):
    """Result of a control command."""
    success: bool = Field(..., description="Whether the command was accepted")
    error: Optional[str] = Field(None, description="Reason the command was refused")
    data: Dict[str, Any] = Field(default_factory=dict, description="Command specific data")


class CredentialRequest(BaseModel):
    """API key for the screening model."""
    api_key: str = Field(..., description="Provider API key")


class SubmissionModeRequest(BaseModel):
    """Switch between live submission and dry-run."""
    live: bool = Field(..., description="Submit applications when true, only fill forms when false")


class ResumeRequest(BaseModel):
    """Plain text resume used by the deep screen."""
    text: str = Field(..., description="Resume text")


class ReclaimRequest(BaseModel):
    """Stale tab reclamation parameters."""
    max_age_seconds: Optional[float] = Field(None, description="Idle age threshold; configured default when omitted")


class ResourceModel(BaseModel):
    """A tracked browser tab."""
    id: str = Field(..., description="Tab identifier")
    current_url: str = Field("", description="Last known URL")
    created_at: float = Field(..., description="Creation time (epoch seconds)")
    last_activity_at: float = Field(..., description="Last mutation time (epoch seconds)")
    status: TabStatus = Field(..., description="Lifecycle status")
    degraded: bool = Field(False, description="Readiness checks ran out before the tab answered")
    is_current: bool = Field(False, description="Whether this is the working tab")


class EventModel(BaseModel):
    """A status event."""
    message: str = Field(..., description="Human readable message")
    severity: Severity = Field(..., description="Event severity")
    timestamp: datetime = Field(..., description="Emission time")


class AgentStatusResponse(BaseModel):
    """Snapshot of the agent and its current run."""
    state: str = Field(..., description="stopped or running")
    iteration: int = Field(0, description="Loop iterations in the current run")
    idle_iterations: int = Field(0, description="Consecutive iterations without new listings")
    jobs_found: int = Field(0, description="New listings seen in the current run")
    jobs_evaluated: int = Field(0, description="Listings screened in the current run")
    applications_submitted: int = Field(0, description="Applications in the current run")
    pages_visited: int = Field(0, description="Result pages paginated in the current run")
    processed_count: int = Field(0, description="Identities in the processed set")
    current_resource_id: Optional[str] = Field(None, description="Working tab")
    stop_reason: Optional[str] = Field(None, description="Why the last run stopped")
    submission_live: bool = Field(True, description="Live submission mode")
    total_applications: int = Field(0, description="Lifetime application counter")
    last_search_url: Optional[str] = Field(None, description="Last results page visited")
    has_credential: bool = Field(False, description="Whether an API key is configured")
    resource_count: int = Field(0, description="Tracked tabs")
    last_activity_at: Optional[float] = Field(None, description="Last tab activity (epoch seconds)")
    last_event: Optional[EventModel] = Field(None, description="Most recent status event")


class HealthCheck(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Check timestamp")
    version: str = Field(..., description="Service version")
    components: Dict[str, str] = Field(..., description="Component status")


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: datetime = Field(..., description="Error timestamp")


class EventListResponse(BaseModel):
    """Recent status events, oldest first."""
    events: List[EventModel] = Field(default_factory=list)
