"""API routes for Jobnick Agent."""

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query

from jobnick_agent import __version__
from jobnick_agent.api.models import (
    AgentStatusResponse,
    CommandResponse,
    CredentialRequest,
    EventListResponse,
    EventModel,
    HealthCheck,
    ReclaimRequest,
    ResourceModel,
    ResumeRequest,
    SubmissionModeRequest,
)
from jobnick_agent.core.agent import JobnickAgent
from jobnick_agent.core.models import SearchSettings, UserPreferences, UserProfile
from jobnick_agent.utils.logging import get_logger

logger = get_logger(__name__)

# Global instance (initialized in main.py)
agent: Optional[JobnickAgent] = None

# Create routers
search_router = APIRouter(prefix="/search", tags=["search"])
settings_router = APIRouter(prefix="/settings", tags=["settings"])
resources_router = APIRouter(prefix="/resources", tags=["resources"])
events_router = APIRouter(prefix="/events", tags=["events"])
health_router = APIRouter(prefix="/health", tags=["health"])


def _require_agent() -> JobnickAgent:
    if agent is None:
        raise HTTPException(status_code=503, detail="Agent not initialized")
    return agent


def _command(result: dict) -> CommandResponse:
    data = {k: v for k, v in result.items() if k not in ("success", "error")}
    return CommandResponse(success=result["success"], error=result.get("error"), data=data)


@search_router.post("/start", response_model=CommandResponse)
async def start_search(options: Optional[SearchSettings] = None):
    """Start the job search loop."""
    current = _require_agent()
    logger.info("Start requested via API")
    return _command(await current.start(options))


@search_router.post("/stop", response_model=CommandResponse)
async def stop_search():
    """Ask the job search loop to stop."""
    current = _require_agent()
    logger.info("Stop requested via API")
    return _command(await current.stop())


@search_router.get("/status", response_model=AgentStatusResponse)
async def get_search_status():
    """Get agent and run status."""
    current = _require_agent()
    return AgentStatusResponse(**await current.get_status())


@settings_router.put("/credential", response_model=CommandResponse)
async def set_credential(request: CredentialRequest):
    """Store the API key used by the screening model."""
    current = _require_agent()
    try:
        return _command(await current.set_credential(request.api_key))
    except Exception as e:
        logger.error("Failed to set credential", error=str(e))
        raise HTTPException(status_code=400, detail=f"Could not use API key: {str(e)}")


@settings_router.put("/submission-mode", response_model=CommandResponse)
async def set_submission_mode(request: SubmissionModeRequest):
    """Switch between live submission and dry-run."""
    current = _require_agent()
    return _command(await current.set_submission_mode(request.live))


@settings_router.get("/profile", response_model=UserProfile)
async def get_profile():
    current = _require_agent()
    return await current.repository.profile()


@settings_router.put("/profile", response_model=UserProfile)
async def set_profile(profile: UserProfile):
    current = _require_agent()
    await current.set_profile(profile)
    return profile


@settings_router.get("/preferences", response_model=UserPreferences)
async def get_preferences():
    current = _require_agent()
    return await current.repository.preferences()


@settings_router.put("/preferences", response_model=UserPreferences)
async def set_preferences(preferences: UserPreferences):
    current = _require_agent()
    await current.set_preferences(preferences)
    return preferences


@settings_router.put("/resume", response_model=CommandResponse)
async def set_resume(request: ResumeRequest):
    current = _require_agent()
    await current.set_resume_text(request.text)
    return CommandResponse(success=True, data={"length": len(request.text)})


@resources_router.get("", response_model=List[ResourceModel])
async def list_resources():
    """List tracked browser tabs."""
    current = _require_agent()
    return [ResourceModel(**resource) for resource in current.list_resources()]


@resources_router.post("/new", response_model=ResourceModel)
async def force_new_resource():
    """Open a fresh working tab."""
    current = _require_agent()
    try:
        resource = await current.force_new_resource()
    except Exception as e:
        logger.error("Failed to open tab", error=str(e))
        raise HTTPException(status_code=502, detail=f"Could not open tab: {str(e)}")
    return ResourceModel(**resource.model_dump(mode="json"), is_current=True)


@resources_router.post("/reset", response_model=CommandResponse)
async def reset_resources():
    """Close every tracked tab."""
    current = _require_agent()
    return _command(await current.reset_resources())


@resources_router.post("/reclaim", response_model=CommandResponse)
async def reclaim_stale_resources(request: Optional[ReclaimRequest] = None):
    """Close tabs idle for longer than the threshold."""
    current = _require_agent()
    max_age = request.max_age_seconds if request else None
    return _command(await current.reclaim_stale(max_age))


@resources_router.delete("/{resource_id}", response_model=CommandResponse)
async def close_resource(resource_id: str):
    """Close one tracked tab."""
    current = _require_agent()
    result = await current.close_resource(resource_id)
    if not result["success"]:
        raise HTTPException(status_code=404, detail=result["error"])
    return _command(result)


@events_router.get("", response_model=EventListResponse)
async def recent_events(limit: int = Query(50, ge=1, le=500)):
    """Recent status events, oldest first."""
    current = _require_agent()
    return EventListResponse(
        events=[EventModel(**event.model_dump()) for event in current.recent_events(limit)]
    )


@health_router.get("", response_model=HealthCheck)
async def health_check():
    """Health check endpoint."""
    components = {
        "agent": "healthy" if agent is not None else "unavailable",
        "loop": ("running" if agent.is_running else "stopped") if agent is not None else "unavailable",
    }
    return HealthCheck(
        status="healthy" if agent is not None else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=__version__,
        components=components,
    )


# Export all routers
all_routers = [
    search_router,
    settings_router,
    resources_router,
    events_router,
    health_router,
]
