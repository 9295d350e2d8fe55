"""Configuration management for Jobnick Agent."""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="JOBNICK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # API Keys
    groq_api_key: Optional[str] = Field(None, description="Groq API key for the screening model")
    openai_api_key: Optional[str] = Field(None, description="OpenAI API key (fallback screening model)")

    # Model Configuration
    screening_model: str = Field("llama-3.1-70b-versatile", description="Groq model used for screening")
    openai_screening_model: str = Field("gpt-4o-mini", description="OpenAI model used when Groq is unavailable")
    completion_timeout: float = Field(30.0, description="Text completion timeout in seconds")

    # Target site
    target_site_domain: str = Field("linkedin.com", description="Domain the agent is allowed to drive")
    target_jobs_url: str = Field("https://www.linkedin.com/jobs/", description="Landing page for job search")
    default_search_query: str = Field("software engineer", description="Query used when no preferences are set")
    default_search_location: str = Field("Israel", description="Location used when no preferences are set")

    # Tab resources
    tab_settle_seconds: float = Field(8.0, description="Wait after opening a new tab before polling readiness")
    readiness_attempts: int = Field(15, description="Readiness polls before a tab is marked partial")
    readiness_interval_seconds: float = Field(2.0, description="Delay between readiness polls")
    stale_tab_age_seconds: float = Field(1800.0, description="Idle age after which a tab is reclaimed")

    # Action settle delays
    navigate_settle_seconds: float = Field(5.0, description="Wait after navigating to the jobs page")
    search_settle_seconds: float = Field(5.0, description="Wait after submitting a search")
    next_page_settle_seconds: float = Field(3.0, description="Wait after paginating")
    go_back_settle_seconds: float = Field(3.0, description="Wait after going back to results")
    scroll_settle_seconds: float = Field(2.0, description="Wait after scrolling")
    default_wait_ms: int = Field(5000, description="Duration of a planned WAIT step")

    # Extraction
    detail_attempts: int = Field(6, description="Attempts to obtain a full job description")
    detail_min_description_length: int = Field(200, description="Description length accepted as complete")
    detail_settle_seconds: float = Field(0.9, description="Wait between expansion and re-extraction")

    # Evaluation
    heuristic_prescreen: bool = Field(False, description="Prescreen with the rule-based scorer instead of the model")
    prescreen_batch_size: int = Field(3, description="Prescreens run concurrently per batch")
    inter_batch_delay_seconds: float = Field(2.0, description="Pause between prescreen batches")
    resume_max_chars: int = Field(6000, description="Resume characters sent to the deep screen")
    description_max_chars: int = Field(8000, description="Description characters sent to the deep screen")

    # Orchestration
    max_idle_iterations: int = Field(3, description="Iterations without new listings before stopping")
    error_cooldown_seconds: float = Field(30.0, description="Pause after a failed iteration")
    max_plan_steps: int = Field(100, description="Ceiling on plan cursor advances")
    max_pages: int = Field(10, description="Result pages visited before completion")
    max_runtime_minutes: int = Field(60, description="Runtime before completion")

    # Transport retry policy
    max_retries: int = Field(3, description="Maximum attempts for surface calls")
    retry_base_delay_seconds: float = Field(5.0, description="First retry delay for surface calls")
    retry_backoff_factor: float = Field(2.0, description="Retry delay multiplier")
    retry_max_delay_seconds: float = Field(30.0, description="Upper bound for a retry delay")

    # Persistence
    state_file: str = Field("./data/jobnick_state.json", description="Durable key-value state file")
    status_buffer_size: int = Field(200, description="Status events retained for late subscribers")

    # Browser Configuration
    browser_headless: bool = Field(True, description="Run browser in headless mode")
    browser_timeout: int = Field(30, description="Browser operation timeout in seconds")
    browser_user_data_dir: Optional[str] = Field(None, description="Browser user data directory")

    # Application Configuration
    debug: bool = Field(False, description="Enable debug mode")
    log_level: str = Field("INFO", description="Logging level")

    # Server Configuration
    api_host: str = Field("0.0.0.0", description="API server host")
    api_port: int = Field(8000, description="API server port")
    allowed_origins: list[str] = Field(["*"], description="CORS allowed origins")


# Global settings instance
settings = Settings()
