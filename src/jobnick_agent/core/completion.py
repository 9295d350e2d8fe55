"""Run-level completion criteria."""

import time
from dataclasses import dataclass, field
from typing import Callable, List

from jobnick_agent.config import settings
from jobnick_agent.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CompletionCriteria:
    """Limits after which a run is considered finished."""
    max_applications: int = 10
    max_pages: int = 10
    max_runtime_minutes: float = 60.0
    max_jobs_found: int = 100

    @classmethod
    def from_settings(cls, max_applications: int) -> "CompletionCriteria":
        return cls(
            max_applications=max_applications,
            max_pages=settings.max_pages,
            max_runtime_minutes=settings.max_runtime_minutes,
        )


@dataclass
class RunStats:
    """Counters for the current run."""
    jobs_found: int = 0
    jobs_evaluated: int = 0
    applications_submitted: int = 0
    pages_visited: int = 0
    iterations: int = 0
    started_at: float = field(default_factory=time.time)


@dataclass
class CompletionCheck:
    should_complete: bool
    reasons: List[str] = field(default_factory=list)

    @property
    def reason(self) -> str:
        return "; ".join(self.reasons)


class CompletionTracker:
    """Tracks run counters and decides when the run has reached its limits."""

    def __init__(self, criteria: CompletionCriteria, clock: Callable[[], float] = time.time):
        self.criteria = criteria
        self.clock = clock
        self.stats = RunStats(started_at=clock())
        self.logger = logger.bind(component="completion_tracker")

    def start(self) -> None:
        self.stats = RunStats(started_at=self.clock())

    @property
    def elapsed_minutes(self) -> float:
        return (self.clock() - self.stats.started_at) / 60

    def check(self) -> CompletionCheck:
        """Compare this run's counters against the criteria."""
        applications = self.stats.applications_submitted
        reasons = []

        if applications >= self.criteria.max_applications:
            reasons.append(f"Submitted {applications} applications (max: {self.criteria.max_applications})")
        if self.stats.pages_visited >= self.criteria.max_pages:
            reasons.append(f"Visited {self.stats.pages_visited} pages (max: {self.criteria.max_pages})")
        if self.elapsed_minutes >= self.criteria.max_runtime_minutes:
            reasons.append(
                f"Ran for {int(self.elapsed_minutes)} minutes (max: {int(self.criteria.max_runtime_minutes)})"
            )
        if self.stats.jobs_found >= self.criteria.max_jobs_found:
            reasons.append(f"Found {self.stats.jobs_found} jobs (max: {self.criteria.max_jobs_found})")

        if reasons:
            self.logger.info("Completion criteria met", reasons=reasons)
        return CompletionCheck(should_complete=bool(reasons), reasons=reasons)
