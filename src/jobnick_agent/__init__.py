"""
Jobnick Agent: an autonomous job search agent.

The agent drives a job site through a page automation surface, extracts
listings, screens them with a two-stage language model evaluation and
applies to the listings that qualify.
"""

__version__ = "0.1.0"
__author__ = "Jobnick Team"

from jobnick_agent.core.agent import JobnickAgent, create_jobnick_agent
from jobnick_agent.core.orchestrator import OrchestrationLoop
from jobnick_agent.memory.store import AgentStateRepository, InMemoryStateStore, JsonFileStateStore

__all__ = [
    "JobnickAgent",
    "create_jobnick_agent",
    "OrchestrationLoop",
    "AgentStateRepository",
    "InMemoryStateStore",
    "JsonFileStateStore",
]
