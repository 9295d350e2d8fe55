"""Planner and executor nodes of the orchestration loop."""

from jobnick_agent.core.nodes.planner import PlannerNode, create_planner_node
from jobnick_agent.core.nodes.executor import ExecutorNode, ExecutorState, create_executor_node

__all__ = [
    "PlannerNode", "create_planner_node",
    "ExecutorNode", "ExecutorState", "create_executor_node",
]
