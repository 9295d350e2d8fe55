"""Orchestration core: models, errors, events, retry policy and the control loop."""
