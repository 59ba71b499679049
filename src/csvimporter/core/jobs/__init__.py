"""Lifecycle tracking for background import jobs."""

from .state_machine import TERMINAL_STATES, JobState, JobStateMachine

__all__ = ["JobState", "JobStateMachine", "TERMINAL_STATES"]
