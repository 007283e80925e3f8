"""
Scheduler Service - Package Entry Point
"""

from .orchestrator import SchedulerOrchestrator

__all__ = ["SchedulerOrchestrator"]
