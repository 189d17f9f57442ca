"""
Celery Tasks Package

Re-exports all tasks for Celery autodiscovery.

- challenge_tasks: Challenge lifecycle (closing ended challenges)
"""

from agora.services.tasks.challenge_tasks import close_ended_challenges_task

__all__ = ["close_ended_challenges_task"]
