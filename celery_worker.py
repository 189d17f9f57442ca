"""
Celery Worker Entry Point

Run this file to start Celery workers:
    celery -A celery_worker worker --loglevel=info

To run Celery Beat (hourly close of ended challenges):
    celery -A celery_worker beat --loglevel=info

Or run both worker and beat together:
    celery -A celery_worker worker --beat --loglevel=info
"""

from agora.core.celery_app import celery_app
from agora.services import tasks  # noqa: F401  registers tasks

__all__ = ["celery_app"]
