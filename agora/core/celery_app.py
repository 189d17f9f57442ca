"""
Celery Application Configuration

Celery task queue using Redis as broker and backend.
"""

from __future__ import annotations

import ssl
from typing import Dict, Optional

from celery import Celery
from agora.core.config import settings

DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def _build_redis_ssl_options(url: str) -> Optional[Dict[str, int]]:
    """
    Celery requires explicit SSL options when connecting to Redis over TLS.
    Hosted Redis often supplies rediss:// URLs without extra parameters.
    """

    if not url or not url.startswith("rediss://"):
        return None

    # Respect explicit ssl_cert_reqs in the URL if provided.
    if "ssl_cert_reqs" in url:
        return None

    return {"ssl_cert_reqs": ssl.CERT_NONE}


redis_url = settings.redis_connection_url or DEFAULT_REDIS_URL
redis_ssl_options = _build_redis_ssl_options(redis_url)

celery_app = Celery(
    "agora",
    broker=redis_url,
    backend=redis_url,
    include=["agora.services.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=60,
    task_soft_time_limit=50,
    worker_prefetch_multiplier=1,
    result_expires=3600,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    broker_use_ssl=redis_ssl_options,
    redis_backend_use_ssl=redis_ssl_options,
    beat_schedule={
        "close-ended-challenges": {
            "task": "close_ended_challenges",
            "schedule": 60.0 * settings.CLOSE_CHALLENGES_INTERVAL_MINUTES,
            # Finalizes rankings and deactivates challenges whose end_date has passed
        },
    },
)
