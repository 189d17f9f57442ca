"""
PostHog Analytics

Product events for the challenge lifecycle plus exception capture. Agora has no
accounts, so events are keyed by participant id where there is one and by
challenge id otherwise. Everything is a no-op without POSTHOG_API_KEY.
"""

import logging
from typing import Any, Dict, Optional

from posthog import Posthog

from agora.core.config import settings

logger = logging.getLogger(__name__)

posthog: Optional[Posthog] = None


def initialize_posthog() -> Optional[Posthog]:
    """Create the shared client; returns None when analytics is not configured."""
    global posthog

    if posthog is not None:
        return posthog

    if not settings.POSTHOG_API_KEY:
        logger.info("PostHog API key not found, analytics disabled")
        return None

    try:
        posthog = Posthog(
            project_api_key=settings.POSTHOG_API_KEY,
            host=settings.POSTHOG_HOST,
            enable_exception_autocapture=settings.POSTHOG_ENABLE_EXCEPTION_AUTOCAPTURE,
        )
    except Exception as e:
        logger.error(f"Failed to initialize PostHog: {e}")
        return None

    return posthog


def get_posthog() -> Optional[Posthog]:
    if posthog is None and settings.POSTHOG_API_KEY:
        return initialize_posthog()
    return posthog


def track_event(distinct_id: str, event_name: str, properties: Optional[Dict[str, Any]] = None):
    client = get_posthog()
    if not client:
        return

    try:
        client.capture(
            distinct_id=distinct_id or "anonymous",
            event=event_name,
            properties=properties or {},
        )
    except Exception as e:
        logger.error(f"Failed to track event {event_name}: {e}")


def track_challenge_created(challenge_id: str, metric_count: int):
    track_event(challenge_id, "challenge_created", {"metric_count": metric_count})


def track_participant_joined(challenge_id: str, participant_id: str):
    track_event(participant_id, "participant_joined", {"challenge_id": challenge_id})


def track_day_logged(challenge_id: str, participant_id: str, metric_count: int):
    track_event(
        participant_id,
        "day_logged",
        {"challenge_id": challenge_id, "metric_count": metric_count},
    )


def track_participant_removed(challenge_id: str, participant_id: str):
    track_event(challenge_id, "participant_removed", {"participant_id": participant_id})


def track_challenge_closed(challenge_id: str, participant_count: int, winner_count: int):
    track_event(
        challenge_id,
        "challenge_closed",
        {"participant_count": participant_count, "winner_count": winner_count},
    )


def capture_exception(
    error: Exception,
    distinct_id: Optional[str] = None,
    properties: Optional[Dict[str, Any]] = None,
):
    client = get_posthog()
    if not client:
        return

    try:
        client.capture_exception(
            error, distinct_id=distinct_id or "anonymous", properties=properties or {}
        )
    except Exception as e:
        logger.error(f"Failed to capture exception: {e}")


def shutdown_posthog():
    """Flush queued events; called from the app lifespan."""
    global posthog

    if posthog is None:
        return

    try:
        posthog.shutdown()
    except Exception as e:
        logger.error(f"Failed to shutdown PostHog: {e}")
    finally:
        posthog = None
