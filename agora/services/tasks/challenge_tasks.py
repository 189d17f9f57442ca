"""
Challenge Lifecycle Tasks

Celery tasks for challenge lifecycle management:
- Finding active challenges whose end date has passed
- Calculating final rankings (same scoring as the live leaderboard)
- Deactivating them so no further logs are accepted
"""

from datetime import date
from typing import Any, Dict, List, Optional

from agora.core.analytics import track_challenge_closed
from agora.core.celery_app import celery_app
from agora.models.challenge import Challenge, LeaderboardEntry
from agora.services.calendar import local_today
from agora.services.challenge_service import ChallengeService, challenge_service
from agora.services.leaderboard import compute_leaderboard
from agora.services.logger import logger


def final_winners(entries: List[LeaderboardEntry]) -> List[LeaderboardEntry]:
    """Everyone sharing rank 1; empty when nobody scored anything."""
    return [entry for entry in entries if entry.rank == 1 and entry.total_points > 0]


def close_ended_challenges(
    today: date, service: Optional[ChallengeService] = None
) -> Dict[str, Any]:
    """
    Deactivate every active challenge that ended before `today`, logging its
    final standings. One failing challenge does not stop the others.
    """
    service = service or challenge_service
    processed = 0
    errors: List[str] = []

    for challenge in service.get_ended_active_challenges(today):
        try:
            _close_challenge(service, challenge)
            processed += 1
        except Exception as e:
            error_msg = f"Failed to close challenge {challenge.id}: {e}"
            logger.error(error_msg)
            errors.append(error_msg)

    logger.info(
        f"[CHALLENGE LIFECYCLE] Closed {processed} ended challenges, {len(errors)} errors"
    )
    return {"success": not errors, "processed": processed, "errors": errors}


def _close_challenge(service: ChallengeService, challenge: Challenge) -> None:
    snapshot = service.get_snapshot_for(challenge)
    # Final standings are evaluated on the last day of the challenge
    entries = compute_leaderboard(
        snapshot.participants, snapshot.metrics, snapshot.logs, challenge.end_date
    )
    winners = final_winners(entries)

    service.deactivate_challenge(challenge.id)
    track_challenge_closed(challenge.id, len(entries), len(winners))

    if winners:
        names = ", ".join(entry.participant.name for entry in winners)
        logger.info(
            f"Challenge '{challenge.name}' ended: winner(s) {names} "
            f"with {winners[0].total_points} points"
        )
    else:
        logger.info(f"Challenge '{challenge.name}' ended with no scores")


@celery_app.task(
    name="close_ended_challenges",
    bind=True,
    max_retries=2,
    default_retry_delay=60,
)
def close_ended_challenges_task(self) -> Dict[str, Any]:
    """Periodic task (hourly beat) wrapping close_ended_challenges."""
    try:
        return close_ended_challenges(local_today())
    except Exception as e:
        logger.error(
            f"Failed to check ended challenges: {e}",
            extra={"retry_count": self.request.retries},
        )
        if self.request.retries >= self.max_retries:
            return {"success": False, "processed": 0, "errors": [str(e)]}
        raise self.retry(exc=e)
