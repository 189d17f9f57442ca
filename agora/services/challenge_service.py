"""
Challenge Service

Handles challenge creation, participation, daily logs and leaderboard snapshots.
Reads and writes go through Supabase; every participant or log write publishes
a change event so live leaderboards recompute.
"""

from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from postgrest.exceptions import APIError

from agora.core.analytics import (
    track_challenge_created,
    track_day_logged,
    track_participant_joined,
    track_participant_removed,
)
from agora.core.database import get_supabase_client
from agora.core.tokens import generate_admin_token, generate_share_token, tokens_match
from agora.models.challenge import (
    Challenge,
    ChallengeSnapshot,
    Log,
    Metric,
    Participant,
)
from agora.services.input_parsing import (
    AVATAR_EMOJIS,
    DEFAULT_AVATAR,
    NewChallengeRequest,
    build_log_rows,
    build_metric_rows,
    validate_challenge_request,
)
from agora.services.logger import logger
from agora.services.realtime import ChangeEvent, ChangeNotifier, FeedRegistry, change_notifier

UNIQUE_VIOLATION = "23505"
LOG_CONFLICT_COLUMNS = "participant_id,metric_id,log_date"


class ChallengeNotFoundError(ValueError):
    pass


class ParticipantNotFoundError(ValueError):
    pass


class ParticipantNameTakenError(ValueError):
    pass


class AdminAccessDenied(ValueError):
    pass


class ChallengeNotActiveError(ValueError):
    pass


class ChallengeCreationError(RuntimeError):
    pass


class ChallengeService:
    """Service for managing challenges"""

    def __init__(self, notifier: ChangeNotifier = change_notifier):
        self.notifier = notifier
        self.feeds = FeedRegistry(notifier)

    def create_challenge(self, request: NewChallengeRequest) -> Dict[str, Any]:
        """
        Create a challenge and its metrics.

        Args:
            request: Wizard payload (validated here)

        Returns:
            {"challenge": Challenge, "metrics": List[Metric]}
        """
        validate_challenge_request(request)
        supabase = get_supabase_client()

        challenge_row = {
            "name": request.name.strip(),
            "description": (request.description or "").strip() or None,
            "start_date": request.start_date.isoformat(),
            "end_date": request.end_date.isoformat(),
            "share_token": generate_share_token(),
            "admin_token": generate_admin_token(),
            "is_active": True,
        }

        try:
            result = supabase.table("challenges").insert(challenge_row).execute()
        except APIError as e:
            logger.error(
                f"Failed to create challenge '{challenge_row['name']}'",
                extra={"error": e.message, "code": e.code},
            )
            raise ChallengeCreationError(
                e.message or "Failed to create challenge. Please try again."
            ) from e

        if not result.data:
            raise ChallengeCreationError("Failed to create challenge. Please try again.")

        challenge = Challenge.model_validate(result.data[0])

        try:
            metrics_result = (
                supabase.table("metrics")
                .insert(build_metric_rows(challenge.id, request.metrics))
                .execute()
            )
        except APIError as e:
            logger.error(
                f"Challenge {challenge.id} created but metrics failed",
                extra={"error": e.message, "challenge_id": challenge.id},
            )
            raise ChallengeCreationError(
                "Challenge created but metrics failed. Contact support."
            ) from e

        metrics = sorted(
            (Metric.model_validate(row) for row in metrics_result.data or []),
            key=lambda m: m.sort_order,
        )

        logger.info(
            f"Created challenge '{challenge.name}'",
            extra={"challenge_id": challenge.id, "metric_count": len(metrics)},
        )
        track_challenge_created(challenge.id, len(metrics))

        return {"challenge": challenge, "metrics": metrics}

    def get_challenge_by_share_token(self, share_token: str) -> Challenge:
        supabase = get_supabase_client()

        result = (
            supabase.table("challenges")
            .select("*")
            .eq("share_token", share_token)
            .limit(1)
            .execute()
        )

        if not result.data:
            raise ChallengeNotFoundError("Challenge not found")

        return Challenge.model_validate(result.data[0])

    def get_metrics(self, challenge_id: str) -> List[Metric]:
        supabase = get_supabase_client()

        result = (
            supabase.table("metrics")
            .select("*")
            .eq("challenge_id", challenge_id)
            .order("sort_order")
            .execute()
        )
        return [Metric.model_validate(row) for row in result.data or []]

    def get_participants(self, challenge_id: str) -> List[Participant]:
        supabase = get_supabase_client()

        result = (
            supabase.table("participants")
            .select("*")
            .eq("challenge_id", challenge_id)
            .order("created_at")
            .execute()
        )
        return [Participant.model_validate(row) for row in result.data or []]

    def get_logs(self, participant_ids: List[str]) -> List[Log]:
        if not participant_ids:
            return []

        supabase = get_supabase_client()
        result = (
            supabase.table("logs")
            .select("*")
            .in_("participant_id", participant_ids)
            .execute()
        )
        return [Log.model_validate(row) for row in result.data or []]

    def get_snapshot_for(self, challenge: Challenge) -> ChallengeSnapshot:
        """Fresh snapshot of everything the leaderboard needs for a challenge."""
        metrics = self.get_metrics(challenge.id)
        participants = self.get_participants(challenge.id)
        logs = self.get_logs([p.id for p in participants])
        return ChallengeSnapshot(
            challenge=challenge,
            metrics=metrics,
            participants=participants,
            logs=logs,
        )

    def get_snapshot(self, share_token: str) -> ChallengeSnapshot:
        return self.get_snapshot_for(self.get_challenge_by_share_token(share_token))

    def get_participant(self, challenge_id: str, participant_id: str) -> Participant:
        supabase = get_supabase_client()

        result = (
            supabase.table("participants")
            .select("*")
            .eq("id", participant_id)
            .eq("challenge_id", challenge_id)
            .limit(1)
            .execute()
        )

        if not result.data:
            raise ParticipantNotFoundError("Participant not found in this challenge")

        return Participant.model_validate(result.data[0])

    def join_challenge(
        self, challenge_id: str, name: str, avatar_emoji: Optional[str] = None
    ) -> Participant:
        """
        Add a participant. Names are unique per challenge (database constraint).

        Raises:
            ValueError: blank name or unknown avatar
            ParticipantNameTakenError: name already used in this challenge
        """
        trimmed = (name or "").strip()
        if not trimmed:
            raise ValueError("Please enter your name.")

        avatar = avatar_emoji or DEFAULT_AVATAR
        if avatar not in AVATAR_EMOJIS:
            raise ValueError("Pick one of the offered emojis.")

        supabase = get_supabase_client()

        try:
            result = (
                supabase.table("participants")
                .insert(
                    {
                        "challenge_id": challenge_id,
                        "name": trimmed,
                        "avatar_emoji": avatar,
                    }
                )
                .execute()
            )
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise ParticipantNameTakenError(
                    "That name is already taken. Pick a different one."
                ) from e
            logger.error(
                f"Failed to add participant to challenge {challenge_id}",
                extra={"error": e.message, "code": e.code, "challenge_id": challenge_id},
            )
            raise

        participant = Participant.model_validate(result.data[0])

        logger.info(
            f"Participant '{participant.name}' joined challenge {challenge_id}",
            extra={"challenge_id": challenge_id, "participant_id": participant.id},
        )
        track_participant_joined(challenge_id, participant.id)
        self.notifier.publish(
            ChangeEvent(challenge_id, "participants", "INSERT", participant.id)
        )

        return participant

    def log_day(
        self,
        challenge: Challenge,
        participant_id: str,
        raw_values: Mapping[str, Any],
        log_date: date,
    ) -> List[Log]:
        """
        Save a participant's values for one day. Re-logging the same day replaces
        the earlier values (upsert on participant, metric and date).
        """
        if not challenge.is_active or not (
            challenge.start_date <= log_date <= challenge.end_date
        ):
            raise ChallengeNotActiveError("This challenge is not accepting logs today.")

        participant = self.get_participant(challenge.id, participant_id)
        metrics = self.get_metrics(challenge.id)
        rows = build_log_rows(participant.id, metrics, raw_values, log_date)

        supabase = get_supabase_client()
        try:
            result = (
                supabase.table("logs")
                .upsert(rows, on_conflict=LOG_CONFLICT_COLUMNS)
                .execute()
            )
        except APIError as e:
            logger.error(
                f"Failed to save logs for participant {participant.id}",
                extra={"error": e.message, "code": e.code, "challenge_id": challenge.id},
            )
            raise

        logs = [Log.model_validate(row) for row in result.data or []]

        logger.info(
            f"Logged {len(rows)} metric(s) for '{participant.name}' on {log_date.isoformat()}",
            extra={"challenge_id": challenge.id, "participant_id": participant.id},
        )
        track_day_logged(challenge.id, participant.id, len(rows))
        # Upserts are reported as UPDATE; subscribers only care that logs changed
        self.notifier.publish(ChangeEvent(challenge.id, "logs", "UPDATE", participant.id))

        return logs

    def verify_admin(self, challenge: Challenge, admin_key: Optional[str]) -> None:
        if not tokens_match(challenge.admin_token, admin_key):
            raise AdminAccessDenied("The admin key is invalid or missing.")

    def remove_participant(self, challenge: Challenge, participant_id: str) -> None:
        """Delete a participant; their logs are removed by the cascade."""
        participant = self.get_participant(challenge.id, participant_id)
        supabase = get_supabase_client()

        supabase.table("participants").delete().eq("id", participant.id).eq(
            "challenge_id", challenge.id
        ).execute()

        logger.info(
            f"Removed participant '{participant.name}' from challenge {challenge.id}",
            extra={"challenge_id": challenge.id, "participant_id": participant.id},
        )
        track_participant_removed(challenge.id, participant.id)
        self.notifier.publish(
            ChangeEvent(challenge.id, "participants", "DELETE", participant.id)
        )

    def get_ended_active_challenges(self, today: date) -> List[Challenge]:
        supabase = get_supabase_client()

        result = (
            supabase.table("challenges")
            .select("*")
            .eq("is_active", True)
            .lt("end_date", today.isoformat())
            .execute()
        )
        return [Challenge.model_validate(row) for row in result.data or []]

    def deactivate_challenge(self, challenge_id: str) -> None:
        supabase = get_supabase_client()
        supabase.table("challenges").update({"is_active": False}).eq(
            "id", challenge_id
        ).execute()


# Global instance
challenge_service = ChallengeService()
