"""
Challenges API endpoints

Access is by link: the share token in the path grants read access and the
ability to join/log, the admin key query parameter grants participant removal.
"""

import asyncio
import json
from datetime import date, datetime
from typing import Dict, List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from agora.api.deps import get_client_id
from agora.core.config import settings
from agora.models.challenge import Challenge, LeaderboardEntry, Log, Metric, Participant
from agora.services.calendar import (
    challenge_status,
    day_number,
    format_date_range,
    local_today,
    total_days,
)
from agora.services.challenge_service import (
    AdminAccessDenied,
    ChallengeCreationError,
    ChallengeNotFoundError,
    ParticipantNameTakenError,
    ParticipantNotFoundError,
    challenge_service,
)
from agora.services.client_state import ClientStateStore, get_client_state_store
from agora.services.input_parsing import (
    AVATAR_EMOJIS,
    DEFAULT_AVATAR,
    NewChallengeRequest,
    default_challenge_request,
    scoring_legend,
)
from agora.services.leaderboard import compute_leaderboard, find_entry
from agora.services.logger import logger


router = APIRouter(redirect_slashes=False)


class ChallengeInfo(BaseModel):
    """Challenge without its admin token"""

    id: str
    name: str
    description: Optional[str] = None
    start_date: date
    end_date: date
    share_token: str
    is_active: bool
    created_at: Optional[datetime] = None


class ChallengeCreatedResponse(BaseModel):
    challenge: ChallengeInfo
    metrics: List[Metric]
    share_url: str
    admin_url: str
    admin_token: str


class ChallengeDetailResponse(BaseModel):
    """GET /challenges/{share_token} with computed display fields"""

    challenge: ChallengeInfo
    metrics: List[Metric]
    status: str  # upcoming, active, ended
    day_number: Optional[int] = None
    total_days: int
    date_range: str
    scoring: List[str]
    admin_url: Optional[str] = None


class LeaderboardResponse(BaseModel):
    challenge_id: str
    today: date
    status: str
    entries: List[LeaderboardEntry]


class JoinChallengeRequest(BaseModel):
    name: str
    avatar_emoji: str = DEFAULT_AVATAR


class LogDayRequest(BaseModel):
    participant_id: str
    # metric id -> raw form value ("", "12", 12.5)
    values: Dict[str, Union[float, str, None]] = Field(default_factory=dict)


class LogDayResponse(BaseModel):
    log_date: date
    logs: List[Log]
    entry: Optional[LeaderboardEntry] = None


class AdminViewResponse(BaseModel):
    challenge: ChallengeInfo
    metrics: List[Metric]
    participants: List[Participant]
    share_url: str
    admin_url: str
    date_range: str


def _share_url(challenge: Challenge) -> str:
    return settings.challenge_url(challenge.share_token)


def _admin_url(challenge: Challenge, admin_token: str) -> str:
    return settings.admin_url(challenge.share_token, admin_token)


def _info(challenge: Challenge) -> ChallengeInfo:
    return ChallengeInfo.model_validate(challenge.model_dump(exclude={"admin_token"}))


def _http_error(e: Exception, action: str) -> HTTPException:
    """Map service exceptions onto HTTP errors."""
    if isinstance(e, (ChallengeNotFoundError, ParticipantNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ParticipantNameTakenError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, AdminAccessDenied):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.error(f"Failed to {action}: {e}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}",
    )


def _get_challenge(share_token: str) -> Challenge:
    try:
        return challenge_service.get_challenge_by_share_token(share_token)
    except Exception as e:
        raise _http_error(e, "load challenge")


@router.post("/", response_model=ChallengeCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_challenge(
    request: NewChallengeRequest,
    client_id: Optional[str] = Depends(get_client_id),
    store: ClientStateStore = Depends(get_client_state_store),
):
    """Create a challenge with its metrics; returns the share and admin links"""
    try:
        created = challenge_service.create_challenge(request)
    except ChallengeCreationError as e:
        logger.error(f"Challenge creation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)
        )
    except Exception as e:
        raise _http_error(e, "create challenge")

    challenge: Challenge = created["challenge"]
    if client_id:
        store.remember_admin_token(client_id, challenge.id, challenge.admin_token)
        store.record_visit(client_id, challenge)

    return ChallengeCreatedResponse(
        challenge=_info(challenge),
        metrics=created["metrics"],
        share_url=_share_url(challenge),
        admin_url=_admin_url(challenge, challenge.admin_token),
        admin_token=challenge.admin_token,
    )


@router.get("/defaults", response_model=NewChallengeRequest)
async def get_challenge_defaults():
    """Pre-filled values for the create-challenge wizard"""
    return default_challenge_request(local_today())


@router.get("/avatars", response_model=List[str])
async def get_avatar_choices():
    return AVATAR_EMOJIS


@router.get("/{share_token}", response_model=ChallengeDetailResponse)
async def get_challenge(
    share_token: str,
    client_id: Optional[str] = Depends(get_client_id),
    store: ClientStateStore = Depends(get_client_state_store),
):
    """Challenge page data; also records the visit in the client's recent list"""
    challenge = _get_challenge(share_token)

    try:
        metrics = challenge_service.get_metrics(challenge.id)
    except Exception as e:
        raise _http_error(e, "load metrics")

    today = local_today()
    current_status = challenge_status(challenge.start_date, challenge.end_date, today)

    admin_url = None
    if client_id:
        store.record_visit(client_id, challenge)
        admin_token = store.get_admin_token(client_id, challenge.id)
        if admin_token:
            admin_url = _admin_url(challenge, admin_token)

    return ChallengeDetailResponse(
        challenge=_info(challenge),
        metrics=metrics,
        status=current_status,
        day_number=(
            day_number(challenge.start_date, today)
            if current_status == "active"
            else None
        ),
        total_days=total_days(challenge.start_date, challenge.end_date),
        date_range=format_date_range(challenge.start_date, challenge.end_date),
        scoring=scoring_legend(metrics),
        admin_url=admin_url,
    )


@router.get("/{share_token}/leaderboard", response_model=LeaderboardResponse)
async def get_challenge_leaderboard(
    share_token: str,
    today: Optional[date] = Query(None, description="Evaluation date, defaults to local today"),
):
    """Ranked leaderboard computed from a fresh snapshot"""
    challenge = _get_challenge(share_token)
    evaluation_date = today or local_today()

    try:
        snapshot = challenge_service.get_snapshot_for(challenge)
    except Exception as e:
        raise _http_error(e, "retrieve leaderboard")

    entries = compute_leaderboard(
        snapshot.participants, snapshot.metrics, snapshot.logs, evaluation_date
    )

    return LeaderboardResponse(
        challenge_id=challenge.id,
        today=evaluation_date,
        status=challenge_status(challenge.start_date, challenge.end_date, evaluation_date),
        entries=entries,
    )


def _sse(entries: List[LeaderboardEntry]) -> str:
    payload = {
        "type": "leaderboard",
        "entries": [entry.model_dump(mode="json") for entry in entries],
    }
    return f"data: {json.dumps(payload)}\n\n"


@router.get("/{share_token}/leaderboard/stream")
async def stream_challenge_leaderboard(share_token: str, request: Request):
    """
    Server-Sent Events stream of the leaderboard.

    Sends the current leaderboard immediately, then a fresh one after every
    participant or log change in this challenge.
    """
    challenge = _get_challenge(share_token)

    try:
        initial, queue = challenge_service.feeds.subscribe(
            challenge.id,
            snapshot_loader=lambda: challenge_service.get_snapshot_for(challenge),
            today_fn=local_today,
        )
    except Exception as e:
        raise _http_error(e, "retrieve leaderboard")

    async def generate():
        try:
            yield _sse(initial)
            while not await request.is_disconnected():
                try:
                    entries = await asyncio.wait_for(
                        queue.get(), timeout=settings.STREAM_KEEPALIVE_SECONDS
                    )
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield _sse(entries)
        finally:
            challenge_service.feeds.unsubscribe(challenge.id, queue)

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post(
    "/{share_token}/participants",
    response_model=Participant,
    status_code=status.HTTP_201_CREATED,
)
async def join_challenge(
    share_token: str,
    join_request: JoinChallengeRequest,
    client_id: Optional[str] = Depends(get_client_id),
    store: ClientStateStore = Depends(get_client_state_store),
):
    """Join as a new participant; the calling client is identified as them"""
    challenge = _get_challenge(share_token)

    try:
        participant = challenge_service.join_challenge(
            challenge.id, join_request.name, join_request.avatar_emoji
        )
    except Exception as e:
        raise _http_error(e, "join challenge")

    if client_id:
        store.set_identity(client_id, participant)

    return participant


@router.get(
    "/{share_token}/participants/{participant_id}/today",
    response_model=Dict[str, float],
)
async def get_today_values(share_token: str, participant_id: str):
    """metric id -> value already logged today, to pre-fill the log form"""
    challenge = _get_challenge(share_token)
    today = local_today()

    try:
        participant = challenge_service.get_participant(challenge.id, participant_id)
        logs = challenge_service.get_logs([participant.id])
    except Exception as e:
        raise _http_error(e, "load today's logs")

    return {log.metric_id: log.value for log in logs if log.log_date == today}


@router.post("/{share_token}/logs", response_model=LogDayResponse)
async def log_today(share_token: str, log_request: LogDayRequest):
    """Save today's values for a participant and return their updated entry"""
    challenge = _get_challenge(share_token)
    today = local_today()

    if challenge_status(challenge.start_date, challenge.end_date, today) != "active":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This challenge is not accepting logs today.",
        )

    try:
        logs = challenge_service.log_day(
            challenge, log_request.participant_id, log_request.values, today
        )
        snapshot = challenge_service.get_snapshot_for(challenge)
    except Exception as e:
        raise _http_error(e, "save log")

    entries = compute_leaderboard(
        snapshot.participants, snapshot.metrics, snapshot.logs, today
    )

    return LogDayResponse(
        log_date=today,
        logs=logs,
        entry=find_entry(entries, log_request.participant_id),
    )


@router.get("/{share_token}/admin", response_model=AdminViewResponse)
async def get_challenge_admin(
    share_token: str,
    key: Optional[str] = Query(None, description="Admin key from the admin link"),
):
    """Admin view: links and participant list"""
    challenge = _get_challenge(share_token)

    try:
        challenge_service.verify_admin(challenge, key)
        metrics = challenge_service.get_metrics(challenge.id)
        participants = challenge_service.get_participants(challenge.id)
    except Exception as e:
        raise _http_error(e, "load admin view")

    return AdminViewResponse(
        challenge=_info(challenge),
        metrics=metrics,
        participants=participants,
        share_url=_share_url(challenge),
        admin_url=_admin_url(challenge, challenge.admin_token),
        date_range=format_date_range(challenge.start_date, challenge.end_date),
    )


@router.delete(
    "/{share_token}/participants/{participant_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def remove_participant(
    share_token: str,
    participant_id: str,
    key: Optional[str] = Query(None, description="Admin key from the admin link"),
):
    """Remove a participant and their logs (admin only)"""
    challenge = _get_challenge(share_token)

    try:
        challenge_service.verify_admin(challenge, key)
        challenge_service.remove_participant(challenge, participant_id)
    except Exception as e:
        raise _http_error(e, "remove participant")

    return Response(status_code=status.HTTP_204_NO_CONTENT)
