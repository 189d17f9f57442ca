"""
Client state endpoints: recent challenges and "who am I" per challenge.
"""

from datetime import date
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel

from agora.api.deps import require_client_id
from agora.models.challenge import Participant
from agora.services.calendar import challenge_status, format_date_range, local_today
from agora.services.challenge_service import ParticipantNotFoundError, challenge_service
from agora.services.client_state import (
    ClientStateStore,
    RecentChallenge,
    get_client_state_store,
)
from agora.services.logger import logger

router = APIRouter(redirect_slashes=False)


class RecentChallengeResponse(RecentChallenge):
    status: str  # upcoming, active, ended
    date_range: str


class IdentityRequest(BaseModel):
    participant_id: str


@router.get("/me/recent-challenges", response_model=List[RecentChallengeResponse])
async def get_recent_challenges(
    client_id: str = Depends(require_client_id),
    store: ClientStateStore = Depends(get_client_state_store),
):
    """Recently visited challenges, newest first"""
    today: date = local_today()
    return [
        RecentChallengeResponse(
            **item.model_dump(),
            status=challenge_status(item.start_date, item.end_date, today),
            date_range=format_date_range(item.start_date, item.end_date),
        )
        for item in store.recent_challenges(client_id)
    ]


@router.get("/me/identity/{challenge_id}", response_model=Participant)
async def get_identity(
    challenge_id: str,
    client_id: str = Depends(require_client_id),
    store: ClientStateStore = Depends(get_client_state_store),
):
    participant = store.get_identity(client_id, challenge_id)
    if participant is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No participant selected for this challenge",
        )
    return participant


@router.put("/me/identity/{challenge_id}", response_model=Participant)
async def set_identity(
    challenge_id: str,
    identity: IdentityRequest,
    client_id: str = Depends(require_client_id),
    store: ClientStateStore = Depends(get_client_state_store),
):
    """Pick an existing participant as "me" for this challenge"""
    try:
        participant = challenge_service.get_participant(
            challenge_id, identity.participant_id
        )
    except ParticipantNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to set identity for challenge {challenge_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to set identity",
        )

    store.set_identity(client_id, participant)
    return participant


@router.delete("/me/identity/{challenge_id}", status_code=status.HTTP_204_NO_CONTENT)
async def clear_identity(
    challenge_id: str,
    client_id: str = Depends(require_client_id),
    store: ClientStateStore = Depends(get_client_state_store),
):
    store.clear_identity(client_id, challenge_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
