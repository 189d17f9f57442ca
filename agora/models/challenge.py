from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class Challenge(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    start_date: date
    end_date: date
    share_token: str
    admin_token: str
    is_active: bool = True
    created_at: Optional[datetime] = None

    class Config:
        extra = "ignore"


class Metric(BaseModel):
    id: str
    challenge_id: str
    name: str
    unit: str
    points_per_unit: float = Field(..., description="Points earned per unit logged")
    daily_max: Optional[float] = Field(
        None, description="Per-day ceiling applied before the rate; None means uncapped"
    )
    sort_order: int = 0
    created_at: Optional[datetime] = None

    class Config:
        extra = "ignore"


class Participant(BaseModel):
    id: str
    challenge_id: str
    name: str
    avatar_emoji: str = "💪"
    created_at: Optional[datetime] = None

    class Config:
        extra = "ignore"


class Log(BaseModel):
    id: Optional[str] = None
    participant_id: str
    metric_id: str
    value: float
    log_date: date
    created_at: Optional[datetime] = None

    class Config:
        extra = "ignore"


class LeaderboardEntry(BaseModel):
    participant: Participant
    total_points: float
    today_points: float
    today_logged: bool
    streak: int = Field(..., ge=0)
    rank: int = Field(..., ge=1)
    # date -> metric id -> raw (uncapped) value
    daily_logs: Dict[date, Dict[str, float]] = Field(default_factory=dict)


class ChallengeSnapshot(BaseModel):
    """Everything the leaderboard needs for one challenge, fetched together."""

    challenge: Challenge
    metrics: List[Metric] = Field(default_factory=list)
    participants: List[Participant] = Field(default_factory=list)
    logs: List[Log] = Field(default_factory=list)
