"""
Form input handling.

Challenge-creation and daily-log forms send loosely typed values (numbers as
strings, blanks for "not set"). Everything is parsed and validated here so the
scoring engine only ever sees clean numeric log values.
"""

import math
from datetime import date, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, Field

from agora.models.challenge import Metric


class InvalidChallengeInput(ValueError):
    """Challenge creation form failed validation."""


class InvalidLogInput(ValueError):
    """Daily log form failed validation."""


AVATAR_EMOJIS = ["💪", "🏃", "🔥", "⚡", "🎯", "🏋️", "🚴", "🧘", "🥊", "🏊"]
DEFAULT_AVATAR = AVATAR_EMOJIS[0]

DEFAULT_CHALLENGE_DAYS = 30


class NewMetricRequest(BaseModel):
    name: str = ""
    unit: str = ""
    points_per_unit: Union[float, str, None] = 1
    daily_max: Union[float, str, None] = None


class NewChallengeRequest(BaseModel):
    """
    Request body for creating a challenge (the three wizard steps at once).

    Steps:
    - basics: name, description, start_date, end_date
    - metrics: at least one scored metric
    - review: submitted as-is
    """

    name: str = ""
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    metrics: List[NewMetricRequest] = Field(default_factory=list)


DEFAULT_METRICS = [
    NewMetricRequest(name="Workouts", unit="sessions", points_per_unit=10, daily_max=None),
    NewMetricRequest(name="Steps", unit="steps", points_per_unit=0.001, daily_max="20000"),
]


def default_challenge_request(today: date) -> NewChallengeRequest:
    """Pre-filled wizard values: a 30 day window starting today, default metrics."""
    return NewChallengeRequest(
        name="",
        description="",
        start_date=today,
        end_date=today + timedelta(days=DEFAULT_CHALLENGE_DAYS),
        metrics=[metric.model_copy() for metric in DEFAULT_METRICS],
    )


def parse_number(raw: Any) -> Optional[float]:
    """Parse a form value into a finite float. Blank or invalid input gives None."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        text = str(raw).strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def validate_basics(request: NewChallengeRequest) -> Optional[str]:
    if not request.name.strip():
        return "Challenge name is required."
    if not request.start_date:
        return "Start date is required."
    if not request.end_date:
        return "End date is required."
    if request.end_date <= request.start_date:
        return "End date must be after start date."
    return None


def validate_metrics(request: NewChallengeRequest) -> Optional[str]:
    if not request.metrics:
        return "Add at least one metric."
    for metric in request.metrics:
        if not metric.name.strip():
            return "All metrics need a name."
        if not metric.unit.strip():
            return "All metrics need a unit."
        if not parse_number(metric.points_per_unit):
            return "Points per unit must be a number."
        if metric.daily_max not in (None, "") and parse_number(metric.daily_max) is None:
            return "Daily max must be a number."
    return None


def validate_challenge_request(request: NewChallengeRequest) -> None:
    """Raise InvalidChallengeInput with the first problem found."""
    error = validate_basics(request) or validate_metrics(request)
    if error:
        raise InvalidChallengeInput(error)


def build_metric_rows(challenge_id: str, metrics: Sequence[NewMetricRequest]) -> List[Dict[str, Any]]:
    """Insert payloads for a new challenge's metrics; sort_order follows form order."""
    return [
        {
            "challenge_id": challenge_id,
            "name": metric.name.strip(),
            "unit": metric.unit.strip(),
            "points_per_unit": parse_number(metric.points_per_unit),
            "daily_max": parse_number(metric.daily_max),
            "sort_order": index,
        }
        for index, metric in enumerate(metrics)
    ]


def build_log_rows(
    participant_id: str,
    metrics: Sequence[Metric],
    raw_values: Mapping[str, Any],
    log_date: date,
) -> List[Dict[str, Any]]:
    """
    Upsert rows for one participant's day. Metrics left blank are skipped,
    values for metrics outside the challenge are ignored.
    """
    rows = []
    for metric in metrics:
        value = parse_number(raw_values.get(metric.id))
        if value is None:
            continue
        if value < 0:
            raise InvalidLogInput("Values cannot be negative.")
        rows.append(
            {
                "participant_id": participant_id,
                "metric_id": metric.id,
                "value": value,
                "log_date": log_date.isoformat(),
            }
        )

    if not rows:
        raise InvalidLogInput("Enter at least one value to log.")
    return rows


def scoring_legend(metrics: Sequence[Metric]) -> List[str]:
    """'Steps: 0.001 pt per steps (max 20000)' lines, in sort order."""
    lines = []
    for metric in sorted(metrics, key=lambda m: m.sort_order):
        line = f"{metric.name}: {_format_number(metric.points_per_unit)} pt per {metric.unit}"
        if metric.daily_max is not None:
            line += f" (max {_format_number(metric.daily_max)})"
        lines.append(line)
    return lines


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)
