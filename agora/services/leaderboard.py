"""
Leaderboard Scoring

Pure scoring engine for a challenge leaderboard. Given participants, metric
definitions and raw daily logs it computes total points, today's points,
whether the participant logged today, the current streak, and a competition
ranking (ties share a rank, the next rank skips).

Nothing here touches storage or the clock: callers fetch a snapshot, pass the
local "today" in, and re-run the whole computation on every change.
"""

from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from agora.models.challenge import LeaderboardEntry, Log, Metric, Participant

# participant id -> log date -> metric id -> raw value
DailyLogs = Dict[date, Dict[str, float]]
LogIndex = Dict[str, DailyLogs]


def metric_points(value: float, metric: Metric) -> float:
    """Points for one logged value: capped at daily_max (if set), then multiplied."""
    effective = value if metric.daily_max is None else min(value, metric.daily_max)
    return effective * metric.points_per_unit


def day_points(day_values: Mapping[str, float], metrics_by_id: Mapping[str, Metric]) -> float:
    """Sum of metric contributions for a single day. Unknown metric ids score nothing."""
    total = 0.0
    for metric_id, value in day_values.items():
        metric = metrics_by_id.get(metric_id)
        if metric is None:
            continue
        total += metric_points(value, metric)
    return total


def round_points(points: float) -> float:
    """Round to one decimal, halves away from zero at the tenths digit."""
    tenths = Decimal(points * 10).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return float(tenths) / 10


def build_log_index(logs: Iterable[Log]) -> LogIndex:
    """
    Group logs as participant -> date -> metric -> value.

    A later row for the same (participant, metric, date) replaces the earlier
    one, matching the upsert semantics of the logs table.
    """
    index: LogIndex = {}
    for log in logs:
        days = index.setdefault(log.participant_id, {})
        days.setdefault(log.log_date, {})[log.metric_id] = log.value
    return index


def compute_streak(daily_logs: Mapping[date, Mapping[str, float]], today: date) -> int:
    """
    Count consecutive active days ending today, or yesterday if today has no
    positive log yet. A day is active when at least one value is > 0.
    """
    active_days = {
        log_date
        for log_date, values in daily_logs.items()
        if any(value > 0 for value in values.values())
    }
    if not active_days:
        return 0

    cursor = today if today in active_days else today - timedelta(days=1)
    streak = 0
    while cursor in active_days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def assign_ranks(totals: Sequence[float]) -> List[int]:
    """
    Competition ranks for totals already sorted in descending order.

    [100, 100, 80] -> [1, 1, 3]
    """
    ranks: List[int] = []
    for position, total in enumerate(totals, start=1):
        if ranks and total == totals[position - 2]:
            ranks.append(ranks[-1])
        else:
            ranks.append(position)
    return ranks


def compute_leaderboard(
    participants: Sequence[Participant],
    metrics: Sequence[Metric],
    logs: Iterable[Log],
    today: date,
) -> List[LeaderboardEntry]:
    """
    Score and rank every participant.

    Totals cover the participant's full log history, not just the challenge
    window. Ties keep input order (participant creation order upstream).
    """
    metrics_by_id = {metric.id: metric for metric in metrics}
    log_index = build_log_index(logs)

    scored = []
    for participant in participants:
        daily_logs = log_index.get(participant.id, {})
        today_values = daily_logs.get(today, {})

        total = sum(day_points(values, metrics_by_id) for values in daily_logs.values())

        scored.append(
            {
                "participant": participant,
                "total_points": round_points(total),
                "today_points": round_points(day_points(today_values, metrics_by_id)),
                "today_logged": bool(today_values),
                "streak": compute_streak(daily_logs, today),
                "daily_logs": {day: dict(values) for day, values in daily_logs.items()},
            }
        )

    # sorted() is stable with reverse=True, so equal totals keep input order
    scored.sort(key=lambda item: item["total_points"], reverse=True)
    ranks = assign_ranks([item["total_points"] for item in scored])

    return [
        LeaderboardEntry(rank=rank, **item) for rank, item in zip(ranks, scored)
    ]


def find_entry(
    entries: Sequence[LeaderboardEntry], participant_id: str
) -> Optional[LeaderboardEntry]:
    """Return the entry for a participant, if present."""
    for entry in entries:
        if entry.participant.id == participant_id:
            return entry
    return None
