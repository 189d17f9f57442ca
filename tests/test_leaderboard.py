"""Tests for leaderboard scoring."""

from datetime import date, timedelta

import pytest

from agora.models.challenge import Log, Metric, Participant
from agora.services.leaderboard import (
    assign_ranks,
    build_log_index,
    compute_leaderboard,
    compute_streak,
    day_points,
    find_entry,
    metric_points,
    round_points,
)

TODAY = date(2025, 3, 10)


def _metric(metric_id="m1", points_per_unit=1.0, daily_max=None, sort_order=0) -> Metric:
    return Metric(
        id=metric_id,
        challenge_id="c1",
        name=metric_id,
        unit="units",
        points_per_unit=points_per_unit,
        daily_max=daily_max,
        sort_order=sort_order,
    )


def _participant(participant_id: str) -> Participant:
    return Participant(id=participant_id, challenge_id="c1", name=participant_id.title())


def _log(participant_id: str, metric_id: str, value: float, log_date: date = TODAY) -> Log:
    return Log(participant_id=participant_id, metric_id=metric_id, value=value, log_date=log_date)


def test_uncapped_metric_multiplies_value():
    """value=3 at 10 points per unit scores 30."""
    metric = _metric(points_per_unit=10)
    entries = compute_leaderboard([_participant("ann")], [metric], [_log("ann", "m1", 3)], TODAY)
    assert entries[0].total_points == 30.0
    assert entries[0].today_points == 30.0


def test_daily_max_caps_before_rate():
    """25000 steps capped at 20000, at 0.001 per step, scores 20."""
    metric = _metric(points_per_unit=0.001, daily_max=20000)
    entries = compute_leaderboard(
        [_participant("ann")], [metric], [_log("ann", "m1", 25000)], TODAY
    )
    assert entries[0].total_points == 20.0


def test_daily_max_applies_per_day_not_per_challenge():
    """Each day is capped on its own."""
    metric = _metric(points_per_unit=1, daily_max=50)
    logs = [
        _log("ann", "m1", 80, TODAY - timedelta(days=1)),
        _log("ann", "m1", 80, TODAY),
    ]
    entries = compute_leaderboard([_participant("ann")], [metric], logs, TODAY)
    assert entries[0].total_points == 100.0
    assert entries[0].today_points == 50.0


def test_zero_daily_max_caps_to_zero():
    """daily_max=0 is a real cap, only None means uncapped."""
    assert metric_points(40, _metric(points_per_unit=2, daily_max=0)) == 0


def test_raw_values_kept_in_daily_logs():
    """daily_logs carries the uncapped value the participant entered."""
    metric = _metric(points_per_unit=0.001, daily_max=20000)
    entries = compute_leaderboard(
        [_participant("ann")], [metric], [_log("ann", "m1", 25000)], TODAY
    )
    assert entries[0].daily_logs == {TODAY: {"m1": 25000}}


def test_tied_totals_share_rank_and_next_rank_skips():
    """Scores [100, 100, 80] rank [1, 1, 3]."""
    metric = _metric()
    participants = [_participant("ann"), _participant("bob"), _participant("cid")]
    logs = [_log("ann", "m1", 100), _log("bob", "m1", 100), _log("cid", "m1", 80)]
    entries = compute_leaderboard(participants, [metric], logs, TODAY)
    assert [e.rank for e in entries] == [1, 1, 3]
    assert [e.total_points for e in entries] == [100.0, 100.0, 80.0]


def test_ties_keep_input_order():
    """Equal totals stay in participant order, no secondary key."""
    metric = _metric()
    participants = [_participant("zed"), _participant("amy")]
    logs = [_log("zed", "m1", 5), _log("amy", "m1", 5)]
    entries = compute_leaderboard(participants, [metric], logs, TODAY)
    assert [e.participant.id for e in entries] == ["zed", "amy"]


def test_entries_sorted_by_total_descending():
    """Lower input position does not keep a lower scorer ahead."""
    metric = _metric()
    participants = [_participant("ann"), _participant("bob"), _participant("cid")]
    logs = [_log("ann", "m1", 10), _log("bob", "m1", 30), _log("cid", "m1", 20)]
    entries = compute_leaderboard(participants, [metric], logs, TODAY)
    assert [e.participant.id for e in entries] == ["bob", "cid", "ann"]
    assert [e.rank for e in entries] == [1, 2, 3]


def test_participant_without_logs_scores_zero():
    """Nothing logged: zero points, no streak, not logged today."""
    entries = compute_leaderboard([_participant("ann")], [_metric()], [], TODAY)
    entry = entries[0]
    assert entry.total_points == 0.0
    assert entry.today_points == 0.0
    assert entry.today_logged is False
    assert entry.streak == 0
    assert entry.rank == 1
    assert entry.daily_logs == {}


def test_streak_counts_through_today():
    """Positive logs on D-2, D-1 and D give a streak of 3."""
    logs = [_log("ann", "m1", 1, TODAY - timedelta(days=n)) for n in range(3)]
    entries = compute_leaderboard([_participant("ann")], [_metric()], logs, TODAY)
    assert entries[0].streak == 3


def test_streak_survives_until_today_is_logged():
    """No log yet today: the streak ending yesterday still counts."""
    logs = [_log("ann", "m1", 1, TODAY - timedelta(days=n)) for n in (1, 2)]
    entries = compute_leaderboard([_participant("ann")], [_metric()], logs, TODAY)
    assert entries[0].streak == 2
    assert entries[0].today_logged is False


def test_streak_broken_by_missed_day():
    """A gap of two days resets the streak."""
    daily_logs = {
        TODAY - timedelta(days=2): {"m1": 5},
        TODAY - timedelta(days=3): {"m1": 5},
    }
    assert compute_streak(daily_logs, TODAY) == 0


def test_streak_stops_at_first_gap():
    daily_logs = {
        TODAY: {"m1": 1},
        TODAY - timedelta(days=1): {"m1": 1},
        TODAY - timedelta(days=3): {"m1": 1},
    }
    assert compute_streak(daily_logs, TODAY) == 2


def test_zero_value_log_counts_as_logged_but_not_active():
    """A value of 0 today: logged, but streak stays 0."""
    entries = compute_leaderboard(
        [_participant("ann")], [_metric()], [_log("ann", "m1", 0)], TODAY
    )
    assert entries[0].today_logged is True
    assert entries[0].streak == 0
    assert entries[0].today_points == 0.0


def test_day_with_one_positive_value_is_active():
    daily_logs = {TODAY: {"m1": 0, "m2": 3}}
    assert compute_streak(daily_logs, TODAY) == 1


def test_empty_participants_returns_empty_list():
    assert compute_leaderboard([], [_metric()], [_log("ghost", "m1", 5)], TODAY) == []


def test_unknown_metric_contributes_nothing():
    """Logs for a metric that is not part of the challenge are skipped."""
    logs = [_log("ann", "m1", 2), _log("ann", "deleted", 500)]
    entries = compute_leaderboard([_participant("ann")], [_metric()], logs, TODAY)
    assert entries[0].total_points == 2.0


def test_unknown_metric_still_marks_day_logged():
    entries = compute_leaderboard(
        [_participant("ann")], [_metric()], [_log("ann", "deleted", 3)], TODAY
    )
    assert entries[0].today_logged is True
    assert entries[0].streak == 1


def test_logs_of_other_participants_are_ignored():
    logs = [_log("ann", "m1", 2), _log("stranger", "m1", 99)]
    entries = compute_leaderboard([_participant("ann")], [_metric()], logs, TODAY)
    assert len(entries) == 1
    assert entries[0].total_points == 2.0


def test_later_log_for_same_day_replaces_earlier():
    """Re-logging a metric on the same day is an overwrite, not an addition."""
    logs = [_log("ann", "m1", 10), _log("ann", "m1", 4)]
    entries = compute_leaderboard([_participant("ann")], [_metric()], logs, TODAY)
    assert entries[0].total_points == 4.0
    assert build_log_index(logs) == {"ann": {TODAY: {"m1": 4}}}


def test_totals_include_logs_outside_any_window():
    """Every log scores, including future-dated ones."""
    logs = [
        _log("ann", "m1", 1, TODAY - timedelta(days=400)),
        _log("ann", "m1", 1, TODAY + timedelta(days=5)),
    ]
    entries = compute_leaderboard([_participant("ann")], [_metric()], logs, TODAY)
    assert entries[0].total_points == 2.0
    assert entries[0].streak == 0


def test_totals_are_sum_of_days_rounded_once():
    """Fractions are summed before rounding to one decimal."""
    metric = _metric(points_per_unit=0.04)
    logs = [_log("ann", "m1", 1, TODAY - timedelta(days=n)) for n in range(3)]
    entries = compute_leaderboard([_participant("ann")], [metric], logs, TODAY)
    assert entries[0].total_points == 0.1
    assert entries[0].today_points == 0.0


@pytest.mark.parametrize(
    "points, expected",
    [
        (0.25, 0.3),
        (1.25, 1.3),
        (12.04, 12.0),
        (12.06, 12.1),
        (-0.25, -0.3),
        (0, 0.0),
    ],
)
def test_round_points_half_away_from_zero(points, expected):
    assert round_points(points) == expected


def test_negative_values_flow_through_scoring():
    """Scoring does not validate values; negative input lowers the total."""
    logs = [_log("ann", "m1", 10, TODAY - timedelta(days=1)), _log("ann", "m1", -4)]
    entries = compute_leaderboard([_participant("ann")], [_metric()], logs, TODAY)
    assert entries[0].total_points == 6.0
    assert entries[0].streak == 1


def test_day_points_sums_metrics():
    metrics = {
        "m1": _metric("m1", points_per_unit=2),
        "m2": _metric("m2", points_per_unit=0.5, daily_max=10),
    }
    assert day_points({"m1": 3, "m2": 30}, metrics) == 11


def test_assign_ranks_competition_style():
    assert assign_ranks([]) == []
    assert assign_ranks([50]) == [1]
    assert assign_ranks([90, 80, 80, 80, 10]) == [1, 2, 2, 2, 5]
    assert assign_ranks([0, 0]) == [1, 1]


def test_adding_a_positive_log_never_lowers_total():
    """Monotonic in positive values."""
    metric = _metric(points_per_unit=3, daily_max=20)
    base_logs = [_log("ann", "m1", 5, TODAY - timedelta(days=1))]
    before = compute_leaderboard([_participant("ann")], [metric], base_logs, TODAY)
    after = compute_leaderboard(
        [_participant("ann")], [metric], base_logs + [_log("ann", "m1", 7)], TODAY
    )
    assert after[0].total_points >= before[0].total_points


def test_same_input_same_output():
    metric = _metric(points_per_unit=1.5)
    participants = [_participant("ann"), _participant("bob")]
    logs = [_log("ann", "m1", 3), _log("bob", "m1", 2, TODAY - timedelta(days=1))]
    first = compute_leaderboard(participants, [metric], logs, TODAY)
    second = compute_leaderboard(participants, [metric], logs, TODAY)
    assert [e.model_dump() for e in first] == [e.model_dump() for e in second]


def test_inputs_are_not_mutated():
    metric = _metric()
    participants = [_participant("bob"), _participant("ann")]
    logs = [_log("ann", "m1", 9), _log("bob", "m1", 1)]
    compute_leaderboard(participants, [metric], logs, TODAY)
    assert [p.id for p in participants] == ["bob", "ann"]
    assert [log.value for log in logs] == [9, 1]


def test_find_entry():
    entries = compute_leaderboard(
        [_participant("ann"), _participant("bob")], [_metric()], [], TODAY
    )
    assert find_entry(entries, "bob").participant.name == "Bob"
    assert find_entry(entries, "nobody") is None
