"""
Tests for score aggregation and winner resolution.
"""

import itertools

import pytest

from tourney.tournament.models import (
    ScoreSubmission,
    SubmissionKind,
    TeamScore,
    bye_match_id,
    decode_match_id,
)
from tourney.tournament.scoring import (
    aggregate_scores,
    compute_all_results,
    compute_match_result,
    phase_totals,
    resolve_winner,
    submissions_for_round,
    winner_of,
)


def make_submission(match_id, judge_id, totals, created_at="", submission_id=None):
    return ScoreSubmission(
        match_id=match_id,
        judge_id=judge_id,
        teams=[TeamScore(name=name, total=total) for name, total in totals.items()],
        created_at=created_at,
        submission_id=submission_id,
    )


class TestSubmissionDecoding:
    """Tests for tagging submissions by kind."""

    def test_judge_submission(self):
        sub = make_submission("Ronda 1", "judge-1", {"TeamA": 7})
        assert sub.kind == SubmissionKind.JUDGE
        assert sub.round_name == "Ronda 1"
        assert sub.bye_team is None
        assert not sub.is_system

    def test_bye_submission(self):
        sub = make_submission(bye_match_id("Ronda 1", "TeamX"), "system", {"TeamX": 1})
        assert sub.kind == SubmissionKind.BYE
        assert sub.round_name == "Ronda 1"
        assert sub.bye_team == "TeamX"
        assert sub.is_system

    def test_tiebreak_submission(self):
        sub = make_submission("Ronda 1", "system", {"TeamA": 1, "TeamB": 0})
        assert sub.kind == SubmissionKind.TIEBREAK
        assert sub.is_system

    def test_decode_match_id(self):
        assert decode_match_id("Ronda 1") == ("Ronda 1", None)
        assert decode_match_id("Ronda 1-bye-Team X") == ("Ronda 1", "Team X")

    def test_record_roundtrip_keeps_kind(self):
        """Decoding a stored record tags it the same way."""
        sub = make_submission("Final-bye-TeamX", "system", {"TeamX": 1}, created_at="t1")
        restored = ScoreSubmission.from_record(sub.to_record())
        assert restored.kind == SubmissionKind.BYE
        assert restored.round_name == "Final"
        assert restored.teams[0].total == 1


class TestAggregation:
    """Tests for ScoreAggregator behaviour."""

    def test_sums_not_averages(self):
        """Totals are summed across judges, not averaged."""
        subs = [
            make_submission("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 5}),
            make_submission("Ronda 1", "judge-2", {"TeamA": 6, "TeamB": 8}),
        ]
        assert aggregate_scores(subs, "Ronda 1") == {"TeamA": 13, "TeamB": 13}

    def test_order_independent(self):
        """Any arrival order gives the same totals."""
        subs = [
            make_submission("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 5}),
            make_submission("Ronda 1", "judge-2", {"TeamA": 6, "TeamB": 8}),
            make_submission("Ronda 1", "judge-3", {"TeamA": 9, "TeamB": 9.5}),
            make_submission("Ronda 1", "system", {"TeamA": 1, "TeamB": 0}),
        ]
        expected = aggregate_scores(subs, "Ronda 1")
        for perm in itertools.permutations(subs):
            assert aggregate_scores(list(perm), "Ronda 1") == expected

    def test_zero_submissions_is_empty(self):
        subs = [make_submission("Ronda 2", "judge-1", {"TeamA": 7, "TeamB": 5})]
        assert aggregate_scores(subs, "Ronda 1") == {}
        assert aggregate_scores([], "Ronda 1") == {}

    def test_bye_bucketed_into_round(self):
        subs = [make_submission("Ronda 1-bye-TeamX", "system", {"TeamX": 1})]
        assert aggregate_scores(subs, "Ronda 1") == {"TeamX": 1}

    def test_round_name_prefix_is_not_a_match(self):
        """Ronda 10 must not be counted in Ronda 1."""
        subs = [
            make_submission("Ronda 10", "judge-1", {"TeamA": 7, "TeamB": 5}),
            make_submission("Ronda 1", "judge-1", {"TeamC": 4, "TeamD": 3}),
        ]
        assert aggregate_scores(subs, "Ronda 1") == {"TeamC": 4, "TeamD": 3}

    def test_system_entry_counts_like_a_judge(self):
        subs = [
            make_submission("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 7}),
            make_submission("Ronda 1", "system", {"TeamA": 0, "TeamB": 1}),
        ]
        assert aggregate_scores(subs, "Ronda 1") == {"TeamA": 7, "TeamB": 8}

    def test_duplicate_system_entries_counted_once(self):
        """Repeated bye entries for the same match keep only the first."""
        subs = [
            make_submission("Ronda 1-bye-TeamX", "system", {"TeamX": 1}, created_at="2024-01-01T10:00:01"),
            make_submission("Ronda 1-bye-TeamX", "system", {"TeamX": 1}, created_at="2024-01-01T10:00:00"),
        ]
        selected = submissions_for_round(subs, "Ronda 1")
        assert len(selected) == 1
        assert selected[0].created_at == "2024-01-01T10:00:00"
        assert aggregate_scores(subs, "Ronda 1") == {"TeamX": 1}

    def test_duplicate_judge_entries_are_summed(self):
        """Aggregation never de-duplicates human judges."""
        subs = [
            make_submission("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 5}),
            make_submission("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 5}),
        ]
        assert aggregate_scores(subs, "Ronda 1") == {"TeamA": 14, "TeamB": 10}


class TestWinnerResolution:
    """Tests for WinnerResolver behaviour."""

    def test_empty_is_pending(self):
        resolution = resolve_winner({})
        assert resolution.is_pending
        assert not resolution.is_tie
        assert resolution.winner is None

    def test_unique_max_wins(self):
        resolution = resolve_winner({"TeamA": 14, "TeamB": 13})
        assert resolution.is_decided
        assert resolution.winner == "TeamA"
        assert resolution.score == 14

    def test_tie(self):
        """A shared maximum is a tie."""
        resolution = resolve_winner({"TeamA": 13, "TeamB": 13})
        assert resolution.is_tie
        assert resolution.tied_teams == ("TeamA", "TeamB")
        assert resolution.score == 13
        assert resolution.winner is None

    def test_multi_team_tie(self):
        resolution = resolve_winner({"TeamC": 5, "TeamA": 5, "TeamB": 3})
        assert resolution.is_tie
        assert resolution.tied_teams == ("TeamA", "TeamC")

    def test_single_team_wins(self):
        resolution = resolve_winner({"TeamX": 1})
        assert resolution.winner == "TeamX"

    def test_deterministic(self):
        totals = {"TeamA": 10, "TeamB": 12, "TeamC": 12}
        assert resolve_winner(totals) == resolve_winner(dict(totals))


class TestMatchResult:
    """Tests for combined match results."""

    def test_tie_then_tiebreak(self):
        """A one-point system entry decides a tied round."""
        subs = [
            make_submission("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 5}),
            make_submission("Ronda 1", "judge-2", {"TeamA": 6, "TeamB": 8}),
        ]
        assert compute_match_result(subs, "Ronda 1").is_tie

        subs.append(make_submission("Ronda 1", "system", {"TeamA": 1, "TeamB": 0}))
        result = compute_match_result(subs, "Ronda 1")
        assert result.totals() == {"TeamA": 14, "TeamB": 13}
        assert result.winner == "TeamA"
        assert result.judges == 2
        assert not result.is_bye

    def test_bye_result(self):
        subs = [make_submission("Ronda 3-bye-TeamX", "system", {"TeamX": 1})]
        result = compute_match_result(subs, "Ronda 3")
        assert result.is_bye
        assert result.winner == "TeamX"
        assert result.judges == 0

    def test_bye_decides_over_judge_scores(self):
        """Scores recorded alongside a bye do not change its winner."""
        subs = [
            make_submission("Ronda 3", "judge-1", {"TeamA": 5, "TeamB": 7}, created_at="t1"),
            make_submission("Ronda 3-bye-TeamA", "system", {"TeamA": 1}, created_at="t2"),
        ]
        result = compute_match_result(subs, "Ronda 3")
        assert result.is_bye
        assert result.winner == "TeamA"
        assert result.totals() == {"TeamA": 6, "TeamB": 7}
        assert winner_of(subs, "Ronda 3") == "TeamA"

    def test_earliest_bye_wins(self):
        subs = [
            make_submission("Ronda 3-bye-TeamB", "system", {"TeamB": 1}, created_at="t2"),
            make_submission("Ronda 3-bye-TeamA", "system", {"TeamA": 1}, created_at="t1"),
        ]
        result = compute_match_result(subs, "Ronda 3")
        assert not result.is_tie
        assert result.winner == "TeamA"

    def test_pending_result(self):
        result = compute_match_result([], "Final")
        assert result.is_pending
        assert result.teams == []

    def test_compute_all_and_winner_of(self):
        subs = [
            make_submission("R1", "judge-1", {"TeamA": 7, "TeamB": 5}),
            make_submission("R2", "judge-1", {"TeamC": 5, "TeamD": 5}),
        ]
        results = compute_all_results(subs, ["R1", "R2", "R3"])
        assert results["R1"].winner == "TeamA"
        assert results["R2"].is_tie
        assert results["R3"].is_pending
        assert winner_of(subs, "R1") == "TeamA"
        assert winner_of(subs, "R2") is None

    def test_phase_totals(self):
        subs = [
            make_submission("R1", "judge-1", {"TeamA": 7, "TeamB": 5}),
            make_submission("R2", "judge-1", {"TeamA": 3, "TeamC": 9}),
            make_submission("R2-bye-TeamD", "system", {"TeamD": 1}),
        ]
        assert phase_totals(subs, ["R1", "R2"]) == {
            "TeamA": 10, "TeamB": 5, "TeamC": 9, "TeamD": 1
        }
