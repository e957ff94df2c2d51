"""
Score aggregation and winner resolution.

Implements the match scoring rules:
- Team total = sum of every submission's total for that team (not an average)
- Bye and tie-break entries count exactly like a judge's submission
- Unique maximum wins; a shared maximum is a tie; no submissions is pending
- A confirmed bye decides its round outright
"""

from collections import OrderedDict
from typing import Dict, Iterable, List, Optional

from tourney.tournament.models import (
    MatchResult,
    Resolution,
    ScoreSubmission,
    SubmissionKind,
    TeamTotal,
)


def submissions_for_round(
    submissions: Iterable[ScoreSubmission],
    round_name: str
) -> List[ScoreSubmission]:
    """
    Select the submissions that count towards a round.

    Includes the round's own entries and its bye entries, in arrival order.
    Repeated system entries for the same match id are dropped, keeping the
    earliest one.

    Args:
        submissions: All known submissions
        round_name: Round to select

    Returns:
        Submissions sorted by arrival
    """
    selected = sorted(
        (s for s in submissions if s.round_name == round_name),
        key=lambda s: s.sort_key
    )

    seen_system = set()
    result = []
    for submission in selected:
        if submission.is_system:
            if submission.match_id in seen_system:
                continue
            seen_system.add(submission.match_id)
        result.append(submission)
    return result


def aggregate_scores(
    submissions: Iterable[ScoreSubmission],
    round_name: str
) -> Dict[str, float]:
    """
    Sum each team's total across every submission of a round.

    Args:
        submissions: All known submissions (any round)
        round_name: Round to aggregate

    Returns:
        Mapping of team name to cumulative total. Empty when the round has
        no submissions yet.
    """
    totals: Dict[str, float] = OrderedDict()
    for submission in submissions_for_round(submissions, round_name):
        for team in submission.teams:
            totals[team.name] = totals.get(team.name, 0) + team.total
    return dict(totals)


def resolve_winner(totals: Dict[str, float]) -> Resolution:
    """
    Decide the winner of a match from its aggregated totals.

    Args:
        totals: Mapping returned by aggregate_scores

    Returns:
        Pending when totals is empty, Decided with the unique top team,
        or Tie with every team sharing the top score.
    """
    if not totals:
        return Resolution.pending()

    max_total = max(totals.values())
    leaders = [name for name, total in totals.items() if total == max_total]

    if len(leaders) == 1:
        return Resolution.decided(leaders[0], max_total)
    return Resolution.tie(sorted(leaders), max_total)


def compute_match_result(
    submissions: Iterable[ScoreSubmission],
    round_name: str
) -> MatchResult:
    """
    Aggregate and resolve one round into a MatchResult.

    A confirmed bye decides the round for its team, whatever else was
    recorded; with several byes the earliest one counts.
    """
    selected = submissions_for_round(submissions, round_name)
    totals = aggregate_scores(selected, round_name)
    judges = {s.judge_id for s in selected if s.kind == SubmissionKind.JUDGE}
    byes = [s for s in selected if s.kind == SubmissionKind.BYE]

    if byes:
        team = byes[0].bye_team
        resolution = Resolution.decided(team, totals.get(team, 0))
    else:
        resolution = resolve_winner(totals)

    return MatchResult(
        round_name=round_name,
        teams=[TeamTotal(name, total) for name, total in totals.items()],
        resolution=resolution,
        judges=len(judges),
        is_bye=bool(byes),
    )


def compute_all_results(
    submissions: List[ScoreSubmission],
    round_names: Iterable[str]
) -> Dict[str, MatchResult]:
    """Compute match results for several rounds at once."""
    return {name: compute_match_result(submissions, name) for name in round_names}


def winner_of(submissions: List[ScoreSubmission], round_name: str) -> Optional[str]:
    """Winner of a round, or None while pending or tied."""
    return compute_match_result(submissions, round_name).winner


def phase_totals(
    submissions: List[ScoreSubmission],
    round_names: Iterable[str]
) -> Dict[str, float]:
    """
    Cumulative totals per team across several rounds.

    Used for top-N qualification out of a phase.
    """
    totals: Dict[str, float] = OrderedDict()
    for round_name in round_names:
        for name, total in aggregate_scores(submissions, round_name).items():
            totals[name] = totals.get(name, 0) + total
    return dict(totals)
