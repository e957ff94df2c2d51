"""
Judge-side scoring: building rubric submissions and tracking which judges
have scored each round.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Mapping

from tourney.exceptions import InvalidSubmissionError
from tourney.tournament.models import Judge, Round, ScoreSubmission, TeamScore
from tourney.utils.constants import (
    JUDGE_ACTIVE,
    RUBRIC_MAX_SCORE,
    RUBRIC_MIN_SCORE,
    SYSTEM_JUDGE_ID,
)


def rubric_checksum(criteria_ids: Sequence[str], scores: Mapping[str, float]) -> str:
    """
    Short checksum of a team's rubric scores.

    The scores are joined with dashes in rubric order and hashed with a
    31-multiplier string hash kept to 32 bits. The last six hex digits are
    printed on the judge's scoring sheet for later cross-checking.
    """
    if not criteria_ids:
        return ''

    text = '-'.join(_format_score(scores.get(c, 0)) for c in criteria_ids)
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000

    digits = format(h, 'x') if h >= 0 else '-' + format(-h, 'x')
    return digits.upper()[-6:]


def _format_score(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def build_submission(
    round_name: str,
    judge: Judge,
    criteria_ids: Sequence[str],
    team_scores: Mapping[str, Mapping[str, float]]
) -> ScoreSubmission:
    """
    Build a judge's submission for a round from raw rubric scores.

    Args:
        round_name: Round being scored
        judge: The judge submitting
        criteria_ids: Rubric criteria, in rubric order
        team_scores: team name -> {criterion id -> points on the 1..5 scale}

    Returns:
        A JUDGE submission with per-team totals and checksums

    Raises:
        InvalidSubmissionError: On missing criteria, unknown criteria,
            points outside the rubric scale, or the reserved system judge id
    """
    if not criteria_ids:
        raise InvalidSubmissionError("No rubric criteria are configured")
    if not team_scores:
        raise InvalidSubmissionError(f"No teams scored for {round_name}")
    if judge.judge_id == SYSTEM_JUDGE_ID:
        raise InvalidSubmissionError(f"Judge id {SYSTEM_JUDGE_ID!r} is reserved")

    criteria = set(criteria_ids)
    teams = []
    for team_name, scores in team_scores.items():
        missing = [c for c in criteria_ids if c not in scores]
        if missing:
            raise InvalidSubmissionError(
                f"Missing score(s) for team {team_name}: {', '.join(missing)}"
            )
        extra = [c for c in scores if c not in criteria]
        if extra:
            raise InvalidSubmissionError(
                f"Unknown criteria for team {team_name}: {', '.join(extra)}"
            )
        out_of_range = [c for c, v in scores.items() if not RUBRIC_MIN_SCORE <= v <= RUBRIC_MAX_SCORE]
        if out_of_range:
            raise InvalidSubmissionError(
                f"Scores for team {team_name} must be between {RUBRIC_MIN_SCORE} and "
                f"{RUBRIC_MAX_SCORE}: {', '.join(out_of_range)}"
            )

        teams.append(TeamScore(
            name=team_name,
            total=sum(scores[c] for c in criteria_ids),
            scores={c: scores[c] for c in criteria_ids},
            checksum=rubric_checksum(criteria_ids, scores),
        ))

    return ScoreSubmission(
        match_id=round_name,
        judge_id=judge.judge_id,
        judge_name=judge.name,
        teams=teams,
    )


@dataclass
class RoundScoringStatus:
    """Which active judges have and have not scored a round."""
    round_name: str
    scored: List[Judge] = field(default_factory=list)
    pending: List[Judge] = field(default_factory=list)

    @property
    def total_judges(self) -> int:
        return len(self.scored) + len(self.pending)

    @property
    def is_complete(self) -> bool:
        return not self.pending


def scoring_status(
    rounds: Sequence[Round],
    judges: Sequence[Judge],
    submissions: Sequence[ScoreSubmission]
) -> Dict[str, RoundScoringStatus]:
    """
    Scoring progress of every round among active judges.

    Returns an empty mapping when there are no active judges.
    """
    active = [j for j in judges if j.status == JUDGE_ACTIVE]
    if not active:
        return {}

    status = {}
    for round_ in rounds:
        scored_ids = {s.judge_id for s in submissions if s.round_name == round_.name}
        entry = RoundScoringStatus(round_name=round_.name)
        for judge in active:
            if judge.judge_id in scored_ids:
                entry.scored.append(judge)
            else:
                entry.pending.append(judge)
        status[round_.name] = entry
    return status
