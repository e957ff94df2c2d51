"""
Core records of the tournament: teams, rounds, score submissions and
derived match results.

Score submissions arrive from storage as plain records and are decoded once
into a tagged ScoreSubmission (judge, bye or tie-break) so that aggregation
never has to look at match id suffixes or judge sentinels again.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Dict, Optional, Any, Tuple

from tourney.utils.constants import (
    BYE_MARKER,
    SYSTEM_JUDGE_ID,
    STATUS_VERIFIED,
    STATUS_PENDING,
)


@dataclass
class Team:
    """A registered team."""
    team_id: str
    name: str
    school_name: str = ""
    status: str = STATUS_PENDING

    @property
    def is_verified(self) -> bool:
        return self.status == STATUS_VERIFIED


@dataclass
class Round:
    """A named unit of competition belonging to a phase."""
    round_id: str
    name: str
    phase: str
    created_at: str = ""


@dataclass
class Judge:
    """A judge allowed to score rounds."""
    judge_id: str
    name: str
    status: str = "active"


@dataclass
class RubricCriterion:
    """A rubric criterion judges score every team on."""
    criterion_id: str
    name: str
    description: str = ""
    created_at: str = ""


@dataclass
class TeamScore:
    """One team's evaluation inside a single submission."""
    name: str
    total: float
    scores: Dict[str, float] = field(default_factory=dict)
    checksum: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'name': self.name, 'total': self.total}
        if self.scores:
            data['scores'] = dict(self.scores)
        if self.checksum is not None:
            data['checksum'] = self.checksum
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TeamScore':
        return cls(
            name=data['name'],
            total=data.get('total', 0),
            scores=dict(data.get('scores') or {}),
            checksum=data.get('checksum'),
        )


class SubmissionKind(Enum):
    """What produced a score submission."""
    JUDGE = "judge"          # Rubric evaluation by a human judge
    BYE = "bye"              # Uncontested advance of one team
    TIEBREAK = "tiebreak"    # Dice-roll override after a tie


def bye_match_id(round_name: str, team_name: str) -> str:
    """Match id under which a bye for a team is recorded."""
    return f"{round_name}{BYE_MARKER}{team_name}"


def decode_match_id(match_id: str) -> Tuple[str, Optional[str]]:
    """
    Split a stored match id into (round_name, bye_team).

    bye_team is None for regular match ids.
    """
    if BYE_MARKER in match_id:
        round_name, team = match_id.split(BYE_MARKER, 1)
        return round_name, team
    return match_id, None


@dataclass
class ScoreSubmission:
    """A single score submission, tagged by kind."""
    match_id: str
    judge_id: str
    teams: List[TeamScore]
    kind: SubmissionKind = SubmissionKind.JUDGE
    round_name: str = ""
    bye_team: Optional[str] = None
    judge_name: str = ""
    created_at: str = ""
    submission_id: Optional[int] = None

    def __post_init__(self):
        if not self.round_name:
            self.round_name, self.bye_team = decode_match_id(self.match_id)
        if self.bye_team is not None:
            self.kind = SubmissionKind.BYE
        elif self.judge_id == SYSTEM_JUDGE_ID:
            self.kind = SubmissionKind.TIEBREAK

    @property
    def is_system(self) -> bool:
        """Bye and tie-break entries are injected by the system."""
        return self.kind in (SubmissionKind.BYE, SubmissionKind.TIEBREAK)

    @property
    def sort_key(self) -> Tuple[str, int, str]:
        """Arrival order; ties on timestamp fall back to storage id."""
        return (self.created_at, self.submission_id or 0, self.judge_id)

    def to_record(self) -> Dict[str, Any]:
        """Plain record in the shape stored in the scores collection."""
        return {
            'matchId': self.match_id,
            'judgeId': self.judge_id,
            'judgeName': self.judge_name,
            'teams': [t.to_dict() for t in self.teams],
            'createdAt': self.created_at,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'ScoreSubmission':
        """Decode a stored record into a tagged submission."""
        return cls(
            match_id=record['matchId'],
            judge_id=record.get('judgeId') or '',
            teams=[TeamScore.from_dict(t) for t in record.get('teams') or []],
            judge_name=record.get('judgeName') or '',
            created_at=record.get('createdAt') or '',
            submission_id=record.get('id'),
        )


class ResolutionStatus(Enum):
    """Outcome classes of a match."""
    PENDING = "pending"
    TIE = "tie"
    DECIDED = "decided"


@dataclass(frozen=True)
class Resolution:
    """Tagged outcome of winner resolution: Pending, Tie or Decided."""
    status: ResolutionStatus
    winner: Optional[str] = None
    tied_teams: Tuple[str, ...] = ()
    score: Optional[float] = None

    @classmethod
    def pending(cls) -> 'Resolution':
        return cls(ResolutionStatus.PENDING)

    @classmethod
    def tie(cls, teams, score: float) -> 'Resolution':
        return cls(ResolutionStatus.TIE, tied_teams=tuple(teams), score=score)

    @classmethod
    def decided(cls, winner: str, score: float) -> 'Resolution':
        return cls(ResolutionStatus.DECIDED, winner=winner, score=score)

    @property
    def is_pending(self) -> bool:
        return self.status == ResolutionStatus.PENDING

    @property
    def is_tie(self) -> bool:
        return self.status == ResolutionStatus.TIE

    @property
    def is_decided(self) -> bool:
        return self.status == ResolutionStatus.DECIDED


@dataclass
class TeamTotal:
    """A team's cumulative points."""
    name: str
    total_points: float


@dataclass
class MatchResult:
    """Aggregated view over every submission of one round."""
    round_name: str
    teams: List[TeamTotal]
    resolution: Resolution
    judges: int = 0
    is_bye: bool = False

    @property
    def winner(self) -> Optional[str]:
        return self.resolution.winner

    @property
    def is_tie(self) -> bool:
        return self.resolution.is_tie

    @property
    def is_pending(self) -> bool:
        return self.resolution.is_pending

    def totals(self) -> Dict[str, float]:
        return {t.name: t.total_points for t in self.teams}
