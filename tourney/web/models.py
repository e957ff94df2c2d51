"""
Pydantic models for the tournament web API.

Defines request/response schemas for the REST endpoints.
"""
from pydantic import BaseModel, Field
from typing import List, Dict, Optional, Any


class TeamCreate(BaseModel):
    """Register a team."""
    name: str = Field(min_length=1)
    school_name: str = ""
    verified: bool = False


class TeamUpdate(BaseModel):
    """Rename a team or change its verification."""
    name: Optional[str] = None
    verified: Optional[bool] = None


class TeamInfo(BaseModel):
    """A registered team."""
    team_id: str
    name: str
    school_name: str
    status: str


class RoundCreate(BaseModel):
    """Create a round."""
    name: str = Field(min_length=1)
    phase: str = Field(min_length=1)


class RoundInfo(BaseModel):
    """A round."""
    round_id: str
    name: str
    phase: str
    created_at: str


class JudgeCreate(BaseModel):
    """Register a judge."""
    name: str = Field(min_length=1)
    judge_id: Optional[str] = None
    active: bool = True


class JudgeInfo(BaseModel):
    """A judge."""
    judge_id: str
    name: str
    status: str


class CriterionCreate(BaseModel):
    """Add a rubric criterion."""
    name: str = Field(min_length=1)
    description: str = ""
    criterion_id: Optional[str] = None


class CriterionUpdate(BaseModel):
    """Rename a rubric criterion or change its description."""
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None


class CriterionInfo(BaseModel):
    """A rubric criterion."""
    criterion_id: str
    name: str
    description: str
    created_at: str


class ScoreSheet(BaseModel):
    """A judge's rubric scores for a round."""
    round_name: str = Field(min_length=1)
    judge_id: str = Field(min_length=1)
    teams: Dict[str, Dict[str, float]] = Field(description="team name -> criterion id -> points (1..5)")


class TeamScoreInfo(BaseModel):
    """One team inside a stored submission."""
    name: str
    total: float
    scores: Dict[str, float] = {}
    checksum: Optional[str] = None


class SubmissionInfo(BaseModel):
    """A stored score submission."""
    submission_id: Optional[int]
    match_id: str
    round_name: str
    kind: str
    judge_id: str
    judge_name: str
    teams: List[TeamScoreInfo]
    created_at: str


class TeamTotalInfo(BaseModel):
    """A team's aggregated points in a round."""
    name: str
    total_points: float


class MatchResultInfo(BaseModel):
    """Aggregated result of a round."""
    round_name: str
    status: str  # pending, tie or decided
    winner: Optional[str] = None
    is_tie: bool
    tied_teams: List[str] = []
    tied_score: Optional[float] = None
    teams: List[TeamTotalInfo]
    judges: int
    is_bye: bool


class QualificationInfo(BaseModel):
    """Teams qualified into a round."""
    round_name: str
    source: str
    slots: List[Optional[str]]
    teams: List[str]
    is_determined: bool
    pending_rounds: List[str]
    unknown_teams: List[str]


class DebateStateInfo(BaseModel):
    """The live debate state."""
    current_round: str
    teams: List[str]
    question: str = ""
    video_url: str = ""
    timer_duration: Optional[int] = None


class ActiveRoundRequest(BaseModel):
    """Make a round the active one."""
    round_name: str
    teams: Optional[List[str]] = Field(
        default=None, description="Teams to show; computed qualification if omitted"
    )


class PresentationUpdate(BaseModel):
    """Update the question, video or timer shown with the active round."""
    question: Optional[str] = None
    video_url: Optional[str] = None
    timer_duration: Optional[int] = Field(default=None, ge=0)


class ByeRequest(BaseModel):
    """Advance a team through a round without a debate."""
    round_name: str
    team: str


class TieBreakRollRequest(BaseModel):
    """Dice values for a tie-break; random when omitted."""
    values: Optional[Dict[str, int]] = None


class TieBreakInfo(BaseModel):
    """A tie-break in progress."""
    round_name: str
    state: str
    teams: List[str]
    tied_score: Optional[float] = None
    rolls: List[Dict[str, int]] = []
    winner: Optional[str] = None


class SettingsUpdate(BaseModel):
    """Competition settings."""
    results_published: Optional[bool] = None
    registrations_closed: Optional[bool] = None


class StandingInfo(BaseModel):
    """A line of the group table."""
    rank: int
    name: str
    total_points: float
    matches_played: int
    wins: int


class BracketMatchInfo(BaseModel):
    """A round in the bracket."""
    round_name: str
    phase: str
    teams: List[Optional[str]]
    state: str
    winner: Optional[str] = None
    totals: Dict[str, float] = {}
    judges: int = 0
    is_current: bool = False


class BracketPhaseInfo(BaseModel):
    """Matches of one phase."""
    name: str
    matches: List[BracketMatchInfo]


class BracketInfo(BaseModel):
    """Standings and bracket."""
    group_standings: List[StandingInfo]
    phases: List[BracketPhaseInfo]
    current_match: Optional[BracketMatchInfo] = None
    next_match: Optional[BracketMatchInfo] = None
    champion: Optional[str] = None


class ManualBracket(BaseModel):
    """Staff-edited bracket: [{id, title, matches: [{id, participants, nextMatchId}]}]."""
    rounds: List[Dict[str, Any]]

