"""
FastAPI application for the debate tournament.
"""
import asyncio
import logging
import os
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from tourney.config import load_config
from tourney.exceptions import (
    CriterionNotFoundError,
    DuplicateJudgeSubmissionError,
    DuplicateSubmissionError,
    InvalidSubmissionError,
    RoundNotFoundError,
    TourneyException,
    UnknownTeamError,
)
from tourney.store.storage import TournamentStorage
from tourney.tournament.bracket import BracketMatch
from tourney.tournament.models import Judge, Round, RubricCriterion, ScoreSubmission, Team
from tourney.tournament.qualification import Qualification
from tourney.tournament.round_state import DebateState
from tourney.web.models import (
    ActiveRoundRequest, BracketInfo, BracketMatchInfo, BracketPhaseInfo,
    ByeRequest, CriterionCreate, CriterionInfo, CriterionUpdate,
    DebateStateInfo, JudgeCreate, JudgeInfo, ManualBracket,
    MatchResultInfo, PresentationUpdate, QualificationInfo, RoundCreate,
    RoundInfo, ScoreSheet, SettingsUpdate, StandingInfo, SubmissionInfo,
    TeamCreate, TeamInfo, TeamScoreInfo, TeamUpdate, TieBreakInfo,
    TieBreakRollRequest,
)
from tourney.web.service import CHANNELS, TournamentService, result_to_dict, tiebreak_to_dict
from tourney.web.websocket import ChannelWebSocketHandler, ConnectionManager

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Debate Tournament",
    description="Live scoring, qualification and bracket for a debate tournament",
    version="1.0.0"
)

# Global instances (initialized in startup or by configure())
service: Optional[TournamentService] = None
connection_manager: Optional[ConnectionManager] = None
ws_handler: Optional[ChannelWebSocketHandler] = None


def configure(tournament_service: TournamentService):
    """Use an existing service instead of building one from TOURNEY_CONFIG."""
    global service
    service = tournament_service


@app.on_event("startup")
async def startup():
    """Initialize global instances on startup."""
    global service, connection_manager, ws_handler

    if service is None:
        config = load_config(os.environ.get("TOURNEY_CONFIG"))
        service = TournamentService(TournamentStorage(data_dir=config.data_dir), config)
        logger.info("Tournament data in %s", config.data_dir)

    connection_manager = ConnectionManager(service)
    connection_manager.start(asyncio.get_running_loop())
    ws_handler = ChannelWebSocketHandler(connection_manager)


@app.on_event("shutdown")
async def shutdown():
    if connection_manager:
        connection_manager.stop()


@app.exception_handler(TourneyException)
async def tourney_exception_handler(request: Request, exc: TourneyException):
    """Map engine errors to HTTP status codes."""
    if isinstance(exc, (RoundNotFoundError, CriterionNotFoundError)):
        status_code = 404
    elif isinstance(exc, (DuplicateSubmissionError, DuplicateJudgeSubmissionError)):
        status_code = 409
    elif isinstance(exc, (UnknownTeamError, InvalidSubmissionError)):
        status_code = 422
    else:
        status_code = 400
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": str(exc)}
    )


# =============================================================================
# Converters
# =============================================================================

def _team_info(team: Team) -> TeamInfo:
    return TeamInfo(team_id=team.team_id, name=team.name, school_name=team.school_name, status=team.status)


def _round_info(round_: Round) -> RoundInfo:
    return RoundInfo(round_id=round_.round_id, name=round_.name, phase=round_.phase, created_at=round_.created_at)


def _judge_info(judge: Judge) -> JudgeInfo:
    return JudgeInfo(judge_id=judge.judge_id, name=judge.name, status=judge.status)


def _criterion_info(criterion: RubricCriterion) -> CriterionInfo:
    return CriterionInfo(
        criterion_id=criterion.criterion_id,
        name=criterion.name,
        description=criterion.description,
        created_at=criterion.created_at,
    )


def _submission_info(submission: ScoreSubmission) -> SubmissionInfo:
    return SubmissionInfo(
        submission_id=submission.submission_id,
        match_id=submission.match_id,
        round_name=submission.round_name,
        kind=submission.kind.value,
        judge_id=submission.judge_id,
        judge_name=submission.judge_name,
        teams=[TeamScoreInfo(**t.to_dict()) for t in submission.teams],
        created_at=submission.created_at,
    )


def _qualification_info(qualification: Qualification) -> QualificationInfo:
    return QualificationInfo(
        round_name=qualification.round_name,
        source=qualification.source.value,
        slots=qualification.slots,
        teams=qualification.teams,
        is_determined=qualification.is_determined,
        pending_rounds=qualification.pending_rounds,
        unknown_teams=qualification.unknown_teams,
    )


def _debate_state_info(state: DebateState) -> DebateStateInfo:
    return DebateStateInfo(
        current_round=state.current_round,
        teams=state.teams,
        question=state.question,
        video_url=state.video_url,
        timer_duration=state.timer_duration,
    )


def _match_info(match: Optional[BracketMatch]) -> Optional[BracketMatchInfo]:
    if match is None:
        return None
    return BracketMatchInfo(
        round_name=match.round_name,
        phase=match.phase,
        teams=match.teams,
        state=match.state.value,
        winner=match.winner,
        totals=match.totals,
        judges=match.judges,
        is_current=match.is_current,
    )


def _standings() -> List[StandingInfo]:
    return [
        StandingInfo(
            rank=s.rank,
            name=s.name,
            total_points=s.total_points,
            matches_played=s.matches_played,
            wins=s.wins,
        )
        for s in service.bracket().group_standings
    ]


# =============================================================================
# Teams, rounds and judges
# =============================================================================

@app.get("/api/teams")
async def list_teams(verified_only: bool = False):
    """List registered teams."""
    return {"teams": [_team_info(t) for t in service.list_teams(verified_only=verified_only)]}


@app.post("/api/teams", response_model=TeamInfo)
async def add_team(team: TeamCreate):
    """Register a team."""
    return _team_info(service.add_team(team.name, school_name=team.school_name, verified=team.verified))


@app.patch("/api/teams/{team_id}", response_model=TeamInfo)
async def update_team(team_id: str, update: TeamUpdate):
    """Rename a team or change its verification."""
    if not any(t.team_id == team_id for t in service.list_teams()):
        raise HTTPException(status_code=404, detail="Team not found")
    return _team_info(service.update_team(team_id, name=update.name, verified=update.verified))


@app.get("/api/rounds")
async def list_rounds(phase: Optional[str] = None):
    """List rounds in creation order."""
    return {"rounds": [_round_info(r) for r in service.list_rounds(phase=phase)]}


@app.post("/api/rounds", response_model=RoundInfo)
async def create_round(round_: RoundCreate):
    """Create a round."""
    return _round_info(service.create_round(round_.name, round_.phase))


@app.delete("/api/rounds/{round_name}")
async def delete_round(round_name: str):
    """Delete a round that has no scores yet."""
    service.delete_round(round_name)
    return {"status": "deleted"}


@app.get("/api/judges")
async def list_judges():
    return {"judges": [_judge_info(j) for j in service.list_judges()]}


@app.post("/api/judges", response_model=JudgeInfo)
async def add_judge(judge: JudgeCreate):
    """Register a judge."""
    return _judge_info(service.add_judge(judge.name, judge_id=judge.judge_id, active=judge.active))


# =============================================================================
# Rubric
# =============================================================================

@app.get("/api/rubric")
async def list_rubric():
    """Rubric criteria in the order judges score them."""
    return {"criteria": [_criterion_info(c) for c in service.list_rubric()]}


@app.post("/api/rubric", response_model=CriterionInfo)
async def add_criterion(criterion: CriterionCreate):
    """Add a criterion at the end of the rubric."""
    return _criterion_info(service.add_criterion(
        criterion.name, description=criterion.description, criterion_id=criterion.criterion_id
    ))


@app.patch("/api/rubric/{criterion_id}", response_model=CriterionInfo)
async def update_criterion(criterion_id: str, update: CriterionUpdate):
    return _criterion_info(service.update_criterion(
        criterion_id, name=update.name, description=update.description
    ))


@app.delete("/api/rubric/{criterion_id}")
async def delete_criterion(criterion_id: str):
    service.delete_criterion(criterion_id)
    return {"status": "deleted"}


# =============================================================================
# Scores and results
# =============================================================================

@app.post("/api/scores", response_model=SubmissionInfo)
async def submit_scores(sheet: ScoreSheet):
    """Store a judge's rubric scores for a round."""
    submission = service.submit_scores(sheet.round_name, sheet.judge_id, sheet.teams)
    return _submission_info(submission)


@app.get("/api/scores")
async def list_scores(round_name: Optional[str] = None):
    """List score submissions, optionally for one round."""
    return {"scores": [_submission_info(s) for s in service.list_submissions(round_name)]}


@app.get("/api/results")
async def list_results():
    """Aggregated result of every round."""
    return {"results": [MatchResultInfo(**result_to_dict(r)) for r in service.results().values()]}


@app.get("/api/results/{round_name}", response_model=MatchResultInfo)
async def get_result(round_name: str):
    """Aggregated result of one round."""
    return MatchResultInfo(**result_to_dict(service.match_result(round_name)))


@app.get("/api/scoring-status")
async def get_scoring_status():
    """Which active judges have scored each round."""
    return {
        "rounds": {
            name: {
                "scored": [j.name for j in status.scored],
                "pending": [j.name for j in status.pending],
                "total_judges": status.total_judges,
                "is_complete": status.is_complete,
            }
            for name, status in service.scoring_status().items()
        }
    }


# =============================================================================
# Qualification, standings and bracket
# =============================================================================

@app.get("/api/qualification")
async def list_qualifications():
    """Qualified teams for every round."""
    return {"rounds": [_qualification_info(q) for q in service.qualifications().values()]}


@app.get("/api/qualification/{round_name}", response_model=QualificationInfo)
async def get_qualification(round_name: str):
    """Qualified teams for one round."""
    return _qualification_info(service.qualification(round_name))


@app.get("/api/standings")
async def get_standings():
    """Group-stage table."""
    return {"standings": _standings()}


@app.get("/api/bracket", response_model=BracketInfo)
async def get_bracket():
    """Standings, bracket and the live/next match."""
    view = service.bracket()
    return BracketInfo(
        group_standings=_standings(),
        phases=[
            BracketPhaseInfo(name=phase.name, matches=[_match_info(m) for m in phase.matches])
            for phase in view.phases
        ],
        current_match=_match_info(view.current_match),
        next_match=_match_info(view.next_match),
        champion=view.champion,
    )


@app.get("/api/bracket/manual")
async def get_manual_bracket():
    """Staff-edited bracket with winners moved forward."""
    return {"rounds": service.manual_bracket()}


@app.put("/api/bracket/manual")
async def save_manual_bracket(bracket: ManualBracket):
    """Save a staff-edited bracket."""
    return {"rounds": service.save_manual_bracket(bracket.rounds)}


# =============================================================================
# Live round state
# =============================================================================

@app.get("/api/debate-state", response_model=DebateStateInfo)
async def get_debate_state():
    return _debate_state_info(service.debate_state())


@app.put("/api/debate-state/round", response_model=DebateStateInfo)
async def set_active_round(request: ActiveRoundRequest):
    """Make a round the active one."""
    return _debate_state_info(service.set_active_round(request.round_name, request.teams))


@app.patch("/api/debate-state", response_model=DebateStateInfo)
async def update_presentation(update: PresentationUpdate):
    """Update question, video or timer of the live round."""
    state = service.update_presentation(
        question=update.question,
        video_url=update.video_url,
        timer_duration=update.timer_duration,
    )
    return _debate_state_info(state)


@app.post("/api/byes", response_model=SubmissionInfo)
async def confirm_bye(request: ByeRequest):
    """Advance a team through a round without a debate."""
    return _submission_info(service.confirm_bye(request.round_name, request.team))


# =============================================================================
# Tie-breaks
# =============================================================================

@app.get("/api/tiebreaks/{round_name}", response_model=TieBreakInfo)
async def get_tiebreak(round_name: str):
    return TieBreakInfo(**tiebreak_to_dict(service.tiebreak(round_name)))


@app.post("/api/tiebreaks/{round_name}/start", response_model=TieBreakInfo)
async def start_tiebreak(round_name: str):
    """Open a tie-break for a tied round."""
    return TieBreakInfo(**tiebreak_to_dict(service.start_tiebreak(round_name)))


@app.post("/api/tiebreaks/{round_name}/roll", response_model=TieBreakInfo)
async def roll_tiebreak(round_name: str, request: Optional[TieBreakRollRequest] = None):
    """Roll the dice; fixed values may be given for physical dice."""
    values = request.values if request else None
    return TieBreakInfo(**tiebreak_to_dict(service.roll_tiebreak(round_name, values)))


@app.post("/api/tiebreaks/{round_name}/confirm", response_model=SubmissionInfo)
async def confirm_tiebreak(round_name: str):
    """Store the tie-break winner."""
    return _submission_info(service.confirm_tiebreak(round_name))


# =============================================================================
# Draw, settings and audit
# =============================================================================

@app.get("/api/draw")
async def get_draw():
    return {"assignments": service.draw()}


@app.post("/api/draw")
async def run_draw():
    """Deal the roster across the group-stage rounds."""
    return service.run_draw()


@app.put("/api/draw")
async def set_draw(assignments: Dict[str, List[str]]):
    """Publish a manual draw: round name -> team names."""
    return service.set_draw(assignments)


@app.delete("/api/draw")
async def clear_draw():
    service.clear_draw()
    return {"status": "cleared"}


@app.get("/api/settings")
async def get_settings():
    return service.settings()


@app.patch("/api/settings")
async def update_settings(update: SettingsUpdate):
    """Publish results or open/close registrations."""
    return service.update_settings(
        results_published=update.results_published,
        registrations_closed=update.registrations_closed,
    )


@app.get("/api/audit")
async def get_audit_log(limit: int = Query(default=50, ge=1, le=500)):
    """Most recent staff actions."""
    return {"entries": [e.to_dict() for e in service.audit.recent(limit)]}


# =============================================================================
# WebSocket Endpoint
# =============================================================================

@app.websocket("/ws/{channel}")
async def websocket_endpoint(websocket: WebSocket, channel: str):
    """WebSocket endpoint for live displays."""
    if channel not in CHANNELS:
        await websocket.close(code=4004, reason="Unknown channel")
        return

    await connection_manager.connect(websocket, channel)

    # Send initial state
    await websocket.send_json({"type": "state", "channel": channel, "data": service.snapshot(channel)})

    try:
        while True:
            data = await websocket.receive_json()
            await ws_handler.handle_message(websocket, channel, data)
    except WebSocketDisconnect:
        connection_manager.disconnect(websocket)


@app.get("/")
async def root():
    return {"message": "Debate tournament API. Use /docs for API documentation."}
