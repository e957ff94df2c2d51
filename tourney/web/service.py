"""
Tournament service for the web interface.

Ties the store, the engine and the audit log together. Every read builds
its view from a fresh snapshot of the store, so nothing computed here can
go stale between requests.
"""
import logging
import random
from typing import Any, Callable, Dict, List, Optional, Sequence

from tourney.audit.audit_log import AuditLog
from tourney.exceptions import (
    AlreadyResolvedError,
    ByeConflictError,
    DuplicateJudgeSubmissionError,
    InvalidSubmissionError,
    RoundNotFoundError,
    StaleTieBreakError,
    TournamentStateError,
    UnknownTeamError,
)
from tourney.store.storage import TournamentStorage
from tourney.tournament.bracket import BracketView, populate_manual_bracket, project_bracket, link_bracket_rounds
from tourney.tournament.draw import draw_assignments, draw_groups
from tourney.tournament.judging import RoundScoringStatus, build_submission, scoring_status
from tourney.tournament.models import (
    Judge,
    MatchResult,
    Round,
    RubricCriterion,
    ScoreSubmission,
    SubmissionKind,
    Team,
)
from tourney.tournament.qualification import Qualification, QualificationResolver
from tourney.tournament.round_state import DebateState, RoundStateManager
from tourney.tournament.scoring import compute_all_results, compute_match_result, winner_of
from tourney.tournament.tiebreak import TieBreak, TieBreakEngine, TieBreakState
from tourney.utils.constants import (
    BRACKET_STATE,
    DEBATE_STATE,
    DRAW_STATE,
    JUDGE_ACTIVE,
    JUDGE_INACTIVE,
    SCORES,
    SETTINGS,
    STATUS_PENDING,
    STATUS_VERIFIED,
    SYSTEM_JUDGE_ID,
    TIEBREAK_STATE,
)

logger = logging.getLogger(__name__)

# Push channel -> store collection
CHANNELS = {
    'debate_state': DEBATE_STATE[0],
    'scores': SCORES,
    'tiebreak': TIEBREAK_STATE[0],
}


def result_to_dict(result: MatchResult) -> Dict[str, Any]:
    """Plain form of a match result."""
    resolution = result.resolution
    return {
        'round_name': result.round_name,
        'status': resolution.status.value,
        'winner': resolution.winner,
        'is_tie': resolution.is_tie,
        'tied_teams': list(resolution.tied_teams),
        'tied_score': resolution.score if resolution.is_tie else None,
        'teams': [{'name': t.name, 'total_points': t.total_points} for t in result.teams],
        'judges': result.judges,
        'is_bye': result.is_bye,
    }


def tiebreak_to_dict(tiebreak: TieBreak) -> Dict[str, Any]:
    return {
        'round_name': tiebreak.round_name,
        'state': tiebreak.state.value,
        'teams': list(tiebreak.teams),
        'tied_score': tiebreak.tied_score,
        'rolls': [dict(r.values) for r in tiebreak.rolls],
        'winner': tiebreak.winner,
    }


class TournamentService:
    """
    Operations behind the HTTP and WebSocket endpoints.

    Usage:
        service = TournamentService(TournamentStorage("data"), config)
        service.create_round("Ronda 1", "Fase de Grupos")
        service.add_criterion("Argumentación", criterion_id="arg")
        service.submit_scores("Ronda 1", "judge-1", {"A": {"arg": 4}, "B": {"arg": 3}})
    """

    def __init__(
        self,
        storage: TournamentStorage,
        config,
        audit: Optional[AuditLog] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Args:
            storage: Tournament store
            config: TournamentConfig
            audit: AuditLog for staff actions (default: one under the store's data dir)
            rng: Random source for draws and dice (default: fresh random.Random)
        """
        self.storage = storage
        self.config = config
        self.audit = audit or AuditLog(str(storage.data_dir))
        self.rng = rng or random.Random()
        self.round_state = RoundStateManager(storage, config, audit=self.audit)
        self.tiebreaks = TieBreakEngine(
            storage, rng=self.rng, sides=config.dice_sides, audit=self.audit
        )
        # Tie-breaks being rolled, by round name
        self._active_tiebreaks: Dict[str, TieBreak] = {}

    # =========================================================================
    # Snapshots
    # =========================================================================

    def _require_round(self, round_name: str) -> Round:
        round_ = self.storage.get_round(round_name)
        if round_ is None:
            raise RoundNotFoundError(f"Round not found: {round_name}")
        return round_

    def _require_teams(self, team_names: Sequence[str], round_name: Optional[str] = None):
        roster = set(self.storage.load_roster())
        unknown = [t for t in team_names if t not in roster]
        if unknown:
            raise UnknownTeamError(unknown, round_name)

    def draw(self) -> Dict[str, List[str]]:
        """Manual round assignments from the live draw."""
        return draw_assignments(self.storage.get_document(*DRAW_STATE))

    def resolver(self) -> QualificationResolver:
        return QualificationResolver(
            self.config,
            self.storage.list_rounds(),
            self.storage.list_submissions(),
            self.storage.load_roster(),
            self.draw(),
        )

    # =========================================================================
    # Teams, rounds and judges
    # =========================================================================

    def add_team(self, name: str, school_name: str = "", verified: bool = False) -> Team:
        settings = self.settings()
        if settings.get('registrationsClosed'):
            raise TournamentStateError("Registrations are closed")
        status = STATUS_VERIFIED if verified else STATUS_PENDING
        team = self.storage.add_team(name, school_name=school_name, status=status)
        logger.info("Registered team %s (%s)", name, status)
        return team

    def update_team(self, team_id: str, name: Optional[str] = None, verified: Optional[bool] = None) -> Team:
        team = next((t for t in self.storage.list_teams() if t.team_id == team_id), None)
        if team is None:
            raise TournamentStateError(f"Team not found: {team_id}")

        status = None
        if verified is not None:
            status = STATUS_VERIFIED if verified else STATUS_PENDING
        self.storage.update_team(team_id, name=name, status=status)
        self.audit.log_activity("Edited team", {'team_id': team_id, 'name': name, 'status': status})
        return next(t for t in self.storage.list_teams() if t.team_id == team_id)

    def list_teams(self, verified_only: bool = False) -> List[Team]:
        return self.storage.list_teams(verified_only=verified_only)

    def create_round(self, name: str, phase: str) -> Round:
        if phase not in self.config.phases:
            logger.warning("Round %s uses phase %r, which is not configured", name, phase)
        round_ = self.storage.create_round(name, phase)
        self.audit.log_activity("Created round", {'round': name, 'phase': phase})
        return round_

    def delete_round(self, name: str):
        self.storage.delete_round(name)
        self.audit.log_activity("Deleted round", {'round': name})

    def list_rounds(self, phase: Optional[str] = None) -> List[Round]:
        return self.storage.list_rounds(phase=phase)

    def add_judge(self, name: str, judge_id: Optional[str] = None, active: bool = True) -> Judge:
        """
        Register a judge.

        Raises:
            InvalidSubmissionError: If the id is the one reserved for system entries
        """
        if judge_id == SYSTEM_JUDGE_ID:
            raise InvalidSubmissionError(f"Judge id {SYSTEM_JUDGE_ID!r} is reserved")
        status = JUDGE_ACTIVE if active else JUDGE_INACTIVE
        return self.storage.add_judge(name, judge_id=judge_id, status=status)

    def list_judges(self) -> List[Judge]:
        return self.storage.list_judges()

    # =========================================================================
    # Rubric
    # =========================================================================

    def list_rubric(self) -> List[RubricCriterion]:
        return self.storage.list_rubric()

    def add_criterion(self, name: str, description: str = "", criterion_id: Optional[str] = None) -> RubricCriterion:
        criterion = self.storage.add_criterion(name, description=description, criterion_id=criterion_id)
        self.audit.log_activity("Added rubric criterion", {'criterion': criterion.criterion_id, 'name': name})
        return criterion

    def update_criterion(
        self,
        criterion_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> RubricCriterion:
        criterion = self.storage.update_criterion(criterion_id, name=name, description=description)
        self.audit.log_activity("Edited rubric criterion", {'criterion': criterion_id})
        return criterion

    def delete_criterion(self, criterion_id: str):
        self.storage.delete_criterion(criterion_id)
        self.audit.log_activity("Deleted rubric criterion", {'criterion': criterion_id})

    # =========================================================================
    # Scores and results
    # =========================================================================

    def submit_scores(
        self,
        round_name: str,
        judge_id: str,
        team_scores: Dict[str, Dict[str, float]]
    ) -> ScoreSubmission:
        """
        Store a judge's rubric scores for a round.

        Every criterion of the current rubric must be scored for every team.

        Raises:
            RoundNotFoundError: If the round does not exist
            InvalidSubmissionError: If the judge is unknown or the sheet is incomplete
            UnknownTeamError: If a scored team is not registered
            ByeConflictError: If the round was decided by a bye
            DuplicateJudgeSubmissionError: If the judge already scored the round
        """
        self._require_round(round_name)
        judge = next((j for j in self.storage.list_judges() if j.judge_id == judge_id), None)
        if judge is None:
            raise InvalidSubmissionError(f"Unknown judge: {judge_id}")
        if judge.status != JUDGE_ACTIVE:
            raise InvalidSubmissionError(f"Judge {judge.name} is not active")
        self._require_teams(list(team_scores), round_name)

        criteria = [c.criterion_id for c in self.storage.list_rubric()]
        submission = build_submission(round_name, judge, criteria, team_scores)

        existing = self.storage.list_submissions(round_name=round_name)
        if any(s.kind == SubmissionKind.BYE for s in existing):
            raise ByeConflictError(f"{round_name} was decided by a bye")
        if any(s.judge_id == judge_id for s in existing):
            raise DuplicateJudgeSubmissionError(
                f"Judge {judge.name} has already scored {round_name}"
            )

        stored = self.storage.add_submission(submission)
        logger.info("Scores from %s stored for %s", judge.name, round_name)
        return stored

    def list_submissions(self, round_name: Optional[str] = None) -> List[ScoreSubmission]:
        return self.storage.list_submissions(round_name=round_name)

    def match_result(self, round_name: str) -> MatchResult:
        self._require_round(round_name)
        return compute_match_result(self.storage.list_submissions(round_name), round_name)

    def results(self) -> Dict[str, MatchResult]:
        rounds = [r.name for r in self.storage.list_rounds()]
        return compute_all_results(self.storage.list_submissions(), rounds)

    def scoring_status(self) -> Dict[str, RoundScoringStatus]:
        return scoring_status(
            self.storage.list_rounds(),
            self.storage.list_judges(),
            self.storage.list_submissions(),
        )

    # =========================================================================
    # Qualification and standings
    # =========================================================================

    def qualification(self, round_name: str) -> Qualification:
        self._require_round(round_name)
        return self.resolver().resolve(round_name)

    def qualifications(self) -> Dict[str, Qualification]:
        return self.resolver().resolve_all()

    def bracket(self) -> BracketView:
        return project_bracket(
            self.config,
            self.storage.list_rounds(),
            self.storage.list_submissions(),
            current_round=self.round_state.get().current_round,
            roster=self.storage.load_roster(),
            draw=self.draw(),
        )

    # =========================================================================
    # Live round state
    # =========================================================================

    def debate_state(self) -> DebateState:
        return self.round_state.get()

    def set_active_round(self, round_name: str, teams: Optional[Sequence[str]] = None) -> DebateState:
        """Activate a round; teams default to its computed qualification."""
        self._require_round(round_name)
        if teams is None:
            qualification = self.resolver().resolve(round_name)
            qualification.raise_for_unknown()
            teams = qualification.teams
        return self.round_state.set_active_round(round_name, teams)

    def update_presentation(self, **fields) -> DebateState:
        return self.round_state.update_presentation(**fields)

    def confirm_bye(self, round_name: str, team: str) -> ScoreSubmission:
        self._require_round(round_name)
        self._require_teams([team], round_name)
        return self.round_state.confirm_bye(round_name, team)

    # =========================================================================
    # Tie-breaks
    # =========================================================================

    def tiebreak(self, round_name: str) -> TieBreak:
        """The tie-break being rolled for a round, or its detected state."""
        self._require_round(round_name)
        if round_name in self._active_tiebreaks:
            return self._active_tiebreaks[round_name]
        return self.tiebreaks.detect(round_name)

    def start_tiebreak(self, round_name: str) -> TieBreak:
        """
        Open a tie-break for a tied round.

        Raises:
            AlreadyResolvedError: If the round already has a confirmed tie-break
            TournamentStateError: If the round is not tied
        """
        self._require_round(round_name)
        if round_name in self._active_tiebreaks:
            return self._active_tiebreaks[round_name]

        tiebreak = self.tiebreaks.detect(round_name)
        if tiebreak.state == TieBreakState.WINNER_CONFIRMED:
            raise AlreadyResolvedError(round_name)
        if tiebreak.state == TieBreakState.NO_TIE:
            raise TournamentStateError(f"{round_name} is not tied")

        self.tiebreaks.start(tiebreak)
        self._active_tiebreaks[round_name] = tiebreak
        return tiebreak

    def roll_tiebreak(self, round_name: str, values: Optional[Dict[str, int]] = None) -> TieBreak:
        tiebreak = self._active_tiebreaks.get(round_name)
        if tiebreak is None:
            raise TournamentStateError(f"No tie-break in progress for {round_name}")
        self.tiebreaks.roll(tiebreak, values)
        return tiebreak

    def confirm_tiebreak(self, round_name: str) -> ScoreSubmission:
        tiebreak = self._active_tiebreaks.get(round_name)
        if tiebreak is None:
            raise TournamentStateError(f"No tie-break in progress for {round_name}")
        try:
            stored = self.tiebreaks.confirm(tiebreak)
        except (AlreadyResolvedError, StaleTieBreakError):
            del self._active_tiebreaks[round_name]
            raise
        del self._active_tiebreaks[round_name]
        return stored

    # =========================================================================
    # Draw, settings and bracket documents
    # =========================================================================

    def run_draw(self) -> Dict[str, Any]:
        """Deal the roster across the group-stage rounds and publish the draw."""
        roster = set(self.storage.load_roster())
        teams = [t for t in self.storage.list_teams() if t.name in roster]
        group_rounds = [r.name for r in self.storage.list_rounds(phase=self.config.group_phase)]

        entries = draw_groups(teams, group_rounds, rng=self.rng)
        document = self.storage.set_document(*DRAW_STATE, {'teams': entries})
        self.audit.log_activity("Ran group draw", {'teams': len(entries), 'rounds': group_rounds})
        return document

    def set_draw(self, assignments: Dict[str, Sequence[str]]) -> Dict[str, Any]:
        """Publish a manual draw: round name -> team names."""
        self._require_teams([t for teams in assignments.values() for t in teams])
        by_name = {t.name: t for t in self.storage.list_teams()}
        entries = [
            {'id': by_name[name].team_id, 'name': name, 'round': round_name}
            for round_name, teams in assignments.items()
            for name in teams
        ]
        document = self.storage.set_document(*DRAW_STATE, {'teams': entries})
        self.audit.log_activity("Edited draw", {'rounds': sorted(assignments)})
        return document

    def clear_draw(self):
        self.storage.delete_document(*DRAW_STATE)
        self.audit.log_activity("Cleared draw")

    def settings(self) -> Dict[str, Any]:
        return self.storage.get_document(*SETTINGS) or {}

    def update_settings(
        self,
        results_published: Optional[bool] = None,
        registrations_closed: Optional[bool] = None
    ) -> Dict[str, Any]:
        """
        Update competition settings.

        Closing registrations locks in the currently verified teams as the
        roster.
        """
        data: Dict[str, Any] = {}
        if results_published is not None:
            data['resultsPublished'] = results_published
        if registrations_closed is not None:
            data['registrationsClosed'] = registrations_closed
            if registrations_closed:
                data['lockedInTeams'] = [
                    {'id': t.team_id, 'name': t.name}
                    for t in self.storage.list_teams(verified_only=True)
                ]
        stored = self.storage.set_document(*SETTINGS, data, merge=True)
        self.audit.log_activity("Updated competition settings", data)
        return stored

    def save_manual_bracket(self, bracket_rounds: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        linked = link_bracket_rounds(bracket_rounds)
        self.storage.set_document(*BRACKET_STATE, {'bracketRounds': linked})
        self.audit.log_activity("Saved bracket", {'rounds': len(linked)})
        return linked

    def manual_bracket(self) -> List[Dict[str, Any]]:
        """The staff-edited bracket with decided winners moved forward."""
        document = self.storage.get_document(*BRACKET_STATE) or {}
        bracket_rounds = document.get('bracketRounds') or []
        submissions = self.storage.list_submissions()
        winners = {
            match['id']: winner_of(submissions, match['id'])
            for round_ in bracket_rounds
            for match in round_.get('matches') or []
        }
        return populate_manual_bracket(bracket_rounds, winners)

    # =========================================================================
    # Push channels
    # =========================================================================

    def snapshot(self, channel: str) -> Any:
        """Current payload of a push channel."""
        if channel == 'debate_state':
            return self.debate_state().to_dict()
        if channel == 'scores':
            return {name: result_to_dict(r) for name, r in self.results().items()}
        if channel == 'tiebreak':
            return self.storage.get_document(*TIEBREAK_STATE)
        raise KeyError(channel)

    def subscribe(self, channel: str, callback: Callable[[str, Any], None]) -> Callable[[], None]:
        """
        Call back with the channel's new snapshot after every write.

        Returns:
            Function that removes the subscription
        """
        if channel not in CHANNELS:
            raise KeyError(channel)

        def on_write(collection, payload):
            callback(channel, self.snapshot(channel))

        return self.storage.subscribe(CHANNELS[channel], on_write)
