"""
The live round state shown on every public screen.

A single debate-state document holds the active round and its teams, plus
presentation fields (question, video, timer) that are stored and pushed to
displays but not interpreted here. Writers go through RoundStateManager;
readers subscribe and get the new state after every write.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from tourney.exceptions import (
    AlreadyAdvancedError,
    ByeConflictError,
    DuplicateSubmissionError,
    TournamentStateError,
)
from tourney.tournament.draw import draw_assignments
from tourney.tournament.models import ScoreSubmission, SubmissionKind, TeamScore, bye_match_id
from tourney.tournament.qualification import Qualification, QualificationResolver
from tourney.utils.constants import (
    BYE_JUDGE_NAME,
    BYE_POINTS,
    DEBATE_STATE,
    DRAW_STATE,
    MIN_TEAMS_PER_ROUND,
    SYSTEM_JUDGE_ID,
)

logger = logging.getLogger(__name__)


@dataclass
class DebateState:
    """Current round and teams, plus presentation fields."""
    current_round: str = ""
    teams: List[str] = field(default_factory=list)
    question: str = ""
    video_url: str = ""
    timer_duration: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'currentRound': self.current_round,
            'teams': [{'name': name} for name in self.teams],
            'question': self.question,
            'videoUrl': self.video_url,
            'timer': self.timer_duration,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'DebateState':
        if not data:
            return cls()
        teams = []
        for team in data.get('teams') or []:
            teams.append(team['name'] if isinstance(team, dict) else str(team))
        return cls(
            current_round=data.get('currentRound') or '',
            teams=teams,
            question=data.get('question') or '',
            video_url=data.get('videoUrl') or '',
            timer_duration=data.get('timer'),
        )


class RoundStateManager:
    """
    Reads and writes the live debate state.

    Usage:
        manager = RoundStateManager(storage, config)
        unsubscribe = manager.subscribe(lambda state: print(state.current_round))
        manager.set_active_round("Semifinal 1", manager.suggest_teams("Semifinal 1"))
    """

    def __init__(self, storage, config, audit=None):
        """
        Args:
            storage: TournamentStorage holding the debate-state document
            config: TournamentConfig with qualification policies
            audit: Optional AuditLog for staff actions
        """
        self.storage = storage
        self.config = config
        self.audit = audit

    def get(self) -> DebateState:
        return DebateState.from_dict(self.storage.get_document(*DEBATE_STATE))

    def subscribe(self, callback: Callable[[DebateState], None]) -> Callable[[], None]:
        """
        Call back with the new state after every write.

        Returns:
            Function that removes the subscription
        """
        def on_write(collection, payload):
            callback(DebateState.from_dict(payload))

        return self.storage.subscribe(DEBATE_STATE[0], on_write)

    def qualification(self, round_name: str) -> Qualification:
        """Computed qualification for a round from the current store contents."""
        resolver = QualificationResolver(
            self.config,
            self.storage.list_rounds(),
            self.storage.list_submissions(),
            self.storage.load_roster(),
            draw_assignments(self.storage.get_document(*DRAW_STATE)),
        )
        return resolver.resolve(round_name)

    def suggest_teams(self, round_name: str) -> List[str]:
        """Teams to pre-fill when staff activate a round."""
        return self.qualification(round_name).teams

    def set_active_round(self, round_name: str, teams: Sequence[str]) -> DebateState:
        """
        Make a round the active one.

        The teams are written as given. Staff may override qualification,
        so a mismatch with the computed teams is only logged.

        Raises:
            TournamentStateError: If the round name is empty or fewer than
                two teams are given
        """
        teams = [t for t in teams if t]
        if not round_name:
            raise TournamentStateError("Select a round before activating it")
        if len(teams) < MIN_TEAMS_PER_ROUND:
            raise TournamentStateError(
                f"A round needs at least {MIN_TEAMS_PER_ROUND} teams, got {len(teams)}"
            )

        qualification = self.qualification(round_name)
        if not qualification.is_determined:
            logger.warning("Activating %s before its qualification is determined (pending: %s)",
                           round_name, ", ".join(qualification.pending_rounds) or "-")
        elif list(teams) != qualification.teams:
            logger.warning("Teams for %s differ from computed qualification: %s != %s",
                           round_name, teams, qualification.teams)

        stored = self.storage.set_document(
            *DEBATE_STATE,
            {'currentRound': round_name, 'teams': [{'name': t} for t in teams]},
            merge=True,
        )
        logger.info("Active round set to %s (%s)", round_name, ", ".join(teams))
        if self.audit:
            self.audit.log_activity("Changed active round", {'round': round_name, 'teams': teams})
        return DebateState.from_dict(stored)

    def update_presentation(
        self,
        question: Optional[str] = None,
        video_url: Optional[str] = None,
        timer_duration: Optional[int] = None
    ) -> DebateState:
        """Update the presentation fields, keeping everything else."""
        data: Dict[str, Any] = {}
        if question is not None:
            data['question'] = question
        if video_url is not None:
            data['videoUrl'] = video_url
        if timer_duration is not None:
            data['timer'] = timer_duration
        stored = self.storage.set_document(*DEBATE_STATE, data, merge=True)
        return DebateState.from_dict(stored)

    def confirm_bye(self, round_name: str, team: str) -> ScoreSubmission:
        """
        Advance a team through a round without a debate.

        Records a one-point system submission for the team. The live round
        state is left untouched. A round is decided either by a bye or by
        its scores, so a round that already has a bye or any score
        submission is refused.

        Raises:
            AlreadyAdvancedError: If the round already has a confirmed bye
            ByeConflictError: If the round already has score submissions
        """
        match_id = bye_match_id(round_name, team)
        existing = self.storage.list_submissions(round_name)
        byes = [s for s in existing if s.kind == SubmissionKind.BYE]
        if byes:
            raise AlreadyAdvancedError(byes[0].match_id)
        if existing:
            raise ByeConflictError(
                f"{round_name} already has {len(existing)} score submission(s)"
            )

        submission = ScoreSubmission(
            match_id=match_id,
            judge_id=SYSTEM_JUDGE_ID,
            judge_name=BYE_JUDGE_NAME,
            teams=[TeamScore(name=team, total=BYE_POINTS)],
        )
        try:
            stored = self.storage.add_submission(submission)
        except DuplicateSubmissionError as e:
            raise AlreadyAdvancedError(match_id) from e

        logger.info("Bye confirmed: %s advances from %s", team, round_name)
        if self.audit:
            self.audit.log_activity("Confirmed bye", {'round': round_name, 'team': team})
        return stored
