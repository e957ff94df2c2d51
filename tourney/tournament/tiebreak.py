"""
Dice-roll tie-breaks.

When a round ends level, staff roll one die per tied team. The highest
roll wins outright; a shared highest roll means rolling again. Confirming
the winner stores a system submission worth one point for the winner and
zero for the others, which makes the next aggregation decide the round.

State machine:
    NO_TIE -> TIE_DETECTED -> ROLL_PENDING -> ROLL_RESOLVED -> WINNER_CONFIRMED
                                  ^               |
                                  +-- ROLL_TIED <-+
"""

import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from tourney.exceptions import (
    AlreadyResolvedError,
    DuplicateSubmissionError,
    StaleTieBreakError,
    TournamentStateError,
)
from tourney.tournament.models import ScoreSubmission, TeamScore
from tourney.tournament.scoring import compute_match_result
from tourney.utils.constants import (
    DICE_SIDES,
    SYSTEM_JUDGE_ID,
    TIEBREAK_JUDGE_NAME,
    TIEBREAK_POINTS,
    TIEBREAK_STATE,
)

logger = logging.getLogger(__name__)


class TieBreakState(Enum):
    """State of a round's tie-break."""
    NO_TIE = "no_tie"
    TIE_DETECTED = "tie_detected"
    ROLL_PENDING = "roll_pending"
    ROLL_RESOLVED = "roll_resolved"
    ROLL_TIED = "roll_tied"
    WINNER_CONFIRMED = "winner_confirmed"


@dataclass
class DiceRoll:
    """One roll of the dice for every tied team."""
    values: Dict[str, int]

    @property
    def winner(self) -> Optional[str]:
        """Team with the strictly highest value, if any."""
        best = max(self.values.values())
        leaders = [team for team, value in self.values.items() if value == best]
        return leaders[0] if len(leaders) == 1 else None


@dataclass
class TieBreak:
    """A tie-break in progress for one round."""
    round_name: str
    teams: Tuple[str, ...]
    state: TieBreakState
    tied_score: Optional[float] = None
    rolls: List[DiceRoll] = field(default_factory=list)
    winner: Optional[str] = None

    def to_dict(self) -> Dict:
        """Live document shown on the public screens."""
        last = self.rolls[-1].values if self.rolls else None
        return {
            'isActive': self.state not in (TieBreakState.NO_TIE, TieBreakState.WINNER_CONFIRMED),
            'roundName': self.round_name,
            'teams': list(self.teams),
            'state': self.state.value,
            'results': last,
            'winner': self.winner,
        }


class TieBreakEngine:
    """
    Runs tie-breaks against the score store.

    Usage:
        engine = TieBreakEngine(storage)
        tb = engine.detect("Ronda 1")
        if tb.state == TieBreakState.TIE_DETECTED:
            engine.start(tb)
            while tb.state != TieBreakState.ROLL_RESOLVED:
                engine.roll(tb)
            engine.confirm(tb)
    """

    def __init__(
        self,
        storage,
        rng: Optional[random.Random] = None,
        sides: int = DICE_SIDES,
        audit=None
    ):
        """
        Args:
            storage: TournamentStorage holding submissions and documents
            rng: Random source for the dice (default: fresh random.Random)
            sides: Faces per die
            audit: Optional AuditLog for staff actions
        """
        self.storage = storage
        self.rng = rng or random.Random()
        self.sides = sides
        self.audit = audit

    def detect(self, round_name: str) -> TieBreak:
        """
        Check whether a round needs a tie-break.

        Returns a TieBreak in WINNER_CONFIRMED if one was already stored,
        TIE_DETECTED if the round is tied, NO_TIE otherwise.
        """
        if self.storage.has_system_submission(round_name):
            result = compute_match_result(self.storage.list_submissions(round_name), round_name)
            return TieBreak(
                round_name=round_name,
                teams=tuple(t.name for t in result.teams),
                state=TieBreakState.WINNER_CONFIRMED,
                winner=result.winner,
            )

        result = compute_match_result(self.storage.list_submissions(round_name), round_name)
        if not result.is_tie:
            return TieBreak(round_name=round_name, teams=(), state=TieBreakState.NO_TIE)

        return TieBreak(
            round_name=round_name,
            teams=result.resolution.tied_teams,
            state=TieBreakState.TIE_DETECTED,
            tied_score=result.resolution.score,
        )

    def start(self, tiebreak: TieBreak) -> TieBreak:
        """Open the tie-break for rolling and publish it to the live screens."""
        if tiebreak.state != TieBreakState.TIE_DETECTED:
            raise TournamentStateError(
                f"Cannot start tie-break for {tiebreak.round_name} in state {tiebreak.state.value}"
            )
        tiebreak.state = TieBreakState.ROLL_PENDING
        self._publish(tiebreak)
        return tiebreak

    def roll(self, tiebreak: TieBreak, values: Optional[Dict[str, int]] = None) -> DiceRoll:
        """
        Roll one die per tied team.

        Args:
            tiebreak: Tie-break in ROLL_PENDING or ROLL_TIED
            values: Fixed values instead of random ones (e.g. physical dice)

        Returns:
            The roll; tiebreak moves to ROLL_RESOLVED or ROLL_TIED
        """
        if tiebreak.state not in (TieBreakState.ROLL_PENDING, TieBreakState.ROLL_TIED):
            raise TournamentStateError(
                f"Cannot roll for {tiebreak.round_name} in state {tiebreak.state.value}"
            )

        if values is None:
            values = {team: self.rng.randint(1, self.sides) for team in tiebreak.teams}
        elif set(values) != set(tiebreak.teams):
            raise TournamentStateError("Dice values must cover exactly the tied teams")
        elif any(not 1 <= v <= self.sides for v in values.values()):
            raise TournamentStateError(f"Dice values must be between 1 and {self.sides}")

        dice = DiceRoll(values=dict(values))
        tiebreak.rolls.append(dice)
        tiebreak.winner = dice.winner
        tiebreak.state = (TieBreakState.ROLL_RESOLVED if tiebreak.winner
                          else TieBreakState.ROLL_TIED)

        logger.info("Tie-break roll for %s: %s", tiebreak.round_name, dice.values)
        self._publish(tiebreak)
        return dice

    def confirm(self, tiebreak: TieBreak) -> ScoreSubmission:
        """
        Persist the tie-break winner as a system submission.

        The round must still be tied between the same teams it was when the
        tie-break started. Otherwise the tie-break is dropped and nothing is
        written.

        Raises:
            TournamentStateError: If no roll has produced a winner yet
            StaleTieBreakError: If the round's totals changed since the start
            AlreadyResolvedError: If the round already has a tie-break entry
        """
        if tiebreak.state != TieBreakState.ROLL_RESOLVED or not tiebreak.winner:
            raise TournamentStateError(
                f"No tie-break winner to confirm for {tiebreak.round_name}"
            )
        if self.storage.has_system_submission(tiebreak.round_name):
            raise AlreadyResolvedError(tiebreak.round_name)

        result = compute_match_result(
            self.storage.list_submissions(tiebreak.round_name), tiebreak.round_name
        )
        if not result.is_tie or result.resolution.tied_teams != tuple(tiebreak.teams):
            tiebreak.state = TieBreakState.NO_TIE
            tiebreak.winner = None
            self.storage.delete_document(*TIEBREAK_STATE)
            logger.warning(
                "Tie-break for %s dropped: round is no longer tied between %s",
                tiebreak.round_name, ", ".join(tiebreak.teams)
            )
            raise StaleTieBreakError(
                f"{tiebreak.round_name} is no longer tied between {', '.join(tiebreak.teams)}"
            )

        submission = ScoreSubmission(
            match_id=tiebreak.round_name,
            judge_id=SYSTEM_JUDGE_ID,
            judge_name=TIEBREAK_JUDGE_NAME,
            teams=[
                TeamScore(
                    name=team,
                    total=TIEBREAK_POINTS if team == tiebreak.winner else 0,
                    scores={'tiebreaker': TIEBREAK_POINTS} if team == tiebreak.winner else {},
                    checksum='TIEBREAK' if team == tiebreak.winner else None,
                )
                for team in tiebreak.teams
            ],
        )

        try:
            stored = self.storage.add_submission(submission)
        except DuplicateSubmissionError as e:
            raise AlreadyResolvedError(tiebreak.round_name) from e

        tiebreak.state = TieBreakState.WINNER_CONFIRMED
        self.storage.delete_document(*TIEBREAK_STATE)
        logger.info("Tie-break for %s confirmed: %s advances", tiebreak.round_name, tiebreak.winner)
        if self.audit:
            self.audit.log_activity("Confirmed tie-break winner", {
                'round': tiebreak.round_name,
                'winner': tiebreak.winner,
                'rolls': [r.values for r in tiebreak.rolls],
            })
        return stored

    def resolve(self, round_name: str, max_rolls: int = 100) -> Optional[ScoreSubmission]:
        """
        Run a complete tie-break for a round.

        Returns:
            The stored submission, or None if the round is not tied

        Raises:
            AlreadyResolvedError: If the round already has a tie-break entry
        """
        tiebreak = self.detect(round_name)
        if tiebreak.state == TieBreakState.WINNER_CONFIRMED:
            raise AlreadyResolvedError(round_name)
        if tiebreak.state == TieBreakState.NO_TIE:
            return None

        self.start(tiebreak)
        for _ in range(max_rolls):
            self.roll(tiebreak)
            if tiebreak.state == TieBreakState.ROLL_RESOLVED:
                return self.confirm(tiebreak)
        raise TournamentStateError(f"Tie-break for {round_name} still level after {max_rolls} rolls")

    def _publish(self, tiebreak: TieBreak):
        self.storage.set_document(*TIEBREAK_STATE, tiebreak.to_dict())
