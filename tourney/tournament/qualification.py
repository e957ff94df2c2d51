"""
Qualification of teams into rounds.

Which teams play a round is decided, in priority order, by:
1. A manual draw assignment made by staff for that round
2. The qualification policy of the round (or of its phase):
   - TopNFromPhase: best N cumulative totals across a phase
   - WinnersOf: winners of named feeder rounds, one slot each
   - FullRoster: every verified team
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Union, Any, Mapping

from tourney.exceptions import ConfigError, UnknownTeamError
from tourney.tournament.models import Round, ScoreSubmission, TeamTotal
from tourney.tournament.scoring import compute_match_result, phase_totals

logger = logging.getLogger(__name__)


# =============================================================================
# Policies
# =============================================================================

@dataclass(frozen=True)
class FullRoster:
    """Every verified team takes part."""

    def to_dict(self) -> Dict[str, Any]:
        return {'type': 'full_roster'}


@dataclass(frozen=True)
class TopNFromPhase:
    """The N best cumulative totals across every round of a phase."""
    phase: str
    n: int

    def to_dict(self) -> Dict[str, Any]:
        return {'type': 'top_n', 'phase': self.phase, 'n': self.n}


@dataclass(frozen=True)
class WinnersOf:
    """Winners of the listed rounds, in slot order."""
    rounds: tuple

    def to_dict(self) -> Dict[str, Any]:
        return {'type': 'winners_of', 'rounds': list(self.rounds)}


@dataclass(frozen=True)
class ManualDraw:
    """Teams are only ever placed by staff; nothing is computed."""

    def to_dict(self) -> Dict[str, Any]:
        return {'type': 'manual_draw'}


QualificationPolicy = Union[FullRoster, TopNFromPhase, WinnersOf, ManualDraw]


def policy_from_dict(data: Mapping[str, Any]) -> QualificationPolicy:
    """
    Build a policy from its JSON form.

    Raises:
        ConfigError: If the type is unknown or required keys are missing
    """
    policy_type = data.get('type')
    try:
        if policy_type == 'full_roster':
            return FullRoster()
        if policy_type == 'top_n':
            n = int(data['n'])
            if n < 1:
                raise ConfigError(f"top_n needs a positive n, got {n}")
            return TopNFromPhase(phase=data['phase'], n=n)
        if policy_type == 'winners_of':
            rounds = data['rounds']
            if not rounds:
                raise ConfigError("winners_of needs at least one round")
            return WinnersOf(rounds=tuple(rounds))
        if policy_type == 'manual_draw':
            return ManualDraw()
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(f"Invalid {policy_type} policy: {data!r}") from e

    raise ConfigError(f"Unknown qualification policy type: {policy_type!r}")


# =============================================================================
# Results
# =============================================================================

class QualificationSource(Enum):
    """Which rule produced a qualification."""
    MANUAL_DRAW = "manual_draw"
    TOP_N = "top_n"
    WINNERS_OF = "winners_of"
    FULL_ROSTER = "full_roster"


@dataclass
class Qualification:
    """Teams qualified into a round."""
    round_name: str
    source: QualificationSource
    slots: List[Optional[str]]
    is_determined: bool
    pending_rounds: List[str] = field(default_factory=list)
    unknown_teams: List[str] = field(default_factory=list)

    @property
    def teams(self) -> List[str]:
        """Filled slots, in slot order."""
        return [s for s in self.slots if s is not None]

    def raise_for_unknown(self):
        """Raise UnknownTeamError if any referenced team is not registered."""
        if self.unknown_teams:
            raise UnknownTeamError(self.unknown_teams, self.round_name)


# =============================================================================
# Resolver
# =============================================================================

class QualificationResolver:
    """
    Computes qualifying teams for rounds from a snapshot of tournament data.

    The resolver holds no mutable state of its own; build a new one whenever
    the underlying rounds, scores, roster or draw change.

    Usage:
        resolver = QualificationResolver(config, rounds, submissions, roster)
        qualification = resolver.resolve("Final")
    """

    def __init__(
        self,
        config,
        rounds: Sequence[Round],
        submissions: Sequence[ScoreSubmission],
        roster: Sequence[str],
        draw: Optional[Mapping[str, Sequence[str]]] = None
    ):
        """
        Args:
            config: TournamentConfig with qualification policies
            rounds: All rounds, in creation order
            submissions: Full score submission history
            roster: Registered and verified team names
            draw: Optional manual assignment, round name -> team names
        """
        self.config = config
        self.rounds = list(rounds)
        self.submissions = list(submissions)
        self.roster = list(roster)
        self.draw = {k: list(v) for k, v in (draw or {}).items() if v}
        self._roster_set = set(self.roster)

    def _find_round(self, round_name: str) -> Optional[Round]:
        for r in self.rounds:
            if r.name == round_name:
                return r
        return None

    def policy_for(self, round_name: str) -> QualificationPolicy:
        """Policy for a round: round-specific first, then its phase's."""
        if round_name in self.config.round_policies:
            return self.config.round_policies[round_name]
        round_ = self._find_round(round_name)
        if round_ and round_.phase in self.config.phase_policies:
            return self.config.phase_policies[round_.phase]
        return FullRoster()

    def rounds_in_phase(self, phase: str) -> List[str]:
        return [r.name for r in self.rounds if r.phase == phase]

    def phase_standings(self, phase: str) -> List[TeamTotal]:
        """
        Cumulative totals across a phase, best first.

        Equal totals are ordered by team name so the ranking is stable.
        Teams missing from the roster are left out.
        """
        totals = phase_totals(self.submissions, self.rounds_in_phase(phase))
        ranked = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
        return [TeamTotal(name, total) for name, total in ranked if name in self._roster_set]

    def resolve(self, round_name: str) -> Qualification:
        """
        Compute the teams qualified into a round.

        Never raises for incomplete data; check is_determined before
        promoting the result into the live round state.
        """
        if round_name in self.draw:
            return self._from_draw(round_name)

        policy = self.policy_for(round_name)
        if isinstance(policy, TopNFromPhase):
            return self._top_n(round_name, policy)
        if isinstance(policy, WinnersOf):
            return self._winners_of(round_name, policy)
        if isinstance(policy, ManualDraw):
            return Qualification(
                round_name=round_name,
                source=QualificationSource.MANUAL_DRAW,
                slots=[],
                is_determined=False,
            )
        return Qualification(
            round_name=round_name,
            source=QualificationSource.FULL_ROSTER,
            slots=list(self.roster),
            is_determined=True,
        )

    def resolve_all(self) -> Dict[str, Qualification]:
        return {r.name: self.resolve(r.name) for r in self.rounds}

    def _from_draw(self, round_name: str) -> Qualification:
        slots = list(self.draw[round_name])
        unknown = [t for t in slots if t not in self._roster_set]
        if unknown:
            logger.warning("Manual draw for %s places unregistered team(s): %s",
                           round_name, ", ".join(unknown))
        return Qualification(
            round_name=round_name,
            source=QualificationSource.MANUAL_DRAW,
            slots=slots,
            is_determined=not unknown,
            unknown_teams=unknown,
        )

    def _top_n(self, round_name: str, policy: TopNFromPhase) -> Qualification:
        phase_rounds = self.rounds_in_phase(policy.phase)
        totals = phase_totals(self.submissions, phase_rounds)
        unknown = sorted(name for name in totals if name not in self._roster_set)
        if unknown:
            logger.warning("Scores in %s reference unregistered team(s): %s",
                           policy.phase, ", ".join(unknown))

        standings = self.phase_standings(policy.phase)
        slots = [t.name for t in standings[:policy.n]]
        pending = [name for name in phase_rounds
                   if compute_match_result(self.submissions, name).is_pending]

        return Qualification(
            round_name=round_name,
            source=QualificationSource.TOP_N,
            slots=slots,
            is_determined=(bool(phase_rounds) and not pending and not unknown
                           and len(slots) == policy.n),
            pending_rounds=pending,
            unknown_teams=unknown,
        )

    def _winners_of(self, round_name: str, policy: WinnersOf) -> Qualification:
        slots: List[Optional[str]] = []
        pending = []
        unknown = []

        for feeder in policy.rounds:
            result = compute_match_result(self.submissions, feeder)
            winner = result.winner
            if winner is None:
                pending.append(feeder)
                slots.append(None)
            elif winner not in self._roster_set:
                logger.warning("Winner of %s is not a registered team: %s", feeder, winner)
                unknown.append(winner)
                slots.append(None)
            else:
                slots.append(winner)

        return Qualification(
            round_name=round_name,
            source=QualificationSource.WINNERS_OF,
            slots=slots,
            is_determined=all(s is not None for s in slots),
            pending_rounds=pending,
            unknown_teams=unknown,
        )
