"""
Read-only projection of the tournament into standings and a bracket.

Everything here is a pure function of the stored data; recompute whenever
scores, rounds, the draw or the debate state change.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from tourney.tournament.models import MatchResult, Round, ScoreSubmission
from tourney.tournament.qualification import QualificationResolver
from tourney.tournament.scoring import compute_all_results


class MatchState(Enum):
    """Display state of a bracket match."""
    AWAITING_DRAW = "awaiting_draw"    # No teams known yet
    PENDING = "pending"                # Teams known, no scores yet
    TIED = "tied"                      # Needs a tie-break
    DECIDED = "decided"
    BYE = "bye"                        # Uncontested advance


@dataclass
class Standing:
    """A team's line in the group-stage table."""
    name: str
    total_points: float = 0
    matches_played: int = 0
    wins: int = 0
    rank: int = 0


@dataclass
class BracketMatch:
    """One round as shown in the bracket."""
    round_name: str
    phase: str
    teams: List[Optional[str]]
    state: MatchState
    winner: Optional[str] = None
    totals: Dict[str, float] = field(default_factory=dict)
    judges: int = 0
    is_current: bool = False

    @property
    def is_finished(self) -> bool:
        return self.state in (MatchState.DECIDED, MatchState.BYE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'roundName': self.round_name,
            'phase': self.phase,
            'teams': list(self.teams),
            'state': self.state.value,
            'winner': self.winner,
            'totals': dict(self.totals),
            'judges': self.judges,
            'isCurrent': self.is_current,
        }


@dataclass
class BracketPhase:
    """Matches of one phase, in round order."""
    name: str
    matches: List[BracketMatch] = field(default_factory=list)


@dataclass
class BracketView:
    """Standings, bracket and highlights for the public displays."""
    group_standings: List[Standing]
    phases: List[BracketPhase]
    current_match: Optional[BracketMatch] = None
    next_match: Optional[BracketMatch] = None
    champion: Optional[str] = None

    def all_matches(self) -> List[BracketMatch]:
        return [m for phase in self.phases for m in phase.matches]

    def find_match(self, round_name: str) -> Optional[BracketMatch]:
        for match in self.all_matches():
            if match.round_name == round_name:
                return match
        return None


def _match_state(result: MatchResult, teams: Sequence[Optional[str]]) -> MatchState:
    if result.is_bye:
        return MatchState.BYE
    if result.resolution.is_decided:
        return MatchState.DECIDED
    if result.is_tie:
        return MatchState.TIED
    if not any(teams):
        return MatchState.AWAITING_DRAW
    return MatchState.PENDING


def group_standings(
    results: Mapping[str, MatchResult],
    group_rounds: Sequence[str],
    draw: Optional[Mapping[str, Sequence[str]]] = None
) -> List[Standing]:
    """
    Cumulative group-stage table.

    Teams drawn into a group round but not yet scored appear with zero
    points. Ranked by points, then wins, then name.
    """
    table: Dict[str, Standing] = {}

    for round_name in group_rounds:
        for team in (draw or {}).get(round_name, []):
            table.setdefault(team, Standing(name=team))

        result = results.get(round_name)
        if result is None or result.is_pending:
            continue
        for name, total in result.totals().items():
            standing = table.setdefault(name, Standing(name=name))
            standing.total_points += total
            standing.matches_played += 1
            if result.winner == name:
                standing.wins += 1

    ranked = sorted(table.values(), key=lambda s: (-s.total_points, -s.wins, s.name))
    for i, standing in enumerate(ranked, 1):
        standing.rank = i
    return ranked


def project_bracket(
    config,
    rounds: Sequence[Round],
    submissions: Sequence[ScoreSubmission],
    current_round: str = "",
    roster: Optional[Sequence[str]] = None,
    draw: Optional[Mapping[str, Sequence[str]]] = None
) -> BracketView:
    """
    Build the bracket view.

    Args:
        config: TournamentConfig (phase order and qualification policies)
        rounds: All rounds, in creation order
        submissions: Full score submission history
        current_round: Round active in the debate state, if any
        roster: Registered team names
        draw: Manual assignment, round name -> team names

    Returns:
        BracketView with phases in configured order; rounds of phases
        missing from the configuration come last
    """
    rounds = list(rounds)
    results = compute_all_results(list(submissions), [r.name for r in rounds])
    resolver = QualificationResolver(config, rounds, submissions, roster or [], draw)

    matches: List[BracketMatch] = []
    for round_ in rounds:
        result = results[round_.name]
        if result.teams:
            teams: List[Optional[str]] = [t.name for t in result.teams]
        else:
            teams = list(resolver.resolve(round_.name).slots)

        matches.append(BracketMatch(
            round_name=round_.name,
            phase=round_.phase,
            teams=teams,
            state=_match_state(result, teams),
            winner=result.winner,
            totals=result.totals(),
            judges=result.judges,
            is_current=bool(current_round) and round_.name == current_round,
        ))

    phase_names = list(config.phases)
    for round_ in rounds:
        if round_.phase not in phase_names:
            phase_names.append(round_.phase)
    phases = [
        BracketPhase(name=name, matches=[m for m in matches if m.phase == name])
        for name in phase_names
    ]

    current = next((m for m in matches if m.is_current), None)
    start = matches.index(current) + 1 if current else 0
    upcoming = next((m for m in matches[start:] if not m.is_finished), None)

    champion = None
    final_matches = [m for m in matches if m.phase == config.final_phase]
    if final_matches and final_matches[-1].state == MatchState.DECIDED:
        champion = final_matches[-1].winner

    return BracketView(
        group_standings=group_standings(
            results, [r.name for r in rounds if r.phase == config.group_phase], draw
        ),
        phases=phases,
        current_match=current,
        next_match=upcoming,
        champion=champion,
    )


# =============================================================================
# Staff-edited bracket
# =============================================================================

def link_bracket_rounds(bracket_rounds: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Point every match at the match its winner moves on to.

    Match i of a round feeds match i // 2 of the next round; matches of
    the last round lead nowhere.
    """
    linked = copy.deepcopy(bracket_rounds)
    for i, round_ in enumerate(linked[:-1]):
        next_matches = linked[i + 1].get('matches') or []
        for j, match in enumerate(round_.get('matches') or []):
            target = next_matches[j // 2] if j // 2 < len(next_matches) else None
            match['nextMatchId'] = target['id'] if target else None
    return linked


def populate_manual_bracket(
    bracket_rounds: List[Dict[str, Any]],
    winners: Mapping[str, Optional[str]]
) -> List[Dict[str, Any]]:
    """
    Advance winners through a staff-edited bracket.

    Args:
        bracket_rounds: [{id, title, matches: [{id, participants, nextMatchId}]}]
        winners: match id -> winning team name (None while undecided)

    Returns:
        A copy of the bracket with each decided winner placed in the first
        empty slot of the match it feeds
    """
    populated = copy.deepcopy(bracket_rounds)

    for i, round_ in enumerate(populated[:-1]):
        next_matches = populated[i + 1].get('matches') or []
        for match in round_.get('matches') or []:
            winner = winners.get(match['id'])
            if not winner or not match.get('nextMatchId'):
                continue
            target = next((m for m in next_matches if m['id'] == match['nextMatchId']), None)
            if target is None:
                continue

            participant = next(
                (p for p in match.get('participants') or [] if p and p.get('name') == winner),
                None
            )
            slots = target.setdefault('participants', [])
            if participant is None or participant in slots:
                continue
            if None in slots:
                slots[slots.index(None)] = dict(participant)

    return populated
