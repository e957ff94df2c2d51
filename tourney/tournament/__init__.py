"""
Tournament engine: score aggregation, qualification and progression.

Provides:
- aggregate_scores / resolve_winner: Per-round totals and winner
- QualificationResolver: Which teams play a round
- TieBreakEngine: Dice-roll tie-breaks
- RoundStateManager: The live debate state
- project_bracket: Standings and bracket view
"""

from tourney.tournament.models import (
    Team, Round, Judge, TeamScore, ScoreSubmission, SubmissionKind,
    Resolution, ResolutionStatus, MatchResult, TeamTotal,
)
from tourney.tournament.scoring import aggregate_scores, resolve_winner, compute_match_result
from tourney.tournament.qualification import (
    QualificationResolver, Qualification, QualificationSource,
    FullRoster, TopNFromPhase, WinnersOf, ManualDraw,
)
from tourney.tournament.tiebreak import TieBreakEngine, TieBreak, TieBreakState
from tourney.tournament.round_state import RoundStateManager, DebateState
from tourney.tournament.bracket import project_bracket, populate_manual_bracket, BracketView, MatchState
from tourney.tournament.display import format_standings, format_bracket

__all__ = [
    'Team',
    'Round',
    'Judge',
    'TeamScore',
    'ScoreSubmission',
    'SubmissionKind',
    'Resolution',
    'ResolutionStatus',
    'MatchResult',
    'TeamTotal',
    'aggregate_scores',
    'resolve_winner',
    'compute_match_result',
    'QualificationResolver',
    'Qualification',
    'QualificationSource',
    'FullRoster',
    'TopNFromPhase',
    'WinnersOf',
    'ManualDraw',
    'TieBreakEngine',
    'TieBreak',
    'TieBreakState',
    'RoundStateManager',
    'DebateState',
    'project_bracket',
    'populate_manual_bracket',
    'BracketView',
    'MatchState',
    'format_standings',
    'format_bracket',
]
