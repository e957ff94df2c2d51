"""
Display formatting for tournament results.

Provides ASCII-formatted standings, brackets and qualification summaries
for terminal output.
"""

from typing import List, Dict

from tourney.tournament.bracket import BracketView, MatchState, Standing
from tourney.tournament.models import MatchResult
from tourney.tournament.qualification import Qualification


def format_standings(standings: List[Standing]) -> str:
    """
    Format the group-stage table as an ASCII table.

    Args:
        standings: Ranked standings

    Returns:
        Formatted string for terminal display
    """
    lines = []
    lines.append("=== GROUP STANDINGS ===")
    lines.append("")

    # Header
    lines.append(f"{'Rank':<6}{'Team':<28}{'Points':<10}{'Played':<8}{'Wins':<6}")
    lines.append("-" * 58)

    # Rows
    for s in standings:
        points = f"{s.total_points:g}"
        lines.append(f"{s.rank:<6}{s.name:<28}{points:<10}{s.matches_played:<8}{s.wins:<6}")

    if not standings:
        lines.append("(no group results yet)")

    return "\n".join(lines)


def format_match_result(result: MatchResult) -> str:
    """Format a single round result line."""
    scores = ", ".join(f"{t.name} {t.total_points:g}" for t in result.teams)
    if result.is_pending:
        outcome = "pending"
    elif result.is_tie:
        outcome = f"TIE at {result.resolution.score:g}"
    elif result.is_bye:
        outcome = f"{result.winner} advances (bye)"
    else:
        outcome = f"winner {result.winner}"

    line = f"{result.round_name}: {outcome}"
    if scores:
        line += f" [{scores}; judges: {result.judges}]"
    return line


_STATE_MARKERS: Dict[MatchState, str] = {
    MatchState.AWAITING_DRAW: "?",
    MatchState.PENDING: " ",
    MatchState.TIED: "=",
    MatchState.DECIDED: "*",
    MatchState.BYE: ">",
}


def format_bracket(view: BracketView) -> str:
    """
    Format the bracket phase by phase.

    Each match is marked: * decided, = tied, > bye, ? awaiting teams.
    The active round is flagged with <== LIVE.
    """
    lines = []
    for phase in view.phases:
        if not phase.matches:
            continue
        lines.append(f"--- {phase.name} ---")
        for match in phase.matches:
            teams = " vs ".join(t or "TBD" for t in match.teams) or "TBD"
            line = f"[{_STATE_MARKERS[match.state]}] {match.round_name:<20} {teams}"
            if match.winner:
                line += f"  -> {match.winner}"
            if match.is_current:
                line += "  <== LIVE"
            lines.append(line)
        lines.append("")

    if view.next_match:
        lines.append(f"Next: {view.next_match.round_name}")
    if view.champion:
        lines.append(f"Champion: {view.champion}")

    return "\n".join(lines)


def format_qualification(qualification: Qualification) -> str:
    """Format who qualifies into a round and whether it is settled."""
    slots = ", ".join(s or "TBD" for s in qualification.slots) or "(none)"
    status = "determined" if qualification.is_determined else "not determined"

    lines = [f"{qualification.round_name} ({qualification.source.value}, {status}): {slots}"]
    if qualification.pending_rounds:
        lines.append(f"  waiting on: {', '.join(qualification.pending_rounds)}")
    if qualification.unknown_teams:
        lines.append(f"  unknown teams: {', '.join(qualification.unknown_teams)}")
    return "\n".join(lines)
