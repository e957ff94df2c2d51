"""
Group-stage draw.

Teams are shuffled and dealt across the group-stage rounds in turn, the
same way the public draw screen animates it. The result is stored as the
live draw document: {"teams": [{"id", "name", "round"}, ...]}.
"""

import random
from typing import Dict, List, Optional, Sequence, Any

from tourney.exceptions import TournamentStateError
from tourney.tournament.models import Team


def draw_groups(
    teams: Sequence[Team],
    group_rounds: Sequence[str],
    rng: Optional[random.Random] = None
) -> List[Dict[str, Any]]:
    """
    Randomly assign teams to group-stage rounds.

    Args:
        teams: Teams to draw
        group_rounds: Names of the group-stage rounds
        rng: Random source (default: module random)

    Returns:
        Draw entries in the live draw document format

    Raises:
        TournamentStateError: If there are no teams or no group rounds
    """
    if not teams:
        raise TournamentStateError("No verified teams to draw")
    if not group_rounds:
        raise TournamentStateError("No group-stage rounds configured")

    rng = rng or random.Random()
    shuffled = list(teams)
    rng.shuffle(shuffled)

    return [
        {'id': team.team_id, 'name': team.name, 'round': group_rounds[i % len(group_rounds)]}
        for i, team in enumerate(shuffled)
    ]


def draw_assignments(draw_document: Optional[Dict[str, Any]]) -> Dict[str, List[str]]:
    """
    Manual round assignments from a live draw document.

    Returns:
        round name -> team names, in draw order; undrawn teams are skipped
    """
    assignments: Dict[str, List[str]] = {}
    if not draw_document:
        return assignments

    for entry in draw_document.get('teams') or []:
        round_name = entry.get('round')
        if round_name:
            assignments.setdefault(round_name, []).append(entry['name'])
    return assignments
