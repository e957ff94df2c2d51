#!/usr/bin/env python3
"""
Print standings, results, qualification and bracket of a tournament.

Usage:
    python scripts/standings.py [--config FILE] [--data-dir DIR] [--results] [--bracket] [--qualification]

Examples:
    # Group table only
    python scripts/standings.py --data-dir data

    # Everything, using a tournament config file
    python scripts/standings.py --config torneo.json --results --qualification --bracket

    # Settle a tied round with a dice roll
    python scripts/standings.py --resolve-tie "Ronda 3"
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from tourney.config import load_config
from tourney.exceptions import TourneyException
from tourney.store.storage import TournamentStorage
from tourney.tournament.bracket import project_bracket
from tourney.tournament.display import (
    format_bracket, format_match_result, format_qualification, format_standings
)
from tourney.tournament.draw import draw_assignments
from tourney.tournament.qualification import QualificationResolver
from tourney.tournament.round_state import DebateState
from tourney.tournament.scoring import compute_all_results
from tourney.tournament.tiebreak import TieBreakEngine
from tourney.audit.audit_log import AuditLog
from tourney.utils.constants import DEBATE_STATE, DRAW_STATE


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Show the state of a debate tournament.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        '--config', '-c',
        type=str, default=None,
        help='Tournament config JSON (default: built-in format)'
    )
    parser.add_argument(
        '--data-dir',
        type=str, default=None,
        help='Directory holding tourney.db (default: from config, else data)'
    )
    parser.add_argument(
        '--results', '-r',
        action='store_true',
        help='Show the result of every round'
    )
    parser.add_argument(
        '--qualification', '-q',
        action='store_true',
        help='Show qualified teams for every round'
    )
    parser.add_argument(
        '--bracket', '-b',
        action='store_true',
        help='Show the bracket'
    )
    parser.add_argument(
        '--resolve-tie',
        type=str, default=None, metavar='ROUND',
        help='Break a tie in ROUND with a dice roll and store the winner'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Show engine log messages'
    )

    return parser.parse_args()


def main():
    """Main entry point."""
    args = parse_args()
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s"
    )

    try:
        config = load_config(args.config, data_dir=args.data_dir)
    except TourneyException as e:
        print(f"Error: {e}")
        return 1

    storage = TournamentStorage(data_dir=config.data_dir)

    if args.resolve_tie:
        engine = TieBreakEngine(storage, sides=config.dice_sides, audit=AuditLog(config.data_dir))
        try:
            stored = engine.resolve(args.resolve_tie)
        except TourneyException as e:
            print(f"Error: {e}")
            return 1
        if stored is None:
            print(f"{args.resolve_tie} is not tied.")
        else:
            winner = next(t.name for t in stored.teams if t.total)
            print(f"Tie-break for {args.resolve_tie}: {winner} advances.")
        print()

    rounds = storage.list_rounds()
    submissions = storage.list_submissions()
    roster = storage.load_roster()
    draw = draw_assignments(storage.get_document(*DRAW_STATE))
    debate_state = DebateState.from_dict(storage.get_document(*DEBATE_STATE))

    view = project_bracket(
        config, rounds, submissions,
        current_round=debate_state.current_round,
        roster=roster,
        draw=draw,
    )
    print(format_standings(view.group_standings))

    if args.results:
        print()
        print("=== RESULTS ===")
        for result in compute_all_results(submissions, [r.name for r in rounds]).values():
            print(format_match_result(result))

    if args.qualification:
        print()
        print("=== QUALIFICATION ===")
        resolver = QualificationResolver(config, rounds, submissions, roster, draw)
        for qualification in resolver.resolve_all().values():
            print(format_qualification(qualification))

    if args.bracket:
        print()
        print("=== BRACKET ===")
        print(format_bracket(view))

    return 0


if __name__ == '__main__':
    sys.exit(main())
