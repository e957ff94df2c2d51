"""
Utilities module for the debate tournament engine.
"""
from tourney.utils.constants import (
    GROUP_STAGE, SEMIFINAL_STAGE, FINAL_STAGE, DEFAULT_PHASES,
    SYSTEM_JUDGE_ID, BYE_MARKER, BYE_POINTS, TIEBREAK_POINTS, DICE_SIDES,
    STATUS_VERIFIED, STATUS_PENDING,
)

__all__ = [
    'GROUP_STAGE', 'SEMIFINAL_STAGE', 'FINAL_STAGE', 'DEFAULT_PHASES',
    'SYSTEM_JUDGE_ID', 'BYE_MARKER', 'BYE_POINTS', 'TIEBREAK_POINTS', 'DICE_SIDES',
    'STATUS_VERIFIED', 'STATUS_PENDING',
]
