"""
Constants for the debate tournament engine.
"""

# Phases as named by tournament staff
GROUP_STAGE = "Fase de Grupos"
SEMIFINAL_STAGE = "Fase de semifinales"
FINAL_STAGE = "Fase de Finales"
DEFAULT_PHASES = [GROUP_STAGE, SEMIFINAL_STAGE, FINAL_STAGE]

# Synthetic submissions
SYSTEM_JUDGE_ID = "system"
BYE_MARKER = "-bye-"
BYE_POINTS = 1
TIEBREAK_POINTS = 1
TIEBREAK_JUDGE_NAME = "Desempate por Dado"
BYE_JUDGE_NAME = "Avance Automático"
DICE_SIDES = 6

# Team registration status
STATUS_VERIFIED = "Verificado"
STATUS_PENDING = "Pendiente"

# Judge status
JUDGE_ACTIVE = "active"
JUDGE_INACTIVE = "inactive"

# Document collections and singleton ids
DEBATE_STATE = ("debateState", "current")
DRAW_STATE = ("drawState", "liveDraw")
SETTINGS = ("settings", "competition")
BRACKET_STATE = ("bracketState", "liveBracket")
TIEBREAK_STATE = ("tiebreak", "current")

# Collections with change notifications
SCORES = "scores"
ROUNDS = "rounds"
SCHOOLS = "schools"
JUDGES = "judges"

# Minimum number of teams in an active round
MIN_TEAMS_PER_ROUND = 2

# Rubric: every criterion is scored on this scale
RUBRIC = "rubric"
RUBRIC_MIN_SCORE = 1
RUBRIC_MAX_SCORE = 5
