"""Exceptions for the debate tournament engine.

Normal aggregation outcomes (pending rounds, ties) are never raised; the
resolvers return tagged results for those. Only write-side guards, lookups
and configuration problems raise.
"""


# ========== Base Exception ==========


class TourneyException(Exception):
    """Base exception for all tournament engine errors."""

    pass


# ========== Configuration ==========


class ConfigError(TourneyException):
    """Raised when a tournament configuration file is malformed."""

    pass


# ========== Tournament State ==========


class TournamentStateError(TourneyException):
    """Raised when the tournament is in an invalid state for the requested operation."""

    pass


class RoundNotFoundError(TourneyException):
    """Raised when a requested round does not exist."""

    pass


class RoundHasScoresError(TournamentStateError):
    """Raised when deleting a round that already has score submissions."""

    pass


class ByeConflictError(TournamentStateError):
    """Raised when a bye and judge scores would both decide the same round."""

    pass


class StaleTieBreakError(TournamentStateError):
    """Raised when a round's totals changed while its tie-break was being rolled."""

    pass


class CriterionNotFoundError(TourneyException):
    """Raised when a rubric criterion does not exist."""

    pass


class UnknownTeamError(TourneyException):
    """Raised when a team name is absent from the registered roster."""

    def __init__(self, team_names, round_name=None):
        self.team_names = list(team_names)
        self.round_name = round_name
        names = ", ".join(self.team_names)
        if round_name:
            message = f"Unknown team(s) for {round_name}: {names}"
        else:
            message = f"Unknown team(s): {names}"
        super().__init__(message)


# ========== Score Submissions ==========


class InvalidSubmissionError(TourneyException):
    """Raised when a judge's score submission is incomplete or malformed."""

    pass


class DuplicateJudgeSubmissionError(TourneyException):
    """Raised when a judge submits a second evaluation for the same round."""

    pass


class DuplicateSubmissionError(TourneyException):
    """Raised by storage when a system submission already exists for a match."""

    def __init__(self, match_id: str):
        self.match_id = match_id
        super().__init__(f"A system submission already exists for {match_id}")


class AlreadyResolvedError(DuplicateSubmissionError):
    """Raised when a tie-break has already been confirmed for a round."""

    pass


class AlreadyAdvancedError(DuplicateSubmissionError):
    """Raised when a bye has already been confirmed for a team in a round."""

    pass
