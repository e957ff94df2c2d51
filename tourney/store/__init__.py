"""
Persistent store for tournament data with change subscriptions.
"""
from tourney.store.storage import TournamentStorage

__all__ = ['TournamentStorage']
