"""
Web interface for the debate tournament.

Provides a FastAPI server for:
- Staff operations (rounds, scores, byes, tie-breaks, draw, settings)
- Live displays over WebSocket push channels
- Standings, qualification and bracket views
"""
