"""
Debate tournament engine.

Score aggregation, winner resolution, qualification, tie-breaks, the live
round state and bracket projection for a school debate tournament.
"""
