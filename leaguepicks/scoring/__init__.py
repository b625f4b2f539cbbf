"""
Round scoring.

- normalization / strategies: tie-aware answer comparison
- dynamic_points: season-question points per user
- match_points: 1X2 outcome and per-bet points
- orchestrator: the two-phase round pipeline
- non_participants / retroactive: minimum-participant-score fallback
- detector: closes rounds whose fixtures are all finished
"""
