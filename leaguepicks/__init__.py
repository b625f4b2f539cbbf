"""Prediction league scoring: match points, season-question points and fairness fallback."""
