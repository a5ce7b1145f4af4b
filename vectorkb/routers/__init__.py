"""
API Routers for the vectorkb service.

- feedback: feedback collection, learned preferences, recommendations,
  diagnostics and admin sweeps
"""
