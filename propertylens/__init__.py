"""PropertyLens session-state cache and feedback-triggered re-analysis coordinator."""

__version__ = "0.1.0"
