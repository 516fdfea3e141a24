"""Collaborators that react to queue events."""
from .score_recorder import ScoreRecorder

__all__ = ["ScoreRecorder"]
