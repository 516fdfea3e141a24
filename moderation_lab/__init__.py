"""
Moderation lab: students write moderation instructions, an AI provider
classifies a fixed set of image scenarios with them, and the queue scores
each run against the expected labels.
"""

__version__ = "1.0.0"
