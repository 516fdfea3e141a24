"""FastAPI web layer for the moderation lab."""
