"""Note tracking, history and the shared visualization state."""
