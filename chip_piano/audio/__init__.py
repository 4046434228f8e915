"""Audio sources for the raw-PCM fallback."""
