"""Per-client rate limiting decision engine with a FastAPI boundary."""
