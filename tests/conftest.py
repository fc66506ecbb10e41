"""Pytest configuration and fixtures shared across all test modules.

TESTING is set before any import that might load settings so local
.env.{APP_ENV} files never leak into the test run.
"""

import os

import pytest

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

for _name in list(os.environ):
    if _name.startswith("RATE_LIMIT_"):
        del os.environ[_name]


class FakeClock:
    """Deterministic clock returning seconds, advanced manually."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
