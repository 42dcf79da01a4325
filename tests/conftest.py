"""Shared fixtures."""

from datetime import UTC, datetime

import pytest

from tokenchat.core.types import Token

USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


class SleepRecorder:
    """Async sleep stand-in that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def token() -> Token:
    """Established, untagged token with 6 decimals."""
    return Token(
        symbol="TEST",
        name="Test Token",
        address=USDC_MINT,
        decimals=6,
        created_at=datetime(2024, 1, 1, tzinfo=UTC),
        daily_volume=1234567.5,
    )


@pytest.fixture
def meme_token() -> Token:
    """Meme-tagged token created two days before NOW."""
    return Token(
        symbol="MEME",
        name="Meme Token",
        address="DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263",
        decimals=5,
        created_at=datetime(2025, 5, 30, tzinfo=UTC),
        tags=("meme",),
    )


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()
