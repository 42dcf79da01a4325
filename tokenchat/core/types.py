"""Core data types for the token chat agent."""

from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Token(BaseModel):
    """Tradable asset identity. Refreshed by re-fetching, never mutated."""

    model_config = ConfigDict(frozen=True)

    symbol: str = Field(description="Ticker symbol")
    name: str = Field(default="", description="Display name")
    address: str = Field(description="Token mint address")
    decimals: int = Field(ge=0, description="Decimal precision")
    created_at: datetime = Field(description="Creation timestamp")
    tags: tuple[str, ...] = Field(default=(), description="Tag set, e.g. 'meme'")
    coingecko_id: str | None = Field(default=None, description="CoinGecko price id")
    daily_volume: float | None = Field(default=None, description="24h volume in USD")

    @field_validator("created_at")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @property
    def is_meme(self) -> bool:
        return "meme" in self.tags

    def is_new(self, now: datetime, days: int = 7) -> bool:
        """True when the token was created less than ``days`` before ``now``."""
        return self.created_at > now - timedelta(days=days)


class SwapIntent(BaseModel):
    """Structured swap command with amount in base units of its ``kind``.

    The ``amount > 0`` and ``input_mint != output_mint`` invariants are enforced
    by the validator before execution, so malformed intents can still be
    reported back to the user verbatim.
    """

    intent: Literal["swap"] = "swap"
    amount: float = Field(description="Amount in smallest units (lamports or raw units)")
    input_mint: str = Field(description="Input token mint address")
    output_mint: str = Field(description="Output token mint address")
    kind: Literal["sol", "token"] = Field(
        default="sol", description="Denomination the user gave the amount in"
    )


class QueryIntent(BaseModel):
    """Informational request about the selected token."""

    intent: Literal["query"] = "query"


class HelpIntent(BaseModel):
    """Request for usage help."""

    intent: Literal["help"] = "help"


Intent = SwapIntent | QueryIntent | HelpIntent


class SwapRule(BaseModel):
    """User-authored swap policy. All rules must pass for a swap to proceed."""

    min_swap_amount: float | None = Field(
        default=None, description="Minimum notional in USD"
    )
    max_swap_amount: float | None = Field(
        default=None, description="Maximum notional in USD"
    )
    avoid_meme_coins: bool = Field(default=False, description="Reject meme-tagged tokens")
    avoid_new_coins: bool = Field(default=False, description="Reject tokens under 7 days old")

    def describe(self) -> str:
        parts = []
        if self.min_swap_amount:
            parts.append(f"Min swap ${self.min_swap_amount:g}")
        if self.max_swap_amount:
            parts.append(f"Max swap ${self.max_swap_amount:g}")
        if self.avoid_meme_coins:
            parts.append("Avoid meme coins")
        if self.avoid_new_coins:
            parts.append("Avoid new coins")
        return ", ".join(parts) or "No constraints"


class ValidationResult(BaseModel):
    """Hard validation outcome for a swap proposal."""

    is_valid: bool = Field(description="Whether the swap may proceed")
    errors: list[str] = Field(default_factory=list, description="Blocking errors")


class RiskAssessment(BaseModel):
    """Advisory risk score with ordered warnings."""

    score: int = Field(ge=0, le=100, description="Risk score (0-100)")
    warnings: list[str] = Field(default_factory=list, description="Ordered warnings")

    @property
    def is_high_risk(self) -> bool:
        return self.score > 50


class RetrievedPassage(BaseModel):
    """Document chunk returned by vector search."""

    text: str = Field(description="Passage text")
    source_file: str = Field(description="Source document file name")
    page_range: str = Field(description="Page range within the source")
    relevance_score: float = Field(description="Similarity score")

    def render(self) -> str:
        return f"{self.text}\n[Source: {self.source_file}, Pages: {self.page_range}]"


class ChatMessage(BaseModel):
    """Single transcript entry."""

    role: Literal["user", "assistant"] = Field(description="Message author")
    content: str = Field(description="Message text")


class SwapStep(str, Enum):
    """Swap execution states in order."""

    CHECK_DESTINATION_ACCOUNT = "check_destination_account"
    ENSURE_ACCOUNT_EXISTS = "ensure_account_exists"
    FETCH_QUOTE = "fetch_quote"
    BUILD_SWAP = "build_swap"
    SIGN_AND_SUBMIT = "sign_and_submit"
    CONFIRM_FINALITY = "confirm_finality"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TransactionAttempt(BaseModel):
    """Ephemeral state threaded through the swap state machine."""

    step: SwapStep = Field(
        default=SwapStep.CHECK_DESTINATION_ACCOUNT, description="Current step"
    )
    retries: dict[str, int] = Field(
        default_factory=dict, description="Retry count per step"
    )
    last_error: str | None = Field(default=None, description="Last error message")
    failed_step: SwapStep | None = Field(
        default=None, description="Step that ended the swap, if it failed"
    )
    destination_account: str | None = Field(
        default=None, description="Associated token account receiving the output"
    )
    account_created: bool = Field(
        default=False, description="Whether the destination account was created"
    )
    signature: str | None = Field(default=None, description="Submitted swap signature")
    history: list[SwapStep] = Field(default_factory=list, description="Visited steps")

    @property
    def succeeded(self) -> bool:
        return self.step is SwapStep.SUCCEEDED

    def advance(self, step: SwapStep) -> None:
        self.history.append(step)
        self.step = step

    def record_retry(self, step: SwapStep, error: str) -> None:
        self.retries[step.value] = self.retries.get(step.value, 0) + 1
        self.last_error = error

    def fail(self, error: str) -> None:
        self.failed_step = self.step
        self.last_error = error
        self.step = SwapStep.FAILED
