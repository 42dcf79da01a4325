"""Swap validation and advisory risk scoring."""

import math
from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from ..config.settings import SOL_MINT, RiskPolicy
from ..core.types import RiskAssessment, SwapRule, Token, ValidationResult

logger = structlog.get_logger(__name__)

LAMPORTS_PER_SOL = 10**9

RULE_PENALTY = 20
BLACKLIST_PENALTY = 40
HEURISTIC_PENALTY = 20


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SwapValidator:
    """Evaluates swap proposals against static heuristics and user rules.

    Both entry points are pure given their inputs: the reference clock is
    taken from ``now`` (or ``now_fn``) so identical inputs reproduce
    identical results.
    """

    def __init__(
        self,
        policy: RiskPolicy | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize validator.

        Args:
            policy: Thresholds, denylists and the fixed SOL/USD conversion
            now_fn: Optional clock (for testing)
        """
        self.policy = policy or RiskPolicy()
        self._now_fn = now_fn or _utcnow

    def notional_usd(self, sol_amount: float) -> float:
        return sol_amount * self.policy.sol_usd_price

    def assess(
        self,
        amount: float,
        input_mint: str,
        output_mint: str,
        token: Token,
        rules: list[SwapRule],
        confirmed_large: bool = False,
        now: datetime | None = None,
        kind: str = "sol",
    ) -> ValidationResult:
        """Hard validation of a swap proposal.

        Args:
            amount: Amount in base units of the denominating asset
            input_mint: Input mint address
            output_mint: Output mint address
            token: Selected token
            rules: User rules, all of which must pass
            confirmed_large: Whether the user explicitly confirmed a large swap
            now: Reference time for the new-coin rule
            kind: "sol" when ``amount`` is lamports, "token" when it is raw
                units of the selected token

        Returns:
            ValidationResult listing every blocking error
        """
        now = now or self._now_fn()
        errors: list[str] = []

        valid_amount = bool(amount) and math.isfinite(amount) and amount > 0
        if not valid_amount:
            errors.append("Invalid swap amount")
        if not input_mint or not output_mint:
            errors.append("Missing token addresses")
        if input_mint == output_mint:
            errors.append("Cannot swap token for itself")

        # Only SOL-denominated amounts have a notional; token amounts have no rate here
        sol_denominated = valid_amount and kind == "sol" and input_mint == SOL_MINT
        sol_amount = amount / LAMPORTS_PER_SOL if sol_denominated else 0.0
        if sol_amount > self.policy.large_swap_sol and not confirmed_large:
            errors.append(
                "Large swap detected - please confirm you want to swap more than "
                f"{self.policy.large_swap_sol:g} SOL"
            )

        usd_amount = self.notional_usd(sol_amount)
        for rule in rules:
            if sol_denominated and rule.min_swap_amount and usd_amount < rule.min_swap_amount:
                errors.append(
                    f"Swap amount (${usd_amount:.2f}) is below minimum rule "
                    f"(${rule.min_swap_amount:g})"
                )
            if sol_denominated and rule.max_swap_amount and usd_amount > rule.max_swap_amount:
                errors.append(
                    f"Swap amount (${usd_amount:.2f}) exceeds maximum rule "
                    f"(${rule.max_swap_amount:g})"
                )
            if rule.avoid_meme_coins and token.is_meme:
                errors.append("Token is a meme coin, which violates your rules")
            if rule.avoid_new_coins and token.is_new(now, self.policy.new_coin_days):
                errors.append(
                    f"Token is less than {self.policy.new_coin_days} days old, "
                    "which violates your rules"
                )

        if errors:
            logger.info(
                "Swap validation failed",
                token_mint=token.address,
                amount=amount,
                errors=errors,
            )
        return ValidationResult(is_valid=not errors, errors=errors)

    def simulate(
        self,
        amount: float,
        token: Token,
        rules: list[SwapRule],
        now: datetime | None = None,
    ) -> RiskAssessment:
        """Advisory risk scoring for a swap preview. Never touches the chain.

        Warnings are appended in a fixed order: blacklist, price impact,
        liquidity, routing pool, then each rule in turn.

        Args:
            amount: Swap amount in SOL
            token: Selected token
            rules: User rules
            now: Reference time for age-based heuristics

        Returns:
            RiskAssessment with score capped at 100
        """
        now = now or self._now_fn()
        policy = self.policy
        score = 0
        warnings: list[str] = []

        if token.address in policy.blacklisted_tokens:
            warnings.append("⚠️ This token is blacklisted.")
            score += BLACKLIST_PENALTY
            logger.warning("Blacklisted token detected", token_mint=token.address)

        price_impact = (
            policy.high_price_impact_pct
            if amount > policy.price_impact_amount_threshold
            else policy.low_price_impact_pct
        )
        if price_impact > policy.price_impact_threshold_pct:
            warnings.append(
                f"⚠️ Price impact is too high ({price_impact:g}% > "
                f"{policy.price_impact_threshold_pct:g}%)."
            )
            score += HEURISTIC_PENALTY
            logger.warning("High price impact", price_impact=price_impact, amount=amount)

        is_new = token.is_new(now, policy.new_coin_days)
        liquidity = (
            policy.new_token_liquidity_usd if is_new else policy.established_token_liquidity_usd
        )
        if liquidity < policy.liquidity_threshold_usd:
            warnings.append(
                f"⚠️ Liquidity looks suspicious (${liquidity:g} < "
                f"${policy.liquidity_threshold_usd:g})."
            )
            score += HEURISTIC_PENALTY
            logger.warning("Low liquidity", token=token.symbol, liquidity=liquidity)

        weird_pool = policy.weird_pools[0] if token.is_meme and policy.weird_pools else None
        if weird_pool:
            warnings.append(f"⚠️ Route goes through weird pool ({weird_pool}).")
            score += HEURISTIC_PENALTY
            logger.warning("Weird pool detected", pool=weird_pool)

        usd_amount = self.notional_usd(amount)
        for rule in rules:
            if rule.min_swap_amount and usd_amount < rule.min_swap_amount:
                warnings.append(
                    f"⚠️ Swap amount (${usd_amount:g}) is below rule minimum "
                    f"(${rule.min_swap_amount:g})."
                )
                score += RULE_PENALTY
            if rule.max_swap_amount and usd_amount > rule.max_swap_amount:
                warnings.append(
                    f"⚠️ Swap amount (${usd_amount:g}) exceeds rule limit "
                    f"(${rule.max_swap_amount:g})."
                )
                score += RULE_PENALTY
            if rule.avoid_meme_coins and token.is_meme:
                warnings.append("⚠️ Token is a meme coin, against your rules.")
                score += RULE_PENALTY
            if rule.avoid_new_coins and is_new:
                warnings.append("⚠️ Token is too new, against your rules.")
                score += RULE_PENALTY

        return RiskAssessment(score=min(score, 100), warnings=warnings)


def format_preview(amount: float, token: Token, assessment: RiskAssessment) -> str:
    """Render a swap preview message for the transcript."""
    lines = [
        f"🔍 Swap Preview: {amount:g} SOL for {token.symbol}",
        f"Risk Score: {assessment.score}/100",
        *assessment.warnings,
        "⚠️ High risk detected. Proceed with caution."
        if assessment.is_high_risk
        else "✅ Swap looks safe.",
    ]
    return "\n".join(lines)
