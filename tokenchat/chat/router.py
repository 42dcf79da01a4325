"""Conversational routing: one user message in, assistant turns out."""

import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog

from ..core.interfaces import Classifier, Responder, Wallet
from ..core.types import ChatMessage, HelpIntent, QueryIntent, SwapIntent, SwapRule, Token
from ..exec.swap import SwapExecutor
from ..rag.answer import AnswerGenerator
from ..risk.validator import SwapValidator, format_preview

logger = structlog.get_logger(__name__)

DEFAULT_PREVIEW_SOL = 0.1

CONFIRM_WORDS = frozenset({"confirm", "yes", "y"})

NOT_SURE_REPLY = "🤔 I'm not sure how to help with that. Type \"help\" to see what I can do."

_PREVIEW_AMOUNT = re.compile(r"(\d+\.?\d*)\s*SOL", re.IGNORECASE)


class Transcript:
    """Append-only dialogue transcript with a single pending placeholder.

    The placeholder is shown while a call is in flight and is never part of
    ``messages``; ``resolve`` clears it and appends the real reply in one step.
    """

    def __init__(self, messages: list[ChatMessage] | None = None) -> None:
        self._messages: list[ChatMessage] = list(messages or [])
        self.pending: str | None = None

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    def append(self, role: str, content: str) -> None:
        self._messages.append(ChatMessage(role=role, content=content))

    def say(self, content: str) -> None:
        self.append("assistant", content)

    def hold(self, placeholder: str) -> None:
        self.pending = placeholder

    def resolve(self, content: str | None = None) -> None:
        self.pending = None
        if content is not None:
            self.say(content)

    def visible(self) -> list[ChatMessage]:
        """Messages as a UI would render them, placeholder last."""
        shown = list(self._messages)
        if self.pending is not None:
            shown.append(ChatMessage(role="assistant", content=self.pending))
        return shown

    def __len__(self) -> int:
        return len(self._messages)


def help_message(token: Token) -> str:
    return (
        "🤖 I can help you with:\n\n"
        "Swapping:\n"
        '• "Swap 0.1 SOL for this token"\n'
        f'• "Buy 100 {token.symbol}"\n'
        '• "Preview swap 0.5 SOL" for a risk check without trading\n\n'
        "Information:\n"
        f'• "What\'s the price of {token.symbol}?"\n'
        '• "Tell me about this token"\n'
        '• "Show me the volume"\n\n'
        "Monitoring:\n"
        '• "Alert when price drops"\n\n'
        f"Try any of these commands or ask me anything else about {token.symbol}!"
    )


class ConversationRouter:
    """Routes token chat messages to answers, previews or swap execution.

    Owns the transcript and the rule list, both append-only. At most one
    action runs per conversation; the in-progress flag is held for the whole
    dispatch and released on every exit path.
    """

    def __init__(
        self,
        token: Token,
        classifier: Classifier,
        validator: SwapValidator,
        executor: SwapExecutor,
        responder: Responder,
        wallet: Wallet | None = None,
        transcript: Transcript | None = None,
    ) -> None:
        self.token = token
        self.classifier = classifier
        self.validator = validator
        self.executor = executor
        self.responder = responder
        self.wallet = wallet
        self.transcript = transcript or Transcript()
        self._rules: list[SwapRule] = []
        self._in_progress = False
        self._awaiting_confirmation: SwapIntent | None = None

        self.transcript.say(
            f'Ask me about {token.name or token.symbol}! Try "Swap 0.1 SOL for this token", '
            '"Preview Swap", or "help" for options.'
        )

    @property
    def rules(self) -> tuple[SwapRule, ...]:
        return tuple(self._rules)

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    def add_rule(self, rule: SwapRule) -> None:
        self._rules.append(rule)
        logger.info("Rule added", rule=rule.model_dump(exclude_defaults=True))
        self.transcript.say(f"✅ Rule added: {rule.describe()}")

    @asynccontextmanager
    async def _action_guard(self) -> AsyncIterator[None]:
        self._in_progress = True
        try:
            yield
        finally:
            self._in_progress = False
            self.transcript.pending = None

    async def handle(self, text: str) -> None:
        """Process one user message, appending every reply to the transcript."""
        message = text.strip()
        if not message:
            return

        self.transcript.append("user", message)

        if self._in_progress:
            self.transcript.say(
                "⏳ Still working on your previous request. Please wait for it to finish."
            )
            return

        async with self._action_guard():
            try:
                await self._dispatch(message)
            except Exception as e:
                logger.exception("Chat handler error", message=message[:80])
                self.transcript.resolve(
                    f"❌ Sorry, I encountered an error: {str(e) or 'Unknown error'}. "
                    "Please try again or rephrase your request."
                )

    async def _dispatch(self, message: str) -> None:
        awaiting, self._awaiting_confirmation = self._awaiting_confirmation, None
        if awaiting is not None and message.lower() in CONFIRM_WORDS:
            await self._swap(awaiting, confirmed_large=True)
            return

        if "preview swap" in message.lower():
            self._preview(message)
            return

        self.transcript.hold("🤔 Analyzing your command...")
        intent = await self.classifier.classify(message, self.token)
        self.transcript.resolve()
        logger.info("Dispatching intent", intent=intent.intent)

        if isinstance(intent, SwapIntent):
            await self._swap(intent)
        elif isinstance(intent, HelpIntent):
            self.transcript.say(help_message(self.token))
        elif isinstance(intent, QueryIntent):
            self.transcript.hold("🤔 Looking that up...")
            reply = await self.responder.respond(message, self.token)
            self.transcript.resolve(reply)
        else:
            self.transcript.say(NOT_SURE_REPLY)

    def _preview(self, message: str) -> None:
        match = _PREVIEW_AMOUNT.search(message)
        amount = float(match.group(1)) if match else DEFAULT_PREVIEW_SOL
        assessment = self.validator.simulate(amount, self.token, list(self._rules))
        logger.info("Swap preview", amount=amount, score=assessment.score)
        self.transcript.say(format_preview(amount, self.token, assessment))

    async def _swap(self, intent: SwapIntent, confirmed_large: bool = False) -> None:
        if self.wallet is None:
            self.transcript.say("🔒 Please connect your Solana wallet to perform swaps.")
            return

        rules = list(self._rules)
        validation = self.validator.assess(
            intent.amount,
            intent.input_mint,
            intent.output_mint,
            self.token,
            rules,
            confirmed_large=confirmed_large,
            kind=intent.kind,
        )
        if not validation.is_valid and not confirmed_large:
            # Only the large-swap check failed: ask instead of rejecting
            if self.validator.assess(
                intent.amount,
                intent.input_mint,
                intent.output_mint,
                self.token,
                rules,
                confirmed_large=True,
                kind=intent.kind,
            ).is_valid:
                self._awaiting_confirmation = intent
                self.transcript.say(
                    f"⚠️ {validation.errors[0]}. Reply \"confirm\" to proceed or "
                    "send a new command to cancel."
                )
                return
        if not validation.is_valid:
            self.transcript.say(
                f"❌ Swap validation failed: {', '.join(validation.errors)}. "
                "Please adjust your swap parameters to meet your set rules."
            )
            return

        await self.executor.execute(intent, self.token, self.wallet, self.transcript.say)


class DocumentResponder:
    """Answers token chat questions from the document store.

    Drop-in replacement for the token query responder when informational
    turns should be grounded in retrieved documents instead.
    """

    def __init__(self, answerer: AnswerGenerator, filter_by_token: bool = False) -> None:
        self.answerer = answerer
        self.filter_by_token = filter_by_token

    async def respond(self, text: str, token: Token) -> str:
        asset_filter = token.address if self.filter_by_token else None
        return await self.answerer.ask(text, asset_filter=asset_filter)


class GeneralChat:
    """Document Q&A chat that is not tied to a selected token."""

    def __init__(self, answerer: AnswerGenerator, transcript: Transcript | None = None) -> None:
        self.answerer = answerer
        self.transcript = transcript or Transcript()

    async def handle(self, text: str, asset_filter: str | None = None) -> None:
        question = text.strip()
        if not question:
            return

        self.transcript.append("user", question)
        self.transcript.hold("🤔 Processing...")
        try:
            reply = await self.answerer.ask(question, asset_filter=asset_filter)
        except Exception as e:
            logger.exception("Chat query failed")
            reply = f"❌ Sorry, I encountered an error: {e}. Please try again."
        self.transcript.resolve(reply)
