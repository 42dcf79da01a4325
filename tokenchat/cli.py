"""Interactive terminal front-end for the token chat agent."""

import argparse
import asyncio
import sys
from typing import Any

import httpx
import structlog

from .chat.router import ConversationRouter, DocumentResponder, GeneralChat, Transcript
from .config.logging import configure_logging
from .config.settings import AppSettings, load_settings
from .core.types import SwapRule
from .data.prices import PriceOracle
from .data.tokens import TokenCatalog
from .exec.jupiter import JupiterClient
from .exec.rpc import RpcClient
from .exec.swap import SwapExecutor
from .exec.wallet import KeypairWallet
from .nlp.classifier import IntentClassifier
from .nlp.token_query import TokenQueryResponder
from .rag.answer import AnswerGenerator
from .rag.retrieval import RetrievalClient
from .risk.validator import SwapValidator

logger = structlog.get_logger(__name__)

HELP_TEXT = """Commands:
  /rule [min=<usd>] [max=<usd>] [meme] [new]   add a swap rule
  /rules                                        list rules
  /ask <question>                               ask the document store
  /tokens <tag>                                 list tokens by tag (verified, strict, new, ...)
  /quit                                         exit
Anything else is sent to the token chat."""


def parse_rule(args: list[str]) -> SwapRule:
    """Parse ``/rule`` arguments, e.g. ``min=1 max=50 meme new``.

    Raises:
        ValueError: On unknown or malformed arguments
    """
    fields: dict[str, Any] = {}
    for arg in args:
        key, _, value = arg.partition("=")
        key = key.lower()
        if key == "min":
            fields["min_swap_amount"] = float(value)
        elif key == "max":
            fields["max_swap_amount"] = float(value)
        elif key == "meme":
            fields["avoid_meme_coins"] = True
        elif key == "new":
            fields["avoid_new_coins"] = True
        else:
            raise ValueError(f"Unknown rule option: {arg}")
    if not fields:
        raise ValueError("Rule needs at least one option")
    return SwapRule(**fields)


class ChatSession:
    """Wires every component from settings for one selected token."""

    def __init__(self, settings: AppSettings, session: httpx.AsyncClient) -> None:
        self.settings = settings
        self.session = session
        self.rpc = RpcClient(settings.rpc_url, client=session)
        self.catalog = TokenCatalog(settings.jupiter_tokens_base, session=session)
        retriever = RetrievalClient(
            settings.embed_base,
            settings.qdrant_url,
            settings.qdrant_collection,
            embed_model=settings.embed_model,
            top_k=settings.retrieval_top_k,
            retry_attempts=settings.retry_attempts,
            retry_base_seconds=settings.retry_base_seconds,
            session=session,
        )
        self.answerer = AnswerGenerator(
            settings.llm_base,
            retriever,
            model=settings.chat_model,
            retry_attempts=settings.retry_attempts,
            retry_base_seconds=settings.retry_base_seconds,
            session=session,
        )
        self.general = GeneralChat(self.answerer)
        self.router: ConversationRouter | None = None

    async def open(self, mint: str, answer_from_docs: bool = False) -> ConversationRouter:
        settings = self.settings
        token = await self.catalog.get_token(mint)

        wallet = None
        try:
            wallet = KeypairWallet.load(settings.keypair_path_json, settings.secret_key_env)
        except ValueError as e:
            logger.warning("No wallet configured, swaps disabled", error=str(e))

        executor = SwapExecutor(
            self.rpc,
            JupiterClient(
                settings.jupiter_base,
                slippage_bps=settings.slippage_bps,
                swap_mode=settings.swap_mode,
                max_priority_fee_lamports=settings.max_priority_fee_lamports,
                priority_level=settings.priority_level,
                session=self.session,
            ),
            explorer_tx_url=settings.explorer_tx_url,
            merchant_pubkey=settings.merchant_pubkey,
            retry_attempts=settings.retry_attempts,
            retry_base_seconds=settings.retry_base_seconds,
            send_max_retries=settings.send_max_retries,
            confirm_timeout_seconds=settings.confirm_timeout_seconds,
            wallet_sign_timeout_seconds=settings.wallet_sign_timeout_seconds,
        )
        if answer_from_docs:
            responder = DocumentResponder(self.answerer, filter_by_token=True)
        else:
            responder = TokenQueryResponder(
                settings.llm_base,
                PriceOracle(
                    settings.coingecko_base, settings.jupiter_price_base, session=self.session
                ),
                model=settings.chat_model,
                temperature=settings.query_temperature,
                session=self.session,
            )
        self.router = ConversationRouter(
            token,
            IntentClassifier(
                settings.llm_base,
                model=settings.chat_model,
                temperature=settings.intent_temperature,
                top_p=settings.intent_top_p,
                session=self.session,
            ),
            SwapValidator(settings.risk),
            executor,
            responder,
            wallet=wallet,
        )
        return self.router


def _print_new(transcript: Transcript, seen: int) -> int:
    for message in transcript.messages[seen:]:
        if message.role == "assistant":
            print(f"\n{message.content}\n")
    return len(transcript)


async def repl(chat: ChatSession, router: ConversationRouter) -> None:
    seen = _print_new(router.transcript, 0)
    general_seen = 0
    print(HELP_TEXT)

    while True:
        try:
            line = await asyncio.to_thread(input, f"{router.token.symbol}> ")
        except EOFError:
            break
        line = line.strip()
        if not line:
            continue
        if line in ("/quit", "/exit"):
            break

        if line.startswith("/rule "):
            try:
                router.add_rule(parse_rule(line.split()[1:]))
            except ValueError as e:
                print(f"Invalid rule: {e}")
        elif line == "/rules":
            for i, rule in enumerate(router.rules, 1):
                print(f"{i}. {rule.describe()}")
        elif line.startswith("/tokens "):
            try:
                tokens = await chat.catalog.list_tagged(line.split(maxsplit=1)[1].strip())
            except httpx.HTTPError as e:
                print(f"Failed to load tokens: {e}")
            else:
                for t in tokens[:20]:
                    print(f"{t.symbol:<10} {t.address}")
        elif line.startswith("/ask "):
            await chat.general.handle(line[5:], asset_filter=None)
            general_seen = _print_new(chat.general.transcript, general_seen)
        else:
            await router.handle(line)
        seen = _print_new(router.transcript, seen)


async def main() -> None:
    """Main entry point for the token chat CLI."""
    parser = argparse.ArgumentParser(description="Solana token chat agent")
    parser.add_argument("--config", default="configs/dev.yaml", help="Configuration file path")
    parser.add_argument(
        "--profile", default="dev", choices=["dev", "prod"], help="Configuration profile"
    )
    parser.add_argument("--mint", required=True, help="Mint address of the token to chat about")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    parser.add_argument(
        "--docs",
        action="store_true",
        help="Answer token questions from the document store instead of live token data",
    )
    args = parser.parse_args()

    try:
        settings = load_settings(args.profile, args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    configure_logging(settings.log_level, json_output=args.json_logs)

    async with httpx.AsyncClient(timeout=60.0) as session:
        chat = ChatSession(settings, session)
        try:
            router = await chat.open(args.mint, answer_from_docs=args.docs)
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Failed to load token", mint=args.mint, error=str(e))
            print(f"Failed to load token details for {args.mint}: {e}", file=sys.stderr)
            sys.exit(1)
        await repl(chat, router)


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nBye.")


if __name__ == "__main__":
    run()
