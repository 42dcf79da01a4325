"""Grounded answer generation over retrieved document context."""

import httpx
import structlog

from ..core.interfaces import Retriever, Sleep
from ..core.retry import backoff_retrying
from .retrieval import render_context

logger = structlog.get_logger(__name__)

GREETINGS = frozenset({"hi", "hello", "hey"})
THANKS = frozenset({"thank you", "thanks", "ty"})

GREETING_REPLY = "Hi! How can I assist you today?"
THANKS_REPLY = "You're welcome! Anything else I can help with?"

GENERAL_DISCLOSURE = "No answer in database, answering in general"

ANSWER_PROMPT = """
You are a friendly and helpful AI assistant, designed to provide accurate and human-like responses. Your primary goal is to answer questions based on the provided context from documents. If no relevant context is available, use your general knowledge but clearly state: "{disclosure}." Respond conversationally, acknowledging casual inputs like "hi" or "thank you" appropriately.

Guidelines:
- Use clear, concise language and a warm tone.
- Organize answers into separate paragraphs for each key point, without using Markdown bold (**), bullet points (- or •), or other formatting symbols.
- Do not use lists or headers; instead, write each key point as a standalone paragraph.
- Maintain consistency with previous responses.
- Ensure proper grammar and punctuation.

Context: {context}
Question: {question}
"""


def canned_reply(question: str) -> str | None:
    """Return a fixed reply for greetings and thanks, else None."""
    normalized = question.strip().lower()
    if normalized in GREETINGS:
        return GREETING_REPLY
    if normalized in THANKS:
        return THANKS_REPLY
    return None


def strip_bold(text: str) -> str:
    return text.replace("**", "")


class AnswerGenerator:
    """Answers questions from retrieved context, falling back to general knowledge."""

    def __init__(
        self,
        llm_base: str,
        retriever: Retriever,
        model: str = "llama3.2",
        retry_attempts: int = 3,
        retry_base_seconds: float = 1.0,
        session: httpx.AsyncClient | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self.llm_base = llm_base.rstrip("/")
        self.retriever = retriever
        self.model = model
        self.retry_attempts = retry_attempts
        self.retry_base_seconds = retry_base_seconds
        self._session = session or httpx.AsyncClient(timeout=120.0)
        self._owns_session = session is None
        self._sleep = sleep

    async def close(self) -> None:
        if self._owns_session:
            await self._session.aclose()

    def build_prompt(self, question: str, context: str) -> str:
        return ANSWER_PROMPT.format(
            disclosure=GENERAL_DISCLOSURE, context=context, question=question
        )

    async def _chat(self, prompt: str) -> str:
        response = await self._session.post(
            f"{self.llm_base}/chat",
            json={
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "stream": False,
            },
        )
        response.raise_for_status()
        return response.json()["message"]["content"]

    async def answer(self, question: str, context: str) -> str:
        """Ask the model to answer ``question`` using ``context``.

        Failures never raise: after the retry budget is spent a literal error
        string is returned so the transcript always receives a turn.

        Args:
            question: User question
            context: Rendered retrieval context, possibly empty

        Returns:
            Model answer with bold markup removed, or an error string
        """
        prompt = self.build_prompt(question, context)
        try:
            async for attempt in backoff_retrying(
                attempts=self.retry_attempts,
                base_seconds=self.retry_base_seconds,
                sleep=self._sleep,
            ):
                with attempt:
                    content = await self._chat(prompt)
            return strip_bold(content)
        except Exception as e:
            logger.error(
                "Language model call failed",
                attempts=self.retry_attempts,
                error=str(e),
            )
            return (
                f"Error: Failed to connect to the language model after "
                f"{self.retry_attempts} attempts: {e}"
            )

    async def ask(self, question: str, asset_filter: str | None = None) -> str:
        """Answer a free-form question, grounding it in the document store."""
        reply = canned_reply(question)
        if reply is not None:
            return reply

        passages = await self.retriever.retrieve(question, asset_filter=asset_filter)
        context = render_context(passages)

        if not context:
            logger.info("No context retrieved, answering in general")
            response = await self.answer(question, "")
            return f"{GENERAL_DISCLOSURE}:\n\n{response}"

        return await self.answer(question, context)
