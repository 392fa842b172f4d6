from __future__ import annotations

import logging
from typing import Protocol

import anthropic
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from .config import AppConfig
from .errors import ChatError

logger = logging.getLogger(__name__)

CHAT_PROMPT = (
    "You are a thoughtful assistant with access to excerpts from the user's personal notes.\n"
    "Answer the user's question using those notes. Refer to specific notes where they help, "
    "and if the notes do not cover the question, say so instead of guessing."
)


def notes_prompt(notes: str) -> str:
    return f"Here are the user's notes that relate to the question:\n\n{notes}"


class ChatBackend(Protocol):
    async def complete(
        self,
        *,
        system: str,
        context: str,
        question: str,
        max_tokens: int,
        temperature: float,
        frequency_penalty: float,
    ) -> str:
        ...


class OpenAIChatBackend:
    def __init__(self, model: str, client: AsyncOpenAI | None = None) -> None:
        self.model = model
        self._client = client if client is not None else AsyncOpenAI(max_retries=0)

    async def complete(self, *, system, context, question, max_tokens, temperature, frequency_penalty) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "system", "content": notes_prompt(context)},
                    {"role": "user", "content": question},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
                frequency_penalty=frequency_penalty,
            )
        except openai.OpenAIError as e:
            raise ChatError(f"Chat failed: {e}") from e
        return response.choices[0].message.content or ""


class AnthropicChatBackend:
    """Claude has no frequency penalty; the setting is ignored here."""

    def __init__(self, model: str, client: AsyncAnthropic | None = None) -> None:
        self.model = model
        self._client = client if client is not None else AsyncAnthropic(max_retries=0)

    async def complete(self, *, system, context, question, max_tokens, temperature, frequency_penalty) -> str:
        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=min(temperature, 1.0),
                system=f"{system}\n\n{notes_prompt(context)}",
                messages=[{"role": "user", "content": question}],
            )
        except anthropic.AnthropicError as e:
            raise ChatError(f"Chat failed: {e}") from e
        return "".join(block.text for block in response.content if block.type == "text")


class ChatClient:
    """Answers a question from a note context with fixed sampling settings.

    A single attempt is made; a failure raises ChatError carrying the cause.
    """

    def __init__(
        self,
        backend: ChatBackend,
        *,
        max_tokens: int = 1000,
        temperature: float = 1.0,
        frequency_penalty: float = 0.0,
    ) -> None:
        self.backend = backend
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.frequency_penalty = frequency_penalty

    @classmethod
    def from_config(cls, cfg: AppConfig) -> "ChatClient":
        backend: ChatBackend
        if cfg.chat_provider == "anthropic":
            backend = AnthropicChatBackend(cfg.anthropic_chat_model)
        else:
            backend = OpenAIChatBackend(cfg.openai_chat_model)
        return cls(
            backend,
            max_tokens=cfg.chat_max_tokens,
            temperature=cfg.chat_temperature,
            frequency_penalty=cfg.chat_frequency_penalty,
        )

    async def answer(self, question: str, context: str) -> str:
        logger.debug("Asking chat model (%d context chars)", len(context))
        try:
            text = await self.backend.complete(
                system=CHAT_PROMPT,
                context=context,
                question=question,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                frequency_penalty=self.frequency_penalty,
            )
        except ChatError:
            logger.warning("Chat call failed", exc_info=True)
            raise
        return text.strip()


__all__ = [
    "CHAT_PROMPT",
    "notes_prompt",
    "ChatBackend",
    "OpenAIChatBackend",
    "AnthropicChatBackend",
    "ChatClient",
]
