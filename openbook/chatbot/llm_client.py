"""
LLM Client Wrapper (Gemini + LangChain)

Every model call in the service goes through `LanguageModel.complete`:
an ordered list of role-tagged messages in, text plus token usage out.
"""

import logging
import os
from typing import List, Optional, Protocol

import tiktoken
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from ..config import DEFAULT_MODEL
from ..schema.core_schema import Completion, PromptMessage, TokenUsage

logger = logging.getLogger(__name__)


class LanguageModel(Protocol):
    def complete(self, messages: List[PromptMessage]) -> Completion: ...


def to_langchain_messages(messages: List[PromptMessage]) -> List[BaseMessage]:
    """
    Convert to LangChain messages. Gemini takes one system instruction, so
    all system messages are joined (in order) into a single leading one.
    """
    system_parts = [m.content for m in messages if m.role == "system"]
    converted: List[BaseMessage] = []
    if system_parts:
        converted.append(SystemMessage(content="\n\n".join(system_parts)))
    for msg in messages:
        if msg.role == "system":
            continue
        if msg.role == "assistant":
            converted.append(AIMessage(content=msg.content))
        else:
            converted.append(HumanMessage(content=msg.content))
    return converted


class LLMClient:
    """Gemini chat completion client implementing LanguageModel."""

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        temperature: float = 0.7,
    ) -> None:
        """
        Initialize Gemini client.

        Args:
            model: Gemini model name (default: "gemini-2.0-flash").
            api_key: Explicit key; falls back to GOOGLE_API_KEY / GEMINI_API_KEY.
            temperature: Sampling temperature for every call.
        """
        api_key = api_key or os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise ValueError("GOOGLE_API_KEY or GEMINI_API_KEY not found in environment")

        self.model = model or DEFAULT_MODEL
        self._llm = ChatGoogleGenerativeAI(
            model=self.model,
            temperature=temperature,
            google_api_key=api_key,
        )

        # Used only when the provider omits usage metadata
        try:
            self._tokenizer = tiktoken.get_encoding("cl100k_base")
        except Exception:
            self._tokenizer = None
            logger.warning("tiktoken not available, using character-based token estimates")

    # ------------------------------------------------------------------
    # Chat completion
    # ------------------------------------------------------------------
    def complete(self, messages: List[PromptMessage]) -> Completion:
        """Run one chat completion and report its token usage."""
        resp = self._llm.invoke(to_langchain_messages(messages))
        text = resp.content if hasattr(resp, "content") else str(resp)
        if isinstance(text, list):
            # Gemini may return content parts
            text = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in text
            )

        usage_md = getattr(resp, "usage_metadata", None)
        if usage_md:
            usage = TokenUsage.of(
                int(usage_md.get("input_tokens", 0)),
                int(usage_md.get("output_tokens", 0)),
            )
        else:
            prompt_text = "\n".join(f"{m.role}: {m.content}" for m in messages)
            usage = TokenUsage.of(self.count_tokens(prompt_text), self.count_tokens(text))

        return Completion(text=text, usage=usage)

    def count_tokens(self, text: str) -> int:
        if self._tokenizer is not None:
            return len(self._tokenizer.encode(text))
        # Fallback: approximate 1 token = 4 characters
        return len(text) // 4
