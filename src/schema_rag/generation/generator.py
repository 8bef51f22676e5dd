"""Generative model adapters."""

from __future__ import annotations

from typing import Any, Protocol

from schema_rag.errors import GenerationError


class Generator(Protocol):
    """Executes one prompt and returns the model's text."""

    def generate(self, prompt: str) -> str:
        """Raises `GenerationError` when the model cannot answer."""


class ChatModelGenerator:
    """Wraps a LangChain chat model (`ChatOpenAI`, ...) as a `Generator`."""

    def __init__(self, llm: Any) -> None:
        self.llm = llm

    def generate(self, prompt: str) -> str:
        try:
            message = self.llm.invoke(prompt)
        except Exception as exc:
            raise GenerationError(f"generation failed: {exc}") from exc

        text = _message_text(message)
        if not text.strip():
            raise GenerationError("model returned an empty response")
        return text


def create_chat_model(*, api_key: str, model: str, temperature: float = 0.0) -> Any:
    from langchain_openai import ChatOpenAI

    return ChatOpenAI(model=model, temperature=temperature, api_key=api_key)


def _message_text(message: Any) -> str:
    if isinstance(message, str):
        return message
    content = getattr(message, "content", message)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                if "text" in item:
                    parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return "".join(parts)
    return str(content)
