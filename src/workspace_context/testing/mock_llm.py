"""Fake LLM clients for testing the context engine without real API calls.

Two flavours:
- create_mock_client(): a real LangChainLLMClient over LangChain's
  FakeMessagesListChatModel and a deterministic keyword embedding.
- ScriptedLLMClient: a plain LLMClient that records calls and can be told
  to fail, for asserting on pipeline behaviour.
"""

import json
import re
import threading
from typing import Any, Optional

from langchain_core.embeddings import Embeddings
from langchain_core.language_models.fake_chat_models import FakeMessagesListChatModel
from langchain_core.messages import AIMessage

from ..llm import LangChainLLMClient

_WORD = re.compile(r"[a-z0-9_]+")


def create_mock_llm(responses: list[str | dict | AIMessage]) -> FakeMessagesListChatModel:
    """Create a mock chat model with scripted responses.

    Args:
        responses: List of responses. Can be:
            - str: Raw text response
            - dict: Will be JSON-stringified
            - AIMessage: Direct message object

    Returns:
        FakeMessagesListChatModel that replays the responses in order (then cycles)
    """
    messages = []
    for resp in responses:
        if isinstance(resp, AIMessage):
            messages.append(resp)
        elif isinstance(resp, dict):
            messages.append(AIMessage(content=json.dumps(resp, indent=2)))
        else:
            messages.append(AIMessage(content=str(resp)))

    return FakeMessagesListChatModel(responses=messages)


class KeywordEmbeddings(Embeddings):
    """Deterministic embeddings: one dimension per vocabulary word (term counts).

    Texts sharing vocabulary words end up close together, which is enough
    to make ranking assertions in tests.
    """

    def __init__(self, vocabulary: list[str]) -> None:
        self.vocabulary = [word.lower() for word in vocabulary]

    def embed_query(self, text: str) -> list[float]:
        words = _WORD.findall(text.lower())
        return [float(words.count(term)) for term in self.vocabulary]

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_query(text) for text in texts]


def create_mock_client(
    responses: Optional[list[str | dict | AIMessage]] = None,
    vocabulary: Optional[list[str]] = None,
) -> LangChainLLMClient:
    """LangChainLLMClient backed by scripted chat replies.

    Embeddings are enabled only when a vocabulary is given.
    """
    embeddings = KeywordEmbeddings(vocabulary) if vocabulary else None
    return LangChainLLMClient(
        chat_model=create_mock_llm(responses or [""]),
        embeddings=embeddings,
    )


class ScriptedLLMClient:
    """LLMClient double that records calls.

    Args:
        responses: generate() replies, consumed in order; the last one repeats
        vocabulary: Enables embeddings via KeywordEmbeddings when given
        fail_generate: generate() raises RuntimeError
        fail_embed_on: embed() raises RuntimeError for texts containing this string
    """

    def __init__(
        self,
        responses: Optional[list[str]] = None,
        vocabulary: Optional[list[str]] = None,
        fail_generate: bool = False,
        fail_embed_on: Optional[str] = None,
    ) -> None:
        self.responses = list(responses or [""])
        self.embeddings = KeywordEmbeddings(vocabulary) if vocabulary else None
        self.fail_generate = fail_generate
        self.fail_embed_on = fail_embed_on
        self.fail_all_embeddings = False

        self.generate_calls: list[dict[str, Any]] = []
        self.embed_calls: list[str] = []
        self._lock = threading.Lock()

    def generate(
        self,
        model_name: str,
        prompt: str,
        system_prompt: str = "",
        tools: Optional[list[dict[str, Any]]] = None,
    ) -> str:
        with self._lock:
            self.generate_calls.append({
                "model_name": model_name,
                "prompt": prompt,
                "system_prompt": system_prompt,
                "tools": tools,
            })
            if self.fail_generate:
                raise RuntimeError("generation failed")
            index = min(len(self.generate_calls), len(self.responses)) - 1
            return self.responses[index]

    def embed(self, text: str) -> list[float]:
        with self._lock:
            self.embed_calls.append(text)
        if self.embeddings is None:
            raise RuntimeError("embeddings not supported")
        if self.fail_all_embeddings:
            raise RuntimeError("embedding service unavailable")
        if self.fail_embed_on is not None and self.fail_embed_on in text:
            raise RuntimeError("embedding failed")
        return self.embeddings.embed_query(text)

    def supports_embeddings(self) -> bool:
        return self.embeddings is not None
