"""LLM client used by the context engine.

The retrieval pipeline only needs three operations from a language model:
text generation, embeddings, and a capability check for embeddings. They are
expressed by the LLMClient protocol. LangChainLLMClient implements it on top
of a LangChain chat model (ChatOpenAI against an OpenAI-compatible server by
default) and a LangChain Embeddings backend (local sentence-transformers by
default).
"""

import threading
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from langchain_core.embeddings import Embeddings
from langchain_core.globals import set_verbose
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from sentence_transformers import SentenceTransformer

from .config import config
from .errors import EmbeddingsUnsupportedError
from .logging_config import get_logger

logger = get_logger(__name__)


@runtime_checkable
class LLMClient(Protocol):
    """Narrow language-model interface consumed by the context engine."""

    def generate(
        self,
        model_name: str,
        prompt: str,
        system_prompt: str = "",
        tools: Optional[list[dict[str, Any]]] = None,
    ) -> str: ...

    def embed(self, text: str) -> list[float]: ...

    def supports_embeddings(self) -> bool: ...


# Loaded once per model name; encoding is thread-safe, loading is not
_embedding_models: dict[str, SentenceTransformer] = {}
_embedding_models_lock = threading.Lock()


def get_embedding_model(model_name: Optional[str] = None) -> SentenceTransformer:
    """Get or initialize a sentence-transformers model.

    Defaults to sentence-transformers/all-MiniLM-L6-v2:
    - Fast (runs on CPU)
    - 384-dimensional embeddings
    - Good for code and technical text

    Returns:
        Initialized SentenceTransformer model
    """
    model_name = model_name or config["embeddings"]["model_name"]
    with _embedding_models_lock:
        if model_name not in _embedding_models:
            logger.info("Loading embedding model %s (first time only)...", model_name)
            _embedding_models[model_name] = SentenceTransformer(model_name)
        return _embedding_models[model_name]


class SentenceTransformerEmbeddings(Embeddings):
    """LangChain Embeddings backed by a local sentence-transformers model."""

    def __init__(self, model_name: Optional[str] = None) -> None:
        self.model_name = model_name or config["embeddings"]["model_name"]

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        model = get_embedding_model(self.model_name)
        embeddings = model.encode(texts, show_progress_bar=len(texts) > 50)
        return embeddings.tolist()

    def embed_query(self, text: str) -> list[float]:
        return self.embed_documents([text])[0]


def get_llm(
    model: Optional[str] = None,
    base_url: Optional[str] = None,
    verbose: Optional[bool] = None,
) -> ChatOpenAI:
    """Get a ChatOpenAI instance pointing at an OpenAI-compatible endpoint.

    Args:
        model: Model name served by the endpoint (defaults to config)
        base_url: API base URL (defaults to config)
        verbose: Enable LangChain verbose logging (defaults to config)

    Returns:
        Configured ChatOpenAI instance
    """
    llm_config = config["llm"]
    if verbose is None:
        verbose = config["verbose"]

    llm = ChatOpenAI(
        model=model or llm_config["model"],
        base_url=base_url or llm_config["base_url"],
        api_key="not-needed",  # local OpenAI-compatible servers ignore the key
        max_tokens=llm_config["max_tokens"],
        temperature=llm_config["temperature"],
        verbose=verbose,
    )

    if verbose:
        set_verbose(True)

    return llm


def _message_text(content: Any) -> str:
    """Flatten a chat message content (str or list of parts) to text."""
    if isinstance(content, str):
        return content
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


class LangChainLLMClient:
    """LLMClient over a LangChain chat model and optional Embeddings."""

    def __init__(
        self,
        chat_model: BaseChatModel,
        embeddings: Optional[Embeddings] = None,
        chat_factory: Optional[Callable[[str], BaseChatModel]] = None,
    ) -> None:
        self.chat_model = chat_model
        self.embeddings = embeddings
        self._chat_factory = chat_factory
        self._models: dict[str, BaseChatModel] = {}
        self._models_lock = threading.Lock()

    def _model_for(self, model_name: str) -> BaseChatModel:
        if not model_name or self._chat_factory is None:
            return self.chat_model
        with self._models_lock:
            if model_name not in self._models:
                self._models[model_name] = self._chat_factory(model_name)
            return self._models[model_name]

    def generate(
        self,
        model_name: str,
        prompt: str,
        system_prompt: str = "",
        tools: Optional[list[dict[str, Any]]] = None,
    ) -> str:
        messages = []
        if system_prompt:
            messages.append(SystemMessage(content=system_prompt))
        messages.append(HumanMessage(content=prompt))

        model = self._model_for(model_name)
        if tools:
            model = model.bind_tools(tools)

        response = model.invoke(messages)
        return _message_text(response.content)

    def embed(self, text: str) -> list[float]:
        if self.embeddings is None:
            raise EmbeddingsUnsupportedError("LLM client has no embeddings backend")
        return list(self.embeddings.embed_query(text))

    def supports_embeddings(self) -> bool:
        return self.embeddings is not None


def get_llm_client(with_embeddings: bool = True) -> LangChainLLMClient:
    """Build the default client from config.

    Args:
        with_embeddings: Attach the local sentence-transformers backend

    Returns:
        LangChainLLMClient ready for a ContextManager
    """
    embeddings = SentenceTransformerEmbeddings() if with_embeddings else None
    return LangChainLLMClient(
        chat_model=get_llm(),
        embeddings=embeddings,
        chat_factory=lambda name: get_llm(model=name),
    )
