"""Dependency wiring for the ContextChat application."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Literal

from application.services.sync_guard import DEFAULT_SYNC_TTL_SECONDS, CollectionSyncGuard
from application.use_cases.chat import ChatOrchestrator, ChatSettings
from application.use_cases.ingest_documents import DEFAULT_MAX_CONCURRENCY, IngestionPipeline
from application.use_cases.search import DEFAULT_SEARCH_LIMIT, HybridRetriever
from domain.interfaces import (
    ChunkIndex,
    ChunkSplitter,
    CompletionClient,
    ConversationRepository,
    Embedder,
    TextExtractor,
    Tokenizer,
)
from infrastructure.completion.openai_completion_client import OpenAICompletionClient, OpenAICompletionConfig
from infrastructure.embedding.hash_embedder import HashEmbedder
from infrastructure.embedding.openai_embedder import OpenAIEmbedder, OpenAIEmbedderConfig
from infrastructure.repositories.sqlite_conversation_repository import SqliteConversationRepository
from infrastructure.splitting.recursive_token_splitter import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_OVERLAP_TOKENS,
    RecursiveTokenSplitter,
)
from infrastructure.storage.in_memory_chunk_index import InMemoryChunkIndex
from infrastructure.storage.sqlite_chunk_index import SqliteChunkIndex
from infrastructure.text_extraction.plain_text_extractor import PlainTextExtractor
from infrastructure.tokenization.tiktoken_tokenizer import DEFAULT_ENCODING, TiktokenTokenizer

EmbedderName = Literal["openai", "sentence_transformers", "hash"]
IndexName = Literal["memory", "sqlite"]

_ENV_PREFIX = "CONTEXTCHAT_"


@dataclass(slots=True)
class Container:
    """Simple container bundling concrete infrastructure implementations."""

    tokenizer: Tokenizer
    extractor: TextExtractor
    splitter: ChunkSplitter
    embedder: Embedder
    index: ChunkIndex
    conversations: ConversationRepository
    completion_client: CompletionClient
    retriever: HybridRetriever
    pipeline: IngestionPipeline
    orchestrator: ChatOrchestrator


@dataclass(slots=True)
class ContainerConfig:
    """Configuration for selecting providers and tuning the pipeline."""

    embedder: EmbedderName = "openai"
    index: IndexName = "sqlite"
    data_root: str = "data"
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    embedding_model: str = "text-embedding-3-small"
    chat_model: str = "gpt-4o-mini"
    sentence_transformers_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    tokenizer_encoding: str = DEFAULT_ENCODING
    max_tokens: int = DEFAULT_MAX_TOKENS
    overlap_tokens: int = DEFAULT_OVERLAP_TOKENS
    ingest_concurrency: int = DEFAULT_MAX_CONCURRENCY
    sync_ttl_seconds: float = DEFAULT_SYNC_TTL_SECONDS
    retrieval_limit: int = DEFAULT_SEARCH_LIMIT
    history_limit: int = 20

    @property
    def db_path(self) -> Path:
        return Path(self.data_root) / "contextchat.db"

    @classmethod
    def from_env(cls) -> ContainerConfig:
        """Read ``CONTEXTCHAT_*`` variables (and ``OPENAI_API_KEY``) over the defaults."""
        defaults = cls()

        def env(name: str, fallback: str) -> str:
            value = os.getenv(_ENV_PREFIX + name)
            return value if value else fallback

        return cls(
            embedder=env("EMBEDDER", defaults.embedder),  # type: ignore[arg-type]
            index=env("INDEX", defaults.index),  # type: ignore[arg-type]
            data_root=env("DATA_ROOT", defaults.data_root),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_base_url=os.getenv(_ENV_PREFIX + "OPENAI_BASE_URL") or None,
            embedding_model=env("EMBEDDING_MODEL", defaults.embedding_model),
            chat_model=env("CHAT_MODEL", defaults.chat_model),
            sentence_transformers_model=env("ST_MODEL", defaults.sentence_transformers_model),
            tokenizer_encoding=env("TOKENIZER_ENCODING", defaults.tokenizer_encoding),
            max_tokens=int(env("MAX_TOKENS", str(defaults.max_tokens))),
            overlap_tokens=int(env("OVERLAP_TOKENS", str(defaults.overlap_tokens))),
            ingest_concurrency=int(env("INGEST_CONCURRENCY", str(defaults.ingest_concurrency))),
            sync_ttl_seconds=float(env("SYNC_TTL_SECONDS", str(defaults.sync_ttl_seconds))),
            retrieval_limit=int(env("RETRIEVAL_LIMIT", str(defaults.retrieval_limit))),
            history_limit=int(env("HISTORY_LIMIT", str(defaults.history_limit))),
        )


def _openai_embedder(cfg: ContainerConfig) -> Embedder:
    return OpenAIEmbedder(
        OpenAIEmbedderConfig(
            model=cfg.embedding_model,
            api_key=cfg.openai_api_key,
            base_url=cfg.openai_base_url or "https://api.openai.com/v1",
        )
    )


def _sentence_transformers_embedder(cfg: ContainerConfig) -> Embedder:
    # Optional extra; only imported when selected.
    from infrastructure.embedding.sentence_transformers_embedder import (  # noqa: PLC0415
        SentenceTransformersConfig,
        SentenceTransformersEmbedder,
    )

    return SentenceTransformersEmbedder(SentenceTransformersConfig(model_name=cfg.sentence_transformers_model))


def _sqlite_index(cfg: ContainerConfig) -> ChunkIndex:
    cfg.db_path.parent.mkdir(parents=True, exist_ok=True)
    return SqliteChunkIndex(db_path=cfg.db_path)


_EMBEDDER_FACTORIES: dict[EmbedderName, Callable[[ContainerConfig], Embedder]] = {
    "openai": _openai_embedder,
    "sentence_transformers": _sentence_transformers_embedder,
    "hash": lambda _cfg: HashEmbedder(),
}

_INDEX_FACTORIES: dict[IndexName, Callable[[ContainerConfig], ChunkIndex]] = {
    "memory": lambda _cfg: InMemoryChunkIndex(),
    "sqlite": _sqlite_index,
}


def build_default_container(
    config: ContainerConfig | None = None,
    *,
    tokenizer: Tokenizer | None = None,
    embedder: Embedder | None = None,
    completion_client: CompletionClient | None = None,
) -> Container:
    """Instantiate the default infrastructure stack.

    Explicit ``tokenizer``/``embedder``/``completion_client`` arguments win
    over the configured providers.
    """

    cfg = config or ContainerConfig()
    try:
        embedder = embedder or _EMBEDDER_FACTORIES[cfg.embedder](cfg)
    except KeyError as exc:
        raise ValueError(f"Unknown embedder '{cfg.embedder}'") from exc
    try:
        index = _INDEX_FACTORIES[cfg.index](cfg)
    except KeyError as exc:
        raise ValueError(f"Unknown index '{cfg.index}'") from exc

    Path(cfg.data_root).mkdir(parents=True, exist_ok=True)
    tokenizer = tokenizer or TiktokenTokenizer(cfg.tokenizer_encoding)
    extractor = PlainTextExtractor()
    splitter = RecursiveTokenSplitter(tokenizer, cfg.max_tokens, cfg.overlap_tokens)
    conversations = SqliteConversationRepository(db_path=cfg.db_path)
    completion_client = completion_client or OpenAICompletionClient(
        OpenAICompletionConfig(
            model=cfg.chat_model,
            api_key=cfg.openai_api_key,
            base_url=cfg.openai_base_url,
        )
    )
    retriever = HybridRetriever(embedder, index)
    pipeline = IngestionPipeline(
        extractor=extractor,
        splitter=splitter,
        embedder=embedder,
        index=index,
        sync_guard=CollectionSyncGuard(ttl_seconds=cfg.sync_ttl_seconds),
        max_concurrency=cfg.ingest_concurrency,
    )
    orchestrator = ChatOrchestrator(
        conversations=conversations,
        retriever=retriever,
        completion_client=completion_client,
        settings=ChatSettings(history_limit=cfg.history_limit, retrieval_limit=cfg.retrieval_limit),
    )

    return Container(
        tokenizer=tokenizer,
        extractor=extractor,
        splitter=splitter,
        embedder=embedder,
        index=index,
        conversations=conversations,
        completion_client=completion_client,
        retriever=retriever,
        pipeline=pipeline,
        orchestrator=orchestrator,
    )


__all__ = ["Container", "ContainerConfig", "build_default_container"]
