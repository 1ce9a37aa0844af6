import logging
import os
import re

import pytest

from services.rag.DocumentChunker import DocumentChunker
from services.rag.RetrievalService import RetrievalService
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.vectorstore.memory.VectorStoreMemory import VectorStoreMemory
from shared.exceptions import UpstreamError
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import ColorLogger
from shared.models.config import EnvConfig

# every env key read by the package, cleared so the host environment cannot leak into tests
_ENV_PREFIXES = ("EMBED_", "VECTORSTORE_", "WIKI_", "RAG_", "APP_API_KEY")

KEYWORDS = ["apple", "banana", "cherry", "river", "mountain", "ocean", "engine", "wheel"]


class FakeEmbedClient(EmbedClientInterface):
    """Deterministic embedder: one dimension per keyword, counting its occurrences."""

    def __init__(self, helper_config: HelperConfig, fail_on: str | None = None):
        super().__init__(helper_config=helper_config)
        self.fail_on = fail_on
        self.calls: list[list[str]] = []

    def _get_engine_name(self) -> str:
        return "Fake"

    def _get_required_config(self) -> list[EnvConfig]:
        return []

    def get_model_name(self) -> str:
        return "keyword-counter"

    def get_dimension(self) -> int:
        return len(KEYWORDS)

    async def _embed_texts(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail_on and any(self.fail_on in t for t in texts):
            raise UpstreamError("embedding backend exploded", status_code=500)
        vectors = []
        for text in texts:
            words = re.findall(r"[a-z]+", text.lower())
            vectors.append([float(words.count(k)) for k in KEYWORDS])
        return vectors


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for key in list(os.environ):
        if key.startswith(_ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("ROOT_DIR", str(tmp_path))


@pytest.fixture
def helper_config() -> HelperConfig:
    return HelperConfig(logger=ColorLogger(logging.getLogger("test")))


@pytest.fixture
def memory_store(helper_config) -> VectorStoreMemory:
    return VectorStoreMemory(helper_config=helper_config)


@pytest.fixture
def fake_embed(helper_config) -> FakeEmbedClient:
    return FakeEmbedClient(helper_config=helper_config)


@pytest.fixture
def embed_manager(helper_config, memory_store, fake_embed) -> EmbedClientManager:
    manager = EmbedClientManager(helper_config=helper_config, vector_store=memory_store)
    # pre-set client, boot() keeps it
    manager.client = fake_embed
    return manager


@pytest.fixture
def chunker(helper_config) -> DocumentChunker:
    return DocumentChunker(helper_config=helper_config)


@pytest.fixture
def service(helper_config, memory_store, embed_manager, chunker) -> RetrievalService:
    return RetrievalService(
        helper_config=helper_config,
        vector_store=memory_store,
        embed_provider=embed_manager,
        chunk_source=chunker,
    )
