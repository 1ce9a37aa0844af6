from dataclasses import dataclass

from services.rag.DocumentChunker import DocumentChunker
from services.rag.PageSelectionTree import PageSelectionTree
from services.rag.RetrievalService import RetrievalService
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.vectorstore.VectorStoreInterface import VectorStoreInterface
from shared.clients.vectorstore.VectorStoreManager import VectorStoreManager
from shared.clients.wiki.WikiClientInterface import WikiClientInterface
from shared.clients.wiki.WikiClientManager import WikiClientManager
from shared.helper.HelperConfig import HelperConfig


@dataclass
class RAGContext:
    """
    The wired up knowledge base components of one process.

    Built once by the server lifespan or the CLI runner and passed by
    reference to whoever needs it. wiki_client and page_tree are None when
    no wiki source is configured.
    """

    helper_config: HelperConfig
    vector_store: VectorStoreInterface
    embed_manager: EmbedClientManager
    chunker: DocumentChunker
    retrieval_service: RetrievalService
    wiki_client: WikiClientInterface | None = None
    page_tree: PageSelectionTree | None = None

    async def close(self) -> None:
        await self.embed_manager.close()
        if self.wiki_client is not None:
            await self.wiki_client.close()
        await self.vector_store.close()
        self.helper_config.get_logger().info("Knowledge base components closed.")


async def build_context(helper_config: HelperConfig) -> RAGContext:
    """
    Instantiates, boots and wires all knowledge base components.

    Args:
        helper_config (HelperConfig): The configuration of the process.

    Returns:
        RAGContext: The ready to use components.
    """
    logging = helper_config.get_logger()

    vector_store = VectorStoreManager(helper_config=helper_config).get_client()
    await vector_store.boot()

    embed_manager = EmbedClientManager(helper_config=helper_config, vector_store=vector_store)
    chunker = DocumentChunker(helper_config=helper_config)

    wiki_client = WikiClientManager(helper_config=helper_config).get_client()
    page_tree = None
    if wiki_client is not None:
        await wiki_client.boot()
        page_tree = PageSelectionTree(helper_config=helper_config, wiki_client=wiki_client)

    retrieval_service = RetrievalService(
        helper_config=helper_config,
        vector_store=vector_store,
        embed_provider=embed_manager,
        chunk_source=chunker,
        wiki_client=wiki_client,
    )
    await retrieval_service.initialize()

    logging.info("Knowledge base ready (wiki source: %s).", wiki_client.get_engine_name() if wiki_client else "none")
    return RAGContext(
        helper_config=helper_config,
        vector_store=vector_store,
        embed_manager=embed_manager,
        chunker=chunker,
        retrieval_service=retrieval_service,
        wiki_client=wiki_client,
        page_tree=page_tree,
    )
