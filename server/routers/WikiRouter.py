from typing import AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from server.dependencies.auth import get_context, verify_api_key
from server.models.requests import SelectionRequest, SpaceSyncRequest, TreeInitRequest
from server.models.responses import NodeSelectionResponse, TreeResponse
from services.rag.PageSelectionTree import PageSelectionTree
from shared.clients.wiki.WikiClientInterface import WikiClientInterface
from shared.exceptions import BackendUnavailable, InvalidInput, NotFound, RAGError
from shared.models.sync import ProgressEvent, SyncReport, WikiSpace

router = APIRouter(prefix="/wiki", tags=["wiki"], dependencies=[Depends(verify_api_key)])


def _get_wiki_client(request: Request) -> WikiClientInterface:
    client = get_context(request).wiki_client
    if client is None:
        raise BackendUnavailable("No wiki source is configured.")
    return client


def _get_tree(request: Request) -> PageSelectionTree:
    tree = get_context(request).page_tree
    if tree is None:
        raise BackendUnavailable("No wiki source is configured.")
    return tree


def _tree_response(tree: PageSelectionTree) -> TreeResponse:
    return TreeResponse(
        space_key=tree.get_current_collection_key(),
        space_name=tree.get_current_collection_name(),
        selected_count=tree.get_selected_count(),
        nodes=tree.get_tree(),
    )


def _require_node(tree: PageSelectionTree, node_id: str) -> None:
    if tree.get_node(node_id) is None:
        raise NotFound(f"Page '{node_id}' is not part of the loaded tree.")


@router.get("/spaces")
async def list_spaces(request: Request) -> list[WikiSpace]:
    return await _get_wiki_client(request).do_fetch_spaces()


@router.post("/tree")
async def load_tree(request: Request, body: TreeInitRequest) -> TreeResponse:
    """Reset the page tree and load the root pages of a space."""
    tree = _get_tree(request)
    await tree.initialize_collection(body.space_key, body.space_name)
    return _tree_response(tree)


@router.get("/tree")
async def get_tree(request: Request) -> TreeResponse:
    return _tree_response(_get_tree(request))


@router.post("/tree/nodes/{node_id}/expand")
async def expand_node(request: Request, node_id: str) -> TreeResponse:
    tree = _get_tree(request)
    _require_node(tree, node_id)
    await tree.expand_node(node_id)
    return _tree_response(tree)


@router.post("/tree/nodes/{node_id}/collapse")
async def collapse_node(request: Request, node_id: str) -> TreeResponse:
    tree = _get_tree(request)
    _require_node(tree, node_id)
    tree.collapse_node(node_id)
    return _tree_response(tree)


@router.put("/tree/nodes/{node_id}/selection")
async def select_node(request: Request, node_id: str, body: SelectionRequest) -> NodeSelectionResponse:
    tree = _get_tree(request)
    _require_node(tree, node_id)
    tree.set_selected(node_id, body.selected, propagate=body.propagate)
    return NodeSelectionResponse(
        node_id=node_id,
        selection_state=tree.get_selection_state(node_id),
        selected_count=tree.get_selected_count(),
    )


@router.post("/sync")
async def sync_selected(request: Request) -> SyncReport:
    """Sync the selected pages of the tree into the knowledge base."""
    return await get_context(request).retrieval_service.sync_selected_pages(_get_tree(request))


@router.post("/sync/stream")
async def sync_selected_stream(request: Request) -> StreamingResponse:
    """Like POST /wiki/sync, answered as newline delimited JSON progress events.

    The last line is the "complete" event carrying the report. A failure after
    the stream started is reported as a final "error" event.
    """
    context = get_context(request)
    tree = _get_tree(request)
    collection_key = tree.get_current_collection_key()
    if collection_key is None:
        raise InvalidInput("No collection loaded in the page tree.")
    if tree.get_selected_count() == 0:
        raise InvalidInput("No pages selected.")
    pages = await tree.get_selected_pages_with_content()

    async def _events() -> AsyncIterator[str]:
        try:
            async for event in context.retrieval_service.stream_sync_collection(collection_key, pages, tree.get_current_collection_name()):
                yield event.model_dump_json() + "\n"
        except RAGError as e:
            context.helper_config.get_logger().error("Streaming sync of %s failed: %s", collection_key, e)
            yield ProgressEvent(stage="error", message=str(e)).model_dump_json() + "\n"

    return StreamingResponse(_events(), media_type="application/x-ndjson")


@router.post("/spaces/{space_key}/sync")
async def sync_space(request: Request, space_key: str, body: SpaceSyncRequest | None = None) -> SyncReport:
    """Sync every page of a space into the knowledge base."""
    space_name = body.space_name if body else None
    return await get_context(request).retrieval_service.sync_space(space_key, space_name)
