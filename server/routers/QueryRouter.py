from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import get_context, verify_api_key
from server.models.requests import AugmentRequest, QueryRequest
from server.models.responses import QueryResponse
from shared.models.search import AugmentResult

router = APIRouter(tags=["query"], dependencies=[Depends(verify_api_key)])


@router.post("/query")
async def query_knowledge_base(request: Request, body: QueryRequest) -> QueryResponse:
    """Retrieve the context block and its source documents for a query.

    Args:
        request (Request): FastAPI request (provides app.state.context).
        body (QueryRequest): JSON body with the query string.

    Returns:
        QueryResponse: Formatted context plus one entry per source document.
    """
    details = await get_context(request).retrieval_service.search_with_details(body.query)
    return QueryResponse(query=body.query, context=details.context, sources=details.sources)


@router.post("/augment")
async def augment_messages(request: Request, body: AugmentRequest) -> AugmentResult:
    """Splice knowledge base context into a chat prompt.

    The messages come back unchanged if augmentation is disabled or nothing
    relevant is stored.
    """
    result = await get_context(request).retrieval_service.augment_prompt(body.messages, query=body.query, return_sources=True)
    if not body.return_sources:
        return AugmentResult(messages=result.messages)
    return result
