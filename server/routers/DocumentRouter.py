from fastapi import APIRouter, Depends, Request, UploadFile, status

from server.dependencies.auth import get_context, verify_api_key
from server.models.requests import EmbeddingBackendRequest, EnabledRequest
from server.models.responses import DocumentListResponse, EmbeddingBackendResponse, EnabledResponse
from shared.models.document import AddDocumentResult, UploadedFile
from shared.models.search import KnowledgeBaseStats

router = APIRouter(tags=["documents"], dependencies=[Depends(verify_api_key)])


@router.get("/documents")
async def list_documents(request: Request) -> DocumentListResponse:
    documents = await get_context(request).retrieval_service.get_documents()
    return DocumentListResponse(documents=documents, total=len(documents))


@router.post("/documents", status_code=status.HTTP_201_CREATED)
async def upload_document(request: Request, file: UploadFile) -> AddDocumentResult:
    """Chunk, embed and store an uploaded file.

    Args:
        request (Request): FastAPI request (provides app.state.context).
        file (UploadFile): Multipart file upload.

    Returns:
        AddDocumentResult: Id, name and chunk count of the stored document.
    """
    content = await file.read()
    uploaded = UploadedFile(
        name=file.filename or "upload",
        mime_type=file.content_type or "application/octet-stream",
        content=content,
    )
    return await get_context(request).retrieval_service.add_document(uploaded)


@router.delete("/documents", status_code=status.HTTP_204_NO_CONTENT)
async def clear_documents(request: Request) -> None:
    await get_context(request).retrieval_service.clear_all()


@router.delete("/documents/{doc_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(request: Request, doc_id: str) -> None:
    await get_context(request).retrieval_service.remove_document(doc_id)


@router.get("/stats")
async def get_stats(request: Request) -> KnowledgeBaseStats:
    return await get_context(request).retrieval_service.get_stats()


@router.put("/settings/enabled")
async def set_enabled(request: Request, body: EnabledRequest) -> EnabledResponse:
    service = get_context(request).retrieval_service
    await service.set_enabled(body.enabled)
    return EnabledResponse(enabled=service.is_enabled())


@router.put("/settings/embedding")
async def set_embedding_backend(request: Request, body: EmbeddingBackendRequest) -> EmbeddingBackendResponse:
    """Switch the embedding backend.

    A backend with a different vector dimension clears the knowledge base.
    """
    manager = get_context(request).embed_manager
    changed = await manager.switch_backend(body.backend)
    return EmbeddingBackendResponse(
        backend=manager.get_backend_name(),
        model=manager.get_model_name(),
        dimension=manager.get_dimension(),
        changed=changed,
    )
