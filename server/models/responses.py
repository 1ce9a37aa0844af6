from pydantic import BaseModel

from shared.models.document import Document
from shared.models.search import SourceReference
from shared.models.tree import SelectionState, TreeNodeView


class QueryResponse(BaseModel):
    query: str
    context: str
    sources: list[SourceReference]


class DocumentListResponse(BaseModel):
    documents: list[Document]
    total: int


class EnabledResponse(BaseModel):
    enabled: bool


class EmbeddingBackendResponse(BaseModel):
    backend: str
    model: str
    dimension: int
    changed: bool


class TreeResponse(BaseModel):
    space_key: str | None
    space_name: str | None
    selected_count: int
    nodes: list[TreeNodeView]


class NodeSelectionResponse(BaseModel):
    node_id: str
    selection_state: SelectionState
    selected_count: int
