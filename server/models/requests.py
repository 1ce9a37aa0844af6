from typing import Any

from pydantic import BaseModel


class QueryRequest(BaseModel):
    query: str


class AugmentRequest(BaseModel):
    messages: list[dict[str, Any]]
    query: str | None = None
    return_sources: bool = False


class EnabledRequest(BaseModel):
    enabled: bool


class EmbeddingBackendRequest(BaseModel):
    backend: str


class TreeInitRequest(BaseModel):
    space_key: str
    space_name: str | None = None


class SelectionRequest(BaseModel):
    selected: bool
    propagate: bool = True


class SpaceSyncRequest(BaseModel):
    space_name: str | None = None
