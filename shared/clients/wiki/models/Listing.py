"""Generic listing responses of a wiki backend, one page of results each."""

from pydantic import BaseModel

from shared.models.sync import WikiPage, WikiPageSummary, WikiSpace


class SpacesListResponse(BaseModel):
    engine: str
    spaces: list[WikiSpace] = []
    has_next: bool = False


class PagesListResponse(BaseModel):
    engine: str
    pages: list[WikiPageSummary] = []
    has_next: bool = False


class PageContentsListResponse(BaseModel):
    engine: str
    pages: list[WikiPage] = []
    has_next: bool = False
    overall_count: int | None = None
