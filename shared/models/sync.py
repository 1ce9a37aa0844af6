"""Remote page source and incremental sync models."""

from enum import Enum

from pydantic import BaseModel


class WikiSpace(BaseModel):
    key: str
    name: str


class WikiPageSummary(BaseModel):
    """A page listing entry, without content."""

    id: str
    title: str
    has_children: bool = False


class WikiPage(BaseModel):
    """
    A remote page with its extracted text, as handed to a sync run.

    Attributes:
        id:            Stable external page id.
        title:         Page title.
        content:       Plain text extracted from the page body.
        url:           Browser link to the page.
        last_modified: ISO-8601 modification timestamp of the page, if known.
    """

    id: str
    title: str
    content: str = ""
    url: str | None = None
    last_modified: str | None = None


class PageAction(str, Enum):
    NEW = "new"
    UPDATE = "update"
    SKIP = "skip"
    EMPTY = "empty"


class MissingTimestampPolicy(str, Enum):
    """What to do with an already ingested page when a timestamp is missing or unparseable."""
    SKIP = "skip"
    UPDATE = "update"


class PlannedPage(BaseModel):
    page: WikiPage
    action: PageAction
    existing_doc_id: str | None = None


class SyncPlan(BaseModel):
    """Classification of every candidate page of one sync run."""

    pages: list[PlannedPage] = []

    def with_action(self, action: PageAction) -> list[PlannedPage]:
        return [p for p in self.pages if p.action == action]

    @property
    def to_process(self) -> list[PlannedPage]:
        return [p for p in self.pages if p.action in (PageAction.NEW, PageAction.UPDATE)]

    @property
    def new_count(self) -> int:
        return len(self.with_action(PageAction.NEW))

    @property
    def update_count(self) -> int:
        return len(self.with_action(PageAction.UPDATE))

    @property
    def skip_count(self) -> int:
        return len(self.with_action(PageAction.SKIP))

    @property
    def empty_count(self) -> int:
        return len(self.with_action(PageAction.EMPTY))


class FailedPage(BaseModel):
    page_id: str
    title: str
    error: str


class SyncReport(BaseModel):
    """
    Outcome of a sync run.

    new_count and update_count only include pages that were written
    successfully; failures are listed in failed_pages instead.
    """

    collection_key: str
    page_count: int = 0
    chunk_count: int = 0
    new_count: int = 0
    update_count: int = 0
    skip_count: int = 0
    empty_count: int = 0
    failed_pages: list[FailedPage] = []


class ProgressEvent(BaseModel):
    """
    A single progress record of a long running operation.

    Attributes:
        stage:   Machine readable stage, e.g. "analyzed", "embedding", "complete".
        current: Items done so far within the stage.
        total:   Items in the stage.
        message: Human readable detail, e.g. the page title being processed.
        plan:    Tally of the classification, only on the "analyzed" stage.
        report:  Final report, only on the "complete" stage of a sync run.
    """

    stage: str
    current: int = 0
    total: int = 0
    message: str | None = None
    plan: dict[str, int] | None = None
    report: SyncReport | None = None


class ConnectionTestResult(BaseModel):
    success: bool
    message: str
