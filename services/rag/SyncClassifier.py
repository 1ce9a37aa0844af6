"""Classification of candidate pages against the locally stored copies."""

import re
from dataclasses import dataclass
from datetime import datetime, timezone

from shared.models.document import Document
from shared.models.sync import MissingTimestampPolicy, PageAction, PlannedPage, SyncPlan, WikiPage

_PAGE_ID_IN_URL = re.compile(r"pageId=(\d+)")


@dataclass
class StoredPage:
    """The local copy of a remote page."""
    doc_id: str
    last_modified: str | None


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp. Naive values are taken as UTC.

    Returns:
        datetime | None: The parsed instant, or None if absent or unparseable.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def external_page_id_of(document: Document) -> str | None:
    """The remote page id of a stored document, falling back to its source URL."""
    if document.external_page_id:
        return document.external_page_id
    if document.source_url:
        match = _PAGE_ID_IN_URL.search(document.source_url)
        if match:
            return match.group(1)
    return None


def build_stored_page_map(documents: list[Document]) -> dict[str, StoredPage]:
    """Map remote page id to its local copy.

    If several documents claim the same page id the first one wins; callers
    pass documents newest first.
    """
    stored: dict[str, StoredPage] = {}
    for document in documents:
        page_id = external_page_id_of(document)
        if page_id and page_id not in stored:
            stored[page_id] = StoredPage(doc_id=document.id, last_modified=document.last_modified)
    return stored


def is_newer(candidate: str | None, stored: str | None, policy: MissingTimestampPolicy) -> bool:
    """Whether a candidate timestamp is strictly newer than the stored one.

    If either side is missing or unparseable the policy decides.
    """
    candidate_ts = parse_timestamp(candidate)
    stored_ts = parse_timestamp(stored)
    if candidate_ts is None or stored_ts is None:
        return policy == MissingTimestampPolicy.UPDATE
    return candidate_ts > stored_ts


def classify_pages(
    pages: list[WikiPage],
    stored: dict[str, StoredPage],
    policy: MissingTimestampPolicy = MissingTimestampPolicy.SKIP,
) -> SyncPlan:
    """Decide per page whether it is new, updated, unchanged or empty.

    Args:
        pages: Candidate pages with content.
        stored: Local copies by remote page id.
        policy: Handling of missing timestamps for already stored pages.

    Returns:
        SyncPlan: One planned entry per candidate, in candidate order.
    """
    planned: list[PlannedPage] = []
    for page in pages:
        if not page.content or not page.content.strip():
            planned.append(PlannedPage(page=page, action=PageAction.EMPTY))
            continue
        existing = stored.get(page.id)
        if existing is None:
            planned.append(PlannedPage(page=page, action=PageAction.NEW))
        elif is_newer(page.last_modified, existing.last_modified, policy):
            planned.append(PlannedPage(page=page, action=PageAction.UPDATE, existing_doc_id=existing.doc_id))
        else:
            planned.append(PlannedPage(page=page, action=PageAction.SKIP, existing_doc_id=existing.doc_id))
    return SyncPlan(pages=planned)
