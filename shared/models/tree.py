"""Selection tree node models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class SelectionState(str, Enum):
    NONE = "none"
    PARTIAL = "partial"
    ALL = "all"


class PageNode(BaseModel):
    """
    A node of the lazily loaded page tree. Parent and children are referenced by id.

    Attributes:
        id:              External page id.
        title:           Page title.
        has_children:    Whether the remote source reports children for this page.
        children_loaded: Whether child_ids reflects the remote children.
        child_ids:       Ordered ids of loaded children.
        parent_id:       Id of the parent node, None for roots.
    """

    id: str
    title: str
    has_children: bool = False
    children_loaded: bool = False
    child_ids: list[str] = []
    parent_id: str | None = None


class TreeNodeView(BaseModel):
    """Render ready projection of a node. Children are only included while expanded."""

    id: str
    title: str
    level: int
    has_children: bool
    children_loaded: bool
    is_expanded: bool
    is_selected: bool
    selection_state: SelectionState
    children: list[TreeNodeView] = []
