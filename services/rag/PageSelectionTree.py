"""Lazily loaded, selectable tree of the pages of one remote collection.

Nodes live in a flat dict keyed by page id and reference parent and children
by id. Children are fetched the first time a node is expanded. Selection is a
separate set of ids; the aggregate state of a subtree is computed on demand
and only ever considers loaded nodes.
"""

from typing import Callable

from shared.clients.wiki.WikiClientInterface import WikiClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.sync import ProgressEvent, WikiPage, WikiPageSummary
from shared.models.tree import PageNode, SelectionState, TreeNodeView


class PageSelectionTree:
    def __init__(self, helper_config: HelperConfig, wiki_client: WikiClientInterface):
        self.logging = helper_config.get_logger()
        self._wiki_client = wiki_client

        self._nodes: dict[str, PageNode] = {}
        self._root_ids: list[str] = []
        # dicts keep selection order stable for get_selected_page_ids()
        self._selected: dict[str, None] = {}
        self._expanded: set[str] = set()
        self._collection_key: str | None = None
        self._collection_name: str | None = None

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    def reset(self) -> None:
        self._nodes = {}
        self._root_ids = []
        self._selected = {}
        self._expanded = set()
        self._collection_key = None
        self._collection_name = None

    async def initialize_collection(self, collection_key: str, collection_name: str | None = None) -> list[WikiPageSummary]:
        """Reset the tree and load the top level pages of a collection.

        Args:
            collection_key (str): The key of the remote collection (space).
            collection_name (str | None): Display name, defaults to the key.

        Returns:
            list[WikiPageSummary]: The root pages.
        """
        self.reset()
        self._collection_key = collection_key
        self._collection_name = collection_name or collection_key

        roots = await self._wiki_client.do_fetch_root_pages(collection_key)
        for summary in roots:
            self._add_node(summary, parent_id=None)
            self._root_ids.append(summary.id)
        self.logging.info("Loaded %d root pages of collection %s.", len(roots), collection_key)
        return roots

    def _add_node(self, summary: WikiPageSummary, parent_id: str | None) -> None:
        existing = self._nodes.get(summary.id)
        if existing is not None:
            # keep loaded children of a node that is listed again
            existing.title = summary.title
            existing.has_children = summary.has_children
            existing.parent_id = parent_id
            return
        self._nodes[summary.id] = PageNode(
            id=summary.id,
            title=summary.title,
            has_children=summary.has_children,
            parent_id=parent_id,
        )

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_current_collection_key(self) -> str | None:
        return self._collection_key

    def get_current_collection_name(self) -> str | None:
        return self._collection_name

    def get_node(self, node_id: str) -> PageNode | None:
        return self._nodes.get(node_id)

    def get_root_ids(self) -> list[str]:
        return list(self._root_ids)

    def is_expanded(self, node_id: str) -> bool:
        return node_id in self._expanded

    def is_selected(self, node_id: str) -> bool:
        return node_id in self._selected

    def get_selected_page_ids(self) -> list[str]:
        return list(self._selected)

    def get_selected_count(self) -> int:
        return len(self._selected)

    ##########################################
    ############### EXPANSION ################
    ##########################################

    async def expand_node(self, node_id: str) -> list[str]:
        """Expand a node, loading its children on first expansion.

        Expanding an expanded node does nothing. Children are fetched once,
        and only if the source reports any. Unknown ids are ignored.

        Returns:
            list[str]: The child ids of the node.
        """
        node = self._nodes.get(node_id)
        if node is None:
            self.logging.debug("Ignoring expand of unknown node %s.", node_id)
            return []
        if node_id in self._expanded:
            return list(node.child_ids)

        if not node.children_loaded and node.has_children:
            children = await self._wiki_client.do_fetch_child_pages(node_id)
            for summary in children:
                self._add_node(summary, parent_id=node_id)
            node.child_ids = [c.id for c in children]
            node.children_loaded = True

        self._expanded.add(node_id)
        return list(node.child_ids)

    def collapse_node(self, node_id: str) -> None:
        """Hide the children of a node. Loaded children are kept."""
        self._expanded.discard(node_id)

    async def toggle_expand(self, node_id: str) -> bool:
        """
        Returns:
            bool: Whether the node is expanded afterwards.
        """
        if node_id in self._expanded:
            self.collapse_node(node_id)
            return False
        await self.expand_node(node_id)
        return node_id in self._expanded

    ##########################################
    ############### SELECTION ################
    ##########################################

    def set_selected(self, node_id: str, selected: bool, propagate: bool = True) -> None:
        """Select or deselect a node and, by default, all of its loaded descendants.

        Unloaded descendants are not touched. Unknown ids are ignored.
        """
        if node_id not in self._nodes:
            return
        targets = self._loaded_subtree(node_id) if propagate else [node_id]
        for target in targets:
            if selected:
                self._selected[target] = None
            else:
                self._selected.pop(target, None)

    def select_all(self) -> None:
        for node_id in self._nodes:
            self._selected[node_id] = None

    def deselect_all(self) -> None:
        self._selected = {}

    def get_selection_state(self, node_id: str) -> SelectionState:
        """Aggregate selection of a node.

        A node without loaded children reports its own flag. Otherwise every
        loaded descendant is counted: all selected is ALL, none selected is
        NONE, anything in between is PARTIAL.
        """
        node = self._nodes.get(node_id)
        if node is None:
            return SelectionState.NONE
        if not node.children_loaded or not node.child_ids:
            return SelectionState.ALL if node_id in self._selected else SelectionState.NONE

        descendants = self._loaded_subtree(node_id)[1:]
        selected = sum(1 for d in descendants if d in self._selected)
        if selected == 0:
            return SelectionState.NONE
        if selected == len(descendants):
            return SelectionState.ALL
        return SelectionState.PARTIAL

    def _loaded_subtree(self, node_id: str) -> list[str]:
        """The node id followed by all loaded descendants, depth first."""
        result: list[str] = []
        stack = [node_id]
        while stack:
            current = stack.pop()
            result.append(current)
            node = self._nodes.get(current)
            if node is not None and node.children_loaded:
                stack.extend(reversed(node.child_ids))
        return result

    ##########################################
    ################# VIEWS ##################
    ##########################################

    def get_tree(self) -> list[TreeNodeView]:
        """Nested view of the roots. Children appear only under expanded nodes."""
        return [self._build_view(root_id, 0) for root_id in self._root_ids if root_id in self._nodes]

    def _build_view(self, node_id: str, level: int) -> TreeNodeView:
        node = self._nodes[node_id]
        expanded = node_id in self._expanded
        children = []
        if expanded and node.children_loaded:
            children = [self._build_view(child_id, level + 1) for child_id in node.child_ids if child_id in self._nodes]
        return TreeNodeView(
            id=node.id,
            title=node.title,
            level=level,
            has_children=node.has_children,
            children_loaded=node.children_loaded,
            is_expanded=expanded,
            is_selected=node_id in self._selected,
            selection_state=self.get_selection_state(node_id),
            children=children,
        )

    ##########################################
    ################ CONTENT #################
    ##########################################

    async def get_selected_pages_with_content(self, on_progress: Callable[[ProgressEvent], None] | None = None) -> list[WikiPage]:
        """Fetch the content of every selected page. Pages that fail to load are skipped."""
        page_ids = self.get_selected_page_ids()
        if not page_ids:
            return []
        return await self._wiki_client.do_fetch_pages_content(page_ids, on_progress=on_progress)
