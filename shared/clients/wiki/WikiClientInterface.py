from abc import abstractmethod
from typing import Callable

from shared.clients.HttpClientInterface import HttpClientInterface
from shared.clients.wiki.models.Listing import PageContentsListResponse, PagesListResponse, SpacesListResponse
from shared.exceptions import UpstreamError
from shared.helper.HelperConfig import HelperConfig
from shared.models.sync import ConnectionTestResult, ProgressEvent, WikiPage, WikiPageSummary, WikiSpace

ProgressCallback = Callable[[ProgressEvent], None]

MAX_SPACES = 1000
MAX_ROOT_PAGES = 1000
MAX_CHILD_PAGES = 500
LISTING_PAGE_SIZE = 100


class WikiClientInterface(HttpClientInterface):
    """Remote hierarchical page source (spaces containing trees of pages).

    Pagination is handled here; engines provide endpoints and response parsers.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "wiki"

    @abstractmethod
    def get_max_pages_per_space(self) -> int:
        """
        Returns the maximum number of pages fetched by do_fetch_space_pages().
        """
        pass

    @abstractmethod
    def get_page_fetch_limit(self) -> int:
        """
        Returns the page size used when fetching pages together with their content.
        """
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_spaces(self, start: int = 0, limit: int = LISTING_PAGE_SIZE) -> str:
        """
        Returns the endpoint path for space listing requests.
        """
        pass

    @abstractmethod
    def _get_endpoint_root_pages(self, space_key: str, start: int = 0, limit: int = LISTING_PAGE_SIZE) -> str:
        """
        Returns the endpoint path listing the top level pages of a space.
        """
        pass

    @abstractmethod
    def _get_endpoint_child_pages(self, page_id: str, start: int = 0, limit: int = LISTING_PAGE_SIZE) -> str:
        """
        Returns the endpoint path listing the direct children of a page.
        """
        pass

    @abstractmethod
    def _get_endpoint_page_content(self, page_id: str) -> str:
        """
        Returns the endpoint path for a single page including its body.
        """
        pass

    @abstractmethod
    def _get_endpoint_space_pages(self, space_key: str, start: int = 0, limit: int = LISTING_PAGE_SIZE) -> str:
        """
        Returns the endpoint path listing all pages of a space including their bodies.
        """
        pass

    @abstractmethod
    def _get_endpoint_space_page_count(self, space_key: str) -> str:
        """
        Returns the endpoint path used to estimate the number of pages in a space.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    ############# LISTING REQUESTS ##############
    async def do_fetch_spaces(self) -> list[WikiSpace]:
        """
        Fetches all spaces visible to the configured account.

        Returns:
            list[WikiSpace]: The spaces, at most MAX_SPACES.

        Raises:
            UpstreamError: If the backend cannot be reached or rejects the request.
        """
        spaces: list[WikiSpace] = []
        start = 0
        while True:
            resp = await self.do_request(method="GET", endpoint=self._get_endpoint_spaces(start=start, limit=LISTING_PAGE_SIZE), raise_on_error=True)
            listing = self._parse_spaces(resp.json())
            spaces.extend(listing.spaces)
            start += LISTING_PAGE_SIZE
            if not listing.spaces or not listing.has_next or len(spaces) >= MAX_SPACES:
                break
        self.logging.info("Fetched %d spaces from %s", len(spaces), self._get_engine_name())
        return spaces[:MAX_SPACES]

    async def do_fetch_root_pages(self, space_key: str) -> list[WikiPageSummary]:
        """
        Fetches the top level pages of a space, without content.

        Args:
            space_key (str): The key of the space.

        Returns:
            list[WikiPageSummary]: The root pages, at most MAX_ROOT_PAGES.
        """
        return await self._fetch_page_listing(
            lambda start, limit: self._get_endpoint_root_pages(space_key, start=start, limit=limit),
            MAX_ROOT_PAGES,
            f"root pages of space {space_key}",
        )

    async def do_fetch_child_pages(self, page_id: str) -> list[WikiPageSummary]:
        """
        Fetches the direct children of a page, without content.

        Args:
            page_id (str): The id of the parent page.

        Returns:
            list[WikiPageSummary]: The child pages, at most MAX_CHILD_PAGES.
        """
        return await self._fetch_page_listing(
            lambda start, limit: self._get_endpoint_child_pages(page_id, start=start, limit=limit),
            MAX_CHILD_PAGES,
            f"children of page {page_id}",
        )

    async def _fetch_page_listing(self, endpoint_builder: Callable[[int, int], str], cap: int, label: str) -> list[WikiPageSummary]:
        pages: list[WikiPageSummary] = []
        start = 0
        while True:
            resp = await self.do_request(method="GET", endpoint=endpoint_builder(start, LISTING_PAGE_SIZE), raise_on_error=True)
            listing = self._parse_pages(resp.json())
            pages.extend(listing.pages)
            start += LISTING_PAGE_SIZE
            if not listing.pages or not listing.has_next or len(pages) >= cap:
                break
        self.logging.debug("Fetched %d %s from %s", len(pages), label, self._get_engine_name())
        return pages[:cap]

    async def do_fetch_space_pages(self, space_key: str, on_progress: ProgressCallback | None = None) -> list[WikiPage]:
        """
        Fetches all pages of a space with their content.

        Args:
            space_key (str): The key of the space.
            on_progress (ProgressCallback | None): Called per fetched page with stage "fetching".

        Returns:
            list[WikiPage]: The pages, at most get_max_pages_per_space().
        """
        max_pages = self.get_max_pages_per_space()
        limit = self.get_page_fetch_limit()

        # the total only drives progress reporting
        total_estimate = 0
        count_resp = await self.do_request(method="GET", endpoint=self._get_endpoint_space_page_count(space_key))
        if count_resp.status_code < 300:
            try:
                total_estimate = min(self._parse_total_size(count_resp.json()), max_pages)
            except ValueError:
                self.logging.warning("Could not read page count of space %s, progress totals are estimated.", space_key)

        pages: list[WikiPage] = []
        start = 0
        while len(pages) < max_pages:
            resp = await self.do_request(method="GET", endpoint=self._get_endpoint_space_pages(space_key, start=start, limit=limit), raise_on_error=True)
            listing = self._parse_page_contents(resp.json())
            for page in listing.pages:
                if len(pages) >= max_pages:
                    break
                pages.append(page)
                if on_progress:
                    on_progress(ProgressEvent(stage="fetching", current=len(pages), total=total_estimate or len(pages), message=page.title))
            start += limit
            if not listing.pages or not listing.has_next:
                break
        self.logging.info("Fetched %d pages of space %s from %s", len(pages), space_key, self._get_engine_name())
        return pages

    ############# GET REQUESTS ##############
    async def do_fetch_page_content(self, page_id: str) -> WikiPage:
        """
        Fetches a single page with its content.

        Args:
            page_id (str): The id of the page.

        Returns:
            WikiPage: The page with extracted plain text.

        Raises:
            UpstreamError: If the page cannot be fetched.
        """
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_page_content(page_id), raise_on_error=True)
        return self._parse_page_content(resp.json())

    async def do_fetch_pages_content(self, page_ids: list[str], on_progress: ProgressCallback | None = None) -> list[WikiPage]:
        """
        Fetches several pages with their content. Pages that fail are skipped.

        Args:
            page_ids (list[str]): The ids of the pages.
            on_progress (ProgressCallback | None): Called per page with stage "fetching".

        Returns:
            list[WikiPage]: The successfully fetched pages, in input order.
        """
        pages: list[WikiPage] = []
        total = len(page_ids)
        for i, page_id in enumerate(page_ids):
            try:
                page = await self.do_fetch_page_content(page_id)
            except UpstreamError as e:
                self.logging.warning("Skipping page %s, fetch failed: %s", page_id, e)
                continue
            pages.append(page)
            if on_progress:
                on_progress(ProgressEvent(stage="fetching", current=i + 1, total=total, message=page.title))
        return pages

    async def do_test_connection(self) -> ConnectionTestResult:
        """
        Checks credentials and reachability with a minimal space listing.

        Returns:
            ConnectionTestResult: Outcome with a human readable message.
        """
        try:
            resp = await self.do_request(method="GET", endpoint=self._get_endpoint_spaces(start=0, limit=1))
        except UpstreamError as e:
            return ConnectionTestResult(success=False, message=f"Connection error: {e}")
        if resp.status_code == 401:
            return ConnectionTestResult(success=False, message="Authentication failed. Check the configured credentials.")
        if resp.status_code == 403:
            return ConnectionTestResult(success=False, message="Access denied for the configured account.")
        if resp.status_code >= 300:
            return ConnectionTestResult(success=False, message=f"Error: HTTP {resp.status_code}")
        size = self._parse_total_size(resp.json())
        return ConnectionTestResult(success=True, message=f"Connected ({size} spaces visible).")

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    @abstractmethod
    def _parse_spaces(self, response: dict) -> SpacesListResponse:
        pass

    @abstractmethod
    def _parse_pages(self, response: dict) -> PagesListResponse:
        pass

    @abstractmethod
    def _parse_page_contents(self, response: dict) -> PageContentsListResponse:
        pass

    @abstractmethod
    def _parse_page_content(self, response: dict) -> WikiPage:
        """
        Parses a single page including its body into a WikiPage with plain text content.
        """
        pass

    @abstractmethod
    def _parse_total_size(self, response: dict) -> int:
        pass
