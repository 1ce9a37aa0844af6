import base64
import re
from urllib.parse import quote

from bs4 import BeautifulSoup

from shared.clients.wiki.WikiClientInterface import WikiClientInterface
from shared.clients.wiki.models.Listing import PageContentsListResponse, PagesListResponse, SpacesListResponse
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.sync import WikiPage, WikiPageSummary, WikiSpace

# storage format elements that carry markup parameters, not readable text
_STRIPPED_ELEMENTS = ["script", "style", "ac:macro", "ac:parameter", "ri:attachment", "ri:page"]
_WHITESPACE = re.compile(r"\s+")


class WikiClientConfluence(WikiClientInterface):
    """Confluence Server / Data Center via REST API v1.

    Authentication is either basic (username and password) or a personal
    access token, selected by WIKI_CONFLUENCE_AUTH_TYPE ("basic" or "pat").
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string").rstrip("/")
        self._auth_type = self.get_config_val("AUTH_TYPE", default="basic", val_type="string").lower()
        self._username = self.get_config_val("USERNAME", default="", val_type="string")
        self._password = self.get_config_val("PASSWORD", default="", val_type="string")
        self._token = self.get_config_val("TOKEN", default="", val_type="string")
        self._max_content_length = int(self.get_config_val("MAX_CONTENT_LENGTH", default=50000, val_type="number"))
        self._max_pages_per_space = int(self.get_config_val("MAX_PAGES_PER_SPACE", default=500, val_type="number"))
        self._page_fetch_limit = int(self.get_config_val("PAGE_FETCH_LIMIT", default=50, val_type="number"))

        if self._auth_type not in ("basic", "pat"):
            raise ValueError(f"WIKI_CONFLUENCE_AUTH_TYPE must be 'basic' or 'pat'. Got: '{self._auth_type}'")
        if self._auth_type == "basic" and not (self._username and self._password):
            raise ValueError("Basic authentication requires WIKI_CONFLUENCE_USERNAME and WIKI_CONFLUENCE_PASSWORD.")
        if self._auth_type == "pat" and not self._token:
            raise ValueError("Token authentication requires WIKI_CONFLUENCE_TOKEN.")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Confluence"

    def get_max_pages_per_space(self) -> int:
        return self._max_pages_per_space

    def get_page_fetch_limit(self) -> int:
        return self._page_fetch_limit

    def get_page_url(self, page_id: str) -> str:
        return f"{self._base_url}/pages/viewpage.action?pageId={page_id}"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="AUTH_TYPE", val_type="string", default="basic"),
            EnvConfig(env_key="USERNAME", val_type="string", default=""),
            EnvConfig(env_key="PASSWORD", val_type="string", default=""),
            EnvConfig(env_key="TOKEN", val_type="string", default=""),
            EnvConfig(env_key="MAX_CONTENT_LENGTH", val_type="number", default=50000),
            EnvConfig(env_key="MAX_PAGES_PER_SPACE", val_type="number", default=500),
            EnvConfig(env_key="PAGE_FETCH_LIMIT", val_type="number", default=50),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._auth_type == "pat":
            return {"Authorization": f"Bearer {self._token}"}
        credentials = base64.b64encode(f"{self._username}:{self._password}".encode("utf-8")).decode("ascii")
        return {"Authorization": f"Basic {credentials}"}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/rest/api/space?limit=1"

    def _get_endpoint_spaces(self, start: int = 0, limit: int = 100) -> str:
        return f"/rest/api/space?start={start}&limit={limit}"

    def _get_endpoint_root_pages(self, space_key: str, start: int = 0, limit: int = 100) -> str:
        return f"/rest/api/content?spaceKey={quote(space_key)}&type=page&depth=root&expand=children.page&start={start}&limit={limit}"

    def _get_endpoint_child_pages(self, page_id: str, start: int = 0, limit: int = 100) -> str:
        return f"/rest/api/content/{quote(str(page_id))}/child/page?expand=children.page&start={start}&limit={limit}"

    def _get_endpoint_page_content(self, page_id: str) -> str:
        return f"/rest/api/content/{quote(str(page_id))}?expand=body.storage,version"

    def _get_endpoint_space_pages(self, space_key: str, start: int = 0, limit: int = 50) -> str:
        return f"/rest/api/content?spaceKey={quote(space_key)}&type=page&expand=body.storage,version&start={start}&limit={limit}"

    def _get_endpoint_space_page_count(self, space_key: str) -> str:
        return f"/rest/api/content?spaceKey={quote(space_key)}&type=page&limit=0"

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    @staticmethod
    def _has_next(response: dict) -> bool:
        return bool((response.get("_links") or {}).get("next"))

    def _parse_spaces(self, response: dict) -> SpacesListResponse:
        spaces = [WikiSpace(key=s["key"], name=s.get("name") or s["key"]) for s in response.get("results") or []]
        return SpacesListResponse(engine=self.get_engine_name(), spaces=spaces, has_next=self._has_next(response))

    def _parse_pages(self, response: dict) -> PagesListResponse:
        pages = []
        for raw in response.get("results") or []:
            child_size = ((raw.get("children") or {}).get("page") or {}).get("size") or 0
            pages.append(WikiPageSummary(id=str(raw["id"]), title=raw.get("title") or "", has_children=child_size > 0))
        return PagesListResponse(engine=self.get_engine_name(), pages=pages, has_next=self._has_next(response))

    def _parse_page_contents(self, response: dict) -> PageContentsListResponse:
        pages = [self._parse_page_content(raw) for raw in response.get("results") or []]
        return PageContentsListResponse(
            engine=self.get_engine_name(),
            pages=pages,
            has_next=self._has_next(response),
            overall_count=response.get("totalSize"),
        )

    def _parse_page_content(self, response: dict) -> WikiPage:
        html = ((response.get("body") or {}).get("storage") or {}).get("value") or ""
        text = self.extract_text_from_html(html)
        if len(text) > self._max_content_length:
            text = text[:self._max_content_length]
        page_id = str(response["id"])
        return WikiPage(
            id=page_id,
            title=response.get("title") or "",
            content=text,
            url=self.get_page_url(page_id),
            last_modified=(response.get("version") or {}).get("when"),
        )

    def _parse_total_size(self, response: dict) -> int:
        return int(response.get("size") or response.get("totalSize") or 0)

    ##########################################
    ################# OTHER ##################
    ##########################################

    @staticmethod
    def extract_text_from_html(html: str) -> str:
        """Convert Confluence storage format to plain text with collapsed whitespace.

        Args:
            html (str): The storage format body.

        Returns:
            str: The readable text of the page.
        """
        if not html:
            return ""
        soup = BeautifulSoup(html, "html.parser")
        for element in soup.find_all(_STRIPPED_ELEMENTS):
            element.decompose()
        return _WHITESPACE.sub(" ", soup.get_text(" ")).strip()
