from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional, Protocol, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import NetworkFailure, RemoteRejection
from .log import get_logger
from .model import Bookmark, FolderNode, ItemKind, RootItems

log = get_logger(__name__)


class BookmarkPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    url: str
    favicon: Optional[str] = None
    favicon_url: Optional[str] = None
    created: Optional[datetime] = None
    folder_id: Optional[int] = None
    favorite: bool = False

    @field_validator("created", mode="before")
    @classmethod
    def _drop_unparseable_created(cls, v: Any) -> Any:
        # Some server builds serialize timestamps as component arrays; the tree does not need them.
        if isinstance(v, (list, tuple, dict)):
            return None
        return v

    def to_model(self) -> Bookmark:
        return Bookmark(
            id=self.id,
            name=self.name,
            url=self.url,
            folder_id=self.folder_id,
            favorite=self.favorite,
            favicon=self.favicon,
            favicon_url=self.favicon_url,
            created=self.created,
        )


class FolderNodePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    parent_id: Optional[int] = None
    children: List["FolderNodePayload"] = Field(default_factory=list)
    bookmarks: List[BookmarkPayload] = Field(default_factory=list)

    def to_model(self) -> FolderNode:
        return FolderNode(
            id=self.id,
            name=self.name,
            parent_id=self.parent_id,
            children=tuple(c.to_model() for c in self.children),
            bookmarks=tuple(b.to_model() for b in self.bookmarks),
        )


FolderNodePayload.model_rebuild()


class RootItemsPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    root_folders: List[FolderNodePayload] = Field(default_factory=list)
    root_bookmarks: List[BookmarkPayload] = Field(default_factory=list)

    def to_model(self) -> RootItems:
        return RootItems(
            root_folders=tuple(f.to_model() for f in self.root_folders),
            root_bookmarks=tuple(b.to_model() for b in self.root_bookmarks),
        )


class CreatedPayload(BaseModel):
    id: int


class SyncClient(Protocol):
    """What the reconciliation engine needs from the server.

    Every method raises NetworkFailure or RemoteRejection on failure and
    returns normally on any acknowledged response.
    """

    async def fetch_tree(self) -> RootItems: ...

    async def fetch_branch(self, folder_id: Optional[int]) -> RootItems: ...

    async def create_folder(self, name: str, parent_id: Optional[int]) -> int: ...

    async def create_bookmark(self, name: str, url: str, folder_id: Optional[int]) -> int: ...

    async def update_folder(self, folder_id: int, name: str, parent_id: Optional[int]) -> None: ...

    async def update_bookmark(self, bookmark_id: int, name: str, url: str, folder_id: Optional[int]) -> None: ...

    async def delete_folder(self, folder_id: int) -> None: ...

    async def delete_bookmark(self, bookmark_id: int) -> None: ...

    async def move(self, kind: ItemKind, item_id: int, target_folder_id: Optional[int]) -> None: ...

    async def favorite_bookmark(self, bookmark_id: int) -> None: ...

    async def import_html(self, html: str) -> None: ...


class HttpSyncClient:
    """SyncClient over the bookmark server's JSON API (httpx, async)."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = 15.0,
        connect_timeout_s: float = 5.0,
        user_agent: str = "treemarks",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s, connect=connect_timeout_s),
            headers={"User-Agent": user_agent},
        )

    async def __aenter__(self) -> "HttpSyncClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_tree(self) -> RootItems:
        r = await self._request("GET", "/folder-tree")
        return _parse_tree(r)

    async def fetch_branch(self, folder_id: Optional[int]) -> RootItems:
        segment = "root" if folder_id is None else str(int(folder_id))
        r = await self._request("GET", f"/folder-tree/{segment}")
        return _parse_tree(r)

    async def create_folder(self, name: str, parent_id: Optional[int]) -> int:
        r = await self._request("POST", "/create-folder", json={"name": name, "parent_id": parent_id})
        return _parse_created_id(r)

    async def create_bookmark(self, name: str, url: str, folder_id: Optional[int]) -> int:
        r = await self._request(
            "POST",
            "/create-bookmark",
            json={"name": name, "url": url, "folder_id": folder_id},
        )
        return _parse_created_id(r)

    async def update_folder(self, folder_id: int, name: str, parent_id: Optional[int]) -> None:
        await self._request("POST", "/update-folder", json={"id": folder_id, "name": name, "parent_id": parent_id})

    async def update_bookmark(self, bookmark_id: int, name: str, url: str, folder_id: Optional[int]) -> None:
        await self._request(
            "POST",
            "/update-bookmark",
            json={"id": bookmark_id, "name": name, "url": url, "folder_id": folder_id},
        )

    async def delete_folder(self, folder_id: int) -> None:
        await self._request("POST", "/delete-folder", json=folder_id)

    async def delete_bookmark(self, bookmark_id: int) -> None:
        await self._request("POST", "/delete-bookmark", json=bookmark_id)

    async def move(self, kind: ItemKind, item_id: int, target_folder_id: Optional[int]) -> None:
        await self._request(
            "POST",
            "/move",
            json={"item_type": ItemKind(kind).value, "item_id": item_id, "target_folder_id": target_folder_id},
        )

    async def favorite_bookmark(self, bookmark_id: int) -> None:
        await self._request("POST", "/favorite-bookmark", json=bookmark_id)

    async def import_html(self, html: str) -> None:
        await self._request(
            "POST",
            "/import-html",
            content=html.encode("utf-8"),
            headers={"Content-Type": "text/html; charset=utf-8"},
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            r = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            log.warning("%s %s timed out: %s", method, path, e)
            raise NetworkFailure(f"{method} {path} timed out") from e
        except httpx.TransportError as e:
            log.warning("%s %s failed: %s", method, path, e)
            raise NetworkFailure(f"{method} {path} failed: {e}") from e
        except httpx.HTTPError as e:
            # Undecodable bodies, redirect loops and the like.
            log.warning("%s %s failed: %s: %s", method, path, type(e).__name__, e)
            raise NetworkFailure(f"{method} {path} failed: {type(e).__name__}: {e}") from e

        if not r.is_success:
            log.warning("%s %s -> HTTP %d", method, path, r.status_code)
            raise RemoteRejection(r.status_code, (r.text or "").strip()[:200])
        log.debug("%s %s -> HTTP %d", method, path, r.status_code)
        return r


def _parse_tree(r: httpx.Response) -> RootItems:
    try:
        return RootItemsPayload.model_validate_json(r.content).to_model()
    except ValidationError as e:
        raise RemoteRejection(r.status_code, f"malformed tree payload: {e.error_count()} errors") from e


def _parse_created_id(r: httpx.Response) -> int:
    """Accept `{"id": n}` or a bare `n`."""
    try:
        data: Union[int, dict] = r.json()
    except ValueError as e:
        raise RemoteRejection(r.status_code, "create response is not JSON") from e
    if isinstance(data, int) and not isinstance(data, bool):
        return data
    try:
        return CreatedPayload.model_validate(data).id
    except ValidationError as e:
        raise RemoteRejection(r.status_code, "create response carries no id") from e
