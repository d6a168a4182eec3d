from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional, Union

from .errors import CycleDetected, DuplicateId, NotFound, ParentNotFound, SyncError
from .log import get_logger
from .model import Bookmark, FolderNode, ItemKind, RootItems
from .sort import normalize
from .store import CacheState, TreeCache
from .sync_client import SyncClient
from .tree_ops import find, insert, is_descendant, move_item, remove, splice_branch, update_fields

log = get_logger(__name__)

# Raised by a merge when the cached tree no longer matches the server.
_DRIFT_ERRORS = (NotFound, ParentNotFound, CycleDetected, DuplicateId)

Transform = Callable[[RootItems], RootItems]


class TreeOperations:
    """One coroutine per user action on the bookmark tree.

    Each operation asks the server first and only then updates the cache:
    remote call -> re-read the published snapshot -> transform -> normalize ->
    publish. A failed remote call leaves the cache alone and propagates the
    SyncError. When the server accepted a change the cache cannot place (the
    snapshot drifted), the whole tree is fetched again instead.

    Transformations always start from the snapshot published at resume time,
    never from one captured before the await, so operations that finish out
    of order do not undo each other.
    """

    def __init__(self, cache: TreeCache, client: SyncClient):
        self.cache = cache
        self.client = client
        self._refreshes = 0

    async def ensure_loaded(self) -> RootItems:
        data = self.cache.read().data
        if data is not None:
            return data
        return await self.refresh_full_tree()

    async def refresh_full_tree(self) -> RootItems:
        self._refreshes += 1
        self.cache.set_loading(True)
        tree: Optional[RootItems] = None
        try:
            tree = normalize(await self.client.fetch_tree())
        finally:
            self._refreshes -= 1
            if tree is None:
                # Keep whatever was published last; with no snapshot yet this stays data=None.
                self.cache.replace(CacheState(data=self.cache.read().data, loading=self._refreshes > 0))
                log.warning("Full tree refresh failed; keeping last published snapshot.")
        self.cache.replace(CacheState(data=tree, loading=self._refreshes > 0))
        log.debug(
            "Published full tree: %d root folders, %d root bookmarks.",
            len(tree.root_folders),
            len(tree.root_bookmarks),
        )
        return tree

    async def refresh_branch(self, folder_id: Optional[int]) -> None:
        branch = await self.client.fetch_branch(folder_id)
        await self._merge(
            f"refresh-branch {folder_id if folder_id is not None else 'root'}",
            lambda t: splice_branch(t, folder_id, branch),
        )

    async def new_folder(self, name: str, parent_id: Optional[int]) -> int:
        self._check_parent(parent_id)
        new_id = await self.client.create_folder(name, parent_id)
        node = FolderNode(id=new_id, name=name, parent_id=parent_id)
        await self._merge(f"new-folder {new_id}", lambda t: insert(t, parent_id, node))
        return new_id

    async def new_bookmark(self, name: str, url: str, parent_id: Optional[int]) -> int:
        self._check_parent(parent_id)
        new_id = await self.client.create_bookmark(name, url, parent_id)
        bookmark = Bookmark(
            id=new_id,
            name=name,
            url=url,
            folder_id=parent_id,
            favorite=False,
            created=datetime.now(timezone.utc),
        )
        await self._merge(f"new-bookmark {new_id}", lambda t: insert(t, parent_id, bookmark))
        return new_id

    async def edit_folder(self, folder_id: int, name: str, parent_id: Optional[int]) -> None:
        self._check_move(folder_id, ItemKind.FOLDER, parent_id)
        await self.client.update_folder(folder_id, name, parent_id)

        def _apply(t: RootItems) -> RootItems:
            t = _relocate(t, folder_id, ItemKind.FOLDER, parent_id)
            return update_fields(t, folder_id, ItemKind.FOLDER, name=name)

        await self._merge(f"edit-folder {folder_id}", _apply)

    async def edit_bookmark(self, bookmark_id: int, name: str, url: str, parent_id: Optional[int]) -> None:
        self._check_move(bookmark_id, ItemKind.BOOKMARK, parent_id)
        await self.client.update_bookmark(bookmark_id, name, url, parent_id)

        def _apply(t: RootItems) -> RootItems:
            t = _relocate(t, bookmark_id, ItemKind.BOOKMARK, parent_id)
            return update_fields(t, bookmark_id, ItemKind.BOOKMARK, name=name, url=url)

        await self._merge(f"edit-bookmark {bookmark_id}", _apply)

    async def delete_item(self, item_id: int, kind: Union[ItemKind, str]) -> None:
        kind = ItemKind(kind)
        if kind is ItemKind.FOLDER:
            await self.client.delete_folder(item_id)
        else:
            await self.client.delete_bookmark(item_id)
        # The server cascades; the folder's subtree leaves the snapshot with it.
        await self._merge(f"delete-{kind.value} {item_id}", lambda t: remove(t, item_id, kind)[0])

    async def move_item(self, item_id: int, kind: Union[ItemKind, str], target_folder_id: Optional[int]) -> None:
        kind = ItemKind(kind)
        self._check_move(item_id, kind, target_folder_id)
        await self.client.move(kind, item_id, target_folder_id)
        await self._merge(
            f"move-{kind.value} {item_id}",
            lambda t: move_item(t, item_id, kind, target_folder_id),
        )

    async def move_to_root(self, item_id: int, kind: Union[ItemKind, str]) -> None:
        await self.move_item(item_id, kind, None)

    async def toggle_favorite(self, bookmark_id: int) -> None:
        await self.client.favorite_bookmark(bookmark_id)

        def _apply(t: RootItems) -> RootItems:
            loc = find(t, bookmark_id, ItemKind.BOOKMARK)
            if loc is None:
                raise NotFound(ItemKind.BOOKMARK, bookmark_id)
            return update_fields(t, bookmark_id, ItemKind.BOOKMARK, favorite=not loc.item.favorite)

        await self._merge(f"favorite {bookmark_id}", _apply)

    async def import_html(self, html: str) -> RootItems:
        await self.client.import_html(html)
        log.info("Server imported bookmarks HTML (%d bytes); refetching tree.", len(html))
        return await self.refresh_full_tree()

    def _check_parent(self, parent_id: Optional[int]) -> None:
        data = self.cache.read().data
        if data is None or parent_id is None:
            return
        if find(data, parent_id, ItemKind.FOLDER) is None:
            raise ParentNotFound(parent_id)

    def _check_move(self, item_id: int, kind: ItemKind, target_folder_id: Optional[int]) -> None:
        data = self.cache.read().data
        if data is None:
            return
        if kind is ItemKind.FOLDER and is_descendant(data, item_id, target_folder_id):
            raise CycleDetected(item_id, target_folder_id)
        self._check_parent(target_folder_id)

    async def _merge(self, what: str, transform: Transform) -> None:
        """Apply `transform` to the current snapshot, or refetch everything if it cannot be placed."""
        state = self.cache.read()
        if state.data is None:
            log.info("%s: no snapshot cached yet; fetching full tree.", what)
            await self._fallback_refresh(what)
            return
        try:
            new_tree = normalize(transform(state.data))
        except _DRIFT_ERRORS as e:
            log.warning("%s: cached tree drifted from server (%s); fetching full tree.", what, e)
            await self._fallback_refresh(what)
            return
        self.cache.replace(CacheState(data=new_tree, loading=state.loading))
        log.debug("%s: published updated snapshot.", what)

    async def _fallback_refresh(self, what: str) -> None:
        # The remote change already happened; a failed refetch must not report the operation as failed.
        try:
            await self.refresh_full_tree()
        except SyncError as e:
            log.warning("%s: fallback refresh failed (%s); cache may be stale until the next refresh.", what, e)


def _relocate(t: RootItems, item_id: int, kind: ItemKind, parent_id: Optional[int]) -> RootItems:
    loc = find(t, item_id, kind)
    if loc is None:
        raise NotFound(kind, item_id)
    if loc.parent_id == parent_id:
        return t
    return move_item(t, item_id, kind, parent_id)
