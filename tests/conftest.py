import sys
from pathlib import Path

import pytest

# Allow `import treemarks` without installing the package.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from treemarks.errors import RemoteRejection  # noqa: E402
from treemarks.model import Bookmark, FolderNode, ItemKind, RootItems  # noqa: E402


class FakeServer:
    """In-memory SyncClient: flat folder/bookmark tables, tree built on fetch.

    `fail[method] = exc` makes the next call of that method raise `exc`;
    `gates[method] = asyncio.Event()` parks calls of that method until set.
    """

    def __init__(self, folders=(), bookmarks=()):
        self.folders = {f["id"]: dict(f) for f in folders}
        self.bookmarks = {}
        for b in bookmarks:
            row = {"folder_id": None, "favorite": False, "url": "http://example.invalid/"}
            row.update(b)
            self.bookmarks[row["id"]] = row
        self.calls = []
        self.fail = {}
        self.gates = {}

    async def _enter(self, method, *args):
        self.calls.append((method,) + args)
        gate = self.gates.get(method)
        if gate is not None:
            await gate.wait()
        exc = self.fail.pop(method, None)
        if exc is not None:
            raise exc

    def _next_id(self, table):
        return max(table, default=0) + 1

    def build(self, folder_id=None) -> RootItems:
        def node(fid):
            f = self.folders[fid]
            return FolderNode(
                id=fid,
                name=f["name"],
                parent_id=f.get("parent_id"),
                children=tuple(node(c) for c in sorted(self.folders) if self.folders[c].get("parent_id") == fid),
                bookmarks=tuple(bm(b) for b in sorted(self.bookmarks) if self.bookmarks[b]["folder_id"] == fid),
            )

        def bm(bid):
            row = self.bookmarks[bid]
            return Bookmark(id=bid, name=row["name"], url=row["url"], folder_id=row["folder_id"], favorite=row["favorite"])

        return RootItems(
            root_folders=tuple(node(f) for f in sorted(self.folders) if self.folders[f].get("parent_id") == folder_id),
            root_bookmarks=tuple(bm(b) for b in sorted(self.bookmarks) if self.bookmarks[b]["folder_id"] == folder_id),
        )

    async def fetch_tree(self):
        await self._enter("fetch_tree")
        return self.build()

    async def fetch_branch(self, folder_id):
        await self._enter("fetch_branch", folder_id)
        return self.build(folder_id)

    async def create_folder(self, name, parent_id):
        await self._enter("create_folder", name, parent_id)
        new_id = self._next_id(self.folders)
        self.folders[new_id] = {"id": new_id, "name": name, "parent_id": parent_id}
        return new_id

    async def create_bookmark(self, name, url, folder_id):
        await self._enter("create_bookmark", name, url, folder_id)
        new_id = self._next_id(self.bookmarks)
        self.bookmarks[new_id] = {"id": new_id, "name": name, "url": url, "folder_id": folder_id, "favorite": False}
        return new_id

    async def update_folder(self, folder_id, name, parent_id):
        await self._enter("update_folder", folder_id, name, parent_id)
        self._require(self.folders, folder_id).update(name=name, parent_id=parent_id)

    async def update_bookmark(self, bookmark_id, name, url, folder_id):
        await self._enter("update_bookmark", bookmark_id, name, url, folder_id)
        self._require(self.bookmarks, bookmark_id).update(name=name, url=url, folder_id=folder_id)

    async def delete_folder(self, folder_id):
        await self._enter("delete_folder", folder_id)
        self._require(self.folders, folder_id)
        doomed = {folder_id}
        changed = True
        while changed:
            changed = False
            for fid, f in self.folders.items():
                if f.get("parent_id") in doomed and fid not in doomed:
                    doomed.add(fid)
                    changed = True
        for fid in doomed:
            del self.folders[fid]
        for bid in [b for b, row in self.bookmarks.items() if row["folder_id"] in doomed]:
            del self.bookmarks[bid]

    async def delete_bookmark(self, bookmark_id):
        await self._enter("delete_bookmark", bookmark_id)
        self._require(self.bookmarks, bookmark_id)
        del self.bookmarks[bookmark_id]

    async def move(self, kind, item_id, target_folder_id):
        await self._enter("move", ItemKind(kind).value, item_id, target_folder_id)
        if ItemKind(kind) is ItemKind.FOLDER:
            self._require(self.folders, item_id)["parent_id"] = target_folder_id
        else:
            self._require(self.bookmarks, item_id)["folder_id"] = target_folder_id

    async def favorite_bookmark(self, bookmark_id):
        await self._enter("favorite_bookmark", bookmark_id)
        row = self._require(self.bookmarks, bookmark_id)
        row["favorite"] = not row["favorite"]

    async def import_html(self, html):
        await self._enter("import_html", len(html))
        new_id = self._next_id(self.bookmarks)
        self.bookmarks[new_id] = {"id": new_id, "name": "Imported", "url": "http://imported/", "folder_id": None, "favorite": False}

    @staticmethod
    def _require(table, item_id):
        if item_id not in table:
            raise RemoteRejection(404, "no such item")
        return table[item_id]


@pytest.fixture
def fake_server():
    """Folders: Work(1) > Projects(2) > Archive(5); Home(3). Bookmarks: Docs(10) in Work; Zeta(7), alpha(8) at root."""
    return FakeServer(
        folders=[
            {"id": 1, "name": "Work", "parent_id": None},
            {"id": 2, "name": "projects", "parent_id": 1},
            {"id": 3, "name": "Home", "parent_id": None},
            {"id": 5, "name": "Archive", "parent_id": 2},
        ],
        bookmarks=[
            {"id": 10, "name": "Docs", "url": "http://docs/", "folder_id": 1},
            {"id": 7, "name": "Zeta", "url": "http://zeta/", "folder_id": None},
            {"id": 8, "name": "alpha", "url": "http://alpha/", "folder_id": None},
        ],
    )


@pytest.fixture(autouse=True)
def _block_real_http(monkeypatch):
    """Tests must never reach a real bookmark server."""

    import httpx

    async def _blocked(*_args, **_kwargs):
        raise AssertionError("real HTTP request attempted during tests")

    monkeypatch.setattr(httpx.AsyncHTTPTransport, "handle_async_request", _blocked)


@pytest.fixture
def make_server():
    return FakeServer
