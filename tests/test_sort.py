from treemarks.model import Bookmark, FolderNode, RootItems
from treemarks.sort import normalize


def _bm(i: int, name: str, folder_id=None) -> Bookmark:
    return Bookmark(id=i, name=name, url=f"http://{i}/", folder_id=folder_id)


def _messy() -> RootItems:
    inner = FolderNode(
        id=2,
        name="zz",
        parent_id=1,
        bookmarks=(_bm(3, "b", 2), _bm(4, "B", 2), _bm(5, "a", 2)),
    )
    return RootItems(
        root_folders=(
            FolderNode(id=1, name="beta", children=(inner, FolderNode(id=6, name="Alpha", parent_id=1))),
            FolderNode(id=7, name="Alpha"),
        ),
        root_bookmarks=(_bm(8, "delta"), _bm(9, "Charlie")),
    )


def test_normalize_orders_every_level_case_insensitively():
    out = normalize(_messy())
    assert [f.name for f in out.root_folders] == ["Alpha", "beta"]
    assert [b.name for b in out.root_bookmarks] == ["Charlie", "delta"]
    beta = out.root_folders[1]
    assert [c.name for c in beta.children] == ["Alpha", "zz"]
    # ties keep their input order: "b" came before "B"
    assert [b.id for b in beta.children[1].bookmarks] == [5, 3, 4]


def test_normalize_is_idempotent():
    once = normalize(_messy())
    twice = normalize(once)
    assert twice == once
    assert twice is once


def test_normalize_shares_subtrees_that_are_already_sorted():
    sorted_leaf = FolderNode(id=3, name="leaf", parent_id=1, bookmarks=(_bm(1, "a", 3), _bm(2, "b", 3)))
    t = RootItems(
        root_folders=(FolderNode(id=1, name="x", children=(sorted_leaf,)),),
        root_bookmarks=(_bm(4, "z"), _bm(5, "y")),
    )
    out = normalize(t)
    assert out is not t
    assert out.root_folders[0] is t.root_folders[0]
    assert [b.id for b in out.root_bookmarks] == [5, 4]


def test_normalize_empty_tree():
    t = RootItems()
    assert normalize(t) == RootItems()
