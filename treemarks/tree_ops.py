from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, replace
from typing import Iterable, Iterator, List, Optional, Sequence, Set, Tuple, Union

from .errors import CycleDetected, DuplicateId, NotFound, ParentNotFound
from .model import Bookmark, Folder, FolderNode, Item, ItemKind, RootItems
from .sort import sort_key

# Fields that define where an item lives; they only change through move_item/move_subtree.
_STRUCTURAL_FIELDS = {"id", "parent_id", "folder_id", "children", "bookmarks"}


@dataclass(frozen=True)
class Located:
    item: Item
    parent_id: Optional[int]
    siblings: Tuple[Item, ...]


def find(tree: RootItems, item_id: int, kind: Union[ItemKind, str]) -> Optional[Located]:
    """Locate an item and the collection that owns it (pre-order, first match wins)."""
    kind = ItemKind(kind)
    if kind is ItemKind.FOLDER:
        path = _folder_path(tree, item_id)
        if path is None:
            return None
        if len(path) == 1:
            return Located(item=path[-1], parent_id=None, siblings=tree.root_folders)
        return Located(item=path[-1], parent_id=path[-2].id, siblings=path[-2].children)

    path, bookmark = _bookmark_location(tree, item_id)
    if bookmark is None:
        return None
    if not path:
        return Located(item=bookmark, parent_id=None, siblings=tree.root_bookmarks)
    return Located(item=bookmark, parent_id=path[-1].id, siblings=path[-1].bookmarks)


def insert(tree: RootItems, parent_id: Optional[int], entity: Item) -> RootItems:
    """Append `entity` under `parent_id` (None = root), stamping its parent field.

    Raises ParentNotFound for an unknown parent and DuplicateId when the entity
    (or anything inside a folder entity) carries an id the tree already holds.
    """
    entity = _with_owner(entity, parent_id)
    is_folder = isinstance(entity, FolderNode)
    if is_folder:
        incoming = _collect_ids((entity,), ())
    else:
        incoming = (set(), {entity.id})
    _reject_overlap(_collect_ids(tree.root_folders, tree.root_bookmarks), incoming)
    if parent_id is None:
        if is_folder:
            return replace(tree, root_folders=tree.root_folders + (entity,))
        return replace(tree, root_bookmarks=tree.root_bookmarks + (entity,))

    path = _folder_path(tree, parent_id)
    if path is None:
        raise ParentNotFound(parent_id)
    node = path[-1]
    if is_folder:
        new_node = replace(node, children=node.children + (entity,))
    else:
        new_node = replace(node, bookmarks=node.bookmarks + (entity,))
    return _rebuild(tree, path, new_node)


def remove(tree: RootItems, item_id: int, kind: Union[ItemKind, str]) -> Tuple[RootItems, Item, Optional[int]]:
    """Remove an item wherever it is. Returns (new tree, removed item, prior parent id)."""
    kind = ItemKind(kind)
    if kind is ItemKind.FOLDER:
        path = _folder_path(tree, item_id)
        if path is None:
            raise NotFound(kind, item_id)
        prior_parent = path[-2].id if len(path) > 1 else None
        return _rebuild(tree, path, None), path[-1], prior_parent

    path, bookmark = _bookmark_location(tree, item_id)
    if bookmark is None:
        raise NotFound(kind, item_id)
    if not path:
        kept = tuple(b for b in tree.root_bookmarks if b is not bookmark)
        return replace(tree, root_bookmarks=kept), bookmark, None
    node = path[-1]
    kept = tuple(b for b in node.bookmarks if b is not bookmark)
    return _rebuild(tree, path, replace(node, bookmarks=kept)), bookmark, node.id


def update_fields(tree: RootItems, item_id: int, kind: Union[ItemKind, str], **patch) -> RootItems:
    """Return a tree where the matching item has `patch` applied.

    Only nodes on the path from the root to the item are rebuilt. Parent
    links and ids are not patchable here: relocation goes through move_item.
    """
    kind = ItemKind(kind)
    bad = sorted(_STRUCTURAL_FIELDS.intersection(patch))
    if bad:
        raise ValueError(f"cannot patch structural fields {bad}; use move_item")

    if kind is ItemKind.FOLDER:
        path = _folder_path(tree, item_id)
        if path is None:
            raise NotFound(kind, item_id)
        return _rebuild(tree, path, replace(path[-1], **patch))

    path, bookmark = _bookmark_location(tree, item_id)
    if bookmark is None:
        raise NotFound(kind, item_id)
    updated = replace(bookmark, **patch)
    if not path:
        return replace(tree, root_bookmarks=_swap(tree.root_bookmarks, bookmark, updated))
    node = path[-1]
    return _rebuild(tree, path, replace(node, bookmarks=_swap(node.bookmarks, bookmark, updated)))


def is_descendant(tree: RootItems, folder_id: int, candidate_id: Optional[int]) -> bool:
    """True when `candidate_id` is `folder_id` itself or lies anywhere below it."""
    if candidate_id is None:
        return False
    if candidate_id == folder_id:
        return True
    path = _folder_path(tree, folder_id)
    if path is None:
        return False
    stack = list(path[-1].children)
    while stack:
        node = stack.pop()
        if node.id == candidate_id:
            return True
        stack.extend(node.children)
    return False


def move_subtree(tree: RootItems, folder_id: int, new_parent_id: Optional[int]) -> RootItems:
    validate_move(tree, folder_id, ItemKind.FOLDER, new_parent_id)
    tree, node, _prior = remove(tree, folder_id, ItemKind.FOLDER)
    return insert(tree, new_parent_id, node)


def move_item(tree: RootItems, item_id: int, kind: Union[ItemKind, str], target_folder_id: Optional[int]) -> RootItems:
    kind = ItemKind(kind)
    if kind is ItemKind.FOLDER:
        return move_subtree(tree, item_id, target_folder_id)
    validate_move(tree, item_id, kind, target_folder_id)
    tree, bookmark, _prior = remove(tree, item_id, kind)
    return insert(tree, target_folder_id, bookmark)


def validate_move(tree: RootItems, item_id: int, kind: Union[ItemKind, str], target_folder_id: Optional[int]) -> None:
    """Raise NotFound, CycleDetected or ParentNotFound if the move cannot be applied."""
    kind = ItemKind(kind)
    if find(tree, item_id, kind) is None:
        raise NotFound(kind, item_id)
    if kind is ItemKind.FOLDER and is_descendant(tree, item_id, target_folder_id):
        raise CycleDetected(item_id, target_folder_id)
    if target_folder_id is not None and _folder_path(tree, target_folder_id) is None:
        raise ParentNotFound(target_folder_id)


def splice_branch(tree: RootItems, folder_id: Optional[int], branch: RootItems) -> RootItems:
    """Replace the contents of one folder (or of the root collections) with `branch`.

    Raises NotFound for an unknown folder and DuplicateId when the branch
    brings an id that the tree holds outside the replaced folder.
    """
    folders = tuple(_with_owner(f, folder_id) for f in branch.root_folders)
    bookmarks = tuple(_with_owner(b, folder_id) for b in branch.root_bookmarks)
    if folder_id is None:
        return RootItems(root_folders=folders, root_bookmarks=bookmarks)
    path = _folder_path(tree, folder_id)
    if path is None:
        raise NotFound(ItemKind.FOLDER, folder_id)
    node = path[-1]
    held_folders, held_bookmarks = _collect_ids(tree.root_folders, tree.root_bookmarks)
    old_folders, old_bookmarks = _collect_ids(node.children, node.bookmarks)
    _reject_overlap(
        (held_folders - old_folders, held_bookmarks - old_bookmarks),
        _collect_ids(folders, bookmarks),
    )
    return _rebuild(tree, path, replace(node, children=folders, bookmarks=bookmarks))


def iter_folders(tree: RootItems) -> Iterator[Tuple[FolderNode, int]]:
    """Yield (node, depth) for every folder, pre-order."""
    stack = [(n, 0) for n in reversed(tree.root_folders)]
    while stack:
        node, depth = stack.pop()
        yield node, depth
        stack.extend((c, depth + 1) for c in reversed(node.children))


def all_bookmarks(tree: RootItems) -> List[Bookmark]:
    out = list(tree.root_bookmarks)
    for node, _depth in iter_folders(tree):
        out.extend(node.bookmarks)
    return out


def all_folders(tree: RootItems) -> List[Folder]:
    return [node.folder for node, _depth in iter_folders(tree)]


def check_invariants(tree: RootItems) -> None:
    """Raise ValueError on duplicate ids, wrong parent links or unsorted siblings."""
    folder_ids = Counter(f.id for f in all_folders(tree))
    dup = sorted(i for i, n in folder_ids.items() if n > 1)
    if dup:
        raise ValueError(f"duplicate folder ids: {dup}")
    bookmark_ids = Counter(b.id for b in all_bookmarks(tree))
    dup = sorted(i for i, n in bookmark_ids.items() if n > 1)
    if dup:
        raise ValueError(f"duplicate bookmark ids: {dup}")

    _check_collection(None, tree.root_folders, tree.root_bookmarks)
    for node, _depth in iter_folders(tree):
        _check_collection(node.id, node.children, node.bookmarks)


def _check_collection(owner: Optional[int], folders: Sequence[FolderNode], bookmarks: Sequence[Bookmark]) -> None:
    for f in folders:
        if f.parent_id != owner:
            raise ValueError(f"folder {f.id} has parent_id={f.parent_id} but sits under {owner}")
    for b in bookmarks:
        if b.folder_id != owner:
            raise ValueError(f"bookmark {b.id} has folder_id={b.folder_id} but sits under {owner}")
    for seq in (folders, bookmarks):
        keys = [sort_key(x.name) for x in seq]
        if keys != sorted(keys):
            raise ValueError(f"children of {owner} are not sorted by name")


def _folder_path(tree: RootItems, folder_id: int) -> Optional[List[FolderNode]]:
    """Nodes from a root folder down to `folder_id`, or None."""
    stack = [(n, (n,)) for n in reversed(tree.root_folders)]
    while stack:
        node, path = stack.pop()
        if node.id == folder_id:
            return list(path)
        for child in reversed(node.children):
            stack.append((child, path + (child,)))
    return None


def _bookmark_location(tree: RootItems, bookmark_id: int) -> Tuple[List[FolderNode], Optional[Bookmark]]:
    for b in tree.root_bookmarks:
        if b.id == bookmark_id:
            return [], b
    stack = [(n, (n,)) for n in reversed(tree.root_folders)]
    while stack:
        node, path = stack.pop()
        for b in node.bookmarks:
            if b.id == bookmark_id:
                return list(path), b
        for child in reversed(node.children):
            stack.append((child, path + (child,)))
    return [], None


def _rebuild(tree: RootItems, path: List[FolderNode], replacement: Optional[FolderNode]) -> RootItems:
    """Copy the ancestors of path[-1] with it swapped for `replacement` (None drops it)."""
    old = path[-1]
    for parent in reversed(path[:-1]):
        new_parent = replace(parent, children=_swap(parent.children, old, replacement))
        old, replacement = parent, new_parent
    return replace(tree, root_folders=_swap(tree.root_folders, old, replacement))


def _swap(seq, old, new) -> tuple:
    out = []
    for x in seq:
        if x is old:
            if new is not None:
                out.append(new)
        else:
            out.append(x)
    return tuple(out)


def _collect_ids(folders: Iterable[FolderNode], bookmarks: Iterable[Bookmark]) -> Tuple[Set[int], Set[int]]:
    """Folder ids and bookmark ids in the given collections and everything below them."""
    folder_ids: Set[int] = set()
    bookmark_ids = {b.id for b in bookmarks}
    stack = list(folders)
    while stack:
        node = stack.pop()
        folder_ids.add(node.id)
        bookmark_ids.update(b.id for b in node.bookmarks)
        stack.extend(node.children)
    return folder_ids, bookmark_ids


def _reject_overlap(held: Tuple[Set[int], Set[int]], incoming: Tuple[Set[int], Set[int]]) -> None:
    for kind, have, new in zip((ItemKind.FOLDER, ItemKind.BOOKMARK), held, incoming):
        clash = have & new
        if clash:
            raise DuplicateId(kind, min(clash))


def _with_owner(entity: Item, parent_id: Optional[int]) -> Item:
    if isinstance(entity, FolderNode):
        return entity if entity.parent_id == parent_id else replace(entity, parent_id=parent_id)
    return entity if entity.folder_id == parent_id else replace(entity, folder_id=parent_id)
