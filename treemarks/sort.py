from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Tuple, TypeVar

from .model import FolderNode, RootItems

T = TypeVar("T")


def sort_key(name: str) -> str:
    return (name or "").casefold()


def normalize(root_items: RootItems) -> RootItems:
    """Sort every sibling collection by case-insensitive name.

    `sorted` is stable, so equal names keep their relative order and a second
    pass is a no-op. Nodes that are already in order are returned as-is, so
    untouched subtrees stay shared with the input.
    """
    folders = tuple(_normalize_node(n) for n in _by_name(root_items.root_folders))
    bookmarks = _by_name(root_items.root_bookmarks)
    if _same(folders, root_items.root_folders) and _same(bookmarks, root_items.root_bookmarks):
        return root_items
    return RootItems(root_folders=folders, root_bookmarks=bookmarks)


def _normalize_node(node: FolderNode) -> FolderNode:
    # Explicit stack: depth is bounded only by the server's data.
    done = {}
    stack = [(node, False)]
    while stack:
        current, expanded = stack.pop()
        if not expanded:
            stack.append((current, True))
            stack.extend((c, False) for c in current.children)
            continue
        children = tuple(done.pop(id(c)) for c in _by_name(current.children))
        bookmarks = _by_name(current.bookmarks)
        if _same(children, current.children) and _same(bookmarks, current.bookmarks):
            done[id(current)] = current
        else:
            done[id(current)] = replace(current, children=children, bookmarks=bookmarks)
    return done[id(node)]


def _same(a: Tuple, b: Tuple) -> bool:
    return len(a) == len(b) and all(x is y for x, y in zip(a, b))


def _by_name(items: Iterable[T]) -> Tuple[T, ...]:
    return tuple(sorted(items, key=lambda x: sort_key(x.name)))
