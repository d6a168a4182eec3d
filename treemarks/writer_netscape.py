from __future__ import annotations

import html
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .log import get_logger
from .model import Bookmark, FolderNode, RootItems

log = get_logger(__name__)


def render_netscape_html(root_items: RootItems, *, title: str = "Bookmarks") -> str:
    """Render a tree snapshot as a Netscape bookmark file (browser import format).

    Sibling order is taken from the snapshot as-is: folders first, then
    bookmarks, each already sorted by name once the tree went through normalize().
    """
    lines: List[str] = []
    lines.append("<!DOCTYPE NETSCAPE-Bookmark-file-1>")
    lines.append("<!-- This is an automatically generated file.")
    lines.append("     It will be read and overwritten.")
    lines.append("     DO NOT EDIT! -->")
    lines.append('<META HTTP-EQUIV="Content-Type" CONTENT="text/html; charset=UTF-8">')
    lines.append(f"<TITLE>{html.escape(title)}</TITLE>")
    lines.append(f"<H1>{html.escape(title)}</H1>")
    lines.append("<DL><p>")

    # Explicit stack of pending lines instead of recursion; deep trees are fine.
    stack: List[object] = []
    for b in reversed(root_items.root_bookmarks):
        stack.append(_bookmark_line(b, "    "))
    for node in reversed(root_items.root_folders):
        stack.append((node, "    "))
    while stack:
        item = stack.pop()
        if isinstance(item, str):
            lines.append(item)
            continue
        node, indent = item
        _push_folder(stack, lines, node, indent)

    lines.append("</DL><p>")
    return "\n".join(lines) + "\n"


def write_netscape_html(out_path: Path, root_items: RootItems, *, title: str = "Bookmarks") -> None:
    out_path.write_text(render_netscape_html(root_items, title=title), encoding="utf-8")
    log.info("Wrote bookmarks HTML: %s", out_path)


def _push_folder(stack: List[object], lines: List[str], node: FolderNode, indent: str) -> None:
    lines.append(f"{indent}<DT><H3>{html.escape(node.name)}</H3>")
    lines.append(f"{indent}<DL><p>")
    inner = indent + "    "
    # Pushed in reverse: children come out first, then bookmarks, then the closing tag.
    stack.append(f"{indent}</DL><p>")
    for b in reversed(node.bookmarks):
        stack.append(_bookmark_line(b, inner))
    for child in reversed(node.children):
        stack.append((child, inner))


def _bookmark_line(b: Bookmark, indent: str) -> str:
    attrs = [f'HREF="{html.escape(b.url, quote=True)}"']
    add_date = _unix_ts(b.created)
    if add_date is not None:
        attrs.append(f'ADD_DATE="{add_date}"')
    if b.favicon_url:
        attrs.append(f'ICON_URI="{html.escape(b.favicon_url, quote=True)}"')
    if b.favicon:
        attrs.append(f'ICON="{html.escape(b.favicon, quote=True)}"')
    return f"{indent}<DT><A {' '.join(attrs)}>{html.escape(b.name)}</A>"


def _unix_ts(dt: Optional[datetime]) -> Optional[int]:
    if dt is None:
        return None
    return int(dt.timestamp())
