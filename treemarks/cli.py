from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.tree import Tree

from . import __version__
from .config import Settings, load_settings
from .engine import TreeOperations
from .errors import NotFound, TreeError
from .log import LogConfig, get_logger, setup_logging
from .model import ItemKind, RootItems
from .store import TreeCache
from .sync_client import HttpSyncClient
from .tree_ops import Located, all_bookmarks, all_folders, find
from .writer_netscape import write_netscape_html

log = get_logger(__name__)


def main(argv: List[str] | None = None) -> int:
    p = argparse.ArgumentParser(
        prog="treemarks",
        description="Browse and edit a bookmark server's folder tree from the command line.",
    )
    p.add_argument("-V", "--version", action="version", version=f"treemarks {__version__}")
    p.add_argument("--config", default=None, help="YAML config file (optional). Env vars override defaults.")
    p.add_argument("--api-url", default=None, help="Server API base URL (overrides env/config).")
    p.add_argument("--log-level", default=None, help="DEBUG/INFO/WARN/ERROR (overrides env/config).")
    p.add_argument("--no-color", action="store_true", help="Disable colored logging.")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("tree", help="Print the folder tree.")

    exp = sub.add_parser("export", help="Write the tree as a Netscape bookmarks HTML file.")
    exp.add_argument("--out", required=True, help="Output HTML path.")

    nf = sub.add_parser("new-folder", help="Create a folder.")
    nf.add_argument("name")
    nf.add_argument("--parent", type=int, default=None, help="Parent folder id (default: root).")

    nb = sub.add_parser("new-bookmark", help="Create a bookmark.")
    nb.add_argument("name")
    nb.add_argument("url")
    nb.add_argument("--parent", type=int, default=None, help="Folder id (default: root).")

    rf = sub.add_parser("rename-folder", help="Rename a folder (keeps its location).")
    rf.add_argument("id", type=int)
    rf.add_argument("name")

    eb = sub.add_parser("edit-bookmark", help="Change a bookmark's name and/or URL.")
    eb.add_argument("id", type=int)
    eb.add_argument("--name", default=None)
    eb.add_argument("--url", default=None)

    rm = sub.add_parser("delete", help="Delete a folder (with its contents) or a bookmark.")
    rm.add_argument("kind", choices=[k.value for k in ItemKind])
    rm.add_argument("id", type=int)

    mv = sub.add_parser("move", help="Move a folder or bookmark.")
    mv.add_argument("kind", choices=[k.value for k in ItemKind])
    mv.add_argument("id", type=int)
    mv.add_argument("--to", type=int, default=None, help="Target folder id (default: root).")

    fav = sub.add_parser("favorite", help="Toggle a bookmark's favorite flag.")
    fav.add_argument("id", type=int)

    imp = sub.add_parser("import-html", help="Upload a Netscape bookmarks HTML file to the server.")
    imp.add_argument("file")

    args = p.parse_args(argv)
    cfg = load_settings(args.config)
    if args.api_url:
        cfg.api_url = args.api_url
    if args.log_level:
        cfg.log_level = args.log_level
    if args.no_color:
        cfg.no_color = True
    setup_logging(LogConfig(level=cfg.log_level, no_color=cfg.no_color))

    try:
        return asyncio.run(_run(args, cfg))
    except TreeError as e:
        log.error("%s failed: %s", args.cmd, e)
        return 2


async def _run(args, cfg: Settings) -> int:
    cache = TreeCache()
    async with HttpSyncClient(
        cfg.api_url,
        timeout_s=cfg.timeout_s,
        connect_timeout_s=cfg.connect_timeout_s,
        user_agent=cfg.user_agent,
    ) as client:
        ops = TreeOperations(cache, client)
        if args.cmd == "import-html":
            path = Path(args.file)
            if not path.exists():
                log.error("Input file not found: %s", path)
                return 2
            tree = await ops.import_html(path.read_text(encoding="utf-8"))
            log.info("Tree now holds %d folders and %d bookmarks.", len(all_folders(tree)), len(all_bookmarks(tree)))
            return 0

        tree = await ops.ensure_loaded()

        if args.cmd == "tree":
            _print_tree(tree)
        elif args.cmd == "export":
            write_netscape_html(Path(args.out), tree, title=cfg.export_title)
        elif args.cmd == "new-folder":
            new_id = await ops.new_folder(args.name, args.parent)
            log.info("Created folder %d (%s).", new_id, args.name)
        elif args.cmd == "new-bookmark":
            new_id = await ops.new_bookmark(args.name, args.url, args.parent)
            log.info("Created bookmark %d (%s).", new_id, args.name)
        elif args.cmd == "rename-folder":
            loc = _require(tree, args.id, ItemKind.FOLDER)
            await ops.edit_folder(args.id, args.name, loc.parent_id)
            log.info("Renamed folder %d to %s.", args.id, args.name)
        elif args.cmd == "edit-bookmark":
            loc = _require(tree, args.id, ItemKind.BOOKMARK)
            name = args.name if args.name is not None else loc.item.name
            url = args.url if args.url is not None else loc.item.url
            await ops.edit_bookmark(args.id, name, url, loc.parent_id)
            log.info("Updated bookmark %d.", args.id)
        elif args.cmd == "delete":
            await ops.delete_item(args.id, args.kind)
            log.info("Deleted %s %d.", args.kind, args.id)
        elif args.cmd == "move":
            await ops.move_item(args.id, args.kind, args.to)
            log.info("Moved %s %d to %s.", args.kind, args.id, args.to if args.to is not None else "root")
        elif args.cmd == "favorite":
            await ops.toggle_favorite(args.id)
            loc = find(cache.read().data or RootItems(), args.id, ItemKind.BOOKMARK)
            state = "on" if loc is not None and loc.item.favorite else "off"
            log.info("Bookmark %d favorite: %s.", args.id, state)
        else:
            return 2
    return 0


def _require(tree: RootItems, item_id: int, kind: ItemKind) -> Located:
    loc = find(tree, item_id, kind)
    if loc is None:
        raise NotFound(kind, item_id)
    return loc


def _print_tree(tree: RootItems, console: Optional[Console] = None) -> None:
    console = console or Console()
    root = Tree("[bold]Bookmarks[/bold]")
    stack = _add_level(root, tree.root_folders, tree.root_bookmarks)
    while stack:
        branch, node = stack.pop()
        stack.extend(_add_level(branch, node.children, node.bookmarks))
    console.print(root)


def _add_level(parent: Tree, folders, bookmarks) -> list:
    """Attach folders (first) and bookmarks under `parent`; return folders still to expand."""
    pending = []
    for node in folders:
        pending.append((parent.add(f"[bold blue]{escape(node.name)}[/bold blue] [dim]#{node.id}[/dim]"), node))
    for b in bookmarks:
        star = "★ " if b.favorite else ""
        parent.add(f"{star}{escape(b.name)} [dim]{escape(b.url)} #{b.id}[/dim]")
    return list(reversed(pending))
