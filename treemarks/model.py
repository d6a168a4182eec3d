from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple, Union


class ItemKind(str, Enum):
    FOLDER = "folder"
    BOOKMARK = "bookmark"


@dataclass(frozen=True)
class Bookmark:
    id: int
    name: str
    url: str
    folder_id: Optional[int] = None
    favorite: bool = False
    favicon: Optional[str] = None
    favicon_url: Optional[str] = None
    created: Optional[datetime] = None


@dataclass(frozen=True)
class Folder:
    id: int
    name: str
    parent_id: Optional[int] = None


@dataclass(frozen=True)
class FolderNode:
    id: int
    name: str
    parent_id: Optional[int] = None
    children: Tuple["FolderNode", ...] = field(default_factory=tuple)
    bookmarks: Tuple[Bookmark, ...] = field(default_factory=tuple)

    @property
    def folder(self) -> Folder:
        return Folder(id=self.id, name=self.name, parent_id=self.parent_id)


@dataclass(frozen=True)
class RootItems:
    root_folders: Tuple[FolderNode, ...] = field(default_factory=tuple)
    root_bookmarks: Tuple[Bookmark, ...] = field(default_factory=tuple)


Item = Union[Bookmark, FolderNode]
