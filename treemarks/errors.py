from __future__ import annotations

from typing import Optional


class TreeError(Exception):
    """Base class for everything treemarks raises on purpose."""


class NotFound(TreeError, LookupError):
    def __init__(self, kind: str, item_id: int):
        self.kind = str(getattr(kind, "value", kind))
        self.item_id = item_id
        super().__init__(f"{self.kind} {item_id} not found in tree")


class ParentNotFound(TreeError, LookupError):
    def __init__(self, parent_id: int):
        self.parent_id = parent_id
        super().__init__(f"parent folder {parent_id} not found in tree")


class CycleDetected(TreeError, ValueError):
    def __init__(self, folder_id: int, target_id: Optional[int]):
        self.folder_id = folder_id
        self.target_id = target_id
        super().__init__(f"cannot move folder {folder_id} into {target_id}: target is inside its own subtree")


class DuplicateId(TreeError, ValueError):
    def __init__(self, kind: str, item_id: int):
        self.kind = str(getattr(kind, "value", kind))
        self.item_id = item_id
        super().__init__(f"{self.kind} {item_id} is already in the tree elsewhere")


class SyncError(TreeError):
    """The remote side of an operation failed; the cache was left untouched."""


class NetworkFailure(SyncError):
    pass


class RemoteRejection(SyncError):
    def __init__(self, status_code: Optional[int], detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        msg = f"server rejected request (status={status_code})"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)
