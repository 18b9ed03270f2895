from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Union

LineKind = Literal["context", "add", "remove"]

BEGIN_MARKER = "*** Begin Patch"
END_MARKER = "*** End Patch"
ADD_HEADER = "*** Add File: "
DELETE_HEADER = "*** Delete File: "
UPDATE_HEADER = "*** Update File: "
MOVE_HEADER = "*** Move to: "


@dataclass(frozen=True)
class PatchLine:
    kind: LineKind
    text: str


@dataclass
class Hunk:
    lines: list[PatchLine] = field(default_factory=list)

    def patterns(self) -> tuple[list[str], list[str]]:
        """(old, new): context+removed lines, context+added lines."""
        old: list[str] = []
        new: list[str] = []
        for line in self.lines:
            if line.kind == "context":
                old.append(line.text)
                new.append(line.text)
            elif line.kind == "remove":
                old.append(line.text)
            else:
                new.append(line.text)
        return old, new


@dataclass
class AddFile:
    path: str
    lines: list[str] = field(default_factory=list)


@dataclass
class DeleteFile:
    path: str


@dataclass
class UpdateFile:
    path: str
    move_to: str | None = None
    hunks: list[Hunk] = field(default_factory=list)


Operation = Union[AddFile, DeleteFile, UpdateFile]


@dataclass
class PatchDocument:
    operations: list[Operation]


@dataclass
class ApplyStats:
    operations: int = 0
    files_changed: int = 0
    added: int = 0
    updated: int = 0
    deleted: int = 0
    moved: int = 0

    def summary(self) -> str:
        return (
            f"ops:{self.operations} files_changed:{self.files_changed} added:{self.added} "
            f"updated:{self.updated} deleted:{self.deleted} moved:{self.moved}"
        )


# ---------------------------------------------------------------------------
# Error taxonomy
# ---------------------------------------------------------------------------

class PatchError(RuntimeError):
    detail = "patch failed"

    def __init__(self, path: str | None = None):
        self.path = path
        super().__init__(self.detail if path is None else f"{self.detail}: {path}")


class AddTargetExists(PatchError):
    detail = "add target already exists (use *** Update File instead)"


class DeleteTargetMissing(PatchError):
    detail = "delete target file not found"


class UpdateTargetMissing(PatchError):
    detail = "update target file not found (use *** Add File for new files)"


class PatchContextNotFound(PatchError):
    detail = "patch context not found in target file"


class MissingBeginPatch(PatchError):
    detail = "missing *** Begin Patch header"


class MissingEndPatch(PatchError):
    detail = "missing *** End Patch trailer"


class InvalidPatchHeader(PatchError):
    detail = "invalid patch operation header"


class InvalidPatchPath(PatchError):
    detail = "invalid or empty patch path"


class InvalidAddFileLine(PatchError):
    detail = "invalid add-file body line (expected leading +)"


class InvalidUpdateLine(PatchError):
    detail = "invalid update hunk line (expected ' ', '+', '-', or @@)"


class EmptyPatchOperations(PatchError):
    detail = "patch contains no operations"


class PatchApplyFailed(RuntimeError):
    """An operation failed after `committed` operations were already written.

    `error` is the PatchError or OSError that stopped the patch; nothing
    already written is rolled back.
    """

    def __init__(self, error: Exception, committed: ApplyStats):
        self.error = error
        self.committed = committed
        super().__init__(str(error))
