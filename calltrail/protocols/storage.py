from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from calltrail.storage.atomic import WriteResult


@runtime_checkable
class FileWriter(Protocol):
    def temp_path_for(self, path: str | Path) -> Path: ...

    def write(self, path: str | Path, contents: str | bytes) -> WriteResult: ...

    def commit(self, tmp: str | Path, path: str | Path) -> WriteResult: ...


__all__ = ["FileWriter"]
