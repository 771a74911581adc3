from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from calltrail.archive.compressor import CompressResult


@runtime_checkable
class Compressor(Protocol):
    def compress(self, input_paths: Sequence[Path], dest_path: Path) -> CompressResult: ...


@runtime_checkable
class ExecutableLocator(Protocol):
    def locate(self, search_root: Path) -> str: ...


__all__ = ["Compressor", "ExecutableLocator"]
