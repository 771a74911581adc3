from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from calltrail.core.cache import TtlCache
from calltrail.protocols.archive import ExecutableLocator
from calltrail.protocols.storage import FileWriter
from calltrail.storage.atomic import AtomicWriter

logger = logging.getLogger(__name__)

_PACKAGE_DIR = Path(__file__).resolve().parent.parent
_STDERR_TAIL = 2_000

# add, 7z container, max level, LZMA2, solid, multithreaded, assume yes
SEVEN_ZIP_ARGS: tuple[str, ...] = ("a", "-t7z", "-mx=9", "-m0=lzma2", "-ms=on", "-mmt=on", "-y")


@dataclass(frozen=True, slots=True)
class CompressResult:
    ok: bool
    archive_path: Path | None = None
    exit_code: int | None = None
    stderr: str = ""
    error: str | None = None


def default_executable_name() -> str:
    return "7za.exe" if sys.platform == "win32" else "7za"


class CandidatePathLocator:
    """Find the 7-Zip binary by probing an ordered list of ``bin/`` directories.

    Probe order: the configured override directory, ``bin/`` beside the calls
    directory's parent, the package's own ``bin/``, a few ancestors of that
    parent, then the working directory.  When nothing is found the first
    fallback name on ``PATH`` is used, else the bare executable name.
    """

    def __init__(
        self,
        executable_name: str | None = None,
        override_dir: str | Path | None = None,
        ancestor_depth: int = 4,
        fallback_names: Sequence[str] = ("7zz", "7za", "7z"),
        cache: TtlCache[str, str] | None = None,
        cwd: str | Path | None = None,
    ) -> None:
        self._executable_name = executable_name or default_executable_name()
        self._override_dir = Path(override_dir) if override_dir is not None else None
        self._ancestor_depth = ancestor_depth
        self._fallback_names = tuple(fallback_names)
        self._cache = cache
        self._cwd = Path(cwd) if cwd is not None else None

    def candidates(self, search_root: Path) -> list[Path]:
        exe = self._executable_name
        owner_dir = search_root.resolve().parent
        found: list[Path] = []
        if self._override_dir is not None:
            found.append(self._override_dir / exe)
        found.append(owner_dir / "bin" / exe)
        found.append(_PACKAGE_DIR / "bin" / exe)
        ancestor = owner_dir
        for _ in range(self._ancestor_depth):
            if ancestor.parent == ancestor:
                break
            ancestor = ancestor.parent
            found.append(ancestor / "bin" / exe)
        found.append((self._cwd or Path.cwd()) / "bin" / exe)
        return found

    def locate(self, search_root: Path) -> str:
        cache_key = str(search_root)
        if self._cache is not None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                return cached

        resolved = self._probe(search_root)
        if self._cache is not None:
            self._cache.set(cache_key, resolved)
        return resolved

    def _probe(self, search_root: Path) -> str:
        for candidate in self.candidates(search_root):
            if candidate.is_file():
                logger.debug("Using compressor at %s", candidate)
                return str(candidate)
        for name in self._fallback_names:
            on_path = shutil.which(name)
            if on_path:
                logger.debug("Using compressor from PATH: %s", on_path)
                return on_path
        return self._executable_name


class SevenZipCompressor:
    """Solid 7z compression through the external ``7za`` binary."""

    def __init__(
        self,
        locator: ExecutableLocator | None = None,
        writer: FileWriter | None = None,
        timeout_seconds: float | None = None,
        runner: Callable[..., subprocess.CompletedProcess[Any]] = subprocess.run,
    ) -> None:
        self._locator = locator or CandidatePathLocator()
        self._writer = writer or AtomicWriter()
        self._timeout_seconds = timeout_seconds
        self._runner = runner

    def build_command(self, executable: str, tmp: Path, inputs: Sequence[str]) -> list[str]:
        return [executable, *SEVEN_ZIP_ARGS, str(tmp), *inputs]

    def compress(self, input_paths: Sequence[Path], dest_path: Path) -> CompressResult:
        if not input_paths:
            return CompressResult(ok=False, error="no input paths")

        workdir = dest_path.parent
        try:
            workdir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            return CompressResult(ok=False, error=str(exc))

        executable = self._locator.locate(workdir)
        tmp = self._writer.temp_path_for(dest_path)
        inputs = [os.path.relpath(Path(path), workdir) for path in input_paths]
        command = self.build_command(executable, tmp.relative_to(workdir), inputs)

        try:
            completed = self._runner(
                command,
                cwd=str(workdir),
                capture_output=True,
                text=True,
                timeout=self._timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired:
            tmp.unlink(missing_ok=True)
            return CompressResult(ok=False, error=f"compressor timed out after {self._timeout_seconds}s")
        except (OSError, subprocess.SubprocessError) as exc:
            tmp.unlink(missing_ok=True)
            return CompressResult(ok=False, error=f"failed to start {executable}: {exc}")

        stderr = (completed.stderr or "")[-_STDERR_TAIL:]
        if completed.returncode != 0:
            tmp.unlink(missing_ok=True)
            return CompressResult(
                ok=False,
                exit_code=completed.returncode,
                stderr=stderr,
                error=f"{Path(executable).name} exited with code {completed.returncode}",
            )
        if not tmp.is_file():
            return CompressResult(
                ok=False,
                exit_code=completed.returncode,
                stderr=stderr,
                error=f"compressor reported success but {tmp.name} is missing",
            )

        committed = self._writer.commit(tmp, dest_path)
        if not committed.ok:
            return CompressResult(
                ok=False,
                exit_code=completed.returncode,
                stderr=stderr,
                error=f"archive rename failed: {committed.error}",
            )
        return CompressResult(ok=True, archive_path=dest_path, exit_code=0, stderr=stderr)


__all__ = [
    "SEVEN_ZIP_ARGS",
    "CandidatePathLocator",
    "CompressResult",
    "SevenZipCompressor",
    "default_executable_name",
]
