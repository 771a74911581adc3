from __future__ import annotations

import subprocess
from collections.abc import Sequence
from pathlib import Path

from calltrail.archive.compressor import SEVEN_ZIP_ARGS, CompressResult
from calltrail.storage.atomic import WriteResult

_SEVEN_ZIP_MAGIC = b"7z\xbc\xaf\x27\x1c"


class FakeSevenZip:
    """Drop-in for ``subprocess.run`` that behaves like a 7za invocation."""

    def __init__(self, returncode: int = 0, stderr: str = "", write_output: bool = True) -> None:
        self.returncode = returncode
        self.stderr = stderr
        self.write_output = write_output
        self.calls: list[dict[str, object]] = []

    def __call__(self, command: Sequence[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        self.calls.append({"command": list(command), **kwargs})
        if self.returncode == 0 and self.write_output:
            tmp = Path(str(kwargs["cwd"])) / command[1 + len(SEVEN_ZIP_ARGS)]
            tmp.write_bytes(_SEVEN_ZIP_MAGIC)
        return subprocess.CompletedProcess(
            args=list(command),
            returncode=self.returncode,
            stdout="",
            stderr=self.stderr,
        )


class StaticLocator:
    def __init__(self, executable: str = "7za") -> None:
        self.executable = executable
        self.roots: list[Path] = []

    def locate(self, search_root: Path) -> str:
        self.roots.append(search_root)
        return self.executable


class RecordingCompressor:
    """Compressor that writes a placeholder archive, or fails for selected buckets."""

    def __init__(self, fail_keys: set[str] | None = None) -> None:
        self.fail_keys = fail_keys or set()
        self.calls: list[tuple[list[Path], Path]] = []

    def compress(self, input_paths: Sequence[Path], dest_path: Path) -> CompressResult:
        self.calls.append((list(input_paths), dest_path))
        if any(path.name in self.fail_keys for path in input_paths):
            return CompressResult(ok=False, exit_code=2, stderr="boom", error="7za exited with code 2")
        dest_path.write_bytes(_SEVEN_ZIP_MAGIC)
        return CompressResult(ok=True, archive_path=dest_path, exit_code=0)


class FailingWriter:
    def __init__(self, error: str = "disk full") -> None:
        self.error = error

    def temp_path_for(self, path: str | Path) -> Path:
        return Path(f"{path}.tmp-0-000000")

    def write(self, path: str | Path, contents: str | bytes) -> WriteResult:
        del contents
        return WriteResult(ok=False, path=Path(path), error=self.error)

    def commit(self, tmp: str | Path, path: str | Path) -> WriteResult:
        del tmp
        return WriteResult(ok=False, path=Path(path), error=self.error)


class ExplodingWriter(FailingWriter):
    def write(self, path: str | Path, contents: str | bytes) -> WriteResult:
        raise RuntimeError("unexpected writer bug")
