"""Shared utilities for spanguard-core."""

from __future__ import annotations

from bisect import bisect_right
from pathlib import Path

JS_EXTENSIONS = (".js", ".mjs", ".cjs", ".jsx", ".ts", ".mts", ".cts", ".tsx")


def relative_posix(path: str | Path, root: str | Path) -> str:
    """Return ``path`` relative to ``root`` as a POSIX string.

    Paths outside ``root`` are returned absolute so identifiers stay unique.

    Examples:
        >>> relative_posix("/repo/src/app.js", "/repo")
        'src/app.js'
    """
    path_obj = Path(path)
    root_obj = Path(root)
    try:
        return path_obj.relative_to(root_obj).as_posix()
    except ValueError:
        try:
            return path_obj.resolve().relative_to(root_obj.resolve()).as_posix()
        except (OSError, ValueError):
            return path_obj.as_posix()


def path_to_module_id(file_path: str | Path) -> str:
    """Convert a source path to an extension-less module id.

    Examples:
        >>> path_to_module_id("src/lib/util.js")
        'src/lib/util'
        >>> path_to_module_id("src/lib/index.ts")
        'src/lib'
    """
    path_str = file_path.as_posix() if isinstance(file_path, Path) else str(file_path)
    parts = [part for part in path_str.replace("\\", "/").split("/") if part]
    if parts:
        for ext in JS_EXTENSIONS:
            if parts[-1].endswith(ext):
                parts[-1] = parts[-1][: -len(ext)]
                break
    if len(parts) > 1 and parts[-1] == "index":
        parts = parts[:-1]
    return "/".join(parts)


class LineIndex:
    """Byte offset to 1-based line/column lookups for one buffer."""

    def __init__(self, source: bytes) -> None:
        self._starts = [0]
        index = 0
        length = len(source)
        while index < length:
            byte = source[index]
            if byte == 0x0A:
                self._starts.append(index + 1)
            elif byte == 0x0D:
                if index + 1 < length and source[index + 1] == 0x0A:
                    index += 1
                self._starts.append(index + 1)
            index += 1

    @property
    def line_count(self) -> int:
        return len(self._starts)

    def line_of(self, offset: int) -> int:
        return bisect_right(self._starts, offset)

    def position(self, offset: int) -> tuple[int, int]:
        line = self.line_of(offset)
        return line, offset - self._starts[line - 1] + 1

    def line_start(self, line: int) -> int:
        return self._starts[max(0, min(line, len(self._starts)) - 1)]


def count_lines(text: str) -> int:
    if not text:
        return 0
    return len(text.splitlines())


__all__ = [
    "JS_EXTENSIONS",
    "LineIndex",
    "count_lines",
    "path_to_module_id",
    "relative_posix",
]
