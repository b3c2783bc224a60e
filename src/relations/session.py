"""Per-analysis caches over one workspace snapshot."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from errors import ParseFailure
from extract.records import ExtractionResult
from extract.walker import extract_entities
from parse.calls import extract_calls
from parse.imports import build_module_table, regex_module_table, resolve_import_path
from parse.treesitter_js import parse_source
from rules.config import SpanguardConfig
from scan.files import find_source_files
from utils import relative_posix

if TYPE_CHECKING:
    from collections.abc import Sequence

    from parse.calls import CallSite
    from parse.imports import ModuleTable
    from parse.treesitter_js import ParsedSource
    from relations.callgraph import CallGraph

logger = logging.getLogger(__name__)


class AnalysisSession:
    """Caches parse results for one workspace scan.

    Every relationship and graph query runs against a session; nothing is
    cached at module level. Create a new session to see a changed workspace.
    """

    def __init__(
        self,
        root: Path,
        *,
        config: SpanguardConfig | None = None,
        files: Sequence[Path] | None = None,
    ) -> None:
        self.root = Path(root).resolve()
        self.config = config or SpanguardConfig()
        self._files: list[Path] | None = (
            sorted((Path(f).resolve() for f in files), key=self.relative)
            if files is not None
            else None
        )
        self._sources: dict[Path, bytes] = {}
        self._parsed: dict[Path, ParsedSource | None] = {}
        self._extractions: dict[Path, ExtractionResult] = {}
        self._tables: dict[Path, ModuleTable] = {}
        self._calls: dict[Path, list[CallSite]] = {}
        self._resolved: dict[tuple[str, Path], Path | None] = {}
        self._call_graph: CallGraph | None = None

    def files(self) -> list[Path]:
        """Workspace source files, sorted by relative path."""
        if self._files is None:
            self._files = [
                path.resolve()
                for path in find_source_files(
                    self.root,
                    extensions=self.config.extensions,
                    skip_dir=self.config.plan_dir,
                    include_patterns=self.config.include,
                    exclude_patterns=self.config.exclude,
                    nested_gitignore=self.config.nested_gitignore,
                )
            ]
            logger.debug("session scanned %d files under %s", len(self._files), self.root)
        return self._files

    def resolve_path(self, target: str | Path) -> Path:
        path = Path(target)
        if not path.is_absolute():
            path = self.root / path
        return path.resolve()

    def relative(self, path: Path) -> str:
        return relative_posix(path, self.root)

    def source(self, path: Path) -> bytes:
        if path not in self._sources:
            self._sources[path] = path.read_bytes()
        return self._sources[path]

    def parsed(self, path: Path) -> ParsedSource | None:
        """Parsed tree, or None when the file has syntax errors."""
        if path not in self._parsed:
            try:
                self._parsed[path] = parse_source(self.source(path), path=self.relative(path))
            except ParseFailure as exc:
                logger.warning("skipping structural analysis of %s: %s", self.relative(path), exc)
                self._parsed[path] = None
        return self._parsed[path]

    def extraction(self, path: Path) -> ExtractionResult:
        if path not in self._extractions:
            parsed = self.parsed(path)
            if parsed is None:
                self._extractions[path] = ExtractionResult(path=self.relative(path))
            else:
                self._extractions[path] = extract_entities(parsed)
        return self._extractions[path]

    def module_table(self, path: Path) -> ModuleTable:
        if path not in self._tables:
            parsed = self.parsed(path)
            if parsed is None:
                self._tables[path] = regex_module_table(self.source(path), self.relative(path))
            else:
                self._tables[path] = build_module_table(parsed)
        return self._tables[path]

    def calls(self, path: Path) -> list[CallSite]:
        if path not in self._calls:
            parsed = self.parsed(path)
            if parsed is None:
                self._calls[path] = []
            else:
                self._calls[path] = extract_calls(parsed, self.extraction(path).functions)
        return self._calls[path]

    def resolve_import(self, specifier: str, from_file: Path) -> Path | None:
        key = (specifier, from_file)
        if key not in self._resolved:
            self._resolved[key] = resolve_import_path(specifier, from_file)
        return self._resolved[key]

    def call_graph(self) -> CallGraph:
        """Workspace call graph, built on first use."""
        if self._call_graph is None:
            from relations.callgraph import build_call_graph

            self._call_graph = build_call_graph(self)
        return self._call_graph


__all__ = ["AnalysisSession"]
