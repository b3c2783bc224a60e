"""Importer, callee, usage and impact queries over an AnalysisSession."""

from __future__ import annotations

import logging
from collections import Counter, deque
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field

from errors import SpanguardError
from parse.calls import calls_within
from selection.grammar import parse_selector
from selection.resolve import match_records, resolve_one

if TYPE_CHECKING:
    from pathlib import Path

    from extract.records import FunctionRecord
    from parse.imports import ImportRecord
    from relations.session import AnalysisSession

logger = logging.getLogger(__name__)

RiskLevel = Literal["LOW", "MEDIUM", "HIGH"]
ImpactLevel = Literal["NONE", "LOW", "MEDIUM", "HIGH"]

RECOMMENDATIONS: dict[RiskLevel, str] = {
    "HIGH": "High usage - refactor carefully, update all importers",
    "MEDIUM": "Moderate usage - run full test suite after changes",
    "LOW": "Safe to refactor - limited usage",
}


class ImportUse(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    kind: str
    names: tuple[str, ...]
    line: int
    strategy: str


class ImporterEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    file: str
    imports: tuple[ImportUse, ...]
    count: int


class ImportsResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    target: str
    importers: tuple[ImporterEntry, ...] = ()
    import_summary: dict[str, int] = Field(default_factory=dict)
    importer_count: int = 0
    total_import_count: int = 0
    warning: str | None = None


class CalleeEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    callee: str
    name: str | None
    line: int
    column: int
    is_member: bool
    is_new: bool
    external: bool
    source: str | None = None


class CallsResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    target: str
    file: str | None = None
    function: str | None = None
    callees: tuple[CalleeEntry, ...] = ()
    internal_calls: tuple[CalleeEntry, ...] = ()
    external_calls: tuple[CalleeEntry, ...] = ()
    call_count: int = 0
    internal_call_count: int = 0
    external_call_count: int = 0
    warning: str | None = None


class CallUse(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    line: int
    column: int
    context: str


class FileCalls(BaseModel):
    model_config = ConfigDict(frozen=True)

    file: str
    calls: tuple[CallUse, ...]
    count: int


class UsageBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    direct_imports: tuple[ImporterEntry, ...] = ()
    function_calls: tuple[FileCalls, ...] = ()
    reexports: tuple[str, ...] = ()


class UsageResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    target: str
    export: str | None = None
    usage: UsageBreakdown = UsageBreakdown()
    total_usage_count: int = 0
    risk_level: RiskLevel = "LOW"
    recommendation: str = RECOMMENDATIONS["LOW"]
    warning: str | None = None


class DependencyEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    file: str
    depth: int
    chain: tuple[str, ...]


class DependencyResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    target: str
    max_depth: int
    dependencies: tuple[DependencyEntry, ...] = ()
    external: tuple[str, ...] = ()
    depth: int = 0
    warning: str | None = None


class ExportImpact(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    kind: str
    line: int
    usage_count: int
    used_by: tuple[str, ...]
    risk: ImpactLevel


class ImpactSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_exports: int = 0
    high_risk: int = 0
    medium_risk: int = 0
    low_risk: int = 0
    safe_to_modify: tuple[str, ...] = ()


class Recommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["warning", "info"]
    message: str


class ImpactResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    file: str
    exports: tuple[ExportImpact, ...] = ()
    summary: ImpactSummary = ImpactSummary()
    recommendations: tuple[Recommendation, ...] = ()
    warning: str | None = None


def risk_level(total: int, *, medium: int = 5, high: int = 20) -> RiskLevel:
    if total > high:
        return "HIGH"
    if total > medium:
        return "MEDIUM"
    return "LOW"


def impact_level(count: int) -> ImpactLevel:
    if count == 0:
        return "NONE"
    if count <= 2:
        return "LOW"
    if count <= 10:
        return "MEDIUM"
    return "HIGH"


def _import_use(record: ImportRecord) -> ImportUse:
    return ImportUse(
        source=record.source,
        kind=record.kind,
        names=tuple(spec.imported for spec in record.specifiers),
        line=record.line,
        strategy=record.strategy,
    )


def _summary_key(record: ImportRecord) -> list[str]:
    if not record.specifiers:
        return [record.source]
    return [spec.imported for spec in record.specifiers]


_BINDING_ROOTS = frozenset({"*", "default", "module.exports"})


def _call_heads(
    records: list[ImportRecord], name: str | None
) -> tuple[set[str], set[str]]:
    """Local names whose calls use the export directly, and namespace-like bindings."""
    direct: set[str] = set()
    namespaces: set[str] = set()
    for record in records:
        if record.kind == "reexport":
            continue
        for spec in record.specifiers:
            if name is None or spec.imported == name:
                direct.add(spec.local)
            elif name == "default" and spec.imported == "module.exports":
                direct.add(spec.local)
            elif spec.imported in _BINDING_ROOTS:
                namespaces.add(spec.local)
    return direct, namespaces


def _line_snippet(source: bytes, start: int) -> str:
    line_start = source.rfind(b"\n", 0, start) + 1
    line_end = source.find(b"\n", start)
    if line_end == -1:
        line_end = len(source)
    return source[line_start:line_end].decode("utf-8", errors="replace").strip()


class RelationshipAnalyzer:
    """Answers "what imports this", "what does this call" and "who uses this"."""

    def __init__(self, session: AnalysisSession) -> None:
        self.session = session

    # --- imports ------------------------------------------------------------

    def _importing_records(self, target: Path) -> list[tuple[Path, list[ImportRecord]]]:
        found: list[tuple[Path, list[ImportRecord]]] = []
        for path in self.session.files():
            if path == target:
                continue
            records = [
                record
                for record in self.session.module_table(path).imports
                if record.is_relative and self.session.resolve_import(record.source, path) == target
            ]
            if records:
                found.append((path, records))
        return found

    def what_imports(self, target: str | Path) -> ImportsResult:
        """Files whose relative imports resolve to ``target``."""
        path = self.session.resolve_path(target)
        label = self.session.relative(path)
        if not path.is_file():
            return ImportsResult(target=label, warning=f"Target not found: {target}")

        importers: list[ImporterEntry] = []
        summary: Counter[str] = Counter()
        for importer, records in self._importing_records(path):
            importers.append(
                ImporterEntry(
                    file=self.session.relative(importer),
                    imports=tuple(_import_use(record) for record in records),
                    count=len(records),
                )
            )
            for record in records:
                summary.update(_summary_key(record))

        return ImportsResult(
            target=label,
            importers=tuple(importers),
            import_summary=dict(sorted(summary.items())),
            importer_count=len(importers),
            total_import_count=sum(entry.count for entry in importers),
        )

    # --- calls --------------------------------------------------------------

    def _locate_function(
        self, selector: str, file: str | Path | None
    ) -> tuple[Path, FunctionRecord] | None:
        if file is not None:
            path = self.session.resolve_path(file)
            try:
                record = resolve_one(self.session.extraction(path), selector, select=1)
            except SpanguardError as exc:
                logger.debug("what_calls: %s", exc)
                return None
            return path, record  # type: ignore[return-value]
        parsed = parse_selector(selector, "function")
        for path in self.session.files():
            hits = match_records(parsed, self.session.extraction(path).functions)
            if hits:
                return path, hits[0]  # type: ignore[return-value]
        return None

    def what_calls(self, selector: str, *, file: str | Path | None = None) -> CallsResult:
        """Every call made inside the function ``selector`` names.

        Calls whose head identifier is an import binding are external; the
        rest are internal.
        """
        located = self._locate_function(selector, file)
        if located is None:
            return CallsResult(target=selector, warning=f"Function not found: {selector}")
        path, record = located

        bindings: dict[str, str] = {}
        for imp in self.session.module_table(path).imports:
            for spec in imp.specifiers:
                bindings[spec.local] = imp.source

        callees: list[CalleeEntry] = []
        for site in calls_within(self.session.calls(path), record.span):
            head = site.callee.split(".", 1)[0]
            source = bindings.get(head)
            callees.append(
                CalleeEntry(
                    callee=site.callee,
                    name=site.name,
                    line=site.line,
                    column=site.column,
                    is_member=site.is_member,
                    is_new=site.is_new,
                    external=source is not None,
                    source=source,
                )
            )
        internal = tuple(c for c in callees if not c.external)
        external = tuple(c for c in callees if c.external)
        return CallsResult(
            target=selector,
            file=self.session.relative(path),
            function=record.canonical_name,
            callees=tuple(callees),
            internal_calls=internal,
            external_calls=external,
            call_count=len(callees),
            internal_call_count=len(internal),
            external_call_count=len(external),
        )

    # --- usage --------------------------------------------------------------

    def export_usage(self, target: str | Path, *, name: str | None = None) -> UsageResult:
        """Importers, calls through imported bindings, and re-exports of ``target``.

        With ``name`` only bindings of that export are followed.
        """
        imports = self.what_imports(target)
        if imports.warning:
            return UsageResult(target=imports.target, export=name, warning=imports.warning)
        path = self.session.resolve_path(target)

        reaching = _BINDING_ROOTS | {name}
        direct: list[ImporterEntry] = []
        calls: list[FileCalls] = []
        reexports: list[str] = []
        for importer, records in self._importing_records(path):
            rel = self.session.relative(importer)
            relevant = [
                record
                for record in records
                if name is None or any(spec.imported in reaching for spec in record.specifiers)
            ]
            if not relevant:
                continue
            direct.append(
                ImporterEntry(
                    file=rel,
                    imports=tuple(_import_use(record) for record in relevant),
                    count=len(relevant),
                )
            )
            if any(record.kind == "reexport" for record in relevant):
                reexports.append(rel)

            locals_, namespaces = _call_heads(relevant, name)
            source = self.session.source(importer)
            used: list[CallUse] = []
            for site in self.session.calls(importer):
                head, _, rest = site.callee.partition(".")
                if head in locals_ or (head in namespaces and rest == name):
                    used.append(
                        CallUse(
                            name=site.callee,
                            line=site.line,
                            column=site.column,
                            context=_line_snippet(source, site.span.start),
                        )
                    )
            if used:
                calls.append(FileCalls(file=rel, calls=tuple(used), count=len(used)))

        total = len(direct) + sum(entry.count for entry in calls) + len(reexports)
        thresholds = self.session.config.risk
        level = risk_level(
            total, medium=thresholds.medium_threshold, high=thresholds.high_threshold
        )
        return UsageResult(
            target=imports.target,
            export=name,
            usage=UsageBreakdown(
                direct_imports=tuple(direct),
                function_calls=tuple(calls),
                reexports=tuple(reexports),
            ),
            total_usage_count=total,
            risk_level=level,
            recommendation=RECOMMENDATIONS[level],
        )

    # --- dependencies -------------------------------------------------------

    def transitive_dependencies(self, target: str | Path, max_depth: int = 2) -> DependencyResult:
        """Files reachable through relative imports, breadth first."""
        start = self.session.resolve_path(target)
        label = self.session.relative(start)
        if not start.is_file():
            return DependencyResult(
                target=label, max_depth=max_depth, warning=f"Target not found: {target}"
            )

        visited = {start}
        dependencies: list[DependencyEntry] = []
        external: set[str] = set()
        reached = 0
        queue: deque[tuple[Path, int, tuple[str, ...]]] = deque([(start, 0, (label,))])
        while queue:
            path, depth, chain = queue.popleft()
            if max_depth and depth >= max_depth:
                continue
            for record in self.session.module_table(path).imports:
                resolved = self.session.resolve_import(record.source, path)
                if resolved is None:
                    external.add(record.source)
                    continue
                if resolved in visited:
                    continue
                visited.add(resolved)
                rel = self.session.relative(resolved)
                dependencies.append(DependencyEntry(file=rel, depth=depth + 1, chain=(*chain, rel)))
                reached = max(reached, depth + 1)
                queue.append((resolved, depth + 1, (*chain, rel)))

        return DependencyResult(
            target=label,
            max_depth=max_depth,
            dependencies=tuple(dependencies),
            external=tuple(sorted(external)),
            depth=reached,
        )

    # --- impact -------------------------------------------------------------

    def impact_preview(self, target: str | Path) -> ImpactResult:
        """Per-export usage counts and risk for a file about to change."""
        path = self.session.resolve_path(target)
        label = self.session.relative(path)
        if not path.is_file():
            return ImpactResult(file=label, warning=f"File not found: {target}")

        seen: dict[str, tuple[str, int]] = {}
        for entry in self.session.module_table(path).exports:
            if entry.kind == "reexport-all":
                continue
            seen.setdefault(entry.name, (entry.kind, entry.line))
        names = list(seen)

        counts: Counter[str] = Counter()
        users: dict[str, set[str]] = {name: set() for name in names}
        for importer, records in self._importing_records(path):
            rel = self.session.relative(importer)
            for record in records:
                for spec in record.specifiers:
                    if spec.imported == "*":
                        hit = names
                    elif spec.imported == "module.exports":
                        hit = ["default"] if "default" in seen else []
                    else:
                        hit = [spec.imported] if spec.imported in seen else []
                    for export in hit:
                        counts[export] += 1
                        users[export].add(rel)

        exports: list[ExportImpact] = []
        for export in names:
            kind, line = seen[export]
            exports.append(
                ExportImpact(
                    name=export,
                    kind=kind,
                    line=line,
                    usage_count=counts[export],
                    used_by=tuple(sorted(users[export])),
                    risk=impact_level(counts[export]),
                )
            )

        safe = tuple(e.name for e in exports if e.risk == "NONE")
        high = [e.name for e in exports if e.risk == "HIGH"]
        recommendations: list[Recommendation] = []
        if high:
            recommendations.append(
                Recommendation(
                    type="warning",
                    message=(
                        f"High-risk exports ({', '.join(high)}) have >10 usages. "
                        "Refactor carefully and update all importers."
                    ),
                )
            )
        if safe:
            recommendations.append(
                Recommendation(
                    type="info",
                    message=f"Safe to modify/remove: {', '.join(safe)} (no external usages found)",
                )
            )
        if not any(e.usage_count for e in exports):
            recommendations.append(
                Recommendation(
                    type="info",
                    message="This file has no external consumers. Safe to refactor freely.",
                )
            )

        return ImpactResult(
            file=label,
            exports=tuple(exports),
            summary=ImpactSummary(
                total_exports=len(exports),
                high_risk=len(high),
                medium_risk=sum(1 for e in exports if e.risk == "MEDIUM"),
                low_risk=sum(1 for e in exports if e.risk == "LOW"),
                safe_to_modify=safe,
            ),
            recommendations=tuple(recommendations),
        )


__all__ = [
    "RECOMMENDATIONS",
    "CallsResult",
    "DependencyResult",
    "ImpactResult",
    "ImportsResult",
    "RelationshipAnalyzer",
    "UsageResult",
    "impact_level",
    "risk_level",
]
