"""Import/call relationships and the workspace call graph."""

from relations.analyzer import (
    CallsResult,
    DependencyResult,
    ImpactResult,
    ImportsResult,
    RelationshipAnalyzer,
    UsageResult,
    impact_level,
    risk_level,
)
from relations.callgraph import (
    CallGraph,
    build_call_graph,
    build_callee_graph,
    call_cycles,
    dead_code,
    hot_paths,
    traverse,
)
from relations.session import AnalysisSession

__all__ = [
    "AnalysisSession",
    "CallGraph",
    "CallsResult",
    "DependencyResult",
    "ImpactResult",
    "ImportsResult",
    "RelationshipAnalyzer",
    "UsageResult",
    "build_call_graph",
    "build_callee_graph",
    "call_cycles",
    "dead_code",
    "hot_paths",
    "impact_level",
    "risk_level",
    "traverse",
]
