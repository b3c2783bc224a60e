"""Artifact serialization: plan files and JSON helpers."""

from artifacts.plan import PlanArtifact, build_plan, load_plan, write_plan
from artifacts.utils import dumps_json, write_bytes_atomic

__all__ = [
    "PlanArtifact",
    "build_plan",
    "dumps_json",
    "load_plan",
    "write_bytes_atomic",
    "write_plan",
]
