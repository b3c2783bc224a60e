"""Record models produced by the entity extractor.

Records are immutable snapshots of one extraction pass over one buffer. After
any mutation the whole list is recomputed; nothing here is patched in place.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from parse.spans import Span

FunctionKind = Literal["declaration", "expression", "arrow", "class-method", "class"]
ExportKind = Literal["none", "named", "default", "commonjs-default", "commonjs-named"]
BindingKind = Literal["var", "let", "const", "class-field", "assignment"]
ContextKind = Literal["class", "function"]
VariableTargetMode = Literal["binding", "declarator", "declaration"]

RECORD_SCHEMA_VERSION = 1


class EnclosingContext(BaseModel):
    """A class or function wrapping a record."""

    model_config = ConfigDict(frozen=True)

    kind: ContextKind
    name: str | None
    span: Span
    function_kind: FunctionKind | None = None


class FunctionRecord(BaseModel):
    """A function-like construct: declaration, expression, arrow, method or class."""

    model_config = ConfigDict(frozen=True)

    schema_version: int = Field(default=RECORD_SCHEMA_VERSION)
    index: int
    name: str
    canonical_name: str
    scope_chain: tuple[str, ...]
    kind: FunctionKind
    export_kind: ExportKind = "none"
    replaceable: bool = True
    span: Span
    identifier_span: Span | None = None
    hash: str
    full_hash: str
    path_signature: str
    enclosing_contexts: tuple[EnclosingContext, ...] = ()
    line: int
    column: int
    end_line: int
    is_async: bool = False
    is_generator: bool = False

    @property
    def entity(self) -> Literal["function"]:
        return "function"

    @property
    def exported(self) -> bool:
        return self.export_kind != "none"

    @property
    def display_name(self) -> str:
        return self.canonical_name or self.name


class VariableRecord(BaseModel):
    """A binding: declarator, destructured name, class field or export assignment."""

    model_config = ConfigDict(frozen=True)

    schema_version: int = Field(default=RECORD_SCHEMA_VERSION)
    index: int
    name: str
    canonical_name: str
    scope_chain: tuple[str, ...]
    binding_kind: BindingKind
    export_kind: ExportKind = "none"
    initializer_type: str | None = None
    replaceable: bool = True
    span: Span
    binding_span: Span
    declaration_span: Span
    identifier_span: Span | None = None
    hash: str
    full_hash: str
    declarator_hash: str
    declaration_hash: str
    binding_hash: str
    path_signature: str
    binding_path_signature: str
    declaration_path_signature: str
    enclosing_contexts: tuple[EnclosingContext, ...] = ()
    line: int
    column: int
    end_line: int

    @property
    def entity(self) -> Literal["variable"]:
        return "variable"

    @property
    def kind(self) -> str:
        return self.binding_kind

    @property
    def exported(self) -> bool:
        return self.export_kind != "none"

    @property
    def display_name(self) -> str:
        return self.canonical_name or self.name

    def target_span(self, mode: VariableTargetMode = "declarator") -> Span:
        if mode == "binding":
            return self.binding_span
        if mode == "declaration":
            return self.declaration_span
        return self.span

    def target_path_signature(self, mode: VariableTargetMode = "declarator") -> str:
        if mode == "binding":
            return self.binding_path_signature
        if mode == "declaration":
            return self.declaration_path_signature
        return self.path_signature


class ExtractionResult(BaseModel):
    """Everything one extraction pass learns about a buffer."""

    model_config = ConfigDict(frozen=True)

    path: str | None = None
    functions: tuple[FunctionRecord, ...] = ()
    variables: tuple[VariableRecord, ...] = ()

    def find_by_path(
        self, signature: str, entity: Literal["function", "variable"] = "function"
    ) -> FunctionRecord | VariableRecord | None:
        if entity == "function":
            for fn in self.functions:
                if fn.path_signature == signature:
                    return fn
            return None
        for var in self.variables:
            if signature in (
                var.path_signature,
                var.binding_path_signature,
                var.declaration_path_signature,
            ):
                return var
        return None


Record = FunctionRecord | VariableRecord

__all__ = [
    "RECORD_SCHEMA_VERSION",
    "BindingKind",
    "ContextKind",
    "EnclosingContext",
    "ExportKind",
    "ExtractionResult",
    "FunctionKind",
    "FunctionRecord",
    "Record",
    "VariableRecord",
    "VariableTargetMode",
]
