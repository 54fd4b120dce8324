from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from letter_logic.graph.model import Graph


DiagnosticSeverity = Literal["error", "warning", "info"]


@dataclass(slots=True)
class LoadDiagnostic:
    code: str
    severity: DiagnosticSeverity
    message: str
    node_id: str | None = None
    path: str | None = None
    hint: str | None = None


@dataclass(slots=True)
class LoadResult:
    ok: bool
    diagnostics: list[LoadDiagnostic]
    graph: Graph | None = None

    @property
    def errors(self) -> list[LoadDiagnostic]:
        return [item for item in self.diagnostics if item.severity == "error"]

    @property
    def warnings(self) -> list[LoadDiagnostic]:
        return [item for item in self.diagnostics if item.severity == "warning"]
