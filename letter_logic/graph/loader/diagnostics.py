from __future__ import annotations

from letter_logic.graph.loader.models import LoadDiagnostic


SEVERITY_ORDER = {"error": 0, "warning": 1, "info": 2}


def render_diagnostic(diagnostic: LoadDiagnostic) -> str:
    location_bits: list[str] = []
    if diagnostic.node_id:
        location_bits.append(f"node={diagnostic.node_id}")
    if diagnostic.path:
        location_bits.append(f"path={diagnostic.path}")

    location = f" ({', '.join(location_bits)})" if location_bits else ""
    hint = f" Hint: {diagnostic.hint}" if diagnostic.hint else ""
    return f"[{diagnostic.severity.upper()}] {diagnostic.code}: {diagnostic.message}{location}.{hint}".rstrip()


def render_diagnostics(diagnostics: list[LoadDiagnostic], *, include_info: bool = False) -> str:
    selected = [item for item in diagnostics if include_info or item.severity != "info"]
    if not selected:
        return ""

    sorted_items = sorted(
        selected,
        key=lambda item: (SEVERITY_ORDER.get(item.severity, 9), item.code, item.node_id or ""),
    )
    return "\n".join(f"- {render_diagnostic(item)}" for item in sorted_items)
