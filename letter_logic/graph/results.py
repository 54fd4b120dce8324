from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from letter_logic.graph.instructions import RenderInstruction
from letter_logic.graph.registry import RuleLevel


Outcome = Literal["clean", "advisory", "aborted", "cancelled"]


@dataclass(slots=True)
class Violation:
    rule_id: str
    rule_name: str
    level: RuleLevel
    message: str
    node_id: str | None = None
    regulation: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "ruleId": self.rule_id,
            "ruleName": self.rule_name,
            "level": self.level,
            "message": self.message,
        }
        if self.node_id:
            payload["nodeId"] = self.node_id
        if self.regulation:
            payload["regulation"] = self.regulation
        return payload


@dataclass(slots=True)
class ReviewFlag:
    node_id: str
    message: str
    category: str = "review"

    def to_dict(self) -> dict[str, Any]:
        return {"nodeId": self.node_id, "message": self.message, "category": self.category}


@dataclass(slots=True)
class EvaluationResult:
    rendered_content: str = ""
    violations: list[Violation] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    derived_variables: dict[str, Any] = field(default_factory=dict)
    aborted: bool = False
    cancelled: bool = False
    abort_reason: str | None = None
    flags: list[ReviewFlag] = field(default_factory=list)
    instructions: list[RenderInstruction] = field(default_factory=list)
    visited_nodes: list[str] = field(default_factory=list)
    snapshot_hash: str = ""
    channel: str | None = None
    language: str | None = None
    variation: str | None = None

    @property
    def outcome(self) -> Outcome:
        if self.cancelled:
            return "cancelled"
        if self.aborted:
            return "aborted"
        if self.violations:
            return "advisory"
        return "clean"

    def to_dict(self) -> dict[str, Any]:
        return {
            "renderedContent": self.rendered_content,
            "violations": [item.to_dict() for item in self.violations],
            "warnings": list(self.warnings),
            "derivedVariables": _jsonable(self.derived_variables),
            "aborted": self.aborted,
            "cancelled": self.cancelled,
            "outcome": self.outcome,
            "abortReason": self.abort_reason,
            "flags": [item.to_dict() for item in self.flags],
            "visitedNodes": list(self.visited_nodes),
            "channel": self.channel,
            "language": self.language,
            "variation": self.variation,
            "snapshotHash": self.snapshot_hash,
        }


def _jsonable(value: object) -> object:
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)
