"""
Compliance rule classification.

Rules are triggered during traversal (workflow rule nodes, evaluated in the
scope active at the node) or after it (global rules, evaluated against the
request data). Classification happens once traversal is done, against the
fragments that were actually emitted, so a rule whose required block made it
into the letter is satisfied regardless of where in the graph it came from.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from letter_logic.graph.context import VariableContext
from letter_logic.graph.expressions import ExpressionError, ExpressionEvaluator
from letter_logic.graph.instructions import EmittedContent, RenderInstruction, emitted_content
from letter_logic.graph.registry import RuleLevel, WorkflowRuleConfig
from letter_logic.graph.results import Violation


LOGGER = logging.getLogger(__name__)

LEVEL_ORDER: dict[str, int] = {"blocking": 0, "required": 1, "recommended": 2, "none": 3}


@dataclass(frozen=True, slots=True)
class ComplianceRule:
    rule_id: str
    name: str
    trigger: str
    level: RuleLevel = "required"
    required_action: str = ""
    required_block_id: str | None = None
    required_component_id: str | None = None
    required_flag: str | None = None
    regulation: str | None = None
    node_id: str | None = None

    @classmethod
    def from_workflow_node(cls, node_id: str, config: WorkflowRuleConfig) -> ComplianceRule:
        return cls(
            rule_id=config.rule_id or node_id,
            name=config.rule,
            trigger=config.trigger_condition,
            level=config.effective_level,
            required_action=config.required_action,
            required_block_id=config.required_block_id,
            required_component_id=config.required_component_id,
            required_flag=config.required_flag,
            regulation=config.regulation,
            node_id=node_id,
        )

    def is_satisfied_by(self, emitted: EmittedContent) -> bool:
        requirements = [
            (self.required_block_id, emitted.block_ids),
            (self.required_component_id, emitted.component_ids),
            (self.required_flag, emitted.compliance_flags),
        ]
        declared = [(value, present) for value, present in requirements if value]
        if not declared:
            return False
        return all(value in present for value, present in declared)


@dataclass(frozen=True, slots=True)
class TriggeredRule:
    rule: ComplianceRule
    triggered: bool


@dataclass(slots=True)
class ComplianceReport:
    compliant: bool
    counts: dict[str, int]
    summary: str


class ComplianceChecker:
    def __init__(self, evaluator: ExpressionEvaluator | None = None) -> None:
        self._evaluator = evaluator or ExpressionEvaluator()

    def evaluate_trigger(
        self,
        rule: ComplianceRule,
        context: VariableContext,
        warnings: list[str],
        *,
        report_missing: bool = True,
    ) -> TriggeredRule:
        """Evaluate ``rule.trigger``; a trigger that cannot be evaluated counts as triggered."""
        sink = warnings if report_missing else []
        try:
            triggered = self._evaluator.evaluate_condition(rule.trigger, context, warnings=sink)
        except ExpressionError as exc:
            warnings.append(f"Compliance rule '{rule.name}' trigger could not be evaluated ({exc}); treated as triggered.")
            triggered = True
        return TriggeredRule(rule=rule, triggered=triggered)

    def classify(self, triggered: TriggeredRule, emitted: EmittedContent) -> RuleLevel:
        if not triggered.triggered or triggered.rule.level == "none":
            return "none"
        if triggered.rule.is_satisfied_by(emitted):
            return "none"
        return triggered.rule.level

    def check(
        self,
        triggered_rules: Iterable[TriggeredRule],
        instructions: Sequence[RenderInstruction],
    ) -> list[Violation]:
        emitted = emitted_content(instructions)
        violations: list[Violation] = []
        seen: set[str] = set()
        for item in triggered_rules:
            level = self.classify(item, emitted)
            if level == "none" or item.rule.rule_id in seen:
                continue
            seen.add(item.rule.rule_id)
            violations.append(
                Violation(
                    rule_id=item.rule.rule_id,
                    rule_name=item.rule.name,
                    level=level,
                    message=_violation_message(item.rule),
                    node_id=item.rule.node_id,
                    regulation=item.rule.regulation,
                )
            )
            LOGGER.debug("Compliance rule %s triggered at level %s", item.rule.rule_id, level)
        return sort_violations(violations)


def sort_violations(violations: Iterable[Violation]) -> list[Violation]:
    return sorted(violations, key=lambda item: (LEVEL_ORDER.get(item.level, 9), item.rule_id))


def has_blocking(violations: Iterable[Violation]) -> bool:
    return any(item.level == "blocking" for item in violations)


def build_report(violations: Sequence[Violation]) -> ComplianceReport:
    counts = Counter(item.level for item in violations)
    ordered = {level: counts.get(level, 0) for level in ("blocking", "required", "recommended")}
    compliant = ordered["blocking"] == 0 and ordered["required"] == 0
    summary = f"Compliance Check: {'PASSED' if compliant else 'FAILED'}"
    if violations:
        summary += (
            f" ({ordered['blocking']} blocking, {ordered['required']} required, "
            f"{ordered['recommended']} recommended)"
        )
    return ComplianceReport(compliant=compliant, counts=ordered, summary=summary)


def _violation_message(rule: ComplianceRule) -> str:
    message = rule.required_action or f"Rule '{rule.name}' was triggered"
    missing = [
        f"{label} '{value}'"
        for label, value in (
            ("block", rule.required_block_id),
            ("component", rule.required_component_id),
            ("flag", rule.required_flag),
        )
        if value
    ]
    if missing:
        message += f"; missing {', '.join(missing)}"
    if rule.regulation:
        message += f" ({rule.regulation})"
    return message
