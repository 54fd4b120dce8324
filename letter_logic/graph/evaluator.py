"""
Graph traversal.

Evaluation is a single-active-path walk: from the entry node, depth-first,
branching nodes take exactly one outgoing edge while sequence nodes follow
all of theirs in document order. Each node type maps to one handler; a
handler returns the render instructions produced by its node and everything
downstream of it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from langchain_core.tools import BaseTool

from letter_logic.graph.cancellation import Cancelled, CancellationToken
from letter_logic.graph.compliance import ComplianceChecker, ComplianceRule, TriggeredRule, has_blocking
from letter_logic.graph.context import VariableContext, VariableDefinition
from letter_logic.graph.error_handler import ErrorHandler
from letter_logic.graph.expressions import (
    ExpressionError,
    ExpressionEvaluator,
    MissingVariable,
    ParseError,
    parse,
    split_template,
)
from letter_logic.graph.expressions.syntax import VariableRef
from letter_logic.graph.expressions.templates import TEMPLATE_TOKEN_RE
from letter_logic.graph.expressions.tokenizer import WORD_OPERATORS
from letter_logic.graph.expressions.values import is_number, is_truthy
from letter_logic.graph.formatting import coerce_date, to_text
from letter_logic.graph.healthcare_rules import HEALTHCARE_RULES
from letter_logic.graph.hooks import GraphHookRegistry
from letter_logic.graph.instructions import (
    BlockFragment,
    ComponentFragment,
    RenderInstruction,
    RepeatedFragment,
    StyledFragment,
    TextFragment,
    VariableFragment,
)
from letter_logic.graph.model import Edge, Graph, Node
from letter_logic.graph.paths import PathPart, PathSyntaxError, join_path, split_path
from letter_logic.graph.providers import ExternalCallError
from letter_logic.graph.registry import (
    ApiCallConfig,
    DataCallConfig,
    FhirQueryConfig,
    PushDataConfig,
)
from letter_logic.graph.renderer import Renderer
from letter_logic.graph.repository import ContentItem, ContentNotFound, ContentRepository
from letter_logic.graph.results import EvaluationResult, ReviewFlag
from letter_logic.settings import EngineSettings


LOGGER = logging.getLogger(__name__)

Fragments = list[RenderInstruction]
NodeHandler = Callable[["_RunState", Node], Awaitable[Fragments]]

CLOSED_GAP_STATUSES = {"closed", "met", "complete", "completed"}
INACTIVE_STATUSES = {"inactive", "terminated", "termed", "expired"}
LITERAL_WORDS = {"true", "false", "null", "undefined", *WORD_OPERATORS}


@dataclass(slots=True)
class _RunState:
    graph: Graph
    context: VariableContext
    channel: str | None
    language: str
    variation: str
    cancellation: CancellationToken | None
    warnings: list[str] = field(default_factory=list)
    flags: list[ReviewFlag] = field(default_factory=list)
    triggered_rules: list[TriggeredRule] = field(default_factory=list)
    visited: list[str] = field(default_factory=list)
    stopped: bool = False
    aborted: bool = False
    abort_reason: str | None = None

    def check_cancelled(self) -> None:
        if self.cancellation is not None:
            self.cancellation.raise_if_cancelled()


class GraphEvaluator:
    """Evaluates a loaded graph against one data context per call."""

    def __init__(
        self,
        *,
        content_repository: ContentRepository | None = None,
        providers: Mapping[str, BaseTool] | Iterable[BaseTool] | None = None,
        settings: EngineSettings | None = None,
        hook_registry: GraphHookRegistry | None = None,
        error_handler: ErrorHandler | None = None,
        expression_evaluator: ExpressionEvaluator | None = None,
        compliance_checker: ComplianceChecker | None = None,
        global_rules: Iterable[ComplianceRule] = (),
    ) -> None:
        self._repository = content_repository
        self._providers = _provider_map(providers)
        self._settings = settings or EngineSettings()
        self._hooks = hook_registry or GraphHookRegistry()
        self._error_handler = error_handler or ErrorHandler()
        self._expressions = expression_evaluator or ExpressionEvaluator()
        self._checker = compliance_checker or ComplianceChecker(self._expressions)
        self._global_rules = tuple(global_rules)
        self._handlers: dict[str, NodeHandler] = {
            "start": self._pass_through,
            "else": self._pass_through,
            "condition": self._condition,
            "expression": self._expression,
            "switch": self._switch,
            "loop": self._loop,
            "table_loop": self._table_loop,
            "block": self._block,
            "include": self._block,
            "component_insert": self._component,
            "dynamic_text": self._dynamic_text,
            "formatting": self._formatting,
            "alert_style": self._alert_style,
            "hide": self._hide,
            "locale_style": self._locale_style,
            "cms_disclosure": self._mandated_notice,
            "hipaa_notice": self._mandated_notice,
            "language_access": self._mandated_notice,
            "channel": self._channel,
            "channel_fallback": self._channel_fallback,
            "set_language": self._set_language,
            "set_variation": self._set_variation,
            "set_variable": self._set_variable,
            "derived_variable": self._set_variable,
            "query": self._data_call,
            "api_call": self._data_call,
            "push_data": self._data_call,
            "fhir_query": self._data_call,
            "data_join": self._data_join,
            "diagnosis_match": self._diagnosis_match,
            "risk_score": self._risk_score,
            "hedis_trigger": self._hedis_trigger,
            "pcp_assignment": self._pcp_assignment,
            "program_eligibility": self._program_eligibility,
            "workflow_rule": self._workflow_rule,
            "return": self._return,
            "flag": self._flag,
        }

    @property
    def hooks(self) -> GraphHookRegistry:
        return self._hooks

    async def aevaluate(
        self,
        graph: Graph,
        data: Mapping[str, Any] | None = None,
        *,
        channel: str | None = None,
        language: str | None = None,
        variation: str | None = None,
        cancellation: CancellationToken | None = None,
        as_of: date | None = None,
        output_format: str | None = None,
    ) -> EvaluationResult:
        context = VariableContext(
            data,
            definitions=graph.variables,
            as_of=as_of,
            locale=self._settings.default_locale,
        )
        state = _RunState(
            graph=graph,
            context=context,
            channel=channel.strip().lower() if channel else None,
            language=language or self._settings.default_language,
            variation=variation or self._settings.default_variation,
            cancellation=cancellation,
        )
        state.warnings.extend(graph.warnings)

        await self._emit(
            "before_run",
            {"graph_id": graph.graph_id, "snapshot_hash": graph.snapshot_hash, "channel": state.channel},
        )

        try:
            state.check_cancelled()
            instructions = await self._visit(state, graph.entry_id)
        except Cancelled as exc:
            LOGGER.info("Evaluation of graph %s cancelled: %s", graph.graph_id, exc)
            result = self._result(state, cancelled=True, abort_reason=str(exc))
            await self._emit_after_run(state, result)
            return result

        for rule in self._active_global_rules():
            state.triggered_rules.append(
                self._checker.evaluate_trigger(rule, context, state.warnings, report_missing=False)
            )
        violations = self._checker.check(state.triggered_rules, instructions)

        if state.aborted:
            result = self._result(state, violations=violations, aborted=True, abort_reason=state.abort_reason)
        elif has_blocking(violations):
            blocking = ", ".join(item.rule_name for item in violations if item.level == "blocking")
            result = self._result(
                state,
                violations=violations,
                aborted=True,
                abort_reason=f"Blocking compliance violation: {blocking}",
            )
        else:
            renderer = Renderer(
                output_format=output_format or self._settings.render_format,  # type: ignore[arg-type]
                missing_placeholder=self._settings.missing_placeholder,
                fragment_separator=self._settings.fragment_separator,
                default_locale=self._settings.default_locale,
            )
            rendered = renderer.render(instructions, context)
            state.warnings.extend(rendered.warnings)
            result = self._result(
                state,
                violations=violations,
                rendered_content=rendered.content,
                instructions=instructions,
            )

        await self._emit_after_run(state, result)
        return result

    def evaluate(self, graph: Graph, data: Mapping[str, Any] | None = None, **kwargs: Any) -> EvaluationResult:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop and loop.is_running():
            raise RuntimeError(
                "GraphEvaluator.evaluate() cannot be called inside an active event loop. Use await aevaluate()."
            )
        return asyncio.run(self.aevaluate(graph, data, **kwargs))

    def _active_global_rules(self) -> tuple[ComplianceRule, ...]:
        if self._settings.builtin_healthcare_rules:
            return HEALTHCARE_RULES + self._global_rules
        return self._global_rules

    def _result(self, state: _RunState, **values: Any) -> EvaluationResult:
        return EvaluationResult(
            warnings=list(state.warnings),
            derived_variables=state.context.derived_variables(),
            flags=list(state.flags),
            visited_nodes=list(state.visited),
            snapshot_hash=state.graph.snapshot_hash,
            channel=state.channel,
            language=state.language,
            variation=state.variation,
            **values,
        )

    async def _emit_after_run(self, state: _RunState, result: EvaluationResult) -> None:
        await self._emit(
            "after_run",
            {
                "graph_id": state.graph.graph_id,
                "outcome": result.outcome,
                "visited_nodes": list(state.visited),
                "violations": len(result.violations),
            },
        )

    async def _emit(self, event: str, payload: dict[str, Any]) -> None:
        if self._hooks.has_callbacks(event):
            await self._hooks.emit(event, payload)

    # Traversal

    async def _visit(self, state: _RunState, node_id: str) -> Fragments:
        state.check_cancelled()
        if state.stopped:
            return []
        if state.graph.is_shared(node_id):
            # Each path through a shared node gets its own bindings.
            with state.context.child_scope():
                return await self._visit_node(state, state.graph.node(node_id))
        return await self._visit_node(state, state.graph.node(node_id))

    async def _visit_node(self, state: _RunState, node: Node) -> Fragments:
        state.visited.append(node.id)
        await self._emit("before_node", {"node_id": node.id, "node_type": node.type})

        handler = self._handlers[node.type]
        try:
            fragments = await handler(state, node)
        except Cancelled:
            raise
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Node %s (%s) failed: %s", node.id, node.type, exc)
            state.warnings.append(f"Node '{node.id}' ({node.type}) failed: {exc}; branch skipped.")
            await self._emit("on_error", {"node_id": node.id, "node_type": node.type, "error": str(exc)})
            return []

        await self._emit(
            "after_node",
            {"node_id": node.id, "node_type": node.type, "fragments": len(fragments)},
        )
        return fragments

    async def _follow(self, state: _RunState, edges: Iterable[Edge]) -> Fragments:
        fragments: Fragments = []
        for edge in edges:
            if state.stopped:
                break
            fragments.extend(await self._visit(state, edge.target))
        return fragments

    async def _follow_all(self, state: _RunState, node: Node) -> Fragments:
        return await self._follow(state, state.graph.edges_from(node.id))

    async def _follow_label(self, state: _RunState, node: Node, label: str) -> Fragments:
        return await self._follow(state, state.graph.edges_labeled(node.id, label))

    async def _follow_branch(self, state: _RunState, node: Node, outcome: bool) -> Fragments:
        return await self._follow_label(state, node, "true" if outcome else "false")

    async def _follow_unlabeled(self, state: _RunState, node: Node) -> Fragments:
        edges = [edge for edge in state.graph.edges_from(node.id) if edge.label in (None, "next")]
        return await self._follow(state, edges)

    # Flow and logic

    async def _pass_through(self, state: _RunState, node: Node) -> Fragments:
        return await self._follow_all(state, node)

    async def _condition(self, state: _RunState, node: Node) -> Fragments:
        outcome = self._test(state, node, node.config.expression)
        return await self._follow_branch(state, node, outcome)

    async def _expression(self, state: _RunState, node: Node) -> Fragments:
        config = node.config
        if config.expression:
            outcome = self._test(state, node, config.expression)
        elif config.operator == "and":
            outcome = all(self._test(state, node, operand) for operand in config.operands)
        else:
            outcome = any(self._test(state, node, operand) for operand in config.operands)
        return await self._follow_branch(state, node, outcome)

    async def _switch(self, state: _RunState, node: Node) -> Fragments:
        try:
            key = to_text(self._expressions.evaluate(node.config.expression, state.context, warnings=state.warnings))
        except ExpressionError as exc:
            state.warnings.append(f"Switch node '{node.id}' could not evaluate its expression ({exc}).")
            key = None

        if key is not None:
            matched = state.graph.edges_labeled(node.id, key)
            if matched:
                return await self._follow(state, matched)

        default = state.graph.edges_labeled(node.id, "default")
        if default:
            return await self._follow(state, default)
        if key is not None:
            state.warnings.append(f"Switch node '{node.id}' has no case for '{key}' and no default; skipped.")
        return []

    def _test(self, state: _RunState, node: Node, expression: str) -> bool:
        try:
            return self._expressions.evaluate_condition(expression, state.context, warnings=state.warnings)
        except ExpressionError as exc:
            state.warnings.append(f"Node '{node.id}' expression '{expression}' failed ({exc}); took the false branch.")
            return False

    # Loops

    async def _loop(self, state: _RunState, node: Node) -> Fragments:
        config = node.config
        body_edges = state.graph.edges_labeled(node.id, "body")

        async def render_item() -> tuple[RenderInstruction, ...]:
            if config.template is not None:
                return tuple(self._expand_template(state, config.template, node.id))
            return tuple(await self._follow(state, body_edges))

        items = await self._iterate(state, node, render_item)
        fragments: Fragments = []
        if items:
            fragments.append(RepeatedFragment(items=tuple(items), separator=config.separator, node_id=node.id))
        fragments.extend(await self._follow_unlabeled(state, node))
        return fragments

    async def _table_loop(self, state: _RunState, node: Node) -> Fragments:
        config = node.config

        async def render_row() -> tuple[RenderInstruction, ...]:
            return tuple(
                StyledFragment(
                    kind="cell",
                    children=tuple(self._expand_template(state, column.value, node.id)),
                    attributes={"header": column.header},
                    node_id=node.id,
                )
                for column in config.columns
            )

        rows = await self._iterate(state, node, render_row)
        fragments: Fragments = []
        if rows:
            fragments.append(
                RepeatedFragment(
                    items=tuple(rows),
                    layout="table",
                    headers=tuple(column.header for column in config.columns),
                    caption=config.caption,
                    node_id=node.id,
                )
            )
        fragments.extend(await self._follow_unlabeled(state, node))
        return fragments

    async def _iterate(
        self,
        state: _RunState,
        node: Node,
        render: Callable[[], Awaitable[tuple[RenderInstruction, ...]]],
    ) -> list[tuple[RenderInstruction, ...]]:
        config = node.config
        found, raw = state.context.lookup(config.array_field)
        if not found:
            state.warnings.append(f"Loop node '{node.id}': array '{config.array_field}' is missing; no output.")
            return []
        if not isinstance(raw, (list, tuple)):
            state.warnings.append(f"Loop node '{node.id}': '{config.array_field}' is not an array; no output.")
            return []

        limit = self._settings.max_loop_items
        if config.max_items is not None:
            limit = min(limit, config.max_items)

        rendered: list[tuple[RenderInstruction, ...]] = []
        for index, item in enumerate(raw):
            state.check_cancelled()
            if state.stopped:
                break
            bindings: dict[str, object] = {config.item_variable: item}
            if config.index_variable:
                bindings[config.index_variable] = index
            with state.context.child_scope(bindings):
                if config.filter and not self._test(state, node, config.filter):
                    continue
                if len(rendered) >= limit:
                    state.warnings.append(f"Loop node '{node.id}' stopped at {limit} item(s).")
                    break
                rendered.append(await render())
        return rendered

    # Content

    async def _block(self, state: _RunState, node: Node) -> Fragments:
        config = node.config
        language = config.language or state.language
        variation = config.variation or state.variation
        item = self._lookup_content(state, "block", config.block_id, language, variation)

        if item is not None:
            fragment = BlockFragment(
                block_id=config.block_id,
                children=tuple(self._expand_template(state, item.content, node.id)),
                compliance_flags=item.compliance_flags,
                node_id=node.id,
            )
        elif config.content is not None:
            fragment = BlockFragment(
                block_id=config.block_id,
                children=tuple(self._expand_template(state, config.content, node.id)),
                node_id=node.id,
            )
        else:
            state.warnings.append(
                f"Block '{config.block_id}' not found for language={language} variation={variation}; "
                "rendered missing-content marker."
            )
            fragment = BlockFragment(block_id=config.block_id, missing=True, node_id=node.id)
        return [fragment, *await self._follow_all(state, node)]

    async def _mandated_notice(self, state: _RunState, node: Node) -> Fragments:
        config = node.config
        item = self._lookup_content(state, "block", config.block_id, state.language, state.variation)
        if item is None:
            state.warnings.append(
                f"Mandated notice '{config.block_id}' ({node.type}) not found; rendered missing-content marker."
            )
            fragment = BlockFragment(
                block_id=config.block_id,
                compliance_flags=(config.compliance_flag,),
                missing=True,
                node_id=node.id,
            )
        else:
            fragment = BlockFragment(
                block_id=config.block_id,
                children=tuple(self._expand_template(state, item.content, node.id)),
                compliance_flags=_merge_flags((config.compliance_flag,), item.compliance_flags),
                node_id=node.id,
            )
        return [fragment, *await self._follow_all(state, node)]

    async def _component(self, state: _RunState, node: Node) -> Fragments:
        config = node.config
        parameters = self._resolve_value(state, node, config.parameters)
        item = self._lookup_content(state, "component", config.component_id, state.language, state.variation)

        if item is None:
            state.warnings.append(
                f"Component '{config.component_id}' not found for language={state.language} "
                f"variation={state.variation}; rendered missing-content marker."
            )
            fragment = ComponentFragment(
                component_id=config.component_id,
                compliance_flags=tuple(config.compliance_flags),
                parameters=parameters,
                missing=True,
                node_id=node.id,
            )
        else:
            with state.context.child_scope({"params": parameters}):
                children = tuple(self._expand_template(state, item.content, node.id))
            fragment = ComponentFragment(
                component_id=config.component_id,
                children=children,
                compliance_flags=_merge_flags(item.compliance_flags, config.compliance_flags),
                parameters=parameters,
                node_id=node.id,
            )
        return [fragment, *await self._follow_all(state, node)]

    async def _dynamic_text(self, state: _RunState, node: Node) -> Fragments:
        fragments = self._expand_template(state, node.config.text, node.id)
        return [*fragments, *await self._follow_all(state, node)]

    def _lookup_content(
        self,
        state: _RunState,
        kind: str,
        content_id: str,
        language: str,
        variation: str,
    ) -> ContentItem | None:
        if self._repository is None:
            return None
        try:
            if kind == "component":
                return self._repository.get_component(content_id, language, variation)
            return self._repository.get_block(content_id, language, variation)
        except ContentNotFound:
            return None

    # Styling

    async def _formatting(self, state: _RunState, node: Node) -> Fragments:
        config = node.config
        children = await self._follow_all(state, node)
        if config.condition and not self._test(state, node, config.condition):
            return children
        if not children:
            return []
        attributes = config.model_dump(exclude={"condition"})
        return [StyledFragment(kind="formatting", children=tuple(children), attributes=attributes, node_id=node.id)]

    async def _alert_style(self, state: _RunState, node: Node) -> Fragments:
        config = node.config
        children = await self._follow_all(state, node)
        if not children:
            return []
        title = tuple(self._expand_template(state, config.title, node.id)) if config.title else None
        return [
            StyledFragment(
                kind="alert",
                children=tuple(children),
                attributes={"level": config.level, "title": title},
                node_id=node.id,
            )
        ]

    async def _hide(self, state: _RunState, node: Node) -> Fragments:
        try:
            hidden = self._expressions.evaluate_condition(node.config.condition, state.context, warnings=state.warnings)
        except ExpressionError as exc:
            state.warnings.append(f"Hide node '{node.id}' condition failed ({exc}); content shown.")
            hidden = False
        if hidden:
            return []
        return await self._follow_all(state, node)

    async def _locale_style(self, state: _RunState, node: Node) -> Fragments:
        locale = node.config.locale
        previous = state.context.locale
        state.context.locale = locale
        try:
            children = await self._follow_all(state, node)
        finally:
            state.context.locale = previous
        if not children:
            return []
        return [StyledFragment(kind="locale", children=tuple(children), attributes={"locale": locale}, node_id=node.id)]

    # Delivery and language

    async def _channel(self, state: _RunState, node: Node) -> Fragments:
        edges = state.graph.edges_from(node.id)
        if state.channel:
            matched = [edge for edge in edges if (edge.label or "").lower() == state.channel]
            if matched:
                return await self._follow(state, matched)
        default = state.graph.edges_labeled(node.id, "default")
        if default:
            return await self._follow(state, default)
        state.warnings.append(f"Channel node '{node.id}' has no edge for channel '{state.channel}' and no default.")
        return []

    async def _channel_fallback(self, state: _RunState, node: Node) -> Fragments:
        config = node.config
        primary = config.primary.lower()
        usable = primary in self._settings.supported_channels
        if usable and config.requires:
            usable = self._test(state, node, config.requires)

        if usable:
            state.channel = primary
            return await self._follow_label(state, node, "primary")

        LOGGER.debug("Channel %s unavailable at %s; falling back to %s", primary, node.id, config.fallback)
        state.channel = config.fallback.lower()
        return await self._follow_label(state, node, "fallback")

    async def _set_language(self, state: _RunState, node: Node) -> Fragments:
        state.language = node.config.language
        return await self._follow_all(state, node)

    async def _set_variation(self, state: _RunState, node: Node) -> Fragments:
        state.variation = node.config.variation
        return await self._follow_all(state, node)

    # Variables

    async def _set_variable(self, state: _RunState, node: Node) -> Fragments:
        config = node.config
        try:
            value = self._expressions.evaluate(config.expression, state.context, warnings=state.warnings)
        except ExpressionError as exc:
            state.warnings.append(f"Node '{node.id}' could not compute '{config.variable}' ({exc}); left unset.")
            return await self._follow_all(state, node)

        if node.type == "derived_variable":
            value = self._apply_derived_type(state, node, value)
        state.context.set_variable(config.variable, value)
        return await self._follow_all(state, node)

    def _apply_derived_type(self, state: _RunState, node: Node, value: object) -> object:
        config = node.config
        if config.data_type is None and config.format is None:
            return value

        existing = state.context.definition(config.variable)
        update: dict[str, Any] = {}
        if config.data_type is not None:
            update["data_type"] = config.data_type
        if config.format is not None:
            update["format"] = config.format
        if existing is not None:
            state.context.define(existing.model_copy(update=update))
        else:
            state.context.define(VariableDefinition(key=config.variable, **update))

        if config.data_type is None or value is None:
            return value
        coerced = _coerce(value, config.data_type)
        if coerced is None:
            state.warnings.append(
                f"Derived variable '{config.variable}' value {value!r} is not a {config.data_type}; kept as computed."
            )
            return value
        return coerced

    # Data

    async def _data_call(self, state: _RunState, node: Node) -> Fragments:
        config: DataCallConfig = node.config
        params = self._resolve_value(state, node, config.params)
        if isinstance(config, ApiCallConfig):
            params = {**params, "method": config.method}
            if config.path:
                params["path"] = self._interpolate(state, node, config.path)
        elif isinstance(config, FhirQueryConfig):
            params = {**params, "resourceType": config.resource_type}
        elif isinstance(config, PushDataConfig):
            params = {**params, "payload": self._resolve_value(state, node, config.payload)}

        timeout = config.timeout_seconds or self._settings.data_call_timeout_seconds
        max_retries = config.max_retries if config.max_retries is not None else self._settings.data_call_max_retries
        payload = {
            "node_id": node.id,
            "node_type": node.type,
            "params": params,
            "context": state.context.snapshot(),
        }

        retry_count = 0
        while True:
            state.check_cancelled()
            try:
                result = await self._invoke_provider(config.provider, payload, timeout)
                break
            except Exception as exc:  # noqa: BLE001
                decision = self._error_handler.decide(
                    error=exc,
                    node_id=node.id,
                    retry_count=retry_count,
                    max_retries=max_retries,
                    critical=config.critical,
                )
                await self._emit(
                    "on_error",
                    {
                        "node_id": node.id,
                        "node_type": node.type,
                        "error": str(exc),
                        "decision": decision.action,
                        "reason": decision.reason,
                    },
                )
                if decision.action == "retry":
                    LOGGER.info(decision.reason)
                    retry_count += 1
                    continue

                LOGGER.warning(decision.reason)
                state.warnings.append(decision.reason)
                if decision.action == "abort":
                    state.aborted = True
                    state.stopped = True
                    state.abort_reason = decision.reason
                return []

        if config.namespace:
            state.context.merge_fetched(config.namespace, result)
        return await self._follow_all(state, node)

    async def _invoke_provider(self, provider_name: str, payload: dict[str, Any], timeout: float) -> object:
        provider = self._providers.get(provider_name)
        if provider is None:
            raise ExternalCallError(f"No data provider named '{provider_name}'", provider=provider_name, transient=False)
        try:
            return await asyncio.wait_for(provider.ainvoke(payload), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise ExternalCallError(
                f"Provider '{provider_name}' timed out after {timeout:.1f}s",
                provider=provider_name,
            ) from exc

    async def _data_join(self, state: _RunState, node: Node) -> Fragments:
        config = node.config
        left = state.context.resolve(config.left)
        right = state.context.resolve(config.right)
        if not isinstance(left, list) or not isinstance(right, list):
            state.warnings.append(
                f"Data join node '{node.id}': '{config.left}' and '{config.right}' must both be arrays; "
                f"'{config.namespace}' set to an empty list."
            )
            state.context.merge_fetched(config.namespace, [])
            return await self._follow_all(state, node)

        right_key = config.right_key or config.left_key
        index: dict[str, list[dict[str, Any]]] = {}
        for item in right:
            if isinstance(item, Mapping) and item.get(right_key) is not None:
                index.setdefault(to_text(item[right_key]), []).append(dict(item))

        joined: list[dict[str, Any]] = []
        for item in left:
            if not isinstance(item, Mapping):
                continue
            matches = index.get(to_text(item.get(config.left_key)), []) if item.get(config.left_key) is not None else []
            if matches:
                joined.extend({**item, **match} for match in matches)
            elif config.how == "left":
                joined.append(dict(item))

        state.context.merge_fetched(config.namespace, joined)
        return await self._follow_all(state, node)

    # Clinical predicates

    async def _diagnosis_match(self, state: _RunState, node: Node) -> Fragments:
        config = node.config
        diagnoses = self._clinical_list(state, node, config.codes_field)
        wanted = [_normalize_code(code) for code in config.codes]
        matched = False
        for entry in diagnoses or []:
            raw = entry.get(config.code_field) if isinstance(entry, Mapping) else entry
            if raw is None:
                continue
            code = _normalize_code(to_text(raw))
            if any(code.startswith(item) if config.prefix_match else code == item for item in wanted):
                matched = True
                break
        return await self._follow_branch(state, node, matched)

    async def _risk_score(self, state: _RunState, node: Node) -> Fragments:
        config = node.config
        found, raw = state.context.lookup(config.score_field)
        score = _as_number(raw) if found else None
        if score is None:
            state.warnings.append(f"Risk score node '{node.id}': '{config.score_field}' is missing or not numeric.")
            return await self._follow_branch(state, node, False)

        comparisons = {
            ">=": score >= config.threshold,
            ">": score > config.threshold,
            "<=": score <= config.threshold,
            "<": score < config.threshold,
        }
        return await self._follow_branch(state, node, comparisons[config.operator])

    async def _hedis_trigger(self, state: _RunState, node: Node) -> Fragments:
        config = node.config
        gaps = self._clinical_list(state, node, config.gaps_field)
        measure = config.measure.strip().upper()
        open_gap = False
        for gap in gaps or []:
            if isinstance(gap, Mapping):
                name = gap.get("measure") or gap.get("code") or gap.get("id")
                status = str(gap.get("status") or "open").lower()
                if name is not None and to_text(name).strip().upper() == measure and status not in CLOSED_GAP_STATUSES:
                    open_gap = True
                    break
            elif to_text(gap).strip().upper() == measure:
                open_gap = True
                break
        return await self._follow_branch(state, node, open_gap)

    async def _pcp_assignment(self, state: _RunState, node: Node) -> Fragments:
        config = node.config
        found, pcp = state.context.lookup(config.pcp_field)
        if not found or not pcp:
            if not found:
                state.warnings.append(f"PCP assignment node '{node.id}': '{config.pcp_field}' is missing.")
            return await self._follow_branch(state, node, False)

        assigned = True
        if config.require_active and isinstance(pcp, Mapping):
            if pcp.get("active") is False:
                assigned = False
            elif str(pcp.get("status") or "").lower() in INACTIVE_STATUSES:
                assigned = False
        return await self._follow_branch(state, node, assigned)

    async def _program_eligibility(self, state: _RunState, node: Node) -> Fragments:
        config = node.config
        programs = self._clinical_list(state, node, config.programs_field)
        wanted = config.program.strip().lower()
        enrolled = False
        for program in programs or []:
            if isinstance(program, Mapping):
                name = program.get("name") or program.get("code") or program.get("id")
                eligible = program.get("eligible", True)
                if name is not None and to_text(name).strip().lower() == wanted and eligible is not False:
                    enrolled = True
                    break
            elif to_text(program).strip().lower() == wanted:
                enrolled = True
                break

        if enrolled and config.criteria:
            enrolled = self._test(state, node, config.criteria)
        return await self._follow_branch(state, node, enrolled)

    def _clinical_list(self, state: _RunState, node: Node, path: str) -> list[Any] | None:
        found, value = state.context.lookup(path)
        if not found or value is None:
            state.warnings.append(f"Node '{node.id}' ({node.type}): '{path}' is missing; took the false branch.")
            return None
        if isinstance(value, (list, tuple)):
            return list(value)
        return [value]

    # Rules and meta

    async def _workflow_rule(self, state: _RunState, node: Node) -> Fragments:
        rule = ComplianceRule.from_workflow_node(node.id, node.config)
        state.triggered_rules.append(self._checker.evaluate_trigger(rule, state.context, state.warnings))
        return await self._follow_all(state, node)

    async def _return(self, state: _RunState, node: Node) -> Fragments:
        LOGGER.debug("Return node %s reached: %s", node.id, node.config.reason or "no reason given")
        state.stopped = True
        return []

    async def _flag(self, state: _RunState, node: Node) -> Fragments:
        config = node.config
        state.flags.append(
            ReviewFlag(node_id=node.id, message=self._render_inline(state, node, config.message), category=config.category)
        )
        return await self._follow_all(state, node)

    # Templates

    def _expand_template(self, state: _RunState, text: str, node_id: str) -> Fragments:
        fragments: Fragments = []
        for segment in split_template(text):
            if segment.is_token:
                fragments.append(self._token_fragment(state, segment.text, node_id))
            elif segment.text:
                fragments.append(TextFragment(segment.text, node_id=node_id))
        return fragments

    def _token_fragment(self, state: _RunState, source: str, node_id: str) -> VariableFragment:
        context = state.context
        # Plain paths may hold hyphenated keys that the expression grammar reads as subtraction.
        path = _plain_path(source)
        if path is not None:
            tree: Any = VariableRef(join_path(path), path)
        else:
            try:
                tree = parse(source)
            except ParseError as exc:
                state.warnings.append(f"Node '{node_id}' token '{{{{{source}}}}}' does not parse ({exc}).")
                return VariableFragment(name=source, found=False, required=True, node_id=node_id)

        if isinstance(tree, VariableRef):
            found, value = context.lookup(tree.path)
            definition = context.definition(tree.name)
            return VariableFragment(
                name=tree.name,
                value=value,
                found=found,
                required=context.is_required(tree.name) or context.is_required(str(tree.path[0])),
                format=definition.format if definition is not None else None,
                node_id=node_id,
            )

        try:
            value = self._expressions.evaluate(tree, context, warnings=state.warnings)
        except MissingVariable as exc:
            return VariableFragment(name=exc.name, found=False, required=True, node_id=node_id)
        except ExpressionError as exc:
            state.warnings.append(f"Node '{node_id}' token '{{{{{source}}}}}' failed ({exc}).")
            return VariableFragment(name=source, found=False, required=True, node_id=node_id)
        return VariableFragment(name=source, value=value, node_id=node_id)

    def _render_inline(self, state: _RunState, node: Node, text: str) -> str:
        """Expand a template to plain text with the same missing-variable policy as letter content."""
        renderer = Renderer(
            output_format="text",
            missing_placeholder=self._settings.missing_placeholder,
            default_locale=self._settings.default_locale,
        )
        rendered = renderer.render(self._expand_template(state, text, node.id), state.context)
        state.warnings.extend(rendered.warnings)
        return rendered.content

    def _interpolate(self, state: _RunState, node: Node, text: str) -> str:
        parts: list[str] = []
        for segment in split_template(text):
            if not segment.is_token:
                parts.append(segment.text)
                continue
            parts.append(to_text(self._evaluate_token(state, node, segment.text)))
        return "".join(parts)

    def _evaluate_token(self, state: _RunState, node: Node, source: str) -> object:
        try:
            return self._expressions.evaluate(source, state.context, warnings=state.warnings)
        except ExpressionError as exc:
            state.warnings.append(f"Node '{node.id}' token '{{{{{source}}}}}' failed ({exc}); using null.")
            return None

    def _resolve_value(self, state: _RunState, node: Node, value: Any) -> Any:
        if isinstance(value, str):
            whole = TEMPLATE_TOKEN_RE.fullmatch(value.strip())
            if whole:
                return self._evaluate_token(state, node, whole.group(1))
            if "{{" in value:
                return self._interpolate(state, node, value)
            return value
        if isinstance(value, Mapping):
            return {key: self._resolve_value(state, node, item) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._resolve_value(state, node, item) for item in value]
        return value


def _plain_path(source: str) -> tuple[PathPart, ...] | None:
    try:
        path = split_path(source)
    except PathSyntaxError:
        return None
    head = path[0]
    if not isinstance(head, str) or head.lower() in LITERAL_WORDS:
        return None
    return path


def _provider_map(providers: Mapping[str, BaseTool] | Iterable[BaseTool] | None) -> dict[str, BaseTool]:
    if providers is None:
        return {}
    if isinstance(providers, Mapping):
        return dict(providers)
    return {tool.name: tool for tool in providers}


def _merge_flags(*groups: Iterable[str]) -> tuple[str, ...]:
    merged: dict[str, None] = {}
    for group in groups:
        for flag in group:
            merged.setdefault(flag, None)
    return tuple(merged)


def _normalize_code(code: str) -> str:
    return code.strip().upper().replace(".", "")


def _as_number(value: object) -> float | None:
    if is_number(value):
        return float(value)  # type: ignore[arg-type]
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _coerce(value: object, data_type: str) -> object:
    if data_type == "number":
        number = _as_number(value)
        if number is None:
            return None
        return int(number) if number.is_integer() else number
    if data_type == "string":
        return to_text(value)
    if data_type == "boolean":
        return is_truthy(value)
    if data_type == "date":
        return coerce_date(value)
    if data_type == "array":
        return list(value) if isinstance(value, (list, tuple)) else None
    if data_type == "object":
        return dict(value) if isinstance(value, Mapping) else None
    return value
