from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from datetime import date
from pathlib import Path
from typing import Any

from langchain_core.tools import BaseTool
from rich.console import Console
from rich.table import Table

from letter_logic.graph import (
    EvaluationResult,
    GraphError,
    GraphEvaluator,
    HttpDataProvider,
    InMemoryContentRepository,
    StaticDataProvider,
    build_report,
    load_graph_document,
    render_diagnostics,
)
from letter_logic.logging_utils import configure_logging
from letter_logic.settings import EngineSettings, load_settings


LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID_INPUT = 1
EXIT_ABORTED = 2


class CLIInputError(RuntimeError):
    """Raised when a CLI input file or option cannot be used."""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="letter-logic",
        description="Evaluate a letter logic graph against a data context and render the letter.",
    )
    parser.add_argument("graph", metavar="GRAPH.json", help="Graph document (nodes, edges, entryId, variables).")
    parser.add_argument("--context", metavar="DATA.json", help="Data context (member, claim, provider...).")
    parser.add_argument("--channel", help="Delivery channel, e.g. print, email, fax, portal.")
    parser.add_argument("--language", help="Content language (default from settings).")
    parser.add_argument("--variation", help="Content variation (default from settings).")
    parser.add_argument("--blocks", metavar="BLOCKS.json", help="Content repository: {blocks: [...], components: [...]}.")
    parser.add_argument(
        "--fixtures",
        metavar="FIXTURES.json",
        help="Canned provider responses: {providerName: {nodeId|nodeType|'*': response}}.",
    )
    parser.add_argument(
        "--provider-url",
        action="append",
        default=[],
        metavar="NAME=BASE_URL",
        help="Register an HTTP data provider. May be repeated.",
    )
    parser.add_argument("--as-of", help="Evaluation date (YYYY-MM-DD) used by TODAY().")
    parser.add_argument("--format", choices=["html", "text"], help="Output format (default from settings).")
    parser.add_argument("--builtin-rules", action="store_true", help="Also check the built-in healthcare rules.")
    parser.add_argument("--json", action="store_true", help="Print the structured result as JSON.")
    parser.add_argument("--log-level", help="Logging level (default LOG_LEVEL or INFO).")
    return parser


def _read_json(path: str | None, label: str) -> Any:
    if not path:
        return None
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise CLIInputError(f"Cannot read {label} file '{path}': {exc}") from exc
    except json.JSONDecodeError as exc:
        raise CLIInputError(f"{label} file '{path}' is not valid JSON: {exc}") from exc


def _build_providers(args: argparse.Namespace, settings: EngineSettings) -> list[BaseTool]:
    providers: list[BaseTool] = []
    fixtures = _read_json(args.fixtures, "fixtures")
    if fixtures is not None:
        if not isinstance(fixtures, dict):
            raise CLIInputError("Fixtures file must map provider names to response objects.")
        for name, responses in fixtures.items():
            if not isinstance(responses, dict):
                raise CLIInputError(f"Fixtures for provider '{name}' must be an object.")
            providers.append(StaticDataProvider(name=name, responses=responses))

    for raw in args.provider_url:
        name, sep, base_url = raw.partition("=")
        if not sep or not name.strip() or not base_url.strip():
            raise CLIInputError(f"--provider-url expects NAME=BASE_URL, got '{raw}'.")
        providers.append(
            HttpDataProvider(
                name=name.strip(),
                base_url=base_url.strip(),
                timeout_seconds=settings.data_call_timeout_seconds,
            )
        )
    return providers


def _parse_as_of(raw: str | None) -> date | None:
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise CLIInputError(f"--as-of expects YYYY-MM-DD, got '{raw}'.") from exc


def print_result(console: Console, result: EvaluationResult) -> None:
    if result.cancelled:
        console.print(f"Evaluation cancelled: {result.abort_reason}")
    elif result.aborted:
        console.print(f"Letter generation aborted: {result.abort_reason}")
    else:
        console.print(result.rendered_content, markup=False, highlight=False)
    console.print()

    report = build_report(result.violations)
    console.print(report.summary)
    if result.violations:
        table = Table(title="Violations")
        table.add_column("Level")
        table.add_column("Rule")
        table.add_column("Message")
        table.add_column("Node")
        for violation in result.violations:
            table.add_row(violation.level, violation.rule_name, violation.message, violation.node_id or "")
        console.print(table)

    if result.warnings:
        table = Table(title="Warnings")
        table.add_column("#", justify="right")
        table.add_column("Warning")
        for index, warning in enumerate(result.warnings, start=1):
            table.add_row(str(index), warning)
        console.print(table)

    if result.flags:
        table = Table(title="Review flags")
        table.add_column("Node")
        table.add_column("Category")
        table.add_column("Message")
        for flag in result.flags:
            table.add_row(flag.node_id, flag.category, flag.message)
        console.print(table)

    console.print(f"outcome: {result.outcome}  snapshot: {result.snapshot_hash}")


def main(argv: Sequence[str] | None = None, *, console: Console | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    output = console or Console(highlight=False, markup=False)

    settings = load_settings()
    if args.builtin_rules:
        settings.builtin_healthcare_rules = True

    try:
        graph_document = _read_json(args.graph, "graph")
        data = _read_json(args.context, "context") or {}
        content = _read_json(args.blocks, "blocks") or {}
        if not isinstance(data, dict):
            raise CLIInputError("Context file must contain a JSON object.")
        if not isinstance(content, dict):
            raise CLIInputError("Blocks file must contain a JSON object.")
        providers = _build_providers(args, settings)
        as_of = _parse_as_of(args.as_of)
        graph = load_graph_document(graph_document)
    except CLIInputError as exc:
        output.print(str(exc))
        return EXIT_INVALID_INPUT
    except GraphError as exc:
        output.print("Graph validation failed:")
        output.print(render_diagnostics(exc.diagnostics))
        return EXIT_INVALID_INPUT

    repository = InMemoryContentRepository.from_document(
        content,
        default_language=settings.default_language,
        default_variation=settings.default_variation,
    )
    evaluator = GraphEvaluator(content_repository=repository, providers=providers, settings=settings)
    result = evaluator.evaluate(
        graph,
        data,
        channel=args.channel,
        language=args.language,
        variation=args.variation,
        as_of=as_of,
        output_format=args.format,
    )
    LOGGER.debug("Evaluated %s: outcome=%s", graph.graph_id, result.outcome)

    if args.json:
        output.print_json(json.dumps(result.to_dict()))
    else:
        print_result(output, result)
    return EXIT_ABORTED if result.aborted else EXIT_OK


def run() -> None:
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        Console().print("\nInterrupted.")
        sys.exit(130)
