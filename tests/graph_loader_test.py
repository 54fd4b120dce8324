from __future__ import annotations

import unittest

from pydantic import ValidationError

from letter_logic.graph.loader import GraphError, GraphLoader, load_graph, load_graph_document
from letter_logic.graph.registry import (
    NODE_TYPES,
    ConditionConfig,
    UnknownNodeType,
    config_errors,
    get_node_type,
    resolve_type_name,
    validate_config,
)


def editor_document() -> dict:
    return {
        "graphId": "denial-letter",
        "entryId": "start",
        "nodes": [
            {"id": "start", "type": "StartNode", "position": {"x": 0, "y": 0}, "data": {"label": "Start"}},
            {
                "id": "check",
                "type": "IfNode",
                "position": {"x": 10, "y": 10},
                "selected": True,
                "data": {"expression": "{{claim.status}} == 'DENIED'", "label": "Denied?", "color": "#f00"},
            },
            {"id": "appeal", "type": "ReusableBlockNode", "data": {"blockId": "appeal-rights"}},
            {"id": "approval", "type": "include", "data": {"block_id": "approval-notice"}},
        ],
        "edges": [
            {"source": "start", "target": "check", "type": "smoothstep", "animated": True},
            {"id": "e-yes", "source": "check", "target": "appeal", "sourceHandle": "Yes"},
            {"id": "e-no", "source": "check", "target": "approval", "label": "No"},
        ],
    }


class RegistryTests(unittest.TestCase):
    def test_closed_type_catalog(self) -> None:
        self.assertEqual(len(NODE_TYPES), 37)
        self.assertEqual(get_node_type("condition").branching, "boolean")
        self.assertEqual(get_node_type("table_loop").group, "Looping")
        self.assertEqual(get_node_type("return").branching, "terminal")

    def test_aliases_resolve_to_canonical_names(self) -> None:
        self.assertEqual(resolve_type_name("IfNode"), "condition")
        self.assertEqual(resolve_type_name("SwitchCaseNode"), "switch")
        self.assertEqual(resolve_type_name("TableLoopNode"), "table_loop")
        self.assertEqual(resolve_type_name("stop"), "return")
        self.assertEqual(resolve_type_name("tableloop"), "table_loop")
        with self.assertRaises(UnknownNodeType):
            resolve_type_name("TeleportNode")

    def test_configs_accept_both_key_styles_and_reject_unknown_keys(self) -> None:
        camel = validate_config("loop", {"arrayField": "claim.lines", "itemVariable": "line"})
        snake = validate_config("loop", {"array_field": "claim.lines", "item_variable": "line"})
        self.assertEqual(camel, snake)
        with self.assertRaises(ValidationError):
            validate_config("condition", {"expression": "true", "unexpected": 1})
        self.assertTrue(config_errors("condition", {}))
        self.assertIsInstance(validate_config("if", {"expression": "true"}), ConditionConfig)

    def test_workflow_rule_level(self) -> None:
        blocking = validate_config("workflow_rule", {"rule": "R", "triggerCondition": "true", "blockingRule": True})
        explicit = validate_config("workflow_rule", {"rule": "R", "triggerCondition": "true", "level": "recommended"})
        self.assertEqual(blocking.effective_level, "blocking")
        self.assertEqual(explicit.effective_level, "recommended")

    def test_diagnosis_codes_are_uppercased(self) -> None:
        config = validate_config("diagnosis_match", {"codes": [" e11 ", "I10"]})
        self.assertEqual(config.codes, ["E11", "I10"])


class GraphLoaderTests(unittest.TestCase):
    def test_editor_document_is_canonicalized(self) -> None:
        graph = load_graph_document(editor_document())

        self.assertEqual(graph.graph_id, "denial-letter")
        self.assertEqual(graph.entry_id, "start")
        self.assertEqual(graph.node("check").type, "condition")
        self.assertEqual(graph.node("appeal").type, "include")
        self.assertEqual(graph.node("appeal").config.block_id, "appeal-rights")
        self.assertEqual([edge.label for edge in graph.edges_from("check")], ["true", "false"])
        self.assertEqual(graph.edges_from("start")[0].id, "e0:start->check")
        self.assertEqual(graph.topology[0], "start")

    def test_snapshot_is_immutable_and_hash_ignores_presentation(self) -> None:
        document = editor_document()
        first = load_graph_document(document)

        moved = editor_document()
        moved["nodes"][1]["position"] = {"x": 500, "y": 500}
        second = load_graph_document(moved)
        self.assertEqual(first.snapshot_hash, second.snapshot_hash)
        self.assertEqual(len(first.snapshot_hash), 16)

        changed = editor_document()
        changed["nodes"][1]["data"]["expression"] = "{{claim.status}} == 'APPROVED'"
        self.assertNotEqual(load_graph_document(changed).snapshot_hash, first.snapshot_hash)

        with self.assertRaises(TypeError):
            first.nodes["new"] = first.nodes["start"]  # type: ignore[index]
        self.assertEqual(document, editor_document())

    def test_load_graph_with_separate_nodes_and_edges(self) -> None:
        graph = load_graph(
            [
                {"id": "start", "type": "start"},
                {"id": "text", "type": "dynamic_text", "config": {"text": "Hello {{member.name}}"}},
            ],
            [{"source": "start", "target": "text"}],
            variables=[{"key": "member.name", "required": True, "default": None}],
        )
        self.assertEqual(graph.entry_id, "start")
        self.assertEqual(graph.variables[0].key, "member.name")
        self.assertTrue(graph.variables[0].required)

    def _codes(self, document: dict) -> set[str]:
        result = GraphLoader().load(document)
        self.assertFalse(result.ok)
        return {item.code for item in result.errors}

    def test_cycle_is_rejected(self) -> None:
        document = {
            "nodes": [
                {"id": "start", "type": "start"},
                {"id": "a", "type": "flag", "config": {"message": "a"}},
                {"id": "b", "type": "flag", "config": {"message": "b"}},
            ],
            "edges": [
                {"source": "start", "target": "a"},
                {"source": "a", "target": "b"},
                {"source": "b", "target": "a"},
            ],
        }
        self.assertIn("CFG_CYCLE_DETECTED", self._codes(document))
        with self.assertRaises(GraphError) as raised:
            load_graph_document(document)
        self.assertIn("cycle", str(raised.exception))
        self.assertTrue(raised.exception.diagnostics)

    def test_dangling_edge_and_duplicate_ids(self) -> None:
        document = {
            "nodes": [{"id": "start", "type": "start"}],
            "edges": [
                {"id": "e1", "source": "start", "target": "ghost"},
                {"id": "e1", "source": "start", "target": "start"},
            ],
        }
        codes = self._codes(document)
        self.assertIn("EDGE_DANGLING", codes)
        self.assertIn("EDGE_DUPLICATE_ID", codes)

    def test_entry_candidates(self) -> None:
        two_roots = {
            "nodes": [{"id": "a", "type": "start"}, {"id": "b", "type": "start"}],
            "edges": [],
        }
        self.assertIn("CFG_ENTRY_AMBIGUOUS", self._codes(two_roots))

        wrong_entry = {**two_roots, "entryId": "missing"}
        self.assertIn("CFG_ENTRY_MISSING", self._codes(wrong_entry))

        orphan = {**two_roots, "entryId": "a"}
        self.assertIn("CFG_MULTIPLE_ENTRIES", self._codes(orphan))

    def test_schema_errors_stop_the_pipeline(self) -> None:
        document = {
            "nodes": [
                {"id": "start", "type": "start"},
                {"id": "x", "type": "teleport"},
                {"id": "c", "type": "condition", "config": {"expresion": "true"}},
                {"id": "start", "type": "start"},
            ],
            "edges": [],
        }
        codes = self._codes(document)
        self.assertEqual(codes, {"SCHEMA_UNKNOWN_NODE_TYPE", "SCHEMA_CONFIG_INVALID", "SCHEMA_DUPLICATE_NODE_ID"})
        self.assertEqual(self._codes({"nodes": [], "edges": []}), {"SCHEMA_NO_NODES"})

    def test_branch_edges_must_be_well_formed(self) -> None:
        document = {
            "nodes": [
                {"id": "start", "type": "start"},
                {"id": "cond", "type": "condition", "config": {"expression": "true"}},
                {"id": "sw", "type": "switch", "config": {"expression": "{{x}}"}},
                {"id": "fb", "type": "channel_fallback", "config": {"primary": "email", "fallback": "print"}},
                {"id": "loop", "type": "loop", "config": {"arrayField": "items"}},
                {"id": "end", "type": "return"},
            ],
            "edges": [
                {"source": "start", "target": "cond"},
                {"source": "cond", "target": "sw", "label": "false"},
                {"source": "sw", "target": "fb"},
                {"source": "fb", "target": "loop", "label": "primary"},
                {"source": "loop", "target": "end"},
            ],
        }
        codes = self._codes(document)
        self.assertTrue(
            {
                "EDGE_BRANCH_MISSING_TRUE",
                "EDGE_CASE_UNLABELED",
                "EDGE_FALLBACK_MISSING",
                "EDGE_LOOP_BODY_MISSING",
            }
            <= codes
        )

    def test_templates_are_checked(self) -> None:
        unbalanced = {
            "nodes": [
                {"id": "start", "type": "start"},
                {"id": "text", "type": "dynamic_text", "config": {"text": "Dear {{member.name"}},
            ],
            "edges": [{"source": "start", "target": "text"}],
        }
        self.assertIn("TEMPLATE_UNBALANCED", self._codes(unbalanced))

        unparsable = {
            "nodes": [
                {"id": "start", "type": "start"},
                {"id": "text", "type": "dynamic_text", "config": {"text": "Total {{ 1 + }}"}},
                {"id": "cond", "type": "condition", "config": {"expression": "{{a}} =="}},
                {"id": "yes", "type": "flag", "config": {"message": "y"}},
            ],
            "edges": [
                {"source": "start", "target": "text"},
                {"source": "text", "target": "cond"},
                {"source": "cond", "target": "yes", "label": "true"},
            ],
        }
        result = GraphLoader().load(unparsable)
        self.assertTrue(result.ok)
        self.assertEqual(
            [item.code for item in result.warnings],
            ["TEMPLATE_EXPRESSION_INVALID", "TEMPLATE_EXPRESSION_INVALID"],
        )
        self.assertEqual(len(result.graph.warnings), 2)

    def test_return_with_outgoing_edges_warns(self) -> None:
        result = GraphLoader().load(
            {
                "nodes": [
                    {"id": "start", "type": "start"},
                    {"id": "stop", "type": "stop"},
                    {"id": "after", "type": "flag", "config": {"message": "never"}},
                ],
                "edges": [{"source": "start", "target": "stop"}, {"source": "stop", "target": "after"}],
            }
        )
        self.assertTrue(result.ok)
        self.assertEqual([item.code for item in result.warnings], ["EDGE_AFTER_RETURN"])


if __name__ == "__main__":
    unittest.main()
