import sys
import unittest
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from flowdeck.workflow.schema import Workflow
from flowdeck.workflow.validate import is_five_field_cron, validate_workflow


def make_workflow(**overrides) -> Workflow:
    data = {
        "schema": "clawkitchen.workflow.v1",
        "id": "test-wf",
        "name": "Test workflow",
        "nodes": [
            {"id": "start", "type": "start", "x": 80, "y": 80},
            {"id": "end", "type": "end", "x": 320, "y": 80},
        ],
        "edges": [{"id": "e1", "from": "start", "to": "end"}],
    }
    data.update(overrides)
    return Workflow.model_validate(data)


class WorkflowValidatorTests(unittest.TestCase):
    def test_valid_workflow_has_no_errors_or_warnings(self):
        result = validate_workflow(make_workflow())
        self.assertEqual(result.errors, [])
        self.assertEqual(result.warnings, [])
        self.assertTrue(result.ok)

    def test_wrong_schema_tag_is_an_error(self):
        result = validate_workflow(make_workflow(schema="wrong"))
        self.assertEqual(result.errors, ["schema must be clawkitchen.workflow.v1 (got wrong)"])

    def test_blank_id_and_name_are_errors(self):
        result = validate_workflow(make_workflow(id="  ", name=""))
        self.assertIn("id is required", result.errors)
        self.assertIn("name is required", result.errors)

    def test_duplicate_node_ids(self):
        result = validate_workflow(
            make_workflow(
                nodes=[{"id": "dup", "type": "start"}, {"id": "dup", "type": "end"}],
                edges=[],
            )
        )
        self.assertEqual(result.errors, ["node ids must be unique"])

    def test_missing_and_duplicate_node_ids_are_reported_independently(self):
        result = validate_workflow(
            make_workflow(
                nodes=[
                    {"id": "", "type": "start"},
                    {"id": "a", "type": "llm"},
                    {"id": "a", "type": "end"},
                    {"type": "tool"},
                ],
                edges=[],
            )
        )
        self.assertEqual(
            result.errors,
            ["all nodes must have a non-empty id", "node ids must be unique"],
        )

    def test_edge_id_checks(self):
        result = validate_workflow(
            make_workflow(
                edges=[
                    {"id": "e1", "from": "start", "to": "end"},
                    {"id": "e1", "from": "start", "to": "end"},
                    {"id": " ", "from": "start", "to": "end"},
                ]
            )
        )
        self.assertEqual(
            result.errors,
            ["all edges must have a non-empty id", "edge ids must be unique"],
        )

    def test_dangling_to_reference_yields_exactly_one_error(self):
        result = validate_workflow(make_workflow(edges=[{"id": "e1", "from": "start", "to": "ghost"}]))
        self.assertEqual(result.errors, ["edge e1 references missing to node: ghost"])

    def test_dangling_from_reference_is_a_distinct_error(self):
        result = validate_workflow(make_workflow(edges=[{"id": "e1", "from": "ghost", "to": "end"}]))
        self.assertEqual(result.errors, ["edge e1 references missing from node: ghost"])

    def test_both_endpoints_missing_reports_two_errors(self):
        result = validate_workflow(make_workflow(edges=[{"id": "e1", "from": "x", "to": "y"}]))
        self.assertEqual(
            result.errors,
            [
                "edge e1 references missing from node: x",
                "edge e1 references missing to node: y",
            ],
        )

    def test_blank_endpoint_skips_reference_checks(self):
        result = validate_workflow(make_workflow(edges=[{"id": "e1", "from": "", "to": "ghost"}]))
        self.assertEqual(result.errors, ["edge e1 must have from/to"])

    def test_missing_start_and_end_are_warnings(self):
        result = validate_workflow(make_workflow(nodes=[{"id": "a", "type": "llm"}], edges=[]))
        self.assertEqual(result.errors, [])
        self.assertEqual(result.warnings, ["no start node found", "no end node found"])

    def test_multiple_start_nodes_is_a_warning(self):
        result = validate_workflow(
            make_workflow(
                nodes=[
                    {"id": "s1", "type": "start"},
                    {"id": "s2", "type": "start"},
                    {"id": "end", "type": "end"},
                ],
                edges=[],
            )
        )
        self.assertEqual(result.errors, [])
        self.assertEqual(len(result.warnings), 1)
        self.assertIn("multiple start nodes", result.warnings[0])

    def test_all_rules_run_in_one_pass(self):
        result = validate_workflow(
            make_workflow(
                schema="old",
                name="",
                nodes=[{"id": "a", "type": "llm"}],
                edges=[{"id": "e1", "from": "a", "to": "b"}],
                triggers=[{"kind": "cron", "id": "", "expr": ""}],
            )
        )
        self.assertEqual(len(result.errors), 5)
        self.assertEqual(len(result.warnings), 2)


class CronTriggerValidationTests(unittest.TestCase):
    def test_five_field_expression_has_no_warning(self):
        result = validate_workflow(
            make_workflow(triggers=[{"kind": "cron", "id": "t1", "expr": "0 9 * * 1-5", "tz": "America/New_York"}])
        )
        self.assertEqual(result.errors, [])
        self.assertEqual(result.warnings, [])

    def test_six_field_expression_is_only_a_warning(self):
        result = validate_workflow(make_workflow(triggers=[{"kind": "cron", "id": "t1", "expr": "*/5 * * * * *"}]))
        self.assertEqual(result.errors, [])
        self.assertEqual(result.warnings, ["cron trigger t1 expr is not 5-field: */5 * * * * *"])

    def test_missing_id_and_expr_are_errors(self):
        result = validate_workflow(make_workflow(triggers=[{"kind": "cron", "id": "", "expr": "  "}]))
        self.assertEqual(
            result.errors,
            ["cron trigger missing id", "cron trigger (missing id) missing expr"],
        )

    def test_non_iana_timezone_is_a_warning(self):
        result = validate_workflow(make_workflow(triggers=[{"kind": "cron", "id": "t1", "expr": "0 9 * * *", "tz": "EST"}]))
        self.assertEqual(result.errors, [])
        self.assertEqual(result.warnings, ["cron trigger t1 tz doesn't look like an IANA timezone: EST"])

    def test_is_five_field_cron(self):
        self.assertTrue(is_five_field_cron("  0   9 * *  1-5 "))
        self.assertFalse(is_five_field_cron("0 9 * *"))
        self.assertFalse(is_five_field_cron(""))


if __name__ == "__main__":
    unittest.main()
