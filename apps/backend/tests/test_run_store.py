import json
import shutil
import sys
import tempfile
import threading
import time
import unittest
from pathlib import Path
from unittest.mock import patch

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from flowdeck.errors import BadRequestError, ConflictError, InvalidIdError, RunNotFoundError, RunStateError
from flowdeck.workflow import run_store as run_store_module
from flowdeck.workflow.run_store import RunStore, run_file_name
from flowdeck.workflow.runs import RUN_SCHEMA, WorkflowRun, check_run_invariants
from flowdeck.workspace import TeamWorkspace


def make_run(run_id: str, **overrides) -> WorkflowRun:
    data = {
        "id": run_id,
        "workflowId": "demo",
        "startedAt": "2026-10-18T09:00:00.000Z",
        "status": "running",
    }
    data.update(overrides)
    return WorkflowRun.model_validate(data)


class RunStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp_dir = Path(tempfile.mkdtemp(prefix="run-store-tests-"))
        self.store = RunStore(TeamWorkspace(self.tmp_dir))

    def tearDown(self) -> None:
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def test_file_name(self):
        self.assertEqual(run_file_name("run-1"), "run-1.run.json")

    def test_list_without_directory_is_empty(self):
        self.assertEqual(self.store.list("acme", "demo").files, [])

    def test_list_is_newest_first(self):
        for run_id in ("run-2026-01-01", "run-2026-03-01", "run-2026-02-01"):
            self.store.write("acme", "demo", make_run(run_id))
        self.assertEqual(
            self.store.list("acme", "demo").files,
            ["run-2026-03-01.run.json", "run-2026-02-01.run.json", "run-2026-01-01.run.json"],
        )

    def test_write_overwrites_back_references(self):
        written = self.store.write(
            "acme",
            "demo",
            make_run("run-1", workflowId="something-else", teamId="other-team", schema="old"),
        )
        expected = self.tmp_dir / "workspace-acme" / "shared-context" / "workflow-runs" / "demo" / "run-1.run.json"
        self.assertEqual(Path(written.path), expected)

        run = self.store.read("acme", "demo", "run-1").run
        self.assertEqual(run.workflow_id, "demo")
        self.assertEqual(run.team_id, "acme")
        self.assertEqual(run.schema_tag, RUN_SCHEMA)

        raw = json.loads(expected.read_text())
        self.assertEqual(raw["workflowId"], "demo")
        self.assertEqual(raw["teamId"], "acme")

    def test_back_references_use_trimmed_ids(self):
        written = self.store.write(" acme ", " demo ", make_run("run-1"))
        expected = self.tmp_dir / "workspace-acme" / "shared-context" / "workflow-runs" / "demo" / "run-1.run.json"
        self.assertEqual(Path(written.path), expected)

        run = self.store.read("acme", "demo", "run-1").run
        self.assertEqual(run.team_id, "acme")
        self.assertEqual(run.workflow_id, "demo")

    def test_concurrent_writers_with_same_etag_only_one_wins(self):
        self.store.write("acme", "demo", make_run("run-1"))
        etag = self.store.read("acme", "demo", "run-1").etag
        real_write = run_store_module.atomic_write_text

        def slow_write(path, content):
            time.sleep(0.2)
            real_write(path, content)

        results = []
        start = threading.Barrier(2)

        def worker(summary: str) -> None:
            start.wait()
            try:
                self.store.write("acme", "demo", make_run("run-1", summary=summary), expected_etag=etag)
                results.append("ok")
            except ConflictError:
                results.append("conflict")

        with patch.object(run_store_module, "atomic_write_text", side_effect=slow_write):
            threads = [threading.Thread(target=worker, args=(summary,)) for summary in ("approve", "cancel")]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

        self.assertEqual(sorted(results), ["conflict", "ok"])

    def test_node_results_and_approval_round_trip(self):
        run = make_run(
            "run-1",
            status="waiting_for_approval",
            nodes=[
                {"nodeId": "s", "status": "success", "startedAt": "a", "endedAt": "b", "output": {"k": 1}},
                {"nodeId": "approval", "status": "waiting"},
                {"nodeId": "x", "status": "error", "error": {"message": "boom"}},
                {"nodeId": "y", "status": "error", "error": "plain failure"},
            ],
            approval={"nodeId": "approval", "state": "pending", "requestedAt": "2026-10-18T09:01:00Z"},
        )
        self.store.write("acme", "demo", run)
        loaded = self.store.read("acme", "demo", "run-1").run
        self.assertEqual(loaded.approval.node_id, "approval")
        self.assertEqual(loaded.nodes[0].output, {"k": 1})
        self.assertEqual(loaded.nodes[2].error.message, "boom")
        self.assertEqual(loaded.nodes[3].error, "plain failure")

    def test_delete_never_written_run(self):
        result = self.store.delete("acme", "demo", "run-ghost")
        self.assertFalse(result.existed)

    def test_delete_existing_run_then_read_is_not_found(self):
        self.store.write("acme", "demo", make_run("run-1"))
        result = self.store.delete("acme", "demo", "run-1")
        self.assertTrue(result.existed)
        with self.assertRaises(RunNotFoundError):
            self.store.read("acme", "demo", "run-1")

    def test_invalid_ids(self):
        with self.assertRaises(InvalidIdError):
            self.store.read("acme", "Demo", "run-1")
        with self.assertRaises(InvalidIdError):
            self.store.write("acme", "demo", make_run("RUN_1"))
        with self.assertRaises(InvalidIdError):
            self.store.delete("acme", "demo", "")

    def test_writes_breaking_run_invariants_are_refused(self):
        with self.assertRaises(RunStateError):
            self.store.write("acme", "demo", make_run("run-1", status="success"))
        with self.assertRaises(RunStateError):
            self.store.write("acme", "demo", make_run("run-2", endedAt="2026-10-18T10:00:00Z"))
        with self.assertRaises(RunStateError):
            self.store.write("acme", "demo", make_run("run-3", status="waiting_for_approval"))
        self.assertEqual(self.store.list("acme", "demo").files, [])


class RunInvariantTests(unittest.TestCase):
    def test_consistent_runs(self):
        self.assertEqual(check_run_invariants(make_run("r1")), [])
        self.assertEqual(
            check_run_invariants(make_run("r2", status="error", endedAt="2026-10-18T10:00:00Z")),
            [],
        )
        self.assertEqual(
            check_run_invariants(
                make_run("r3", status="waiting_for_approval", approval={"nodeId": "a", "state": "pending"})
            ),
            [],
        )

    def test_waiting_run_needs_pending_approval(self):
        problems = check_run_invariants(
            make_run("r1", status="waiting_for_approval", approval={"nodeId": "a", "state": "approved"})
        )
        self.assertEqual(len(problems), 1)
        self.assertIn("approval state is approved", problems[0])

    def test_resolved_approval_may_remain_on_a_finished_run(self):
        run = make_run(
            "r1",
            status="success",
            endedAt="2026-10-18T10:00:00Z",
            approval={"nodeId": "a", "state": "approved", "decidedAt": "2026-10-18T09:30:00Z"},
        )
        self.assertEqual(check_run_invariants(run), [])


class TeamRunListingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp_dir = Path(tempfile.mkdtemp(prefix="team-runs-tests-"))
        self.store = RunStore(TeamWorkspace(self.tmp_dir))
        self.store.write("acme", "alpha", make_run("run-a1", startedAt="2026-10-01T09:00:00Z"))
        self.store.write(
            "acme",
            "alpha",
            make_run("run-a2", startedAt="2026-10-03T09:00:00Z", status="success", endedAt="2026-10-03T09:05:00Z"),
        )
        self.store.write(
            "acme",
            "beta",
            make_run(
                "run-b1",
                startedAt="2026-10-02T09:00:00Z",
                status="waiting_for_approval",
                approval={"nodeId": "approval", "state": "pending"},
            ),
        )

    def tearDown(self) -> None:
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def test_aggregates_across_workflows_newest_first(self):
        runs = self.store.list_team_runs("acme")
        self.assertEqual([r.run_id for r in runs], ["run-a2", "run-b1", "run-a1"])
        self.assertEqual([r.workflow_id for r in runs], ["alpha", "beta", "alpha"])

    def test_filters(self):
        self.assertEqual(
            [r.run_id for r in self.store.list_team_runs("acme", status="waiting_for_approval")],
            ["run-b1"],
        )
        self.assertEqual(
            [r.run_id for r in self.store.list_team_runs("acme", workflow_id="alpha")],
            ["run-a2", "run-a1"],
        )
        self.assertEqual(
            [r.run_id for r in self.store.list_team_runs("acme", since="2026-10-02T00:00:00Z")],
            ["run-a2", "run-b1"],
        )
        self.assertEqual(
            [r.run_id for r in self.store.list_team_runs("acme", until="2026-10-02T23:59:59Z")],
            ["run-b1", "run-a1"],
        )
        self.assertEqual(len(self.store.list_team_runs("acme", limit=1)), 1)

    def test_negative_limit_is_rejected(self):
        with self.assertRaises(BadRequestError):
            self.store.list_team_runs("acme", limit=-1)
        self.assertEqual(self.store.list_team_runs("acme", limit=0), [])

    def test_unknown_team_is_empty(self):
        self.assertEqual(self.store.list_team_runs("nobody"), [])

    def test_unreadable_run_files_are_skipped(self):
        broken = self.store.runs_dir("acme", "beta") / "run-broken.run.json"
        broken.write_text("{")
        with self.assertLogs("flowdeck.workflow.run_store", level="WARNING"):
            runs = self.store.list_team_runs("acme", workflow_id="beta")
        self.assertEqual([r.run_id for r in runs], ["run-b1"])


if __name__ == "__main__":
    unittest.main()
