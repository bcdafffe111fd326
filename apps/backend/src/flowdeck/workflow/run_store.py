"""File based run record storage, one directory per (team, workflow)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from ..errors import BadRequestError, CorruptRecordError, RunNotFoundError, RunStateError
from ..persistence import (
    DeleteResult,
    FileListing,
    WriteResult,
    atomic_write_text,
    content_etag,
    dump_record,
    ensure_etag,
    list_record_files,
    load_record,
    record_lock,
    remove_record,
)
from ..workspace import TeamWorkspace
from .ids import validate_run_id, validate_team_id, validate_workflow_id
from .runs import RUN_SCHEMA, RunStatus, WorkflowRun, check_run_invariants

logger = logging.getLogger(__name__)

RUNS_DIR = Path("shared-context") / "workflow-runs"
RUN_SUFFIX = ".run.json"


def run_file_name(run_id: str) -> str:
    return f"{run_id}{RUN_SUFFIX}"


class RunReadResult(BaseModel):
    path: str
    etag: str
    run: WorkflowRun


class RunSummary(BaseModel):
    """Compact view of a run used by the cross-workflow listing."""

    workflow_id: str = Field(alias="workflowId")
    run_id: str = Field(alias="runId")
    status: RunStatus
    started_at: str = Field(alias="startedAt")
    ended_at: Optional[str] = Field(None, alias="endedAt")
    summary: Optional[str] = None
    path: str


class RunStore:
    """Stores run records as ``<runId>.run.json`` under each workflow's run directory."""

    def __init__(self, workspace: TeamWorkspace):
        self.workspace = workspace

    def runs_root(self, team_id: str) -> Path:
        return self.workspace.team_dir(team_id) / RUNS_DIR

    def runs_dir(self, team_id: str, workflow_id: str) -> Path:
        return self.runs_root(team_id) / validate_workflow_id(workflow_id)

    def _path(self, team_id: str, workflow_id: str, run_id: str) -> Path:
        return self.runs_dir(team_id, workflow_id) / run_file_name(validate_run_id(run_id))

    def list(self, team_id: str, workflow_id: str) -> FileListing:
        """Run file names for a workflow, newest first (reverse lexical order)."""
        directory = self.runs_dir(team_id, workflow_id)
        files = list_record_files(directory, RUN_SUFFIX, reverse=True)
        return FileListing(dir=str(directory), files=files)

    def read(self, team_id: str, workflow_id: str, run_id: str) -> RunReadResult:
        path = self._path(team_id, workflow_id, run_id)
        run, etag = load_record(
            path,
            WorkflowRun,
            RunNotFoundError(f"Run '{run_id}' not found for workflow '{workflow_id}'"),
        )
        return RunReadResult(path=str(path), etag=etag, run=run)

    def write(
        self,
        team_id: str,
        workflow_id: str,
        run: WorkflowRun,
        *,
        expected_etag: str | None = None,
    ) -> WriteResult:
        """Create or overwrite a run record.

        ``workflowId`` and ``teamId`` always reflect where the file is stored,
        whatever the caller passed. Runs that break the lifecycle invariants
        (see ``check_run_invariants``) are refused.
        """
        team = validate_team_id(team_id)
        wf_id = validate_workflow_id(workflow_id)
        run_id = validate_run_id(run.id)
        path = self.runs_dir(team, wf_id) / run_file_name(run_id)

        problems = check_run_invariants(run)
        if problems:
            raise RunStateError("; ".join(problems))

        to_write = run.model_copy(
            update={
                "schema_tag": RUN_SCHEMA,
                "id": run_id,
                "workflow_id": wf_id,
                "team_id": team,
            }
        )
        content = dump_record(to_write.to_json_dict())
        with record_lock(path).locked():
            ensure_etag(path, expected_etag)
            atomic_write_text(path, content)
        logger.info(
            "wrote run %s (%s)",
            run_id,
            to_write.status,
            extra={"team_id": team, "workflow_id": wf_id, "run_id": run_id, "status": to_write.status},
        )
        return WriteResult(path=str(path), etag=content_etag(content.encode("utf-8")))

    def delete(self, team_id: str, workflow_id: str, run_id: str) -> DeleteResult:
        path = self._path(team_id, workflow_id, run_id)
        existed = remove_record(path)
        logger.info(
            "deleted run %s (existed=%s)",
            run_id,
            existed,
            extra={"team_id": team_id, "workflow_id": workflow_id, "run_id": run_id},
        )
        return DeleteResult(path=str(path), existed=existed)

    def list_team_runs(
        self,
        team_id: str,
        *,
        workflow_id: str | None = None,
        status: str | None = None,
        since: str | None = None,
        until: str | None = None,
        limit: int | None = None,
    ) -> list[RunSummary]:
        """Aggregate runs across a team's workflows, newest ``startedAt`` first.

        ``since``/``until`` bound ``startedAt`` inclusively and are compared as
        ISO-8601 strings. Run files that cannot be parsed are skipped.
        """
        if limit is not None and limit < 0:
            raise BadRequestError(f"limit must be >= 0 (got {limit})")
        if workflow_id:
            workflow_ids = [validate_workflow_id(workflow_id)]
        else:
            root = self.runs_root(team_id)
            try:
                workflow_ids = sorted(entry.name for entry in root.iterdir() if entry.is_dir())
            except FileNotFoundError:
                return []

        summaries: list[RunSummary] = []
        for wf_id in workflow_ids:
            directory = self.runs_root(team_id) / wf_id
            for file_name in list_record_files(directory, RUN_SUFFIX):
                path = directory / file_name
                try:
                    run, _ = load_record(path, WorkflowRun, RunNotFoundError(str(path)))
                except (CorruptRecordError, RunNotFoundError) as exc:
                    logger.warning(
                        "skipping unreadable run file: %s",
                        exc,
                        extra={"team_id": team_id, "workflow_id": wf_id, "path": path},
                    )
                    continue
                if status and run.status != status:
                    continue
                if since and run.started_at < since:
                    continue
                if until and run.started_at > until:
                    continue
                summaries.append(
                    RunSummary(
                        workflowId=wf_id,
                        runId=run.id,
                        status=run.status,
                        startedAt=run.started_at,
                        endedAt=run.ended_at,
                        summary=run.summary,
                        path=str(path),
                    )
                )

        summaries.sort(key=lambda item: item.started_at, reverse=True)
        if limit is not None:
            summaries = summaries[:limit]
        return summaries
