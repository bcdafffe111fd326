"""File based workflow storage organized by team."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel

from ..errors import WorkflowNotFoundError
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
from .ids import validate_workflow_id
from .schema import WORKFLOW_SCHEMA, Workflow

logger = logging.getLogger(__name__)

WORKFLOWS_DIR = Path("shared-context") / "workflows"
WORKFLOW_SUFFIX = ".workflow.json"


def workflow_file_name(workflow_id: str) -> str:
    return f"{workflow_id}{WORKFLOW_SUFFIX}"


def workflow_id_from_file_name(file_name: str) -> str | None:
    if not file_name.endswith(WORKFLOW_SUFFIX):
        return None
    return file_name[: -len(WORKFLOW_SUFFIX)] or None


class WorkflowReadResult(BaseModel):
    path: str
    etag: str
    workflow: Workflow


class WorkflowStore:
    """Stores workflow definitions as one JSON file per id under each team workspace."""

    def __init__(self, workspace: TeamWorkspace):
        self.workspace = workspace

    def workflows_dir(self, team_id: str) -> Path:
        return self.workspace.team_dir(team_id) / WORKFLOWS_DIR

    def _path(self, team_id: str, workflow_id: str) -> Path:
        wf_id = validate_workflow_id(workflow_id)
        return self.workflows_dir(team_id) / workflow_file_name(wf_id)

    def list(self, team_id: str) -> FileListing:
        """List workflow file names for a team, sorted. Missing directory means none."""
        directory = self.workflows_dir(team_id)
        files = list_record_files(directory, WORKFLOW_SUFFIX)
        logger.debug("listed %d workflows", len(files), extra={"team_id": team_id})
        return FileListing(dir=str(directory), files=files)

    def list_ids(self, team_id: str) -> list[str]:
        ids = (workflow_id_from_file_name(name) for name in self.list(team_id).files)
        return [wf_id for wf_id in ids if wf_id]

    def read(self, team_id: str, workflow_id: str) -> WorkflowReadResult:
        path = self._path(team_id, workflow_id)
        workflow, etag = load_record(
            path,
            Workflow,
            WorkflowNotFoundError(f"Workflow '{workflow_id}' not found for team '{team_id}'"),
        )
        logger.debug("read workflow", extra={"team_id": team_id, "path": path})
        return WorkflowReadResult(path=str(path), etag=etag, workflow=workflow)

    def write(
        self,
        team_id: str,
        workflow: Workflow,
        *,
        expected_etag: str | None = None,
    ) -> WriteResult:
        """Create or overwrite a workflow file.

        Only the id grammar is checked; structural validation is the caller's
        job so that drafts can be saved. The stored ``id`` and ``schema`` are
        forced to the validated id and the current schema tag. With
        ``expected_etag`` the write is refused if the file changed since it
        was read.
        """
        wf_id = validate_workflow_id(workflow.id)
        path = self.workflows_dir(team_id) / workflow_file_name(wf_id)

        to_write = workflow.model_copy(update={"id": wf_id, "schema_tag": WORKFLOW_SCHEMA})
        content = dump_record(to_write.to_json_dict())
        with record_lock(path).locked():
            ensure_etag(path, expected_etag)
            atomic_write_text(path, content)
        logger.info(
            "wrote workflow %s",
            wf_id,
            extra={"team_id": team_id, "workflow_id": wf_id, "path": path},
        )
        return WriteResult(path=str(path), etag=content_etag(content.encode("utf-8")))

    def delete(self, team_id: str, workflow_id: str) -> DeleteResult:
        """Delete a workflow file; an already-absent file is not an error."""
        path = self._path(team_id, workflow_id)
        existed = remove_record(path)
        logger.info(
            "deleted workflow %s (existed=%s)",
            workflow_id,
            existed,
            extra={"team_id": team_id, "workflow_id": workflow_id, "path": path},
        )
        return DeleteResult(path=str(path), existed=existed)
