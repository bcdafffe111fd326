"""Pydantic models for workflow run records."""

from __future__ import annotations

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field

from .schema import RecordModel

RUN_SCHEMA = "clawkitchen.workflow-run.v1"

RunStatus = Literal["running", "waiting_for_approval", "success", "error", "canceled"]
NodeRunStatus = Literal["pending", "running", "waiting", "success", "error", "skipped"]
ApprovalState = Literal["pending", "approved", "changes_requested", "canceled"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"success", "error", "canceled"})


class RunError(BaseModel):
    message: str
    stack: Optional[str] = None


class RunNodeResult(RecordModel):
    """Execution result for one node of a run."""

    node_id: str = Field(alias="nodeId")
    status: NodeRunStatus = "pending"
    started_at: Optional[str] = Field(None, alias="startedAt")
    ended_at: Optional[str] = Field(None, alias="endedAt")
    output: Any = None
    error: Union[RunError, str, None] = None


class RunApproval(RecordModel):
    """Human approval sub-state of a run paused at a human_approval node."""

    node_id: str = Field(alias="nodeId")
    state: ApprovalState = "pending"
    requested_at: Optional[str] = Field(None, alias="requestedAt")
    decided_at: Optional[str] = Field(None, alias="decidedAt")
    note: Optional[str] = None


class WorkflowRun(RecordModel):
    """One execution attempt of a workflow, one file per (team, workflow, run)."""

    schema_tag: str = Field(RUN_SCHEMA, alias="schema")
    id: str
    workflow_id: str = Field("", alias="workflowId")
    team_id: Optional[str] = Field(None, alias="teamId")
    started_at: str = Field(alias="startedAt")
    ended_at: Optional[str] = Field(None, alias="endedAt")
    status: RunStatus = "running"
    summary: Optional[str] = None
    nodes: Optional[list[RunNodeResult]] = None
    approval: Optional[RunApproval] = None
    meta: Optional[dict[str, Any]] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


def check_run_invariants(run: WorkflowRun) -> list[str]:
    """Return the lifecycle invariants ``run`` violates (empty when consistent)."""
    problems: list[str] = []

    if run.is_terminal and not run.ended_at:
        problems.append(f"run {run.id} has terminal status {run.status} but no endedAt")
    if not run.is_terminal and run.ended_at:
        problems.append(f"run {run.id} has endedAt but non-terminal status {run.status}")

    if run.status == "waiting_for_approval":
        if run.approval is None:
            problems.append(f"run {run.id} is waiting_for_approval without an approval record")
        elif run.approval.state != "pending":
            problems.append(
                f"run {run.id} is waiting_for_approval but approval state is {run.approval.state}"
            )
    if run.approval is not None and not run.approval.node_id.strip():
        problems.append(f"run {run.id} approval record has no nodeId")

    return problems
