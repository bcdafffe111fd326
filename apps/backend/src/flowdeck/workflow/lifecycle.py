"""Run status transitions.

    running -> waiting_for_approval     request_approval()
    waiting_for_approval -> running     approve / request_changes
    waiting_for_approval -> canceled    cancel
    running | waiting -> success|error  finish_run()

Every helper returns a new record and leaves its input untouched.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone
from typing import Literal, Optional

from ..errors import BadRequestError, RunStateError
from .runs import RunApproval, RunNodeResult, WorkflowRun
from .schema import Workflow

logger = logging.getLogger(__name__)

ApprovalAction = Literal["approve", "request_changes", "cancel"]
APPROVAL_ACTIONS: tuple[str, ...] = ("approve", "request_changes", "cancel")
APPROVAL_STATES = {"approve": "approved", "request_changes": "changes_requested", "cancel": "canceled"}


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_run_id(now: Optional[str] = None) -> str:
    """Sortable run id, e.g. ``run-2026-10-18t13-17-00-000z-a1b2c3``."""
    stamp = (now or now_iso()).replace(":", "-").replace(".", "-").replace("+", "-")
    return f"run-{stamp}-{secrets.token_hex(3)}".lower()


def create_run(
    workflow: Workflow,
    *,
    run_id: Optional[str] = None,
    started_at: Optional[str] = None,
    summary: Optional[str] = None,
) -> WorkflowRun:
    """A fresh ``running`` record with one pending result per workflow node."""
    started = started_at or now_iso()
    return WorkflowRun(
        id=run_id or new_run_id(started),
        workflowId=workflow.id,
        startedAt=started,
        status="running",
        summary=summary,
        nodes=[RunNodeResult(nodeId=node.id, status="pending") for node in workflow.nodes],
    )


def _replace_node(run: WorkflowRun, node_id: str, **changes) -> list[RunNodeResult]:
    nodes = list(run.nodes or [])
    for idx, result in enumerate(nodes):
        if result.node_id == node_id:
            nodes[idx] = result.model_copy(update=changes)
            return nodes
    nodes.append(RunNodeResult(nodeId=node_id).model_copy(update=changes))
    return nodes


def _decision_output(run: WorkflowRun, node_id: str, state: str, note: Optional[str]) -> dict:
    """Approval node output with the decision merged over whatever the executor left there."""
    existing = next((result.output for result in run.nodes or [] if result.node_id == node_id), None)
    output = dict(existing) if isinstance(existing, dict) else {}
    output.update({"decision": state, "note": note})
    return output


def request_approval(run: WorkflowRun, node_id: str, *, at: Optional[str] = None) -> WorkflowRun:
    """Pause a running run at a human_approval node."""
    if run.status != "running":
        raise RunStateError(f"run {run.id} is {run.status}; only running runs can request approval")
    requested_at = at or now_iso()
    nodes = _replace_node(run, node_id, status="waiting", started_at=requested_at)
    return run.model_copy(
        update={
            "status": "waiting_for_approval",
            "nodes": nodes,
            "approval": RunApproval(nodeId=node_id, state="pending", requestedAt=requested_at),
        }
    )


def apply_approval_decision(
    run: WorkflowRun,
    action: str,
    *,
    note: Optional[str] = None,
    at: Optional[str] = None,
) -> WorkflowRun:
    """Record a human decision on a run that is waiting for approval.

    ``approve`` and ``request_changes`` hand the run back to the executor
    (status ``running``); ``cancel`` ends it and skips every pending node.
    """
    if action not in APPROVAL_ACTIONS:
        raise BadRequestError(f"Unsupported action: {action}")
    if run.status != "waiting_for_approval" or run.approval is None:
        raise RunStateError(f"run {run.id} is not awaiting approval")

    decided_at = at or now_iso()
    node_id = run.approval.node_id
    state = APPROVAL_STATES[action]
    output = _decision_output(run, node_id, state, note)

    if action == "approve":
        nodes = _replace_node(run, node_id, status="success", ended_at=decided_at, output=output)
        approval = run.approval.model_copy(
            update={"state": state, "decided_at": decided_at, "note": note}
        )
        update = {"status": "running", "nodes": nodes, "approval": approval}
    elif action == "request_changes":
        # Approval node stays waiting until the reworked draft is resubmitted.
        nodes = _replace_node(run, node_id, status="waiting", output=output)
        approval = run.approval.model_copy(
            update={"state": state, "decided_at": None, "note": note}
        )
        update = {"status": "running", "nodes": nodes, "approval": approval}
    else:
        nodes = [
            result.model_copy(
                update={
                    "status": "skipped",
                    "started_at": result.started_at or decided_at,
                    "ended_at": decided_at,
                    "output": result.output
                    if result.output is not None
                    else {"note": "skipped due to cancel"},
                }
            )
            if result.status == "pending"
            else result
            for result in _replace_node(run, node_id, status="error", ended_at=decided_at, output=output)
        ]
        approval = run.approval.model_copy(
            update={"state": state, "decided_at": decided_at, "note": note}
        )
        update = {"status": "canceled", "ended_at": decided_at, "nodes": nodes, "approval": approval}

    logger.info(
        "approval %s on run %s",
        action,
        run.id,
        extra={"workflow_id": run.workflow_id, "run_id": run.id, "status": update["status"]},
    )
    return run.model_copy(update=update)


def finish_run(
    run: WorkflowRun,
    status: Literal["success", "error"],
    *,
    at: Optional[str] = None,
    summary: Optional[str] = None,
) -> WorkflowRun:
    if run.is_terminal:
        raise RunStateError(f"run {run.id} already ended with status {run.status}")
    if status not in ("success", "error"):
        raise RunStateError(f"finish_run expects success or error, got {status}")
    update = {"status": status, "ended_at": at or now_iso()}
    if summary is not None:
        update["summary"] = summary
    return run.model_copy(update=update)
