"""Structural validation for workflow definitions.

Errors must be fixed before a definition is persisted through the API;
warnings are advisory so that drafts without start/end nodes can still be
saved mid-edit. Every rule runs on every call, so a single pass reports all
problems.
"""

from __future__ import annotations

from pydantic import BaseModel

from .schema import WORKFLOW_SCHEMA, CronTrigger, Workflow


class ValidationResult(BaseModel):
    errors: list[str] = []
    warnings: list[str] = []

    @property
    def ok(self) -> bool:
        return not self.errors


def _text(value: object) -> str:
    return "" if value is None else str(value).strip()


def is_five_field_cron(expr: str) -> bool:
    return len(_text(expr).split()) == 5


def validate_workflow(workflow: Workflow) -> ValidationResult:
    """Check a parsed workflow definition and return its errors and warnings."""
    errors: list[str] = []
    warnings: list[str] = []

    if workflow.schema_tag != WORKFLOW_SCHEMA:
        errors.append(f"schema must be {WORKFLOW_SCHEMA} (got {workflow.schema_tag})")
    if not _text(workflow.id):
        errors.append("id is required")
    if not _text(workflow.name):
        errors.append("name is required")

    node_ids = [_text(node.id) for node in workflow.nodes]
    present_node_ids = [node_id for node_id in node_ids if node_id]
    if len(present_node_ids) != len(node_ids):
        errors.append("all nodes must have a non-empty id")
    if len(set(present_node_ids)) != len(present_node_ids):
        errors.append("node ids must be unique")

    edge_ids = [_text(edge.id) for edge in workflow.edges]
    present_edge_ids = [edge_id for edge_id in edge_ids if edge_id]
    if len(present_edge_ids) != len(edge_ids):
        errors.append("all edges must have a non-empty id")
    if len(set(present_edge_ids)) != len(present_edge_ids):
        errors.append("edge ids must be unique")

    known_nodes = set(present_node_ids)
    for edge in workflow.edges:
        edge_label = _text(edge.id) or "(missing id)"
        source = _text(edge.from_)
        target = _text(edge.to)
        if not source or not target:
            errors.append(f"edge {edge_label} must have from/to")
            continue
        if source not in known_nodes:
            errors.append(f"edge {edge_label} references missing from node: {source}")
        if target not in known_nodes:
            errors.append(f"edge {edge_label} references missing to node: {target}")

    starts = [node for node in workflow.nodes if node.type == "start"]
    ends = [node for node in workflow.nodes if node.type == "end"]
    if not starts:
        warnings.append("no start node found")
    if len(starts) > 1:
        warnings.append(
            "multiple start nodes found (allowed, but execution entry point may be ambiguous)"
        )
    if not ends:
        warnings.append("no end node found")

    for trigger in workflow.triggers:
        if isinstance(trigger, CronTrigger):
            trigger_label = _text(trigger.id) or "(missing id)"
            if not _text(trigger.id):
                errors.append("cron trigger missing id")
            if not _text(trigger.expr):
                errors.append(f"cron trigger {trigger_label} missing expr")
            elif not is_five_field_cron(trigger.expr):
                warnings.append(f"cron trigger {trigger_label} expr is not 5-field: {trigger.expr}")
            if trigger.tz and "/" not in trigger.tz:
                warnings.append(
                    f"cron trigger {trigger_label} tz doesn't look like an IANA timezone: {trigger.tz}"
                )

    return ValidationResult(errors=errors, warnings=warnings)
