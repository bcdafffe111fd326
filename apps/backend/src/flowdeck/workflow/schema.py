"""Pydantic models defining the workflow graph file format."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

WORKFLOW_SCHEMA = "clawkitchen.workflow.v1"

NodeType = Literal["start", "end", "llm", "tool", "condition", "delay", "human_approval"]


class RecordModel(BaseModel):
    """Base for on-disk models: camelCase/aliased keys in, the same keys out."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class WorkflowNode(RecordModel):
    """A single typed step in the workflow graph."""

    id: str = ""
    type: NodeType
    name: Optional[str] = None
    # UI layout hints only
    x: float | int | None = None
    y: float | int | None = None
    # Interpreted by the executor per node type; opaque here
    config: Optional[dict[str, Any]] = None


class WorkflowEdge(RecordModel):
    """A directed connection between two node ids."""

    id: str = ""
    from_: str = Field("", alias="from")
    to: str = ""
    label: Optional[str] = None  # condition hint for the executor, never evaluated here


class CronTrigger(RecordModel):
    """Schedule read by an external scheduler. Only its shape is checked here."""

    kind: Literal["cron"] = "cron"
    id: str = ""
    name: Optional[str] = None
    enabled: bool = True
    expr: str = ""  # standard 5-field cron expression
    tz: Optional[str] = None  # IANA zone, e.g. America/New_York


# Closed set of trigger kinds; add new variants here with their own ``kind``.
WorkflowTrigger = CronTrigger


class Workflow(RecordModel):
    """A complete workflow definition, one file per (team, workflow id)."""

    schema_tag: str = Field(WORKFLOW_SCHEMA, alias="schema")
    id: str = ""
    name: str = ""
    version: Optional[int] = None
    timezone: Optional[str] = None
    triggers: list[WorkflowTrigger] = []
    nodes: list[WorkflowNode] = []
    edges: list[WorkflowEdge] = []
    meta: Optional[dict[str, Any]] = None

    def node_ids(self) -> list[str]:
        return [node.id for node in self.nodes]
