"""Built-in workflow templates used to seed a team's first workflows."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from typing import Any

from pydantic import BaseModel

from ..errors import TemplateNotFoundError
from ..workspace import TeamWorkspace
from .schema import WORKFLOW_SCHEMA, CronTrigger, Workflow, WorkflowEdge, WorkflowNode
from .store import WorkflowStore

logger = logging.getLogger(__name__)

MARKETING_CADENCE_ID = "marketing-cadence-v1"
MARKETING_PLATFORMS = ["x", "instagram", "tiktok", "youtube"]
POST_LOG_PATH = "shared-context/marketing/POST_LOG.md"
LEARNINGS_PATH = "shared-context/memory/marketing_learnings.jsonl"


def _node(node_id: str, node_type: str, name: str, x: int, y: int, config: dict[str, Any]) -> WorkflowNode:
    return WorkflowNode(id=node_id, type=node_type, name=name, x=x, y=y, config=config)


def marketing_cadence_workflow(
    workflow_id: str | None = None,
    *,
    approval_provider: str = "telegram",
    approval_target: str = "",
    timezone: str = "America/New_York",
) -> Workflow:
    """Research -> draft -> QC -> human approval -> publish -> write-back -> end."""
    wf_id = (workflow_id or "").strip() or MARKETING_CADENCE_ID
    provider = approval_provider.strip() or "telegram"
    target = approval_target.strip()

    nodes = [
        _node("start", "start", "Start", 60, 120, {}),
        _node(
            "research",
            "llm",
            "Research + idea",
            300,
            80,
            {
                "agentId": "marketing-research",
                "promptTemplate": (
                    "Do competitive + trend research. Produce: 5 angles + supporting bullets. "
                    "Output JSON: {angles:[...], sources:[...]}"
                ),
            },
        ),
        _node(
            "draft_assets",
            "llm",
            "Draft platform assets",
            560,
            80,
            {
                "agentId": "marketing-writer",
                "promptTemplate": (
                    "Using the research output, draft platform-specific variants for "
                    "X/Instagram/TikTok/YouTube. Output JSON: {platforms:{...}}"
                ),
            },
        ),
        _node(
            "qc_brand",
            "llm",
            "QC / brand consistency",
            820,
            80,
            {
                "agentId": "brand-qc",
                "promptTemplate": (
                    "Review drafts for consistency and apply corrections. Nothing is posted "
                    "without approval. Output JSON: {platforms:{...}, notes:[...]}"
                ),
            },
        ),
        _node(
            "approval",
            "human_approval",
            "Human approval",
            1080,
            80,
            {
                "provider": provider,
                "target": target or "(set in UI)",
                "messageTemplate": "{{workflow.name}} - Approval needed\nRun: {{run.id}}\n\n{{packet.note}}",
            },
        ),
        _node(
            "post_to_platforms",
            "tool",
            "Post (after approval)",
            1340,
            80,
            {
                "tool": "marketing.post_all",
                "args": {"platforms": list(MARKETING_PLATFORMS), "draftsFromNode": "qc_brand"},
            },
        ),
        _node(
            "write_post_log",
            "tool",
            "Append POST_LOG.md",
            1600,
            60,
            {
                "tool": "fs.append",
                "args": {
                    "path": POST_LOG_PATH,
                    "content": "- {{date}} {{platforms}} posted. Run={{run.id}}\n",
                },
            },
        ),
        _node(
            "write_learnings",
            "tool",
            "Append marketing_learnings.jsonl",
            1600,
            140,
            {
                "tool": "fs.append",
                "args": {
                    "path": LEARNINGS_PATH,
                    "content": '{"ts":"{{date}}","runId":"{{run.id}}","notes":{{qc_brand.notes_json}}}\n',
                },
            },
        ),
        _node("end", "end", "End", 1860, 120, {}),
    ]

    links = [
        ("e-start-research", "start", "research"),
        ("e-research-draft", "research", "draft_assets"),
        ("e-draft-qc", "draft_assets", "qc_brand"),
        ("e-qc-approval", "qc_brand", "approval"),
        ("e-approval-post", "approval", "post_to_platforms"),
        ("e-post-log", "post_to_platforms", "write_post_log"),
        ("e-post-learnings", "post_to_platforms", "write_learnings"),
        ("e-log-end", "write_post_log", "end"),
        ("e-learnings-end", "write_learnings", "end"),
    ]

    return Workflow(
        schema=WORKFLOW_SCHEMA,
        id=wf_id,
        name="Marketing Cadence (v1)",
        version=1,
        timezone=timezone,
        triggers=[
            CronTrigger(
                id="t-weekdays-9",
                name="Weekdays 09:00",
                enabled=True,
                expr="0 9 * * 1-5",
                tz=timezone,
            )
        ],
        nodes=nodes,
        edges=[WorkflowEdge(id=edge_id, from_=source, to=dest) for edge_id, source, dest in links],
        meta={
            "templateId": MARKETING_CADENCE_ID,
            "approvalProvider": provider,
            "approvalTarget": target,
            "writeback": {
                "postLogPath": POST_LOG_PATH,
                "learningsJsonlPath": LEARNINGS_PATH,
            },
            "platforms": list(MARKETING_PLATFORMS),
        },
    )


TemplateBuilder = Callable[..., Workflow]

TEMPLATES: dict[str, TemplateBuilder] = {
    MARKETING_CADENCE_ID: marketing_cadence_workflow,
}


def build_template(
    template_id: str,
    *,
    workflow_id: str | None = None,
    approval_provider: str = "telegram",
    approval_target: str = "",
    timezone: str = "America/New_York",
) -> Workflow:
    builder = TEMPLATES.get(template_id)
    if builder is None:
        raise TemplateNotFoundError(f"Unknown templateId: {template_id}")
    return builder(
        workflow_id or template_id,
        approval_provider=approval_provider,
        approval_target=approval_target,
        timezone=timezone,
    )


def next_available_id(base_id: str, existing: Iterable[str]) -> str:
    """``base_id`` if free, else the first free ``base_id-N`` for N in 2..999."""
    taken = set(existing)
    if base_id not in taken:
        return base_id
    for i in range(2, 1000):
        candidate = f"{base_id}-{i}"
        if candidate not in taken:
            return candidate
    return f"{base_id}-{int(time.time() * 1000)}"


class TemplateInstance(BaseModel):
    template_id: str
    workflow_id: str
    path: str
    etag: str


def _writeback_paths(workflow: Workflow) -> list[str]:
    writeback = (workflow.meta or {}).get("writeback")
    if not isinstance(writeback, dict):
        return []
    return [value for value in writeback.values() if isinstance(value, str) and value.strip()]


def instantiate_template(
    store: WorkflowStore,
    workspace: TeamWorkspace,
    team_id: str,
    template_id: str,
    *,
    approval_provider: str = "telegram",
    approval_target: str = "",
    timezone: str = "America/New_York",
) -> TemplateInstance:
    """Write a template under the first free id and create its write-back files."""
    if template_id not in TEMPLATES:
        raise TemplateNotFoundError(f"Unknown templateId: {template_id}")

    workflow_id = next_available_id(template_id, store.list_ids(team_id))
    workflow = build_template(
        template_id,
        workflow_id=workflow_id,
        approval_provider=approval_provider,
        approval_target=approval_target,
        timezone=timezone,
    )
    written = store.write(team_id, workflow)

    for rel_path in _writeback_paths(workflow):
        target = workspace.resolve_relative(team_id, rel_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        # "a" creates the file without truncating existing content
        with target.open("a", encoding="utf-8"):
            pass

    logger.info(
        "instantiated template %s as %s",
        template_id,
        workflow_id,
        extra={"team_id": team_id, "workflow_id": workflow_id},
    )
    return TemplateInstance(
        template_id=template_id,
        workflow_id=workflow_id,
        path=written.path,
        etag=written.etag,
    )
