"""API request and response models for Flowdeck."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class WorkflowWriteRequest(ApiModel):
    """Create or replace a workflow definition."""

    team_id: str = Field("", alias="teamId", description="Team that owns the workflow")
    workflow: dict[str, Any] = Field(
        ..., description="Workflow definition (must include id, name, nodes[], edges[])"
    )
    expected_etag: Optional[str] = Field(
        None,
        alias="expectedEtag",
        description="If provided, refuse the write when the stored file no longer has this etag",
    )


class WorkflowValidateRequest(ApiModel):
    workflow: dict[str, Any]


class RunPostRequest(ApiModel):
    """Create a run, or apply an approval action to an existing one."""

    team_id: str = Field("", alias="teamId")
    workflow_id: str = Field("", alias="workflowId")
    action: Optional[str] = Field(
        None, description="approve | request_changes | cancel; omit to create a new run"
    )
    run_id: Optional[str] = Field(None, alias="runId")
    note: Optional[str] = None
    summary: Optional[str] = None


class TemplateCreateRequest(ApiModel):
    team_id: str = Field("", alias="teamId")
    template_id: str = Field("", alias="templateId")
    approval_provider: Optional[str] = Field(None, alias="approvalProvider")
    approval_target: Optional[str] = Field(None, alias="approvalTarget")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str = "Flowdeck Backend"
