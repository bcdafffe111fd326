import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from .config import get_settings
from .errors import (
    BadRequestError,
    ConflictError,
    CorruptRecordError,
    FlowdeckError,
    InvalidIdError,
    InvalidPathError,
    NotFoundError,
    RunStateError,
    WorkflowValidationError,
)
from .logging_config import configure_logging
from .models import (
    HealthResponse,
    RunPostRequest,
    TemplateCreateRequest,
    WorkflowValidateRequest,
    WorkflowWriteRequest,
)
from .workflow.lifecycle import apply_approval_decision, create_run
from .workflow.run_store import RunStore
from .workflow.schema import Workflow
from .workflow.store import WorkflowStore
from .workflow.templates import TEMPLATES, instantiate_template
from .workflow.validate import validate_workflow
from .workspace import TeamWorkspace

load_dotenv()

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging(settings.log_level, settings.log_json)
    yield


app = FastAPI(
    title="Flowdeck API",
    description="Operator console backend for file-first workflow definitions and runs",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

workspace = TeamWorkspace.from_settings(settings)
workflow_store = WorkflowStore(workspace)
run_store = RunStore(workspace)

STATUS_CODES: dict[type[FlowdeckError], int] = {
    BadRequestError: 400,
    InvalidIdError: 400,
    InvalidPathError: 400,
    WorkflowValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    RunStateError: 409,
    CorruptRecordError: 500,
}


@app.exception_handler(FlowdeckError)
async def flowdeck_error_handler(request: Request, exc: FlowdeckError):
    status_code = next(
        (code for cls, code in STATUS_CODES.items() if isinstance(exc, cls)),
        500,
    )
    log = logger.error if status_code >= 500 else logger.info
    log(
        "%s %s -> %d: %s",
        request.method,
        request.url.path,
        status_code,
        exc,
        extra={"error_type": exc.error_type, "status": status_code},
    )
    body = {"ok": False, "error": str(exc), "errorType": exc.error_type}
    if isinstance(exc, WorkflowValidationError):
        body["errors"] = exc.errors
        body["warnings"] = exc.warnings
    return JSONResponse(status_code=status_code, content=body)


def _required(value: Optional[str], name: str) -> str:
    text = (value or "").strip()
    if not text:
        raise BadRequestError(f"{name} is required")
    return text


def _parse_workflow(payload: dict) -> Workflow:
    try:
        return Workflow.model_validate(payload)
    except PydanticValidationError as exc:
        raise BadRequestError(f"workflow is malformed: {exc}") from exc


@app.get("/api/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


# --- Workflow definitions ---

@app.get("/api/teams/workflows")
def get_workflows(teamId: str = "", id: str = ""):
    team_id = _required(teamId, "teamId")
    if id.strip():
        result = workflow_store.read(team_id, id)
        return {
            "ok": True,
            "path": result.path,
            "etag": result.etag,
            "workflow": result.workflow.to_json_dict(),
        }
    listing = workflow_store.list(team_id)
    return {"ok": True, **listing.model_dump()}


@app.post("/api/teams/workflows")
def put_workflow(request: WorkflowWriteRequest):
    team_id = _required(request.team_id, "teamId")
    workflow = _parse_workflow(request.workflow)
    result = validate_workflow(workflow)
    if result.errors:
        raise WorkflowValidationError(result.errors, result.warnings)
    written = workflow_store.write(team_id, workflow, expected_etag=request.expected_etag)
    return {"ok": True, **written.model_dump(), "warnings": result.warnings}


@app.post("/api/teams/workflows/validate")
def check_workflow(request: WorkflowValidateRequest):
    result = validate_workflow(_parse_workflow(request.workflow))
    return {"ok": result.ok, **result.model_dump()}


@app.delete("/api/teams/workflows")
def remove_workflow(teamId: str = "", id: str = ""):
    team_id = _required(teamId, "teamId")
    workflow_id = _required(id, "id")
    return {"ok": True, **workflow_store.delete(team_id, workflow_id).model_dump()}


# --- Workflow runs ---

@app.get("/api/teams/workflow-runs")
def get_workflow_runs(teamId: str = "", workflowId: str = "", runId: str = ""):
    team_id = _required(teamId, "teamId")
    workflow_id = _required(workflowId, "workflowId")
    if runId.strip():
        result = run_store.read(team_id, workflow_id, runId)
        return {"ok": True, "path": result.path, "etag": result.etag, "run": result.run.to_json_dict()}
    return {"ok": True, **run_store.list(team_id, workflow_id).model_dump()}


@app.get("/api/teams/workflow-runs/all")
def get_team_runs(
    teamId: str = "",
    workflowId: str = "",
    status: str = "",
    since: str = "",
    until: str = "",
    limit: Optional[int] = Query(None, ge=0),
):
    team_id = _required(teamId, "teamId")
    runs = run_store.list_team_runs(
        team_id,
        workflow_id=workflowId.strip() or None,
        status=status.strip() or None,
        since=since.strip() or None,
        until=until.strip() or None,
        limit=limit,
    )
    return {"ok": True, "runs": [run.model_dump(by_alias=True, exclude_none=True) for run in runs]}


@app.post("/api/teams/workflow-runs")
def post_workflow_run(request: RunPostRequest):
    team_id = _required(request.team_id, "teamId")
    workflow_id = _required(request.workflow_id, "workflowId")

    if request.action:
        run_id = _required(request.run_id, "runId")
        current = run_store.read(team_id, workflow_id, run_id)
        updated = apply_approval_decision(current.run, request.action.strip(), note=request.note)
        written = run_store.write(team_id, workflow_id, updated, expected_etag=current.etag)
        return {"ok": True, **written.model_dump(), "runId": updated.id, "status": updated.status}

    workflow = workflow_store.read(team_id, workflow_id).workflow
    run = create_run(workflow, summary=request.summary or "Run created")
    written = run_store.write(team_id, workflow_id, run)
    return {"ok": True, **written.model_dump(), "runId": run.id, "status": run.status}


@app.delete("/api/teams/workflow-runs")
def remove_workflow_run(teamId: str = "", workflowId: str = "", runId: str = ""):
    team_id = _required(teamId, "teamId")
    workflow_id = _required(workflowId, "workflowId")
    run_id = _required(runId, "runId")
    return {"ok": True, **run_store.delete(team_id, workflow_id, run_id).model_dump()}


# --- Templates ---

@app.get("/api/teams/workflow-templates")
def list_workflow_templates():
    return {"ok": True, "templates": sorted(TEMPLATES)}


@app.post("/api/teams/workflow-templates")
def create_from_template(request: TemplateCreateRequest):
    team_id = _required(request.team_id, "teamId")
    template_id = _required(request.template_id, "templateId")
    instance = instantiate_template(
        workflow_store,
        workspace,
        team_id,
        template_id,
        approval_provider=request.approval_provider or settings.default_approval_provider,
        approval_target=request.approval_target or settings.default_approval_target or "",
        timezone=settings.default_timezone,
    )
    return {
        "ok": True,
        "path": instance.path,
        "etag": instance.etag,
        "workflowId": instance.workflow_id,
        "templateId": instance.template_id,
    }
