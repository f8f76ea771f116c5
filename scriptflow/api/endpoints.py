"""FastAPI REST endpoints for the automation engine."""

from typing import Dict, List, Any, Optional
from fastapi import APIRouter, HTTPException, Depends, Response, status
from pydantic import BaseModel, Field

from ..core.command_registry import CommandRegistry, KNOWN_COMMANDS
from ..core.exceptions import (
    AutomationEngineError,
    ErrorCategory,
    create_error_response,
)
from ..core.interpreter import rule_summaries
from ..core.logging import get_logger
from ..core.node_templates import NodeTemplateCatalog, WORKFLOW_TEMPLATES
from ..core.parser import parse_source
from ..core.script_manager import EXAMPLE_SCRIPTS, KNOWN_EVENTS, ScriptManager, script_documentation
from ..core.validator import has_errors
from ..core.workflow_executor import WorkflowExecutor
from ..core.workflow_manager import WorkflowManager
from ..models.script import Diagnostic, RunResult, Script, TriggerDescriptor
from ..models.workflow import (
    Connection,
    Execution,
    NodeTemplate,
    Position,
    TemplateCategory,
    Workflow,
    WorkflowNode,
    WorkflowStatistics,
)

logger = get_logger(__name__)

# Create router
router = APIRouter(prefix="/api/v1", tags=["automation"])

# Global instances (initialized by the application factory)
_script_manager: Optional[ScriptManager] = None
_workflow_manager: Optional[WorkflowManager] = None
_workflow_executor: Optional[WorkflowExecutor] = None
_command_registry: Optional[CommandRegistry] = None
_template_catalog: Optional[NodeTemplateCatalog] = None


def init_dependencies(
    script_manager: ScriptManager,
    workflow_manager: WorkflowManager,
    workflow_executor: WorkflowExecutor,
    command_registry: CommandRegistry,
    template_catalog: NodeTemplateCatalog
):
    """Initialize the global dependencies."""
    global _script_manager, _workflow_manager, _workflow_executor, _command_registry, _template_catalog
    _script_manager = script_manager
    _workflow_manager = workflow_manager
    _workflow_executor = workflow_executor
    _command_registry = command_registry
    _template_catalog = template_catalog


def _require(component, name: str):
    if component is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"{name} not initialized"
        )
    return component


def get_script_manager() -> ScriptManager:
    """Dependency to get script manager."""
    return _require(_script_manager, "Script manager")


def get_workflow_manager() -> WorkflowManager:
    """Dependency to get workflow manager."""
    return _require(_workflow_manager, "Workflow manager")


def get_workflow_executor() -> WorkflowExecutor:
    """Dependency to get workflow executor."""
    return _require(_workflow_executor, "Workflow executor")


def get_command_registry() -> CommandRegistry:
    """Dependency to get command registry."""
    return _require(_command_registry, "Command registry")


def get_template_catalog() -> NodeTemplateCatalog:
    """Dependency to get node template catalog."""
    return _require(_template_catalog, "Template catalog")


def http_error(error: AutomationEngineError) -> HTTPException:
    """Map an engine error to an HTTP error carrying the standard error body."""
    if error.category == ErrorCategory.NOT_FOUND:
        status_code = status.HTTP_404_NOT_FOUND
    elif error.category in (ErrorCategory.SYNTAX, ErrorCategory.VALIDATION):
        status_code = status.HTTP_400_BAD_REQUEST
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    log = logger.warning if status_code < 500 else logger.error
    log(f"{error.__class__.__name__}: {error.message}")
    return HTTPException(status_code=status_code, detail=create_error_response(error))


# Request/Response models
class CreateScriptRequest(BaseModel):
    """Request model for creating a script."""
    name: str = Field(..., min_length=1, description="Script name")
    code: str = Field(default="", description="Script source")
    description: Optional[str] = Field(None, description="Optional description")


class UpdateScriptRequest(BaseModel):
    """Request model for updating a script."""
    code: Optional[str] = Field(None, description="New script source")
    name: Optional[str] = Field(None, min_length=1, description="New name")
    description: Optional[str] = Field(None, description="New description")


class ValidateScriptRequest(BaseModel):
    code: str = Field(..., description="Script source to validate")


class ValidateScriptResponse(BaseModel):
    valid: bool = Field(..., description="True when nothing blocks execution")
    diagnostics: List[Diagnostic] = Field(default_factory=list)


class ExecuteScriptRequest(BaseModel):
    """Request model for running a script."""
    context: Dict[str, Any] = Field(default_factory=dict, description="Placeholder and condition values")
    event_name: Optional[str] = Field(None, description="Only run rules triggered by this event")


class EventRequest(BaseModel):
    context: Dict[str, Any] = Field(default_factory=dict, description="Event payload")


class EventResponse(BaseModel):
    event_name: str
    runs: List[RunResult] = Field(default_factory=list)


class ScheduleEntry(BaseModel):
    script_id: str
    schedule_expr: str


class RunScheduleRequest(BaseModel):
    script_id: str = Field(..., description="Script whose schedule fired")
    schedule_expr: str = Field(..., description="Schedule expression that fired, e.g. '1 hour'")
    context: Dict[str, Any] = Field(default_factory=dict)


class CreateWorkflowRequest(BaseModel):
    """Request model for creating a workflow."""
    name: str = Field(..., min_length=1, description="Workflow name")
    description: Optional[str] = Field(None, description="Optional description")
    trigger: Optional[TriggerDescriptor] = Field(None, description="Trigger; manual when omitted")
    tags: List[str] = Field(default_factory=list)


class UpdateWorkflowRequest(BaseModel):
    """Request model for updating workflow fields."""
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    enabled: Optional[bool] = None
    trigger: Optional[TriggerDescriptor] = None
    tags: Optional[List[str]] = None
    variables: Optional[Dict[str, Any]] = None


class AddNodeRequest(BaseModel):
    template_id: str = Field(..., description="Node template to instantiate")
    position: Position = Field(default_factory=Position)
    config: Dict[str, Any] = Field(default_factory=dict, description="Overrides for the template defaults")


class AddNodeResponse(BaseModel):
    node: Optional[WorkflowNode] = Field(None, description="The new node; null when the template is unknown")
    message: str


class UpdateNodeRequest(BaseModel):
    name: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    enabled: Optional[bool] = None
    position: Optional[Position] = None


class ConnectNodesRequest(BaseModel):
    source_node_id: str
    target_node_id: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None


class SetVariableRequest(BaseModel):
    value: Any = None


class ExecuteWorkflowRequest(BaseModel):
    context: Dict[str, Any] = Field(default_factory=dict, description="Trigger context")


class ImportWorkflowRequest(BaseModel):
    workflow_json: str = Field(..., description="Workflow JSON as produced by export")


# Script endpoints

@router.get("/scripts", response_model=List[Script], summary="List scripts")
async def list_scripts(manager: ScriptManager = Depends(get_script_manager)) -> List[Script]:
    try:
        return manager.list_scripts()
    except AutomationEngineError as e:
        raise http_error(e)


@router.post(
    "/scripts",
    response_model=Script,
    status_code=status.HTTP_201_CREATED,
    summary="Create a script",
    description="Create a disabled script and store the diagnostics of its code"
)
async def create_script(
    request: CreateScriptRequest,
    manager: ScriptManager = Depends(get_script_manager)
) -> Script:
    try:
        return manager.create_script(request.name, request.code, request.description)
    except AutomationEngineError as e:
        raise http_error(e)


@router.get("/scripts/examples", summary="Example scripts")
async def list_example_scripts() -> List[Dict[str, str]]:
    return EXAMPLE_SCRIPTS


@router.get("/scripts/documentation", summary="Scripting language reference")
async def get_script_documentation(
    registry: CommandRegistry = Depends(get_command_registry)
) -> Dict[str, str]:
    return {"format": "markdown", "content": script_documentation(registry)}


@router.post("/scripts/validate", response_model=ValidateScriptResponse, summary="Validate script code")
async def validate_script(
    request: ValidateScriptRequest,
    manager: ScriptManager = Depends(get_script_manager)
) -> ValidateScriptResponse:
    diagnostics = manager.validate_code(request.code)
    return ValidateScriptResponse(valid=not has_errors(diagnostics), diagnostics=diagnostics)


@router.get("/scripts/{script_id}", response_model=Script, summary="Get a script")
async def get_script(script_id: str, manager: ScriptManager = Depends(get_script_manager)) -> Script:
    try:
        return manager.get_script(script_id)
    except AutomationEngineError as e:
        raise http_error(e)


@router.put("/scripts/{script_id}", response_model=Script, summary="Update a script")
async def update_script(
    script_id: str,
    request: UpdateScriptRequest,
    manager: ScriptManager = Depends(get_script_manager)
) -> Script:
    try:
        return manager.update_script(
            script_id,
            code=request.code,
            name=request.name,
            description=request.description,
        )
    except AutomationEngineError as e:
        raise http_error(e)


@router.delete("/scripts/{script_id}", summary="Delete a script")
async def delete_script(script_id: str, manager: ScriptManager = Depends(get_script_manager)) -> Dict[str, Any]:
    try:
        deleted = manager.delete_script(script_id)
    except AutomationEngineError as e:
        raise http_error(e)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Script '{script_id}' not found")
    return {"message": f"Script '{script_id}' deleted", "script_id": script_id}


@router.post("/scripts/{script_id}/toggle", response_model=Script, summary="Enable or disable a script")
async def toggle_script(script_id: str, manager: ScriptManager = Depends(get_script_manager)) -> Script:
    try:
        return manager.toggle_script(script_id)
    except AutomationEngineError as e:
        raise http_error(e)


@router.get("/scripts/{script_id}/rules", summary="Parsed rules of a script")
async def get_script_rules(script_id: str, manager: ScriptManager = Depends(get_script_manager)) -> List[Dict[str, Any]]:
    try:
        script = manager.get_script(script_id)
        return rule_summaries(parse_source(script.code).rules)
    except AutomationEngineError as e:
        raise http_error(e)


@router.post(
    "/scripts/{script_id}/execute",
    response_model=List[RunResult],
    summary="Run a script",
    description="Run every rule, or only the rules matching event_name. Scripts with errors are rejected."
)
async def execute_script(
    script_id: str,
    request: ExecuteScriptRequest,
    manager: ScriptManager = Depends(get_script_manager)
) -> List[RunResult]:
    try:
        return await manager.execute_script(script_id, request.context, event_name=request.event_name)
    except AutomationEngineError as e:
        raise http_error(e)


@router.post(
    "/scripts/{script_id}/convert",
    response_model=Workflow,
    status_code=status.HTTP_201_CREATED,
    summary="Convert a script to a workflow"
)
async def convert_script(script_id: str, manager: ScriptManager = Depends(get_script_manager)) -> Workflow:
    try:
        return manager.convert_to_workflow(script_id)
    except AutomationEngineError as e:
        raise http_error(e)


# Event and schedule endpoints

@router.get("/events", summary="Known event names")
async def list_events() -> List[str]:
    return KNOWN_EVENTS


@router.post("/events/{event_name}", response_model=EventResponse, summary="Deliver an event")
async def dispatch_event(
    event_name: str,
    request: EventRequest,
    manager: ScriptManager = Depends(get_script_manager)
) -> EventResponse:
    try:
        runs = await manager.dispatch_event(event_name, request.context)
    except AutomationEngineError as e:
        raise http_error(e)
    return EventResponse(event_name=event_name, runs=runs)


@router.get("/schedules", response_model=List[ScheduleEntry], summary="Schedules of active scripts")
async def list_schedules(manager: ScriptManager = Depends(get_script_manager)) -> List[ScheduleEntry]:
    try:
        return [ScheduleEntry(script_id=s, schedule_expr=e) for s, e in manager.list_schedules()]
    except AutomationEngineError as e:
        raise http_error(e)


@router.post("/schedules/run", response_model=List[RunResult], summary="Fire a script schedule")
async def run_schedule(
    request: RunScheduleRequest,
    manager: ScriptManager = Depends(get_script_manager)
) -> List[RunResult]:
    try:
        return await manager.run_schedule(request.script_id, request.schedule_expr, request.context)
    except AutomationEngineError as e:
        raise http_error(e)


# Workflow endpoints

@router.get("/workflows", response_model=List[Workflow], summary="List workflows")
async def list_workflows(manager: WorkflowManager = Depends(get_workflow_manager)) -> List[Workflow]:
    try:
        return manager.list_workflows()
    except AutomationEngineError as e:
        raise http_error(e)


@router.post("/workflows", response_model=Workflow, status_code=status.HTTP_201_CREATED, summary="Create a workflow")
async def create_workflow(
    request: CreateWorkflowRequest,
    manager: WorkflowManager = Depends(get_workflow_manager)
) -> Workflow:
    try:
        return manager.create_workflow(request.name, request.description, request.trigger, request.tags)
    except AutomationEngineError as e:
        raise http_error(e)


@router.get("/workflows/templates", summary="Pre-built workflow templates")
async def list_workflow_templates() -> List[Dict[str, Any]]:
    return [
        {"index": index, **{k: v for k, v in template.items() if k != "trigger"},
         "trigger": template["trigger"].model_dump(mode="json")}
        for index, template in enumerate(WORKFLOW_TEMPLATES)
    ]


@router.post(
    "/workflows/from-template/{template_index}",
    response_model=Workflow,
    status_code=status.HTTP_201_CREATED,
    summary="Create a workflow from a template"
)
async def create_workflow_from_template(
    template_index: int,
    manager: WorkflowManager = Depends(get_workflow_manager)
) -> Workflow:
    try:
        return manager.create_from_template(template_index)
    except AutomationEngineError as e:
        raise http_error(e)


@router.post(
    "/workflows/import",
    response_model=Workflow,
    status_code=status.HTTP_201_CREATED,
    summary="Import a workflow from JSON"
)
async def import_workflow(
    request: ImportWorkflowRequest,
    manager: WorkflowManager = Depends(get_workflow_manager)
) -> Workflow:
    try:
        workflow = manager.import_workflow(request.workflow_json)
    except AutomationEngineError as e:
        raise http_error(e)
    if workflow is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid workflow JSON")
    return workflow


@router.get("/workflows/{workflow_id}", response_model=Workflow, summary="Get a workflow")
async def get_workflow(workflow_id: str, manager: WorkflowManager = Depends(get_workflow_manager)) -> Workflow:
    try:
        return manager.get_workflow(workflow_id)
    except AutomationEngineError as e:
        raise http_error(e)


@router.put("/workflows/{workflow_id}", response_model=Workflow, summary="Update a workflow")
async def update_workflow(
    workflow_id: str,
    request: UpdateWorkflowRequest,
    manager: WorkflowManager = Depends(get_workflow_manager)
) -> Workflow:
    try:
        return manager.update_workflow(workflow_id, **request.model_dump(exclude_none=True))
    except AutomationEngineError as e:
        raise http_error(e)


@router.delete("/workflows/{workflow_id}", summary="Delete a workflow")
async def delete_workflow(workflow_id: str, manager: WorkflowManager = Depends(get_workflow_manager)) -> Dict[str, Any]:
    try:
        deleted = manager.delete_workflow(workflow_id)
    except AutomationEngineError as e:
        raise http_error(e)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Workflow '{workflow_id}' not found")
    return {"message": f"Workflow '{workflow_id}' deleted", "workflow_id": workflow_id}


@router.post("/workflows/{workflow_id}/toggle", response_model=Workflow, summary="Enable or disable a workflow")
async def toggle_workflow(workflow_id: str, manager: WorkflowManager = Depends(get_workflow_manager)) -> Workflow:
    try:
        return manager.toggle_workflow(workflow_id)
    except AutomationEngineError as e:
        raise http_error(e)


@router.post(
    "/workflows/{workflow_id}/duplicate",
    response_model=Workflow,
    status_code=status.HTTP_201_CREATED,
    summary="Duplicate a workflow"
)
async def duplicate_workflow(workflow_id: str, manager: WorkflowManager = Depends(get_workflow_manager)) -> Workflow:
    try:
        duplicate = manager.duplicate_workflow(workflow_id)
    except AutomationEngineError as e:
        raise http_error(e)
    if duplicate is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Workflow '{workflow_id}' not found")
    return duplicate


@router.get("/workflows/{workflow_id}/export", summary="Export a workflow as JSON")
async def export_workflow(workflow_id: str, manager: WorkflowManager = Depends(get_workflow_manager)) -> Response:
    try:
        exported = manager.export_workflow(workflow_id)
    except AutomationEngineError as e:
        raise http_error(e)
    if not exported:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Workflow '{workflow_id}' not found")
    return Response(content=exported, media_type="application/json")


@router.post("/workflows/{workflow_id}/nodes", response_model=AddNodeResponse, summary="Add a node")
async def add_node(
    workflow_id: str,
    request: AddNodeRequest,
    manager: WorkflowManager = Depends(get_workflow_manager)
) -> AddNodeResponse:
    try:
        node = manager.add_node(workflow_id, request.template_id, request.position, request.config)
    except AutomationEngineError as e:
        raise http_error(e)
    if node is None:
        return AddNodeResponse(node=None, message=f"Unknown template '{request.template_id}', no node added")
    return AddNodeResponse(node=node, message=f"Node '{node.name}' added")


@router.put("/workflows/{workflow_id}/nodes/{node_id}", response_model=WorkflowNode, summary="Update a node")
async def update_node(
    workflow_id: str,
    node_id: str,
    request: UpdateNodeRequest,
    manager: WorkflowManager = Depends(get_workflow_manager)
) -> WorkflowNode:
    try:
        return manager.update_node(
            workflow_id, node_id,
            name=request.name,
            config=request.config,
            enabled=request.enabled,
            position=request.position,
        )
    except AutomationEngineError as e:
        raise http_error(e)


@router.delete("/workflows/{workflow_id}/nodes/{node_id}", summary="Remove a node and its connections")
async def remove_node(
    workflow_id: str,
    node_id: str,
    manager: WorkflowManager = Depends(get_workflow_manager)
) -> Dict[str, Any]:
    try:
        removed = manager.remove_node(workflow_id, node_id)
    except AutomationEngineError as e:
        raise http_error(e)
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Node '{node_id}' not found")
    return {"message": f"Node '{node_id}' removed", "node_id": node_id}


@router.post(
    "/workflows/{workflow_id}/connections",
    response_model=Connection,
    status_code=status.HTTP_201_CREATED,
    summary="Connect two nodes"
)
async def connect_nodes(
    workflow_id: str,
    request: ConnectNodesRequest,
    manager: WorkflowManager = Depends(get_workflow_manager)
) -> Connection:
    try:
        return manager.connect_nodes(
            workflow_id,
            request.source_node_id,
            request.target_node_id,
            request.source_handle,
            request.target_handle,
        )
    except AutomationEngineError as e:
        raise http_error(e)


@router.delete("/workflows/{workflow_id}/connections/{connection_id}", summary="Remove a connection")
async def disconnect_nodes(
    workflow_id: str,
    connection_id: str,
    manager: WorkflowManager = Depends(get_workflow_manager)
) -> Dict[str, Any]:
    try:
        removed = manager.disconnect_nodes(workflow_id, connection_id)
    except AutomationEngineError as e:
        raise http_error(e)
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Connection '{connection_id}' not found")
    return {"message": f"Connection '{connection_id}' removed", "connection_id": connection_id}


@router.put("/workflows/{workflow_id}/variables/{name}", summary="Set a workflow variable")
async def set_variable(
    workflow_id: str,
    name: str,
    request: SetVariableRequest,
    manager: WorkflowManager = Depends(get_workflow_manager)
) -> Dict[str, Any]:
    try:
        manager.set_variable(workflow_id, name, request.value)
    except AutomationEngineError as e:
        raise http_error(e)
    return {"name": name, "value": request.value}


@router.post("/workflows/{workflow_id}/execute", response_model=Execution, summary="Run a workflow")
async def execute_workflow(
    workflow_id: str,
    request: ExecuteWorkflowRequest,
    executor: WorkflowExecutor = Depends(get_workflow_executor)
) -> Execution:
    try:
        return await executor.execute_workflow(workflow_id, request.context)
    except AutomationEngineError as e:
        raise http_error(e)


@router.get("/workflows/{workflow_id}/executions", response_model=List[Execution], summary="Finished runs of a workflow")
async def get_workflow_executions(
    workflow_id: str,
    executor: WorkflowExecutor = Depends(get_workflow_executor)
) -> List[Execution]:
    return executor.get_execution_history(workflow_id)


# Execution endpoints

@router.get("/executions/active", response_model=List[Execution], summary="Running executions")
async def get_active_executions(executor: WorkflowExecutor = Depends(get_workflow_executor)) -> List[Execution]:
    return executor.get_active_executions()


@router.get("/executions/history", response_model=List[Execution], summary="Finished executions, newest first")
async def get_execution_history(executor: WorkflowExecutor = Depends(get_workflow_executor)) -> List[Execution]:
    return executor.get_execution_history()


@router.get("/executions/{execution_id}", response_model=Execution, summary="Get an execution")
async def get_execution(execution_id: str, executor: WorkflowExecutor = Depends(get_workflow_executor)) -> Execution:
    try:
        execution = executor.get_execution(execution_id)
    except AutomationEngineError as e:
        raise http_error(e)
    if execution is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Execution '{execution_id}' not found")
    return execution


# Catalog endpoints

@router.get("/templates", response_model=List[NodeTemplate], summary="Node templates")
async def list_templates(
    category: Optional[TemplateCategory] = None,
    catalog: NodeTemplateCatalog = Depends(get_template_catalog)
) -> List[NodeTemplate]:
    return catalog.list_templates(category)


@router.get("/templates/{template_id}", response_model=NodeTemplate, summary="Get a node template")
async def get_template(template_id: str, catalog: NodeTemplateCatalog = Depends(get_template_catalog)) -> NodeTemplate:
    try:
        return catalog.get_template(template_id)
    except AutomationEngineError as e:
        raise http_error(e)


@router.get("/commands", summary="Registered and known commands")
async def list_commands(registry: CommandRegistry = Depends(get_command_registry)) -> Dict[str, Any]:
    return {
        "registered": registry.list_commands(),
        "known": KNOWN_COMMANDS,
    }


@router.get("/statistics", response_model=WorkflowStatistics, summary="Workflow statistics")
async def get_statistics(executor: WorkflowExecutor = Depends(get_workflow_executor)) -> WorkflowStatistics:
    try:
        return executor.get_statistics()
    except AutomationEngineError as e:
        raise http_error(e)
