"""Pydantic models for the node-graph workflow side of the engine."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from .script import TriggerDescriptor


class TemplateCategory(str, Enum):
    """Catalog grouping of node templates."""
    TRIGGER = "trigger"
    ACTION = "action"
    LOGIC = "logic"
    DATA = "data"
    INTEGRATION = "integration"


class ParameterType(str, Enum):
    """Input/output parameter kinds."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    SELECT = "select"
    MULTISELECT = "multiselect"


class ExecutionStatusEnum(str, Enum):
    """Enumeration of workflow execution statuses."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class LogLevelEnum(str, Enum):
    """Severity of an execution log entry."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class SelectOption(BaseModel):
    label: str
    value: Any


class NodeParameter(BaseModel):
    """Declared input or output of a node template."""
    name: str
    type: ParameterType = ParameterType.STRING
    required: bool = False
    default: Optional[Any] = None
    options: Optional[List[SelectOption]] = None


class NodeTemplate(BaseModel):
    """Static catalog entry nodes are instantiated from."""
    id: str = Field(..., description="Template identifier, e.g. 'action-play-sound'")
    category: TemplateCategory
    name: str
    description: str = ""
    icon: str = ""
    inputs: List[NodeParameter] = Field(default_factory=list)
    outputs: List[NodeParameter] = Field(default_factory=list)
    default_config: Dict[str, Any] = Field(default_factory=dict)


class Position(BaseModel):
    x: float = 0
    y: float = 0


class WorkflowNode(BaseModel):
    """A unit of work placed on the workflow canvas."""
    id: str
    template_id: str
    name: str
    position: Position = Field(default_factory=Position)
    config: Dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True


class Connection(BaseModel):
    """Directed edge between two nodes. Visual metadata only during execution."""
    id: str
    source_node_id: str
    target_node_id: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None


class Workflow(BaseModel):
    """Persisted graph of nodes and connections plus a trigger."""
    id: str
    name: str
    description: Optional[str] = None
    enabled: bool = False
    trigger: TriggerDescriptor = Field(default_factory=TriggerDescriptor)
    nodes: List[WorkflowNode] = Field(default_factory=list)
    connections: List[Connection] = Field(default_factory=list)
    variables: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    last_run: Optional[datetime] = None
    run_count: int = 0

    @field_validator('nodes')
    @classmethod
    def validate_unique_node_ids(cls, nodes):
        """Ensure all node IDs are unique."""
        node_ids = [node.id for node in nodes]
        if len(node_ids) != len(set(node_ids)):
            raise ValueError("All node IDs must be unique")
        return nodes

    @model_validator(mode='after')
    def validate_connection_references(self):
        """Connections must reference nodes of this workflow."""
        node_ids = {node.id for node in self.nodes}
        for connection in self.connections:
            if connection.source_node_id not in node_ids:
                raise ValueError(f"Connection references non-existent source node: {connection.source_node_id}")
            if connection.target_node_id not in node_ids:
                raise ValueError(f"Connection references non-existent target node: {connection.target_node_id}")
        return self

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        """Find node by id."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


class ExecutionLogEntry(BaseModel):
    """Log entry recorded on an execution."""
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    level: LogLevelEnum = LogLevelEnum.INFO
    node_id: Optional[str] = None
    message: str


class Execution(BaseModel):
    """One run record of a workflow."""
    id: str
    workflow_id: str
    start_time: datetime = Field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = None
    status: ExecutionStatusEnum = ExecutionStatusEnum.RUNNING
    results: Dict[str, Any] = Field(default_factory=dict)
    logs: List[ExecutionLogEntry] = Field(default_factory=list)

    def log(self, message: str, level: LogLevelEnum = LogLevelEnum.INFO, node_id: Optional[str] = None) -> None:
        self.logs.append(ExecutionLogEntry(level=level, node_id=node_id, message=message))


class WorkflowStatistics(BaseModel):
    """Summary counters across all workflows."""
    total_workflows: int = 0
    active_workflows: int = 0
    total_executions: int = 0
    success_rate: float = Field(100.0, description="Completed share of archived executions, in percent")
