"""Data models for the automation engine."""

from .script import (
    TokenType,
    TriggerKind,
    DiagnosticSeverity,
    RunStatusEnum,
    Token,
    Condition,
    TriggerDescriptor,
    ActionCall,
    Rule,
    Program,
    Diagnostic,
    Script,
    RunResult,
)
from .workflow import (
    TemplateCategory,
    ParameterType,
    ExecutionStatusEnum,
    LogLevelEnum,
    NodeParameter,
    NodeTemplate,
    Position,
    WorkflowNode,
    Connection,
    Workflow,
    ExecutionLogEntry,
    Execution,
    WorkflowStatistics,
)

__all__ = [
    "TokenType",
    "TriggerKind",
    "DiagnosticSeverity",
    "RunStatusEnum",
    "Token",
    "Condition",
    "TriggerDescriptor",
    "ActionCall",
    "Rule",
    "Program",
    "Diagnostic",
    "Script",
    "RunResult",
    "TemplateCategory",
    "ParameterType",
    "ExecutionStatusEnum",
    "LogLevelEnum",
    "NodeParameter",
    "NodeTemplate",
    "Position",
    "WorkflowNode",
    "Connection",
    "Workflow",
    "ExecutionLogEntry",
    "Execution",
    "WorkflowStatistics",
]
