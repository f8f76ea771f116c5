"""Core automation engine components."""

from .exceptions import (
    AutomationEngineError,
    ScriptSyntaxError,
    UnknownCommandWarning,
    RuntimeActionError,
    NodeExecutionError,
    ScriptNotFoundError,
    WorkflowNotFoundError,
    TemplateNotFoundError,
    WorkflowValidationError,
    CommandRegistryError,
    StorageError,
    ConfigurationError,
)
from .logging import setup_logging, get_logger
from .lexer import tokenize
from .parser import parse, parse_source
from .validator import validate, has_errors
from .command_registry import CommandRegistry, KNOWN_COMMANDS
from .interpreter import ProgramExecutor, evaluate_condition
from .node_templates import NodeTemplateCatalog
from .workflow_manager import WorkflowManager
from .workflow_executor import WorkflowExecutor
from .compiler import ScriptWorkflowCompiler
from .script_manager import ScriptManager

__all__ = [
    "AutomationEngineError",
    "ScriptSyntaxError",
    "UnknownCommandWarning",
    "RuntimeActionError",
    "NodeExecutionError",
    "ScriptNotFoundError",
    "WorkflowNotFoundError",
    "TemplateNotFoundError",
    "WorkflowValidationError",
    "CommandRegistryError",
    "StorageError",
    "ConfigurationError",
    "setup_logging",
    "get_logger",
    "tokenize",
    "parse",
    "parse_source",
    "validate",
    "has_errors",
    "CommandRegistry",
    "KNOWN_COMMANDS",
    "ProgramExecutor",
    "evaluate_condition",
    "NodeTemplateCatalog",
    "WorkflowManager",
    "WorkflowExecutor",
    "ScriptWorkflowCompiler",
    "ScriptManager",
]
