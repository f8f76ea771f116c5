"""Custom exceptions for the automation engine with detailed error information."""

from datetime import datetime
from typing import Optional, Dict, Any
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for categorizing exceptions."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for better classification."""
    SYNTAX = "syntax"
    VALIDATION = "validation"
    EXECUTION = "execution"
    STORAGE = "storage"
    CONFIGURATION = "configuration"
    NOT_FOUND = "not_found"


class AutomationEngineError(Exception):
    """Base exception for all automation engine errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.EXECUTION,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.severity = severity
        self.category = category
        self.details = details or {}
        self.recoverable = recoverable
        self.context = context or {}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging and API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "details": self.details,
            "recoverable": self.recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__
        }

    def add_context(self, **kwargs):
        """Add additional context to the exception."""
        self.context.update(kwargs)
        return self

    def add_details(self, **kwargs):
        """Add additional details to the exception."""
        self.details.update(kwargs)
        return self


class ScriptSyntaxError(AutomationEngineError):
    """Raised when script source cannot be turned into a valid program."""

    def __init__(self, message: str, line: int = 1, column: int = 1, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.SYNTAX,
            **kwargs
        )
        self.line = line
        self.column = column
        self.add_details(line=line, column=column)

    def __str__(self) -> str:
        return f"{self.message} (line {self.line}, column {self.column})"


class UnknownCommandWarning(AutomationEngineError):
    """Recorded when an action names a command the registry does not know.

    Never raised: the interpreter logs it and keeps going.
    """

    def __init__(self, command: str, action_index: Optional[int] = None, **kwargs):
        super().__init__(
            f"Unknown command: {command}",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.EXECUTION,
            recoverable=True,
            **kwargs
        )
        self.command = command
        self.add_context(command=command)
        if action_index is not None:
            self.add_context(action_index=action_index)


class RuntimeActionError(AutomationEngineError):
    """Raised when a command handler fails during a script run."""

    def __init__(
        self,
        message: str,
        command: Optional[str] = None,
        action_index: Optional[int] = None,
        run_id: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.EXECUTION,
            **kwargs
        )
        self.command = command
        self.action_index = action_index
        if command:
            self.add_context(command=command)
        if action_index is not None:
            self.add_context(action_index=action_index)
        if run_id:
            self.add_context(run_id=run_id)


class NodeExecutionError(AutomationEngineError):
    """Raised when a workflow node fails."""

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        execution_id: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.EXECUTION,
            **kwargs
        )
        if node_id:
            self.add_context(node_id=node_id)
        if execution_id:
            self.add_context(execution_id=execution_id)


class ScriptNotFoundError(AutomationEngineError):
    """Raised when a script id is unknown."""

    def __init__(self, script_id: str, **kwargs):
        super().__init__(
            f"Script '{script_id}' not found",
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.NOT_FOUND,
            **kwargs
        )
        self.add_context(script_id=script_id)


class WorkflowNotFoundError(AutomationEngineError):
    """Raised when a workflow id is unknown."""

    def __init__(self, workflow_id: str, **kwargs):
        super().__init__(
            f"Workflow '{workflow_id}' not found",
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.NOT_FOUND,
            **kwargs
        )
        self.add_context(workflow_id=workflow_id)


class TemplateNotFoundError(AutomationEngineError):
    """Raised by the template catalog for an unknown template id."""

    def __init__(self, template_id: str, **kwargs):
        super().__init__(
            f"Node template '{template_id}' not found",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.NOT_FOUND,
            **kwargs
        )
        self.add_context(template_id=template_id)


class WorkflowValidationError(AutomationEngineError):
    """Raised when a workflow edit would break its structure."""

    def __init__(
        self,
        message: str,
        workflow_id: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.VALIDATION,
            **kwargs
        )
        if workflow_id:
            self.add_context(workflow_id=workflow_id)


class CommandRegistryError(AutomationEngineError):
    """Raised when command registry operations fail."""

    def __init__(
        self,
        message: str,
        command: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.CONFIGURATION,
            **kwargs
        )
        if command:
            self.add_context(command=command)
        if operation:
            self.add_context(operation=operation)


class StorageError(AutomationEngineError):
    """Raised when storage operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.STORAGE,
            recoverable=True,
            **kwargs
        )
        if operation:
            self.add_context(operation=operation)
        if table:
            self.add_context(table=table)


class ConfigurationError(AutomationEngineError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.CONFIGURATION,
            **kwargs
        )
        if config_key:
            self.add_context(config_key=config_key)


def create_error_response(error: AutomationEngineError) -> Dict[str, Any]:
    """Create a standardized error response from an AutomationEngineError."""
    return {
        "error": error.error_code,
        "message": error.message,
        "details": {
            **error.details,
            "severity": error.severity.value,
            "category": error.category.value,
            "recoverable": error.recoverable,
            "timestamp": error.timestamp.isoformat()
        },
        "context": error.context
    }
