"""Pydantic models for the scripting language and its runs."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator


class TokenType(str, Enum):
    """Lexical classes produced by the lexer."""
    KEYWORD = "keyword"
    IDENTIFIER = "identifier"
    OPERATOR = "operator"
    STRING = "string"
    NUMBER = "number"
    SYMBOL = "symbol"


class TriggerKind(str, Enum):
    """What causes a rule or workflow to run."""
    EVENT = "event"
    SCHEDULE = "schedule"
    MANUAL = "manual"


class DiagnosticSeverity(str, Enum):
    """Severity of an editor diagnostic."""
    ERROR = "error"
    WARNING = "warning"


class RunStatusEnum(str, Enum):
    """Outcome of one script rule run."""
    COMPLETED = "completed"
    FAILED = "failed"


ArgValue = Union[int, float, str]


class Token(BaseModel):
    """A single lexeme with its source position."""
    model_config = ConfigDict(frozen=True)

    type: TokenType = Field(..., description="Lexical class")
    value: str = Field(..., description="Lexeme text (unescaped for strings)")
    line: int = Field(..., description="1-based source line")
    column: int = Field(..., description="Line offset where the token finished lexing")


class Condition(BaseModel):
    """Single comparison attached to a trigger."""
    left: str
    operator: str
    right: str


class TriggerDescriptor(BaseModel):
    """Trigger of a rule or workflow."""
    kind: TriggerKind = Field(default=TriggerKind.MANUAL, description="Trigger kind")
    event_name: Optional[str] = Field(None, description="Event matched for event triggers")
    schedule_expr: Optional[str] = Field(None, description="Schedule such as '1 hour'")
    condition: Optional[Condition] = Field(None, description="Optional comparison guard")


class ActionCall(BaseModel):
    """A named command invocation with positional arguments."""
    command: str
    args: List[ArgValue] = Field(default_factory=list)
    line: int = 0
    column: int = 0

    @field_validator('command')
    @classmethod
    def validate_command(cls, command):
        """Ensure command name is not empty."""
        if not command or not command.strip():
            raise ValueError("Command name cannot be empty")
        return command


class Rule(BaseModel):
    """One trigger and its ordered action list."""
    trigger: TriggerDescriptor
    actions: List[ActionCall] = Field(default_factory=list)


class Program(BaseModel):
    """Parsed script: ordered rules. Never persisted."""
    rules: List[Rule] = Field(default_factory=list)


class Diagnostic(BaseModel):
    """Structured syntax/validation message for editors."""
    line: int = Field(1, description="1-based line")
    column: int = Field(1, description="Column of the offending token")
    message: str
    severity: DiagnosticSeverity = DiagnosticSeverity.ERROR


class Script(BaseModel):
    """Persisted text-DSL script."""
    id: str
    name: str
    description: Optional[str] = None
    code: str = ""
    enabled: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
    last_run: Optional[datetime] = None
    run_count: int = 0
    diagnostics: List[Diagnostic] = Field(default_factory=list)

    @field_validator('name')
    @classmethod
    def validate_name_not_empty(cls, name):
        """Ensure script name is not empty."""
        if not name or not name.strip():
            raise ValueError("Script name cannot be empty")
        return name.strip()

    @property
    def has_errors(self) -> bool:
        return any(d.severity == DiagnosticSeverity.ERROR for d in self.diagnostics)


class RunResult(BaseModel):
    """Outcome of executing one rule."""
    run_id: str
    script_id: Optional[str] = None
    rule_index: int = 0
    status: RunStatusEnum = RunStatusEnum.COMPLETED
    executed_actions: List[str] = Field(default_factory=list, description="Commands dispatched, in order")
    warnings: List[Dict[str, Any]] = Field(default_factory=list)
    error: Optional[Dict[str, Any]] = Field(None, description="Serialized RuntimeActionError")
    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatusEnum.COMPLETED
