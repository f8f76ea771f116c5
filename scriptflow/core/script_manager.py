"""Script Manager for text DSL scripts: storage, validation and runs."""

import asyncio
import uuid
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from ..models.script import Diagnostic, DiagnosticSeverity, Rule, RunResult, Script, TriggerKind
from ..models.workflow import Workflow
from ..storage.database import get_db
from ..storage.models import ScriptModel
from .command_registry import CommandRegistry, KNOWN_COMMANDS
from .compiler import ScriptWorkflowCompiler
from .exceptions import (
    AutomationEngineError,
    ConfigurationError,
    ErrorCategory,
    ScriptNotFoundError,
    ScriptSyntaxError,
    StorageError,
)
from .interpreter import ProgramExecutor, matches_event, matches_schedule
from .logging import get_logger
from .parser import parse_source
from .validator import has_errors, validate

logger = get_logger(__name__)


EXAMPLE_SCRIPTS: List[Dict[str, str]] = [
    {
        "name": "Welcome New Followers",
        "code": (
            "on follower do\n"
            "  showAlert('New Follower', '{{username}} just followed!', 5)\n"
            "  speak('Thank you {{username}} for following!')\n"
            "  playSound('follower-alert')\n"
            "end"
        ),
    },
    {
        "name": "Big Donation Effects",
        "code": (
            "when donation > 100 then\n"
            "  playSound('epic-donation')\n"
            "  switchScene('celebration')\n"
            "  showAlert('EPIC DONATION!', '{{donor}} donated ${{amount}}!', 10)\n"
            "  speak('Wow! {{donor}} just donated {{amount}} dollars!')\n"
            "  createClip(30, 'Epic Donation from {{donor}}')\n"
            "  wait(5)\n"
            "  switchScene('gameplay')\n"
            "end"
        ),
    },
    {
        "name": "Auto Clip on Keywords",
        "code": (
            "when chat contains 'clip that' then\n"
            "  createClip(30, 'Viewer requested clip')\n"
            "  showAlert('Creating Clip', 'Clipping the last 30 seconds!', 3)\n"
            "end"
        ),
    },
    {
        "name": "Interactive Voice Commands",
        "code": (
            "on voice-command 'next scene' do\n"
            "  nextScene()\n"
            "  speak('Switching to the next scene!')\n"
            "end\n"
            "\n"
            "on voice-command 'start recording' do\n"
            "  startRecording()\n"
            "  speak('Recording started!')\n"
            "  showAlert('Recording', 'Now recording!', 3)\n"
            "end"
        ),
    },
    {
        "name": "Random Viewer Shoutout",
        "code": (
            "every 15 minutes do\n"
            "  showLowerThird('Shoutout', 'Thanks {{viewer}} for watching!', 10)\n"
            "  speak('Shoutout to {{viewer}} for hanging out!')\n"
            "end"
        ),
    },
]


# Events the studio publishes on its event bus
KNOWN_EVENTS: List[str] = [
    "follower", "donation", "subscriber", "raid", "host",
    "chat", "voice-command",
    "stream-start", "stream-end",
    "scene-changed",
]

SYNTAX_REFERENCE = """\
## Basic Syntax

### Event Triggers
```
on <event> do
  <actions>
end

on voice-command 'phrase' do
  <actions>
end
```

### Conditional Triggers
```
when <event> <operator> <value> then
  <actions>
end
```
Operators: {operators}

### Scheduled Triggers
```
every <amount> <unit> do
  <actions>
end
```
Units: {units}

### Actions
One command call per action, e.g. `showAlert('Hi', '{{{{username}}}}', 5)`.
Arguments are quoted strings or numbers. `{{{{key}}}}` inside a string is
replaced with the event value named `key`. Lines starting with `#` or `//`
are comments.
"""


def script_documentation(registry: Optional[CommandRegistry] = None) -> str:
    """Markdown language reference for the script editor.

    Commands registered beyond the known catalog are listed as well.
    """
    commands = dict(KNOWN_COMMANDS)
    if registry is not None:
        for name, description in registry.list_commands().items():
            commands.setdefault(name, description)

    lines = [
        "# Automation Scripting Language",
        "",
        SYNTAX_REFERENCE.format(
            operators=", ".join(f"`{op}`" for op in (">", "<", ">=", "<=", "==", "!=", "contains")),
            units=", ".join(f"`{unit}`" for unit in ("seconds", "minutes", "hours")),
        ),
        "## Available Events",
    ]
    lines.extend(f"- {event}" for event in KNOWN_EVENTS)
    lines.extend(["", "## Available Commands"])
    lines.extend(
        f"- {name}: {description}" if description else f"- {name}"
        for name, description in commands.items()
    )
    return "\n".join(lines) + "\n"


class ScriptManager:
    """Manages scripts and runs them through the interpreter.

    Run counters are the only state a run persists. Parsed programs are
    rebuilt from the stored code on every run.
    """

    def __init__(
        self,
        registry: CommandRegistry,
        executor: Optional[ProgramExecutor] = None,
        compiler: Optional[ScriptWorkflowCompiler] = None,
        db_session: Optional[Session] = None
    ):
        self.registry = registry
        self.executor = executor or ProgramExecutor(registry)
        self.compiler = compiler
        self._db_session = db_session

    def _get_db_session(self) -> Session:
        """Get database session, creating one if not provided."""
        if self._db_session:
            return self._db_session
        return next(get_db())

    def _release(self, session: Session) -> None:
        if not self._db_session:
            session.close()

    def _get_model(self, session: Session, script_id: str) -> ScriptModel:
        model = session.query(ScriptModel).filter(ScriptModel.id == script_id).first()
        if not model:
            raise ScriptNotFoundError(script_id)
        return model

    @staticmethod
    def _to_script(model: ScriptModel) -> Script:
        return Script(
            id=model.id,
            name=model.name,
            description=model.description,
            code=model.code or "",
            enabled=model.enabled,
            created_at=model.created_at,
            last_run=model.last_run,
            run_count=model.run_count or 0,
            diagnostics=[Diagnostic.model_validate(d) for d in (model.diagnostics or [])],
        )

    def _storage_error(self, session: Session, operation: str, error: SQLAlchemyError) -> StorageError:
        session.rollback()
        logger.error(f"Database error while trying to {operation}: {str(error)}")
        return StorageError(f"Failed to {operation}: {str(error)}", operation=operation, table="scripts")

    def known_commands(self) -> Set[str]:
        """Command names the validator accepts without a warning."""
        return set(KNOWN_COMMANDS) | set(self.registry.names)

    def validate_code(self, code: str) -> List[Diagnostic]:
        return validate(code, known_commands=self.known_commands())

    # -- CRUD ------------------------------------------------------------

    def create_script(self, name: str, code: str = "", description: Optional[str] = None) -> Script:
        """
        Create a new, disabled script and store its diagnostics.

        Returns:
            Script: The stored script
        """
        script = Script(
            id=str(uuid.uuid4()),
            name=name,
            description=description,
            code=code,
            diagnostics=self.validate_code(code),
        )

        session = self._get_db_session()
        try:
            session.add(ScriptModel(
                id=script.id,
                name=script.name,
                description=script.description,
                code=script.code,
                enabled=script.enabled,
                diagnostics=[d.model_dump(mode="json") for d in script.diagnostics],
                run_count=0,
                created_at=script.created_at,
            ))
            session.commit()
        except SQLAlchemyError as e:
            raise self._storage_error(session, "create script", e)
        finally:
            self._release(session)

        logger.info(f"Created script '{script.name}' with ID: {script.id} ({len(script.diagnostics)} diagnostics)")
        return script

    def get_script(self, script_id: str) -> Script:
        """
        Retrieve a script by its ID.

        Raises:
            ScriptNotFoundError: If no script has this ID
        """
        session = self._get_db_session()
        try:
            return self._to_script(self._get_model(session, script_id))
        except SQLAlchemyError as e:
            raise self._storage_error(session, "retrieve script", e)
        finally:
            self._release(session)

    def list_scripts(self) -> List[Script]:
        session = self._get_db_session()
        try:
            models = session.query(ScriptModel).order_by(ScriptModel.created_at.asc()).all()
            return [self._to_script(model) for model in models]
        except SQLAlchemyError as e:
            raise self._storage_error(session, "list scripts", e)
        finally:
            self._release(session)

    def list_active_scripts(self) -> List[Script]:
        return [script for script in self.list_scripts() if script.enabled]

    def update_script(self, script_id: str, code: Optional[str] = None,
                      name: Optional[str] = None, description: Optional[str] = None) -> Script:
        """Replace a script's code (re-validating it) and optionally its name or description."""
        if name is not None and not name.strip():
            raise AutomationEngineError(
                "Script name cannot be empty",
                category=ErrorCategory.VALIDATION
            ).add_context(script_id=script_id)

        session = self._get_db_session()
        try:
            model = self._get_model(session, script_id)
            if code is not None:
                model.code = code
                model.diagnostics = [d.model_dump(mode="json") for d in self.validate_code(code)]
            if name is not None:
                model.name = name.strip()
            if description is not None:
                model.description = description
            session.commit()
            script = self._to_script(model)
        except SQLAlchemyError as e:
            raise self._storage_error(session, "update script", e)
        finally:
            self._release(session)

        logger.info(f"Updated script {script_id}")
        return script

    def delete_script(self, script_id: str) -> bool:
        session = self._get_db_session()
        try:
            model = session.query(ScriptModel).filter(ScriptModel.id == script_id).first()
            if not model:
                logger.warning(f"Script with ID '{script_id}' not found for deletion")
                return False
            session.delete(model)
            session.commit()
            logger.info(f"Deleted script {script_id}")
            return True
        except SQLAlchemyError as e:
            raise self._storage_error(session, "delete script", e)
        finally:
            self._release(session)

    def toggle_script(self, script_id: str) -> Script:
        session = self._get_db_session()
        try:
            model = self._get_model(session, script_id)
            model.enabled = not model.enabled
            session.commit()
            return self._to_script(model)
        except SQLAlchemyError as e:
            raise self._storage_error(session, "toggle script", e)
        finally:
            self._release(session)

    def _record_run(self, script_id: str) -> None:
        session = self._get_db_session()
        try:
            model = self._get_model(session, script_id)
            model.run_count = (model.run_count or 0) + 1
            model.last_run = datetime.utcnow()
            session.commit()
        except ScriptNotFoundError:
            logger.warning(f"Script {script_id} was deleted while it was running; run not recorded")
        except SQLAlchemyError as e:
            raise self._storage_error(session, "record script run", e)
        finally:
            self._release(session)

    # -- execution ---------------------------------------------------------

    def _load_rules(self, script: Script) -> List[Rule]:
        """Parse a script's code, refusing scripts with error diagnostics."""
        errors = [d for d in validate(script.code) if d.severity == DiagnosticSeverity.ERROR]
        if errors:
            first = errors[0]
            raise ScriptSyntaxError(
                f"Script has errors: {first.message}",
                line=first.line,
                column=first.column
            ).add_context(script_id=script.id)
        return parse_source(script.code).rules

    async def _run_rules(self, script_id: str, rules: List[Tuple[int, Rule]],
                         context: Mapping[str, Any], sequential: bool = False) -> List[RunResult]:
        """
        Run rules of one script and record a single script run.

        Each rule is its own run: unless ``sequential`` is set they run
        concurrently, so a ``wait`` in one rule never holds back another.
        Nothing is recorded when no rule matched.
        """
        if not rules:
            return []

        if sequential:
            results = []
            for index, rule in rules:
                results.append(await self.executor.execute(rule, context, script_id=script_id, rule_index=index))
        else:
            results = list(await asyncio.gather(*(
                self.executor.execute(rule, context, script_id=script_id, rule_index=index)
                for index, rule in rules
            )))

        self._record_run(script_id)
        return results

    async def execute_script(self, script_id: str, context: Optional[Mapping[str, Any]] = None,
                             event_name: Optional[str] = None) -> List[RunResult]:
        """
        Run a script.

        Without ``event_name`` every rule runs in source order. With it only
        rules whose event and condition match run.

        Raises:
            ScriptNotFoundError: If the script does not exist
            ScriptSyntaxError: If the script has errors; nothing runs
        """
        script = self.get_script(script_id)
        context = dict(context or {})
        rules = list(enumerate(self._load_rules(script)))

        if event_name is not None:
            rules = [(i, rule) for i, rule in rules if matches_event(rule.trigger, event_name, context)]

        logger.info(f"Executing script '{script.name}' ({len(rules)} rules)")
        return await self._run_rules(script.id, rules, context, sequential=event_name is None)

    async def dispatch_event(self, event_name: str, context: Optional[Mapping[str, Any]] = None) -> List[RunResult]:
        """
        Deliver an event to every enabled, error-free script.

        Matching scripts run concurrently; a failing run does not affect the others.
        """
        context = dict(context or {})
        runs = []

        for script in self.list_active_scripts():
            if has_errors(script.diagnostics):
                continue
            rules = [
                (index, rule) for index, rule in enumerate(parse_source(script.code).rules)
                if matches_event(rule.trigger, event_name, context)
            ]
            if rules:
                runs.append(self._run_rules(script.id, rules, context))

        logger.info(f"Event '{event_name}' matched {len(runs)} scripts")
        batches = await asyncio.gather(*runs)
        return [result for batch in batches for result in batch]

    async def run_schedule(self, script_id: str, schedule_expr: str,
                           context: Optional[Mapping[str, Any]] = None) -> List[RunResult]:
        """Run the schedule rules of a script whose expression matches ``schedule_expr``."""
        script = self.get_script(script_id)
        rules = [
            (index, rule) for index, rule in enumerate(self._load_rules(script))
            if matches_schedule(rule.trigger, schedule_expr)
        ]
        return await self._run_rules(script.id, rules, dict(context or {}))

    def list_schedules(self) -> List[Tuple[str, str]]:
        """(script_id, schedule_expr) pairs the external timer should drive."""
        schedules = []
        for script in self.list_active_scripts():
            if has_errors(script.diagnostics):
                continue
            for rule in parse_source(script.code).rules:
                if rule.trigger.kind == TriggerKind.SCHEDULE:
                    schedules.append((script.id, rule.trigger.schedule_expr))
        return schedules

    def convert_to_workflow(self, script_id: str) -> Workflow:
        """Compile a stored script into a new workflow."""
        if self.compiler is None:
            raise ConfigurationError("ScriptManager has no workflow compiler configured", config_key="compiler")
        return self.compiler.convert_to_workflow(self.get_script(script_id))
