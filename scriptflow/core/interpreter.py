"""Interpreter executing parsed rules against the Command Registry."""

import asyncio
import logging
import re
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from ..models.script import (
    ActionCall,
    ArgValue,
    Condition,
    Rule,
    RunResult,
    RunStatusEnum,
    TriggerDescriptor,
    TriggerKind,
)
from .command_registry import CommandRegistry
from .exceptions import RuntimeActionError, UnknownCommandWarning
from .logging import get_logger, log_with_context, logging_context

logger = get_logger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{(\w+)\}\}")

WAIT_COMMAND = "wait"
DEFAULT_WAIT_SECONDS = 1.0

SleepFunction = Callable[[float], Awaitable[Any]]


def resolve_placeholders(text: str, context: Mapping[str, Any]) -> str:
    """Replace ``{{key}}`` with ``context[key]``; missing keys become ''."""
    def substitute(match):
        value = context.get(match.group(1))
        return "" if value is None else str(value)
    return PLACEHOLDER_PATTERN.sub(substitute, text)


def resolve_args(args: List[ArgValue], context: Mapping[str, Any]) -> List[ArgValue]:
    return [resolve_placeholders(arg, context) if isinstance(arg, str) else arg for arg in args]


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def evaluate_condition(condition: Optional[Condition], context: Mapping[str, Any]) -> bool:
    """
    Evaluate a trigger guard against a context map.

    The left side names a context key; a missing key never matches.
    Ordering operators need both sides numeric. ``==``/``!=`` compare
    numerically when they can and as strings otherwise. ``contains`` is a
    case-insensitive substring test.
    """
    if condition is None:
        return True
    if condition.left not in context:
        return False

    left = context[condition.left]
    right = condition.right
    operator = condition.operator

    if operator == "contains":
        return str(right).lower() in str(left).lower()

    left_number = _to_number(left)
    right_number = _to_number(right)

    if operator in ("==", "!="):
        if left_number is not None and right_number is not None:
            equal = left_number == right_number
        else:
            equal = str(left) == str(right)
        return equal if operator == "==" else not equal

    if left_number is None or right_number is None:
        return False

    if operator == ">":
        return left_number > right_number
    if operator == "<":
        return left_number < right_number
    if operator == ">=":
        return left_number >= right_number
    if operator == "<=":
        return left_number <= right_number

    logger.warning(f"Unsupported condition operator '{operator}'")
    return False


def matches_event(trigger: TriggerDescriptor, event_name: str, context: Mapping[str, Any]) -> bool:
    """True when an event trigger names ``event_name`` and its guard holds."""
    if trigger.kind != TriggerKind.EVENT or trigger.event_name != event_name:
        return False
    return evaluate_condition(trigger.condition, context)


def matches_schedule(trigger: TriggerDescriptor, schedule_expr: str) -> bool:
    if trigger.kind != TriggerKind.SCHEDULE or not trigger.schedule_expr:
        return False
    return " ".join(trigger.schedule_expr.split()) == " ".join(schedule_expr.split())


def wait_seconds(args: List[ArgValue], default: float = DEFAULT_WAIT_SECONDS) -> float:
    """Seconds requested by a ``wait`` action; bad or missing values use the default."""
    if not args:
        return default
    seconds = _to_number(args[0])
    if seconds is None or seconds < 0:
        return default
    return seconds


class ProgramExecutor:
    """Runs one rule's actions in order against a Command Registry.

    Each call to :meth:`execute` is an independent run. ``wait`` only
    suspends the run that issued it, so concurrent runs on the same event
    loop keep making progress.
    """

    def __init__(
        self,
        registry: CommandRegistry,
        sleep: SleepFunction = asyncio.sleep,
        default_wait_seconds: float = DEFAULT_WAIT_SECONDS
    ):
        self.registry = registry
        self._sleep = sleep
        self.default_wait_seconds = default_wait_seconds
        self.unknown_command_count = 0

    async def execute(
        self,
        rule: Rule,
        context: Optional[Mapping[str, Any]] = None,
        registry: Optional[CommandRegistry] = None,
        script_id: Optional[str] = None,
        rule_index: int = 0
    ) -> RunResult:
        """
        Execute a rule's actions sequentially.

        Args:
            rule: Parsed rule to run
            context: Values for ``{{key}}`` placeholders
            registry: Overrides the executor's registry for this run
            script_id: Owning script, recorded on the result
            rule_index: Position of the rule in its program

        Returns:
            RunResult: ``failed`` with the error recorded if a handler raised
        """
        registry = registry or self.registry
        context = dict(context or {})
        result = RunResult(
            run_id=str(uuid.uuid4()),
            script_id=script_id,
            rule_index=rule_index,
        )

        with logging_context(script_id=script_id, run_id=result.run_id):
            log_with_context(
                logger, logging.DEBUG,
                f"Starting run of rule {rule_index} with {len(rule.actions)} actions",
                rule_index=rule_index
            )
            await self._run_actions(rule, context, registry, result)
            result.finished_at = datetime.utcnow()
            logger.debug(f"Run {result.run_id} finished with status {result.status.value}")
        return result

    async def _run_actions(self, rule: Rule, context: Mapping[str, Any],
                           registry: CommandRegistry, result: RunResult) -> None:
        for index, action in enumerate(rule.actions):
            args = resolve_args(action.args, context)

            if action.command == WAIT_COMMAND:
                await self._sleep(wait_seconds(args, self.default_wait_seconds))
                result.executed_actions.append(action.command)
                continue

            if not registry.has(action.command):
                self._record_unknown_command(result, action, index)
                continue

            try:
                await registry.dispatch(action.command, args)
            except Exception as e:
                error = RuntimeActionError(
                    f"Command '{action.command}' failed: {e}",
                    command=action.command,
                    action_index=index,
                    run_id=result.run_id
                )
                logger.error(f"Run {result.run_id} aborted at action {index}: {error.message}")
                result.status = RunStatusEnum.FAILED
                result.error = error.to_dict()
                break

            result.executed_actions.append(action.command)

    def _record_unknown_command(self, result: RunResult, action: ActionCall, index: int) -> None:
        warning = UnknownCommandWarning(action.command, action_index=index)
        self.unknown_command_count += 1
        result.warnings.append(warning.to_dict())
        logger.warning(f"Unknown command '{action.command}' skipped in run {result.run_id}")


async def execute(
    rule: Rule,
    context: Mapping[str, Any],
    registry: CommandRegistry
) -> RunResult:
    """Run a rule once with a throwaway executor."""
    return await ProgramExecutor(registry).execute(rule, context)


def rule_summaries(rules: List[Rule]) -> List[Dict[str, Any]]:
    """Compact description of rules for API listings."""
    return [
        {
            "index": index,
            "trigger": rule.trigger.model_dump(mode="json"),
            "actions": [action.command for action in rule.actions],
        }
        for index, rule in enumerate(rules)
    ]
