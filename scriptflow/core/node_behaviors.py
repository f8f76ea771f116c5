"""Behaviour table dispatching workflow nodes by template id."""

import random
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from ..models.script import Condition
from ..models.workflow import Execution, Workflow, WorkflowNode
from .command_registry import CommandRegistry
from .interpreter import SleepFunction, evaluate_condition, resolve_placeholders
from .logging import get_logger
from .node_templates import COMMAND_TEMPLATE_MAP, NodeTemplateCatalog

logger = get_logger(__name__)

# Node template -> registry command for action nodes
TEMPLATE_COMMAND_MAP: Dict[str, str] = {
    template_id: command
    for command, template_id in COMMAND_TEMPLATE_MAP.items()
    if template_id.startswith("action-")
}

CONDITION_OPERATORS = {
    "equals": "==",
    "not-equals": "!=",
    "greater": ">",
    "less": "<",
    "contains": "contains",
}


class NodeContext:
    """What a node behaviour can see and touch while it runs."""

    def __init__(
        self,
        workflow: Workflow,
        execution: Execution,
        registry: CommandRegistry,
        catalog: NodeTemplateCatalog,
        values: Mapping[str, Any],
        sleep: SleepFunction,
        set_variable: Optional[Callable[[str, Any], None]] = None
    ):
        self.workflow = workflow
        self.execution = execution
        self.registry = registry
        self.catalog = catalog
        self.values = dict(values)
        self.sleep = sleep
        self._set_variable = set_variable

    def resolve(self, value: Any) -> Any:
        if isinstance(value, str):
            return resolve_placeholders(value, self.values)
        return value

    def config(self, node: WorkflowNode, name: str, default: Any = None) -> Any:
        value = node.config.get(name)
        return default if value is None else self.resolve(value)

    def set_variable(self, name: str, value: Any) -> None:
        self.values[name] = value
        self.workflow.variables[name] = value
        if self._set_variable is not None:
            self._set_variable(name, value)


NodeBehavior = Callable[[WorkflowNode, NodeContext], Awaitable[None]]


def _number(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def action_args(node: WorkflowNode, ctx: NodeContext) -> List[Any]:
    """Config values in the template's input order, without trailing gaps."""
    template = ctx.catalog.find(node.template_id)
    names = [p.name for p in template.inputs] if template else list(node.config)
    args = [ctx.config(node, name) for name in names]
    while args and args[-1] is None:
        args.pop()
    return args


def command_behavior(command: str) -> NodeBehavior:
    """Behaviour that calls ``command`` on the registry, or just logs if it is missing."""
    async def run(node: WorkflowNode, ctx: NodeContext) -> None:
        args = action_args(node, ctx)
        if not ctx.registry.has(command):
            ctx.execution.log(f"{node.name}: {command}({', '.join(repr(a) for a in args)})", node_id=node.id)
            logger.debug(f"No handler for '{command}', node {node.id} logged only")
            return
        ctx.execution.results[node.id] = await ctx.registry.dispatch(command, args)
    return run


async def delay_behavior(node: WorkflowNode, ctx: NodeContext) -> None:
    seconds = _number(ctx.config(node, "seconds"), 1.0) or 1.0
    await ctx.sleep(seconds)


async def random_behavior(node: WorkflowNode, ctx: NodeContext) -> None:
    low = int(_number(ctx.config(node, "min"), 1))
    high = int(_number(ctx.config(node, "max"), 100))
    if low > high:
        low, high = high, low
    ctx.execution.results[node.id] = random.randint(low, high)


async def variable_behavior(node: WorkflowNode, ctx: NodeContext) -> None:
    name = ctx.config(node, "name")
    if not name:
        raise ValueError("Set Variable node needs a 'name'")
    value = ctx.config(node, "value")
    ctx.set_variable(name, value)
    ctx.execution.results[node.id] = value


async def condition_behavior(node: WorkflowNode, ctx: NodeContext) -> None:
    operator = CONDITION_OPERATORS.get(ctx.config(node, "operator", "equals"), "==")
    condition = Condition(left="value", operator=operator, right=str(ctx.config(node, "compare", "")))
    ctx.execution.results[node.id] = evaluate_condition(condition, {"value": ctx.config(node, "value", "")})


async def log_behavior(node: WorkflowNode, ctx: NodeContext) -> None:
    ctx.execution.log(f"Executing node type: {node.template_id}", node_id=node.id)


class NodeBehaviorTable:
    """Maps template ids to node behaviours; unmapped ids get a log line."""

    def __init__(self, behaviors: Optional[Dict[str, NodeBehavior]] = None):
        self._behaviors: Dict[str, NodeBehavior] = {}
        for template_id, command in TEMPLATE_COMMAND_MAP.items():
            self._behaviors[template_id] = command_behavior(command)
        self._behaviors.update({
            "logic-delay": delay_behavior,
            "logic-condition": condition_behavior,
            "data-random": random_behavior,
            "data-variable": variable_behavior,
        })
        if behaviors:
            self._behaviors.update(behaviors)

    def register(self, template_id: str, behavior: NodeBehavior) -> None:
        self._behaviors[template_id] = behavior

    def get(self, template_id: str) -> NodeBehavior:
        return self._behaviors.get(template_id, log_behavior)

    async def run(self, node: WorkflowNode, ctx: NodeContext) -> None:
        await self.get(node.template_id)(node, ctx)

    def __contains__(self, template_id: str) -> bool:
        return template_id in self._behaviors
