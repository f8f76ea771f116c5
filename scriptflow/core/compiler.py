"""One-way compiler turning a script into a linear workflow."""

from typing import Any, Dict, List

from ..models.script import ArgValue, Script, TriggerDescriptor
from ..models.workflow import NodeTemplate, Position, Workflow
from .logging import get_logger
from .node_templates import COMMAND_TEMPLATE_MAP
from .parser import parse_source
from .workflow_manager import WorkflowManager

logger = get_logger(__name__)

START_X = 100
NODE_SPACING = 200
ROW_Y = 200


def config_from_args(template: NodeTemplate, args: List[ArgValue]) -> Dict[str, Any]:
    """Assign positional action arguments to the template's inputs in order."""
    return {param.name: value for param, value in zip(template.inputs, args)}


class ScriptWorkflowCompiler:
    """Compiles the first rule of a script into a chain of workflow nodes.

    The generated workflow is independent of its script afterwards; editing
    one never updates the other.
    """

    def __init__(self, workflow_manager: WorkflowManager):
        self.workflow_manager = workflow_manager

    def convert_to_workflow(self, script: Script) -> Workflow:
        """
        Convert a script to a workflow.

        Actions without a node template are skipped. Only the first rule is
        converted.

        Raises:
            ScriptSyntaxError: If the script does not parse
        """
        program = parse_source(script.code)
        manager = self.workflow_manager

        trigger = program.rules[0].trigger if program.rules else TriggerDescriptor()
        workflow = manager.create_workflow(
            script.name,
            description=f"Generated from script: {script.name}",
            trigger=trigger,
        )

        if len(program.rules) > 1:
            logger.info(
                f"Script '{script.name}' has {len(program.rules)} rules; "
                f"only the first was converted to workflow {workflow.id}"
            )

        if not program.rules:
            return workflow

        previous = None
        placed = 0
        for action in program.rules[0].actions:
            template_id = COMMAND_TEMPLATE_MAP.get(action.command)
            if template_id is None:
                continue

            template = manager.catalog.find(template_id)
            node = manager.add_node(
                workflow.id,
                template_id,
                Position(x=START_X + NODE_SPACING * placed, y=ROW_Y),
                config=config_from_args(template, action.args) if template else None,
            )
            if node is None:
                continue

            if previous is not None:
                manager.connect_nodes(workflow.id, previous.id, node.id)
            previous = node
            placed += 1

        logger.info(f"Converted script '{script.name}' into workflow {workflow.id} with {placed} nodes")
        return manager.get_workflow(workflow.id)
