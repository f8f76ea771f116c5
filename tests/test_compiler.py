"""Tests for compiling scripts into workflows."""

import pytest

from scriptflow.core.compiler import NODE_SPACING, START_X, config_from_args
from scriptflow.core.exceptions import ScriptSyntaxError
from scriptflow.models.script import Script, TriggerKind


def script(code, name="Generated"):
    return Script(id="script-1", name=name, code=code)


class TestScriptWorkflowCompiler:
    """Test cases for convert_to_workflow."""

    def test_mapped_actions_become_a_chain(self, compiler):
        code = (
            "when donation > 100 then\n"
            "  playSound('epic-donation')\n"
            "  switchScene('celebration')\n"
            "  showAlert('EPIC', '{{donor}}', 10)\n"
            "  wait(5)\n"
            "end"
        )

        workflow = compiler.convert_to_workflow(script(code, "Big Donation"))

        assert workflow.name == "Big Donation"
        assert workflow.description == "Generated from script: Big Donation"
        assert workflow.trigger.event_name == "donation"
        assert workflow.trigger.condition.right == "100"
        assert [n.template_id for n in workflow.nodes] == [
            "action-play-sound", "action-switch-scene", "action-show-alert", "logic-delay"
        ]
        assert len(workflow.connections) == 3
        for connection, (source, target) in zip(workflow.connections, zip(workflow.nodes, workflow.nodes[1:])):
            assert connection.source_node_id == source.id
            assert connection.target_node_id == target.id

    def test_nodes_are_laid_out_left_to_right(self, compiler):
        workflow = compiler.convert_to_workflow(script("on follower do speak('a') speak('b') speak('c') end"))

        assert [n.position.x for n in workflow.nodes] == [START_X, START_X + NODE_SPACING, START_X + 2 * NODE_SPACING]
        assert len({n.position.y for n in workflow.nodes}) == 1

    def test_arguments_fill_template_inputs(self, compiler):
        workflow = compiler.convert_to_workflow(
            script("on follower do showAlert('Hi', 'there') wait(5) end")
        )

        alert, delay = workflow.nodes
        assert alert.config == {"title": "Hi", "message": "there", "duration": 5}
        assert delay.config == {"seconds": 5}

    def test_unmapped_actions_are_skipped(self, compiler):
        workflow = compiler.convert_to_workflow(
            script("on follower do nextScene() speak('a') startRecording() playSound('b') end")
        )

        assert [n.template_id for n in workflow.nodes] == ["action-tts", "action-play-sound"]
        assert len(workflow.connections) == 1

    def test_only_first_rule_is_converted(self, compiler):
        workflow = compiler.convert_to_workflow(script(
            "on follower do speak('a') end\nevery 1 hour do playSound('b') speak('c') end"
        ))

        assert workflow.trigger.kind == TriggerKind.EVENT
        assert len(workflow.nodes) == 1

    def test_schedule_trigger(self, compiler):
        workflow = compiler.convert_to_workflow(script("every 15 minutes do speak('hi') end"))
        assert workflow.trigger.kind == TriggerKind.SCHEDULE
        assert workflow.trigger.schedule_expr == "15 minutes"

    def test_script_without_rules(self, compiler):
        workflow = compiler.convert_to_workflow(script("# nothing yet"))

        assert workflow.trigger.kind == TriggerKind.MANUAL
        assert workflow.nodes == []

    def test_invalid_script(self, compiler, workflow_manager):
        with pytest.raises(ScriptSyntaxError):
            compiler.convert_to_workflow(script("on follower do speak('a')"))
        assert workflow_manager.list_workflows() == []

    def test_workflow_is_independent_of_script(self, compiler, workflow_manager):
        source = script("on follower do speak('a') end")
        workflow = compiler.convert_to_workflow(source)

        workflow_manager.remove_node(workflow.id, workflow.nodes[0].id)

        assert source.code == "on follower do speak('a') end"
        assert compiler.convert_to_workflow(source).nodes[0].template_id == "action-tts"


def test_config_from_args_ignores_extra_arguments(catalog):
    template = catalog.get_template("action-tts")
    assert config_from_args(template, ["hello", "robot", "extra"]) == {"text": "hello", "voice": "robot"}
