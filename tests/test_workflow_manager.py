"""Tests for workflow definitions, nodes and connections."""

import json
import pytest

from scriptflow.core.exceptions import (
    TemplateNotFoundError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from scriptflow.core.node_templates import NodeTemplateCatalog, WORKFLOW_TEMPLATES
from scriptflow.models.script import TriggerDescriptor, TriggerKind
from scriptflow.models.workflow import Position, TemplateCategory


@pytest.fixture
def workflow(workflow_manager):
    return workflow_manager.create_workflow("Alerts", "Follower alerts")


def add_chain(workflow_manager, workflow_id, template_ids):
    """Add nodes for ``template_ids`` and connect them in order."""
    nodes = [
        workflow_manager.add_node(workflow_id, template_id, {"x": 100 * i, "y": 0})
        for i, template_id in enumerate(template_ids)
    ]
    connections = [
        workflow_manager.connect_nodes(workflow_id, a.id, b.id)
        for a, b in zip(nodes, nodes[1:])
    ]
    return nodes, connections


class TestNodeTemplateCatalog:
    """Test cases for the node template catalog."""

    def test_default_templates(self, catalog):
        assert len(catalog) == 17
        assert "action-play-sound" in catalog
        assert {t.category for t in catalog.list_templates()} == {
            TemplateCategory.TRIGGER, TemplateCategory.ACTION, TemplateCategory.LOGIC, TemplateCategory.DATA
        }

    def test_filter_by_category(self, catalog):
        triggers = catalog.list_templates(TemplateCategory.TRIGGER)
        assert [t.id for t in triggers] == [
            "trigger-stream-start", "trigger-donation", "trigger-follower", "trigger-schedule"
        ]

    def test_default_config_comes_from_input_defaults(self, catalog):
        assert catalog.get_template("action-play-sound").default_config == {"volume": 1.0}
        assert catalog.get_template("trigger-donation").default_config == {"minAmount": 0}

    def test_condition_offers_every_operator(self, catalog):
        operator = next(p for p in catalog.get_template("logic-condition").inputs if p.name == "operator")
        assert [o.value for o in operator.options] == ["equals", "not-equals", "greater", "less", "contains"]

    def test_unknown_template(self, catalog):
        assert catalog.find("nope") is None
        with pytest.raises(TemplateNotFoundError):
            catalog.get_template("nope")

    def test_custom_catalog(self, catalog):
        custom = NodeTemplateCatalog([catalog.get_template("logic-delay")])
        assert len(custom) == 1


class TestWorkflowCrud:
    """Test cases for workflow storage."""

    def test_create_and_get(self, workflow_manager, workflow):
        stored = workflow_manager.get_workflow(workflow.id)

        assert stored.name == "Alerts"
        assert stored.description == "Follower alerts"
        assert stored.enabled is False
        assert stored.trigger.kind == TriggerKind.MANUAL
        assert stored.nodes == []
        assert stored.run_count == 0

    def test_get_unknown_workflow(self, workflow_manager):
        with pytest.raises(WorkflowNotFoundError):
            workflow_manager.get_workflow("missing")
        assert workflow_manager.find_workflow("missing") is None

    def test_update_workflow(self, workflow_manager, workflow):
        trigger = TriggerDescriptor(kind=TriggerKind.EVENT, event_name="follower")

        updated = workflow_manager.update_workflow(workflow.id, name="Renamed", trigger=trigger, tags=["a"])

        assert updated.name == "Renamed"
        stored = workflow_manager.get_workflow(workflow.id)
        assert stored.trigger.event_name == "follower"
        assert stored.tags == ["a"]

    def test_update_rejects_unknown_fields(self, workflow_manager, workflow):
        with pytest.raises(WorkflowValidationError):
            workflow_manager.update_workflow(workflow.id, run_count=99)

    def test_update_rejects_invalid_structure(self, workflow_manager, workflow):
        bad_connection = {"id": "c1", "source_node_id": "ghost", "target_node_id": "ghost2"}
        with pytest.raises(WorkflowValidationError):
            workflow_manager.update_workflow(workflow.id, connections=[bad_connection])

    def test_toggle_and_delete(self, workflow_manager, workflow):
        assert workflow_manager.toggle_workflow(workflow.id).enabled is True
        assert workflow_manager.delete_workflow(workflow.id) is True
        assert workflow_manager.delete_workflow(workflow.id) is False
        assert workflow_manager.list_workflows() == []

    def test_counts(self, workflow_manager, workflow):
        workflow_manager.create_workflow("Second")
        workflow_manager.toggle_workflow(workflow.id)
        workflow_manager.record_run(workflow.id)

        assert workflow_manager.get_counts() == {
            "total_workflows": 2,
            "active_workflows": 1,
            "total_runs": 1,
        }


class TestNodes:
    """Test cases for nodes and connections."""

    def test_add_node_uses_template_defaults(self, workflow_manager, workflow):
        node = workflow_manager.add_node(workflow.id, "action-play-sound", Position(x=10, y=20),
                                         config={"soundId": "airhorn"})

        assert node.template_id == "action-play-sound"
        assert node.name == "Play Sound"
        assert node.config == {"volume": 1.0, "soundId": "airhorn"}
        assert node.position == Position(x=10, y=20)
        assert workflow_manager.get_workflow(workflow.id).nodes == [node]

    def test_add_node_with_unknown_template_is_a_no_op(self, workflow_manager, workflow):
        node = workflow_manager.add_node(workflow.id, "action-teleport", {"x": 0, "y": 0})

        assert node is None
        assert workflow_manager.get_workflow(workflow.id).nodes == []
        assert workflow_manager.skipped_template_count == 1

    def test_add_node_to_unknown_workflow(self, workflow_manager):
        with pytest.raises(WorkflowNotFoundError):
            workflow_manager.add_node("missing", "logic-delay", {"x": 0, "y": 0})

    def test_node_ids_are_unique(self, workflow_manager, workflow):
        nodes, _ = add_chain(workflow_manager, workflow.id, ["logic-delay"] * 5)
        assert len({n.id for n in nodes}) == 5

    def test_update_node(self, workflow_manager, workflow):
        node = workflow_manager.add_node(workflow.id, "logic-delay", {"x": 0, "y": 0})

        updated = workflow_manager.update_node(
            workflow.id, node.id, name="Pause", config={"seconds": 9}, enabled=False
        )

        assert updated.name == "Pause"
        assert updated.config == {"seconds": 9}
        assert updated.enabled is False
        assert workflow_manager.get_workflow(workflow.id).nodes[0].enabled is False

    def test_update_unknown_node(self, workflow_manager, workflow):
        with pytest.raises(WorkflowValidationError):
            workflow_manager.update_node(workflow.id, "ghost", name="x")

    def test_connect_rejects_unknown_and_self(self, workflow_manager, workflow):
        node = workflow_manager.add_node(workflow.id, "logic-delay", {"x": 0, "y": 0})

        with pytest.raises(WorkflowValidationError):
            workflow_manager.connect_nodes(workflow.id, node.id, "ghost")
        with pytest.raises(WorkflowValidationError):
            workflow_manager.connect_nodes(workflow.id, node.id, node.id)
        assert workflow_manager.get_workflow(workflow.id).connections == []

    def test_remove_node_removes_its_connections(self, workflow_manager, workflow):
        nodes, connections = add_chain(
            workflow_manager, workflow.id, ["trigger-follower", "action-show-alert", "action-tts"]
        )
        extra = workflow_manager.connect_nodes(workflow.id, nodes[0].id, nodes[2].id)

        assert workflow_manager.remove_node(workflow.id, nodes[1].id) is True

        stored = workflow_manager.get_workflow(workflow.id)
        assert [n.id for n in stored.nodes] == [nodes[0].id, nodes[2].id]
        assert [c.id for c in stored.connections] == [extra.id]
        node_ids = {n.id for n in stored.nodes}
        for connection in stored.connections:
            assert connection.source_node_id in node_ids
            assert connection.target_node_id in node_ids
        assert connections[0].id not in {c.id for c in stored.connections}

    def test_remove_unknown_node(self, workflow_manager, workflow):
        assert workflow_manager.remove_node(workflow.id, "ghost") is False

    def test_disconnect(self, workflow_manager, workflow):
        _, connections = add_chain(workflow_manager, workflow.id, ["logic-delay", "logic-delay"])

        assert workflow_manager.disconnect_nodes(workflow.id, connections[0].id) is True
        assert workflow_manager.disconnect_nodes(workflow.id, connections[0].id) is False
        assert workflow_manager.get_workflow(workflow.id).connections == []

    def test_set_variable_last_writer_wins(self, workflow_manager, workflow):
        workflow_manager.set_variable(workflow.id, "count", 1)
        workflow_manager.set_variable(workflow.id, "count", 2)
        assert workflow_manager.get_workflow(workflow.id).variables == {"count": 2}


class TestImportExport:
    """Test cases for JSON import, export and duplication."""

    def test_export_then_import(self, workflow_manager, workflow):
        add_chain(workflow_manager, workflow.id, ["trigger-follower", "action-show-alert", "action-tts"])
        original = workflow_manager.get_workflow(workflow.id)

        exported = workflow_manager.export_workflow(workflow.id)
        imported = workflow_manager.import_workflow(exported)

        assert imported.id != original.id
        assert imported.created_at >= original.created_at
        assert imported.nodes == original.nodes
        assert imported.connections == original.connections
        assert imported.name == original.name
        assert workflow_manager.get_workflow(imported.id).nodes == original.nodes

    def test_export_unknown_workflow(self, workflow_manager):
        assert workflow_manager.export_workflow("missing") == ""

    @pytest.mark.parametrize("payload", ["{not json", "[]", json.dumps({"nodes": []}), None])
    def test_import_rejects_bad_input(self, workflow_manager, payload):
        assert workflow_manager.import_workflow(payload) is None
        assert workflow_manager.list_workflows() == []

    def test_duplicate(self, workflow_manager, workflow):
        workflow_manager.add_node(workflow.id, "logic-delay", {"x": 0, "y": 0})
        workflow_manager.toggle_workflow(workflow.id)
        workflow_manager.record_run(workflow.id)

        copy = workflow_manager.duplicate_workflow(workflow.id)

        assert copy.id != workflow.id
        assert copy.name == "Alerts (Copy)"
        assert copy.enabled is False
        assert copy.run_count == 0
        assert copy.last_run is None
        assert len(copy.nodes) == 1
        assert workflow_manager.duplicate_workflow("missing") is None

    def test_create_from_template(self, workflow_manager):
        created = workflow_manager.create_from_template(1)

        assert created.name == WORKFLOW_TEMPLATES[1]["name"]
        assert created.trigger.event_name == "donation"
        assert created.trigger.condition.right == "100"

        with pytest.raises(TemplateNotFoundError):
            workflow_manager.create_from_template(len(WORKFLOW_TEMPLATES))
