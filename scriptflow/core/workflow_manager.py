"""Workflow Manager for node-graph workflow definitions."""

import json
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union
from pydantic import ValidationError
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from ..models.script import TriggerDescriptor
from ..models.workflow import Connection, Position, Workflow, WorkflowNode
from ..storage.database import get_db
from ..storage.models import WorkflowModel
from .exceptions import (
    StorageError,
    TemplateNotFoundError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from .logging import get_logger
from .node_templates import NodeTemplateCatalog, WORKFLOW_TEMPLATES

logger = get_logger(__name__)

UPDATABLE_FIELDS = frozenset({
    "name", "description", "enabled", "trigger", "nodes", "connections", "variables", "tags",
})

PositionLike = Union[Position, Dict[str, float]]


class WorkflowManager:
    """Manages workflow definitions, their nodes and connections, and storage."""

    def __init__(self, catalog: Optional[NodeTemplateCatalog] = None, db_session: Optional[Session] = None):
        """Initialize WorkflowManager with a template catalog and optional database session."""
        self.catalog = catalog or NodeTemplateCatalog()
        self._db_session = db_session
        self.skipped_template_count = 0

    def _get_db_session(self) -> Session:
        """Get database session, creating one if not provided."""
        if self._db_session:
            return self._db_session
        return next(get_db())

    def _release(self, session: Session) -> None:
        if not self._db_session:
            session.close()

    def _generate_unique_id(self) -> str:
        return str(uuid.uuid4())

    # -- persistence helpers ---------------------------------------------

    def _get_model(self, session: Session, workflow_id: str) -> WorkflowModel:
        model = session.query(WorkflowModel).filter(WorkflowModel.id == workflow_id).first()
        if not model:
            raise WorkflowNotFoundError(workflow_id)
        return model

    def _store(self, model: WorkflowModel, workflow: Workflow) -> None:
        # Re-run model validators; in-place edits bypass them
        workflow = Workflow.model_validate(workflow.model_dump())
        model.name = workflow.name
        model.enabled = workflow.enabled
        model.definition = workflow.model_dump(mode="json")

    def _insert(self, workflow: Workflow, operation: str) -> Workflow:
        session = self._get_db_session()
        try:
            session.add(WorkflowModel(
                id=workflow.id,
                name=workflow.name,
                enabled=workflow.enabled,
                definition=workflow.model_dump(mode="json"),
                created_at=workflow.created_at,
            ))
            session.commit()
            return workflow
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database error while trying to {operation}: {str(e)}")
            raise StorageError(f"Failed to {operation}: {str(e)}", operation=operation, table="workflows")
        finally:
            self._release(session)

    def _mutate(self, workflow_id: str, operation: str, mutator: Callable[[Workflow], Any]) -> Any:
        """Load a workflow, apply ``mutator`` and persist the result."""
        session = self._get_db_session()
        try:
            model = self._get_model(session, workflow_id)
            workflow = Workflow.model_validate(model.definition)
            result = mutator(workflow)
            self._store(model, workflow)
            session.commit()
            return result
        except ValidationError as e:
            session.rollback()
            raise WorkflowValidationError(f"Invalid workflow after {operation}: {e}", workflow_id=workflow_id)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database error during {operation} on workflow {workflow_id}: {str(e)}")
            raise StorageError(f"Failed to {operation}: {str(e)}", operation=operation, table="workflows")
        finally:
            self._release(session)

    # -- workflow CRUD ---------------------------------------------------

    def create_workflow(self, name: str, description: Optional[str] = None,
                        trigger: Optional[TriggerDescriptor] = None,
                        tags: Optional[List[str]] = None) -> Workflow:
        """
        Create a new, disabled workflow.

        Args:
            name: Display name
            description: Optional description
            trigger: Trigger; manual when omitted
            tags: Optional tags

        Returns:
            Workflow: The stored workflow
        """
        workflow = Workflow(
            id=self._generate_unique_id(),
            name=name,
            description=description,
            trigger=trigger or TriggerDescriptor(),
            tags=list(tags or []),
        )
        self._insert(workflow, "create workflow")
        logger.info(f"Created workflow '{name}' with ID: {workflow.id}")
        return workflow

    def get_workflow(self, workflow_id: str) -> Workflow:
        """
        Retrieve a workflow by its ID.

        Raises:
            WorkflowNotFoundError: If no workflow has this ID
            StorageError: If storage operation fails
        """
        session = self._get_db_session()
        try:
            model = self._get_model(session, workflow_id)
            return Workflow.model_validate(model.definition)
        except SQLAlchemyError as e:
            logger.error(f"Database error while retrieving workflow: {str(e)}")
            raise StorageError(f"Failed to retrieve workflow: {str(e)}", operation="get", table="workflows")
        finally:
            self._release(session)

    def find_workflow(self, workflow_id: str) -> Optional[Workflow]:
        try:
            return self.get_workflow(workflow_id)
        except WorkflowNotFoundError:
            return None

    def list_workflows(self) -> List[Workflow]:
        """List all workflows, oldest first."""
        session = self._get_db_session()
        try:
            models = session.query(WorkflowModel).order_by(WorkflowModel.created_at.asc()).all()
            return [Workflow.model_validate(model.definition) for model in models]
        except SQLAlchemyError as e:
            logger.error(f"Database error while listing workflows: {str(e)}")
            raise StorageError(f"Failed to list workflows: {str(e)}", operation="list", table="workflows")
        finally:
            self._release(session)

    def update_workflow(self, workflow_id: str, **fields) -> Workflow:
        """Update top-level workflow fields such as name, trigger, tags or variables."""
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise WorkflowValidationError(
                f"Cannot update workflow fields: {', '.join(sorted(unknown))}",
                workflow_id=workflow_id
            )

        def apply(workflow: Workflow) -> Workflow:
            data = workflow.model_dump()
            data.update(fields)
            updated = Workflow.model_validate(data)
            for key in fields:
                setattr(workflow, key, getattr(updated, key))
            return workflow

        workflow = self._mutate(workflow_id, "update workflow", apply)
        logger.info(f"Updated workflow {workflow_id}: {', '.join(sorted(fields))}")
        return workflow

    def delete_workflow(self, workflow_id: str) -> bool:
        """
        Delete a workflow by its ID.

        Returns:
            bool: True if the workflow was deleted, False if not found
        """
        logger.info(f"Deleting workflow with ID: {workflow_id}")
        session = self._get_db_session()
        try:
            model = session.query(WorkflowModel).filter(WorkflowModel.id == workflow_id).first()
            if not model:
                logger.warning(f"Workflow with ID '{workflow_id}' not found for deletion")
                return False
            session.delete(model)
            session.commit()
            return True
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database error while deleting workflow: {str(e)}")
            raise StorageError(f"Failed to delete workflow: {str(e)}", operation="delete", table="workflows")
        finally:
            self._release(session)

    def toggle_workflow(self, workflow_id: str) -> Workflow:
        def flip(workflow: Workflow) -> Workflow:
            workflow.enabled = not workflow.enabled
            return workflow
        return self._mutate(workflow_id, "toggle workflow", flip)

    # -- nodes and connections --------------------------------------------

    def add_node(self, workflow_id: str, template_id: str, position: PositionLike,
                 config: Optional[Dict[str, Any]] = None) -> Optional[WorkflowNode]:
        """
        Instantiate a node from a template and append it to the workflow.

        An unknown template is a no-op: nothing is added and None is
        returned. The skip is logged and counted in ``skipped_template_count``.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist
        """
        template = self.catalog.find(template_id)
        if template is None:
            self.skipped_template_count += 1
            logger.warning(f"Skipped add_node on workflow {workflow_id}: unknown template '{template_id}'")
            return None

        node_config = dict(template.default_config)
        if config:
            node_config.update(config)

        node = WorkflowNode(
            id=self._generate_unique_id(),
            template_id=template.id,
            name=template.name,
            position=position if isinstance(position, Position) else Position.model_validate(position),
            config=node_config,
        )

        def append(workflow: Workflow) -> WorkflowNode:
            workflow.nodes.append(node)
            return node

        self._mutate(workflow_id, "add node", append)
        logger.debug(f"Added node {node.id} ({template.id}) to workflow {workflow_id}")
        return node

    def remove_node(self, workflow_id: str, node_id: str) -> bool:
        """Remove a node and every connection that references it."""
        def remove(workflow: Workflow) -> bool:
            if workflow.get_node(node_id) is None:
                return False
            workflow.nodes = [n for n in workflow.nodes if n.id != node_id]
            workflow.connections = [
                c for c in workflow.connections
                if c.source_node_id != node_id and c.target_node_id != node_id
            ]
            return True

        removed = self._mutate(workflow_id, "remove node", remove)
        if removed:
            logger.debug(f"Removed node {node_id} from workflow {workflow_id}")
        return removed

    def update_node(self, workflow_id: str, node_id: str, *, name: Optional[str] = None,
                    config: Optional[Dict[str, Any]] = None, enabled: Optional[bool] = None,
                    position: Optional[PositionLike] = None) -> WorkflowNode:
        """Update a node in place. ``config`` is merged over the current config."""
        def update(workflow: Workflow) -> WorkflowNode:
            node = workflow.get_node(node_id)
            if node is None:
                raise WorkflowValidationError(f"Node '{node_id}' not found", workflow_id=workflow_id)
            if name is not None:
                node.name = name
            if config is not None:
                node.config = {**node.config, **config}
            if enabled is not None:
                node.enabled = enabled
            if position is not None:
                node.position = position if isinstance(position, Position) else Position.model_validate(position)
            return node

        return self._mutate(workflow_id, "update node", update)

    def connect_nodes(self, workflow_id: str, source_node_id: str, target_node_id: str,
                      source_handle: Optional[str] = None,
                      target_handle: Optional[str] = None) -> Connection:
        """
        Connect two existing, distinct nodes of a workflow.

        Raises:
            WorkflowValidationError: If an endpoint is unknown or both are the same node
        """
        def connect(workflow: Workflow) -> Connection:
            for node_id in (source_node_id, target_node_id):
                if workflow.get_node(node_id) is None:
                    raise WorkflowValidationError(
                        f"Cannot connect unknown node '{node_id}'",
                        workflow_id=workflow_id
                    )
            if source_node_id == target_node_id:
                raise WorkflowValidationError("Cannot connect a node to itself", workflow_id=workflow_id)

            connection = Connection(
                id=self._generate_unique_id(),
                source_node_id=source_node_id,
                target_node_id=target_node_id,
                source_handle=source_handle,
                target_handle=target_handle,
            )
            workflow.connections.append(connection)
            return connection

        return self._mutate(workflow_id, "connect nodes", connect)

    def disconnect_nodes(self, workflow_id: str, connection_id: str) -> bool:
        def disconnect(workflow: Workflow) -> bool:
            remaining = [c for c in workflow.connections if c.id != connection_id]
            removed = len(remaining) != len(workflow.connections)
            workflow.connections = remaining
            return removed

        return self._mutate(workflow_id, "disconnect nodes", disconnect)

    # -- run bookkeeping ---------------------------------------------------

    def set_variable(self, workflow_id: str, name: str, value: Any) -> None:
        """Store a workflow variable. Concurrent writers race; the last one wins."""
        def assign(workflow: Workflow) -> None:
            workflow.variables[name] = value

        self._mutate(workflow_id, "set variable", assign)

    def record_run(self, workflow_id: str, when: Optional[datetime] = None) -> Workflow:
        """Bump run_count and set last_run."""
        def bump(workflow: Workflow) -> Workflow:
            workflow.run_count += 1
            workflow.last_run = when or datetime.utcnow()
            return workflow

        return self._mutate(workflow_id, "record run", bump)

    # -- import / export -----------------------------------------------------

    def export_workflow(self, workflow_id: str) -> str:
        """Serialize a workflow to indented JSON, or '' if it does not exist."""
        workflow = self.find_workflow(workflow_id)
        if workflow is None:
            return ""
        return workflow.model_dump_json(indent=2)

    def import_workflow(self, workflow_json: str) -> Optional[Workflow]:
        """
        Import a workflow from JSON.

        ``id`` and ``created_at`` are regenerated; everything else is copied.
        Malformed JSON or an invalid workflow returns None.
        """
        try:
            data = json.loads(workflow_json)
        except (TypeError, ValueError) as e:
            logger.warning(f"Rejected workflow import: malformed JSON ({e})")
            return None

        if not isinstance(data, dict):
            logger.warning("Rejected workflow import: top-level value is not an object")
            return None

        data["id"] = self._generate_unique_id()
        data["created_at"] = datetime.utcnow()

        try:
            workflow = Workflow.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Rejected workflow import: {e.error_count()} validation errors")
            return None

        self._insert(workflow, "import workflow")
        logger.info(f"Imported workflow '{workflow.name}' as {workflow.id}")
        return workflow

    def duplicate_workflow(self, workflow_id: str) -> Optional[Workflow]:
        """Copy a workflow as a disabled '(Copy)' with fresh run stats."""
        source = self.find_workflow(workflow_id)
        if source is None:
            return None

        duplicate = source.model_copy(deep=True, update={
            "id": self._generate_unique_id(),
            "name": f"{source.name} (Copy)",
            "created_at": datetime.utcnow(),
            "last_run": None,
            "run_count": 0,
            "enabled": False,
        })
        return self._insert(duplicate, "duplicate workflow")

    def create_from_template(self, template_index: int) -> Workflow:
        """Create a workflow from one of the pre-built workflow templates."""
        if template_index < 0 or template_index >= len(WORKFLOW_TEMPLATES):
            raise TemplateNotFoundError(f"workflow-template-{template_index}")

        template = WORKFLOW_TEMPLATES[template_index]
        return self.create_workflow(
            template["name"],
            description=template["description"],
            trigger=template["trigger"].model_copy(deep=True),
            tags=template["tags"],
        )

    def get_counts(self) -> Dict[str, int]:
        """Totals used by the statistics endpoint."""
        workflows = self.list_workflows()
        return {
            "total_workflows": len(workflows),
            "active_workflows": sum(1 for w in workflows if w.enabled),
            "total_runs": sum(w.run_count for w in workflows),
        }
