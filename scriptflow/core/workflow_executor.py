"""Workflow Executor running workflow nodes in stored order."""

import asyncio
import json
import uuid
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Mapping, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from ..models.workflow import (
    Execution,
    ExecutionLogEntry,
    ExecutionStatusEnum,
    LogLevelEnum,
    WorkflowStatistics,
)
from ..storage.database import get_db
from ..storage.models import ExecutionModel
from .command_registry import CommandRegistry
from .exceptions import NodeExecutionError, StorageError, WorkflowNotFoundError
from .interpreter import SleepFunction
from .logging import get_logger, logging_context
from .node_behaviors import NodeBehaviorTable, NodeContext
from .node_templates import NodeTemplateCatalog
from .workflow_manager import WorkflowManager

logger = get_logger(__name__)


class WorkflowExecutor:
    """Executes workflows node by node and keeps their execution records.

    Nodes run in the order they are stored on the workflow. Connections are
    not consulted. Each run is a coroutine, so several workflows can be in
    flight on one event loop.
    """

    def __init__(
        self,
        workflow_manager: WorkflowManager,
        registry: CommandRegistry,
        catalog: Optional[NodeTemplateCatalog] = None,
        behaviors: Optional[NodeBehaviorTable] = None,
        history_limit: int = 100,
        sleep: SleepFunction = asyncio.sleep,
        db_session: Optional[Session] = None
    ):
        """Initialize the executor.

        Args:
            workflow_manager: Source of workflow definitions and run bookkeeping
            registry: Command handlers that action nodes call
            catalog: Node templates; defaults to the manager's catalog
            behaviors: Behaviour table keyed by template id
            history_limit: Finished executions kept in memory
            sleep: Awaitable used by delay nodes
            db_session: Optional database session for the execution archive
        """
        self.workflow_manager = workflow_manager
        self.registry = registry
        self.catalog = catalog or workflow_manager.catalog
        self.behaviors = behaviors or NodeBehaviorTable()
        self._sleep = sleep
        self._db_session = db_session

        self._active_executions: Dict[str, Execution] = {}
        self._history: Deque[Execution] = deque(maxlen=history_limit)

        logger.info(f"WorkflowExecutor initialized with history_limit={history_limit}")

    def _get_db_session(self) -> Session:
        if self._db_session:
            return self._db_session
        return next(get_db())

    async def execute_workflow(self, workflow_id: str, context: Optional[Mapping[str, Any]] = None) -> Execution:
        """
        Execute a workflow once.

        Args:
            workflow_id: ID of the workflow to run
            context: Trigger context, merged over the workflow variables

        Returns:
            Execution: The finished execution, completed or failed

        Raises:
            WorkflowNotFoundError: If the workflow does not exist
        """
        workflow = self.workflow_manager.get_workflow(workflow_id)

        execution = Execution(id=str(uuid.uuid4()), workflow_id=workflow_id)
        execution.log(f"Starting workflow: {workflow.name}")
        self._active_executions[execution.id] = execution
        logger.info(f"Started workflow execution: execution_id={execution.id}, workflow_id={workflow_id}")

        node_context = NodeContext(
            workflow=workflow,
            execution=execution,
            registry=self.registry,
            catalog=self.catalog,
            values={**workflow.variables, **dict(context or {})},
            sleep=self._sleep,
            set_variable=lambda name, value: self.workflow_manager.set_variable(workflow_id, name, value),
        )

        with logging_context(workflow_id=workflow_id, execution_id=execution.id):
            await self._run_nodes(workflow.nodes, node_context, execution)

            execution.end_time = datetime.utcnow()
            self._finish(execution)
            self._archive(execution)

            try:
                self.workflow_manager.record_run(workflow_id, execution.end_time)
            except WorkflowNotFoundError:
                logger.warning(f"Workflow {workflow_id} was deleted during execution {execution.id}")

            logger.info(f"Workflow execution {execution.id} finished with status {execution.status.value}")
        return execution

    async def _run_nodes(self, nodes, node_context: NodeContext, execution: Execution) -> None:
        try:
            for node in nodes:
                if not node.enabled:
                    continue
                execution.log(f"Executing node: {node.name}", node_id=node.id)
                await self._execute_node(node, node_context, execution)

            execution.status = ExecutionStatusEnum.COMPLETED
            execution.log("Workflow completed successfully")

        except NodeExecutionError as e:
            execution.status = ExecutionStatusEnum.FAILED
            execution.log(f"Workflow failed: {e.message}", level=LogLevelEnum.ERROR)

    async def _execute_node(self, node, node_context: NodeContext, execution: Execution) -> None:
        try:
            await self.behaviors.run(node, node_context)
        except Exception as e:
            error_message = f"Node {node.id} execution failed: {str(e)}"
            logger.error(f"{error_message} (execution {execution.id})")
            execution.log(error_message, level=LogLevelEnum.ERROR, node_id=node.id)
            raise NodeExecutionError(error_message, node_id=node.id, execution_id=execution.id) from e

    def _finish(self, execution: Execution) -> None:
        # No await between these two lines: an execution is never in both places
        self._active_executions.pop(execution.id, None)
        self._history.append(execution)

    def _archive(self, execution: Execution) -> None:
        """Persist a finished execution. Failures are logged, not raised."""
        session = self._get_db_session()
        try:
            session.add(ExecutionModel(
                id=execution.id,
                workflow_id=execution.workflow_id,
                status=execution.status.value,
                start_time=execution.start_time,
                end_time=execution.end_time,
                results=json.loads(json.dumps(execution.results, default=str)),
                logs=[entry.model_dump(mode="json") for entry in execution.logs],
            ))
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to archive execution {execution.id}: {str(e)}")
        finally:
            if not self._db_session:
                session.close()

    @staticmethod
    def _from_model(model: ExecutionModel) -> Execution:
        return Execution(
            id=model.id,
            workflow_id=model.workflow_id,
            start_time=model.start_time,
            end_time=model.end_time,
            status=ExecutionStatusEnum(model.status),
            results=model.results or {},
            logs=[ExecutionLogEntry.model_validate(entry) for entry in (model.logs or [])],
        )

    def get_active_executions(self) -> List[Execution]:
        """Executions currently running."""
        return list(self._active_executions.values())

    def is_execution_active(self, execution_id: str) -> bool:
        return execution_id in self._active_executions

    def get_execution_history(self, workflow_id: Optional[str] = None) -> List[Execution]:
        """Finished executions kept in memory, newest first."""
        history = reversed(self._history)
        if workflow_id is not None:
            return [e for e in history if e.workflow_id == workflow_id]
        return list(history)

    def get_execution(self, execution_id: str) -> Optional[Execution]:
        """Look an execution up in the active set, the history, then the archive."""
        if execution_id in self._active_executions:
            return self._active_executions[execution_id]
        for execution in self._history:
            if execution.id == execution_id:
                return execution

        session = self._get_db_session()
        try:
            model = session.query(ExecutionModel).filter(ExecutionModel.id == execution_id).first()
            return self._from_model(model) if model else None
        except SQLAlchemyError as e:
            logger.error(f"Database error while retrieving execution: {str(e)}")
            raise StorageError(f"Failed to retrieve execution: {str(e)}", operation="get", table="executions")
        finally:
            if not self._db_session:
                session.close()

    def get_statistics(self) -> WorkflowStatistics:
        """Workflow counts, total runs, and the completed share of archived executions."""
        counts = self.workflow_manager.get_counts()

        session = self._get_db_session()
        try:
            archived = session.query(ExecutionModel).count()
            completed = session.query(ExecutionModel).filter(
                ExecutionModel.status == ExecutionStatusEnum.COMPLETED.value
            ).count()
        except SQLAlchemyError as e:
            logger.error(f"Database error while computing statistics: {str(e)}")
            raise StorageError(f"Failed to compute statistics: {str(e)}", operation="count", table="executions")
        finally:
            if not self._db_session:
                session.close()

        return WorkflowStatistics(
            total_workflows=counts["total_workflows"],
            active_workflows=counts["active_workflows"],
            total_executions=counts["total_runs"],
            success_rate=round(completed / archived * 100, 2) if archived else 100.0,
        )
