"""Pytest configuration and fixtures."""

import asyncio
import pytest
from typing import Any, List, Tuple
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from scriptflow.storage.database import Base
from scriptflow.storage import models  # noqa: F401
from scriptflow.core.command_registry import CommandRegistry
from scriptflow.core.compiler import ScriptWorkflowCompiler
from scriptflow.core.interpreter import ProgramExecutor
from scriptflow.core.node_templates import NodeTemplateCatalog
from scriptflow.core.script_manager import ScriptManager
from scriptflow.core.workflow_executor import WorkflowExecutor
from scriptflow.core.workflow_manager import WorkflowManager


class FakeSleep:
    """Records requested delays and yields to the event loop instead of sleeping."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


class CallRecorder:
    """Command handlers that remember how they were called."""

    def __init__(self):
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []

    def handler(self, name: str):
        def record(*args):
            self.calls.append((name, args))
            return {"command": name, "args": list(args)}
        return record

    @property
    def commands(self) -> List[str]:
        return [name for name, _ in self.calls]


RECORDED_COMMANDS = ("showAlert", "speak", "playSound", "switchScene", "createClip", "nextScene")


@pytest.fixture(scope="function")
def db_session():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def recorder():
    return CallRecorder()


@pytest.fixture
def registry(recorder):
    """Registry with recording handlers for the commands the tests use."""
    registry = CommandRegistry()
    for name in RECORDED_COMMANDS:
        registry.register(name, recorder.handler(name))
    return registry


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def catalog():
    return NodeTemplateCatalog()


@pytest.fixture
def program_executor(registry, fake_sleep):
    return ProgramExecutor(registry, sleep=fake_sleep)


@pytest.fixture
def workflow_manager(catalog, db_session):
    return WorkflowManager(catalog=catalog, db_session=db_session)


@pytest.fixture
def workflow_executor(workflow_manager, registry, catalog, fake_sleep, db_session):
    return WorkflowExecutor(
        workflow_manager=workflow_manager,
        registry=registry,
        catalog=catalog,
        history_limit=10,
        sleep=fake_sleep,
        db_session=db_session
    )


@pytest.fixture
def compiler(workflow_manager):
    return ScriptWorkflowCompiler(workflow_manager)


@pytest.fixture
def script_manager(registry, program_executor, compiler, db_session):
    return ScriptManager(
        registry=registry,
        executor=program_executor,
        compiler=compiler,
        db_session=db_session
    )
