"""Database models and storage layer."""

from .database import (
    Base,
    get_db,
    get_database_engine,
    init_database,
    reset_database_engine,
    create_tables,
    drop_tables,
)
from .models import ScriptModel, WorkflowModel, ExecutionModel

__all__ = [
    "Base",
    "get_db",
    "get_database_engine",
    "init_database",
    "reset_database_engine",
    "create_tables",
    "drop_tables",
    "ScriptModel",
    "WorkflowModel",
    "ExecutionModel",
]
