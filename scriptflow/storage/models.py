"""SQLAlchemy database models for the automation engine."""

from datetime import datetime
from sqlalchemy import Boolean, Column, String, DateTime, Text, JSON, Integer
from .database import Base


class ScriptModel(Base):
    """Database model for text DSL scripts."""
    __tablename__ = "scripts"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text)
    code = Column(Text, nullable=False, default="")
    enabled = Column(Boolean, nullable=False, default=False)
    diagnostics = Column(JSON, nullable=False, default=list)  # Diagnostics from the last edit
    run_count = Column(Integer, nullable=False, default=0)
    last_run = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class WorkflowModel(Base):
    """Database model for node-graph workflows."""
    __tablename__ = "workflows"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    enabled = Column(Boolean, nullable=False, default=False)
    definition = Column(JSON, nullable=False)  # Stores the complete workflow
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ExecutionModel(Base):
    """Database model for archived workflow executions."""
    __tablename__ = "executions"

    id = Column(String, primary_key=True)
    workflow_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False)  # running, completed, failed, cancelled
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime)
    results = Column(JSON)
    logs = Column(JSON)  # List of serialized ExecutionLogEntry
