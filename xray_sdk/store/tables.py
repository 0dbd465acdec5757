"""
Table models for the SQL store

Design principles:
- Hybrid approach: normalized columns for ordering and filtering, plus a JSON
  document holding the full step so absent fields stay absent on reload
- Steps keep the position they were appended at; re-saving a step keeps it
"""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, Text

from .database import Base


class ExecutionRow(Base):
    """
    One execution.

    tags is a JSON list or NULL; NULL means the execution never had tags.
    """
    __tablename__ = "executions"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, index=True)

    started_at = Column(DateTime, nullable=False, index=True)
    completed_at = Column(DateTime, nullable=True)

    tags = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)


class StepRow(Base):
    """
    One step of an execution.

    `record` is StepRecord.to_dict(mode="json"); the other columns are copies
    of it kept for queries.
    """
    __tablename__ = "steps"

    id = Column(String, primary_key=True)
    execution_id = Column(
        String, ForeignKey("executions.id", ondelete="CASCADE"), nullable=False
    )
    position = Column(Integer, nullable=False)

    name = Column(String, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False)

    candidate_count = Column(Integer, default=0)
    qualified_count = Column(Integer, default=0)

    record = Column(JSON, nullable=False)

    __table_args__ = (
        Index("idx_steps_execution_position", "execution_id", "position"),
    )
