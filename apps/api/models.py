"""
ORM mappings of the Supabase tables the analytics pipeline reads.

The schema is owned by Supabase migrations; these mappings only mirror the
columns we query. Types fall back to portable variants so the same models
can be created on SQLite in tests.
"""
from sqlalchemy import Column, Boolean, DateTime, Float, Index, JSON, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from core.database import Base
import uuid

# JSONB on Postgres, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    title = Column(Text, nullable=True)
    # 'pending' | 'in_progress' | 'completed' | 'deferred'
    status = Column(Text, nullable=False, default="pending")
    priority = Column(Text, nullable=True)  # 'low' | 'medium' | 'high'
    pillar_key = Column(Text, nullable=True)
    deadline = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)

    __table_args__ = (
        Index("ix_tasks_user_created", "user_id", "created_at"),
    )


class PillarAssessment(Base):
    __tablename__ = "pillar_assessments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    pillar_type = Column(Text, nullable=False)  # pillar key, e.g. 'self_care'
    scores = Column(JSONType, nullable=True)  # {dimension_key: 0-10}
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    session_id = Column(Text, nullable=True)
    event = Column(Text, nullable=False)  # e.g. 'login', 'task_completed', 'stefan_chat'
    properties = Column(JSONType, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_analytics_events_user_ts", "user_id", "timestamp"),
    )


class UserPillarActivation(Base):
    __tablename__ = "user_pillar_activations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    pillar_key = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    activated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)


class PathEntry(Base):
    __tablename__ = "path_entries"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    type = Column(Text, nullable=False)  # 'assessment' | 'recommendation' | 'action' | ...
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class CoachingProgressEntry(Base):
    __tablename__ = "coaching_progress_entries"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    entry_type = Column(Text, nullable=False)  # journal entries use 'reflection'
    description = Column(Text, nullable=True)
    # `metadata` is reserved on declarative classes
    entry_metadata = Column("metadata", JSONType, nullable=True)
    sentiment_score = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
