"""SyncRun model recording each daily sync invocation."""

from sqlalchemy import Column, String, DateTime, Integer, JSON, Text
from sqlalchemy.sql import func
import uuid

from database import Base


class SyncRun(Base):
    """One invocation of the daily sync and its per-connection report."""

    __tablename__ = "sync_runs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    trigger = Column(String, nullable=False, default="cron")  # cron, manual, queue
    status = Column(String, nullable=False, default="running")  # running, completed, failed
    connections_processed = Column(Integer, nullable=False, default=0)
    duration_ms = Column(Integer, nullable=True)
    report_json = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)
