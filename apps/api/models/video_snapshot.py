"""VideoSnapshot model for daily per-video metrics."""

from sqlalchemy import Column, String, Date, DateTime, ForeignKey, Integer, BigInteger, Float, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class VideoSnapshot(Base):
    """Metrics for one video on one calendar day."""

    __tablename__ = "video_snapshots"
    __table_args__ = (
        UniqueConstraint("video_id", "snapshot_date", name="uq_video_snapshots_video_date"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    video_id = Column(String, ForeignKey("videos.id"), nullable=False, index=True)
    snapshot_date = Column(Date, nullable=False)

    # Period metrics
    view_count = Column(BigInteger, nullable=True)
    impressions = Column(BigInteger, nullable=True)
    ctr = Column(Float, nullable=True)
    avg_view_percentage = Column(Float, nullable=True)
    watch_hours = Column(Float, nullable=True)
    avg_view_duration_seconds = Column(Float, nullable=True)
    subscribers_gained = Column(Integer, nullable=True)
    subscribers_lost = Column(Integer, nullable=True)
    likes = Column(Integer, nullable=True)
    comments = Column(Integer, nullable=True)
    shares = Column(Integer, nullable=True)

    # Cumulative Data API counters as observed that day
    total_view_count = Column(BigInteger, nullable=True)
    total_like_count = Column(BigInteger, nullable=True)
    total_comment_count = Column(BigInteger, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    video = relationship("Video", back_populates="snapshots")
