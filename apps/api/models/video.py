"""Video model for tracked YouTube videos."""

from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, BigInteger, Float, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class Video(Base):
    """A video with its cumulative counters and latest window metrics."""

    __tablename__ = "videos"
    __table_args__ = (
        UniqueConstraint("channel_id", "youtube_video_id", name="uq_videos_channel_youtube_video"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    channel_id = Column(String, ForeignKey("channels.id"), nullable=False, index=True)
    youtube_video_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    thumbnail_url = Column(String, nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    video_type = Column(String, nullable=True)  # short, long
    content_source = Column(String, nullable=True)

    # Cumulative Data API counters (never regress)
    view_count = Column(BigInteger, nullable=True)
    like_count = Column(BigInteger, nullable=True)
    comment_count = Column(BigInteger, nullable=True)
    engagement_rate = Column(Float, nullable=True)

    # Latest window metrics (overwritten by non-null incoming values)
    impressions = Column(BigInteger, nullable=True)
    ctr = Column(Float, nullable=True)
    avg_view_percentage = Column(Float, nullable=True)  # 0-1
    watch_hours = Column(Float, nullable=True)
    subscribers_gained = Column(Integer, nullable=True)

    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    channel = relationship("Channel", back_populates="videos")
    snapshots = relationship("VideoSnapshot", back_populates="video", cascade="all, delete-orphan")
