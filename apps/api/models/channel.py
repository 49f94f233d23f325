"""Channel model for tracked YouTube channels."""

from sqlalchemy import Boolean, Column, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class Channel(Base):
    """A tracked channel; client channels are the ones synced via OAuth."""

    __tablename__ = "channels"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    youtube_channel_id = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    is_client = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    videos = relationship("Video", back_populates="channel", cascade="all, delete-orphan")
