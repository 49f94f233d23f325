"""Connection model for YouTube OAuth grants."""

from sqlalchemy import Boolean, Column, String, DateTime, Text
from sqlalchemy.sql import func
import uuid

from database import Base


class Connection(Base):
    """One OAuth grant linking the dashboard to one YouTube channel."""

    __tablename__ = "youtube_connections"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    youtube_channel_id = Column(String, nullable=False, index=True)
    youtube_channel_title = Column(String, nullable=True)

    # AES-256-GCM, format: base64(nonce):base64(ciphertext):base64(tag)
    access_token_encrypted = Column(Text, nullable=False)
    refresh_token_encrypted = Column(Text, nullable=False)
    token_expires_at = Column(DateTime(timezone=True), nullable=False)

    last_refreshed_at = Column(DateTime(timezone=True), nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)

    reporting_job_id = Column(String, nullable=True)
    reporting_job_type = Column(String, nullable=True)
    last_report_downloaded_at = Column(DateTime(timezone=True), nullable=True)

    connection_error = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
