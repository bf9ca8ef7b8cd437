"""Database models."""
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, Float
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CallRow(Base):
    """Call record model."""

    __tablename__ = "calls"

    id = Column(String, primary_key=True)
    provider_call_id = Column(String, unique=True, index=True, nullable=False)
    assistant_id = Column(String, nullable=True)
    help_request = Column(Text, nullable=False)
    provider_status = Column(String, nullable=False)
    status = Column(String, nullable=False)  # pending, calling, completed, error
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    transcript = Column(Text, nullable=True)
    messages = Column(JSON, nullable=True)  # List of {role, text, timestamp}
    recording_url = Column(Text, nullable=True)
    recording_path = Column(String, nullable=True)
    duration = Column(Float, nullable=True)
    ended_reason = Column(String, nullable=True)
    listen_url = Column(Text, nullable=True)
    poll_failures = Column(Integer, default=0, nullable=False)
