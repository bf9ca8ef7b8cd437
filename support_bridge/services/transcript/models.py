"""Transcript message model."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class TranscriptMessage(BaseModel):
    """A single speaker-tagged utterance."""

    role: str
    text: str
    timestamp: Optional[datetime] = None
