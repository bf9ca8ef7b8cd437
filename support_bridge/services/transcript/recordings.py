"""Local recording storage."""
import logging
from enum import Enum
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".wav", ".mp3", ".ogg", ".m4a", ".webm"}
DEFAULT_EXTENSION = ".wav"

MEDIA_TYPES = {
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".ogg": "audio/ogg",
    ".m4a": "audio/mp4",
    ".webm": "audio/webm",
}


class RecordingStrategy(str, Enum):
    """When recordings are fetched from the provider."""

    OFF = "off"  # Never fetch
    EAGER = "eager"  # Fetch when the call reaches a terminal state
    LAZY = "lazy"  # Fetch on first download request

    def __str__(self) -> str:
        return self.value


def recording_extension(url: Optional[str]) -> str:
    """Pick a file extension from a recording URL."""
    if not url:
        return DEFAULT_EXTENSION
    suffix = Path(urlparse(url).path).suffix.lower()
    return suffix if suffix in ALLOWED_EXTENSIONS else DEFAULT_EXTENSION


class RecordingStore:
    """Blob store for call recordings, keyed by internal call id."""

    def __init__(self, directory: str):
        self.directory = Path(directory)

    def path_for(self, call_id: str, url: Optional[str] = None) -> Path:
        return self.directory / f"{call_id}{recording_extension(url)}"

    def save(self, call_id: str, payload: bytes, url: Optional[str] = None) -> Path:
        """Write a recording to disk and return its path."""
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(call_id, url)
        path.write_bytes(payload)
        logger.info(f"[RECORDINGS] Saved recording for call {call_id} ({len(payload)} bytes) to {path}")
        return path

    def exists(self, path: Optional[str]) -> bool:
        return bool(path) and Path(path).is_file()


def media_type_for(path: Path) -> str:
    return MEDIA_TYPES.get(path.suffix.lower(), "application/octet-stream")
