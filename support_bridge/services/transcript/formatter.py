"""Transcript formatting."""
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from support_bridge.services.transcript.models import TranscriptMessage

logger = logging.getLogger(__name__)

TRANSCRIPT_NOT_AVAILABLE = "Transcript not available"

AGENT_ROLES = {"assistant", "bot"}
SKIPPED_ROLES = {"system", "tool", "tool_calls", "tool_call_result"}

# Epoch values above this are milliseconds
_EPOCH_MS_THRESHOLD = 100_000_000_000


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a provider timestamp.

    Accepts datetimes, ISO-8601 strings and epoch seconds or milliseconds.
    Naive values are treated as UTC. Unparseable values yield None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > _EPOCH_MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def coerce_message(entry: Any) -> Optional[TranscriptMessage]:
    """Convert a raw provider message into a TranscriptMessage, or None if unusable."""
    if isinstance(entry, TranscriptMessage):
        return entry
    if not isinstance(entry, dict):
        return None

    text = entry.get("text") or entry.get("message") or entry.get("content")
    if not isinstance(text, str) or not text.strip():
        return None

    role = entry.get("role")
    return TranscriptMessage(
        role=role if isinstance(role, str) else "user",
        text=text.strip(),
        timestamp=parse_timestamp(entry.get("timestamp", entry.get("time"))),
    )


def coerce_messages(raw_messages: Any) -> List[TranscriptMessage]:
    """Convert a raw message sequence, dropping entries that can't be used."""
    if not isinstance(raw_messages, (list, tuple)):
        return []
    messages = []
    for entry in raw_messages:
        message = coerce_message(entry)
        if message is not None and message.role.lower() not in SKIPPED_ROLES:
            messages.append(message)
    return messages


def speaker_label(role: str, counterpart_label: str = "Support Person") -> str:
    """Return the display name for a message role."""
    return "AI Agent" if role.lower() in AGENT_ROLES else counterpart_label


def format_transcript(
    raw_messages: Any,
    call_date: Optional[datetime] = None,
    counterpart_label: str = "Support Person",
) -> str:
    """
    Format a conversation as a readable plain-text transcript.

    Args:
        raw_messages: Ordered messages (TranscriptMessage objects or provider dicts)
        call_date: Date shown in the header
        counterpart_label: Display name for the non-agent party

    Returns:
        The transcript text, or TRANSCRIPT_NOT_AVAILABLE when there is nothing to format
    """
    messages = coerce_messages(raw_messages)
    if not messages:
        if raw_messages:
            logger.warning(
                f"[TRANSCRIPT] No usable messages in transcript input of type {type(raw_messages).__name__}"
            )
        return TRANSCRIPT_NOT_AVAILABLE

    date_str = call_date.strftime("%Y-%m-%d %H:%M:%S UTC") if call_date else "Unknown"

    lines = [
        "SUPPORT CALL TRANSCRIPT",
        "========================",
        "",
        f"Date: {date_str}",
        f"Participants: AI Support Agent & {counterpart_label}",
        "",
        "CONVERSATION:",
        "-------------",
        "",
    ]

    for message in messages:
        time_str = (
            message.timestamp.astimezone(timezone.utc).strftime("%H:%M:%S")
            if message.timestamp
            else ""
        )
        speaker = speaker_label(message.role, counterpart_label)
        lines.append(f"[{time_str}] {speaker}: {message.text}")
        lines.append("")

    lines.extend([
        "",
        "--- End of Transcript ---",
        "",
        "This conversation was conducted by an AI agent on behalf of someone seeking support.",
        "The AI agent represented their needs with empathy and respect.",
    ])
    return "\n".join(lines)
