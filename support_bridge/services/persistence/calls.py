"""SQL-backed call store."""
from datetime import timezone
from typing import List, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import async_sessionmaker

from support_bridge.db.models import CallRow
from support_bridge.services.calls.models import CallRecord, CallStatus
from support_bridge.services.calls.store import CallStore
from support_bridge.services.transcript.models import TranscriptMessage


def _as_utc(value):
    # SQLite drops tzinfo on the way back out
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlCallStore(CallStore):
    """Service for persisting call records through SQLAlchemy."""

    def __init__(self, sessionmaker: async_sessionmaker):
        self.sessionmaker = sessionmaker

    async def get(self, call_id: str) -> Optional[CallRecord]:
        async with self.sessionmaker() as db:
            row = await db.get(CallRow, call_id)
            return self._to_record(row) if row else None

    async def save(self, record: CallRecord) -> CallRecord:
        async with self.sessionmaker() as db:
            row = await db.get(CallRow, record.id)
            if row is None:
                row = CallRow(id=record.id)
                db.add(row)
            self._apply(row, record)
            await db.commit()
        return record

    async def list_all(self) -> List[CallRecord]:
        async with self.sessionmaker() as db:
            result = await db.execute(select(CallRow))
            return [self._to_record(row) for row in result.scalars().all()]

    async def get_by_provider_call_id(self, provider_call_id: str) -> Optional[CallRecord]:
        async with self.sessionmaker() as db:
            result = await db.execute(
                select(CallRow).where(CallRow.provider_call_id == provider_call_id)
            )
            row = result.scalar_one_or_none()
            return self._to_record(row) if row else None

    async def count(self) -> int:
        async with self.sessionmaker() as db:
            result = await db.execute(select(func.count(CallRow.id)))
            return result.scalar() or 0

    @staticmethod
    def _apply(row: CallRow, record: CallRecord) -> None:
        row.provider_call_id = record.provider_call_id
        row.assistant_id = record.assistant_id
        row.help_request = record.help_request
        row.provider_status = record.provider_status
        row.status = record.status.value
        row.created_at = record.created_at
        row.completed_at = record.completed_at
        row.transcript = record.transcript
        row.messages = [message.model_dump(mode="json") for message in record.messages]
        row.recording_url = record.recording_url
        row.recording_path = record.recording_path
        row.duration = record.duration
        row.ended_reason = record.ended_reason
        row.listen_url = record.listen_url
        row.poll_failures = record.poll_failures

    @staticmethod
    def _to_record(row: CallRow) -> CallRecord:
        return CallRecord(
            id=row.id,
            provider_call_id=row.provider_call_id,
            assistant_id=row.assistant_id,
            help_request=row.help_request,
            provider_status=row.provider_status,
            status=CallStatus(row.status),
            created_at=_as_utc(row.created_at),
            completed_at=_as_utc(row.completed_at),
            transcript=row.transcript,
            messages=[TranscriptMessage(**message) for message in row.messages or []],
            recording_url=row.recording_url,
            recording_path=row.recording_path,
            duration=row.duration,
            ended_reason=row.ended_reason,
            listen_url=row.listen_url,
            poll_failures=row.poll_failures or 0,
        )
