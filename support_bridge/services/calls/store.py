"""Call record storage."""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from support_bridge.services.calls.models import CallRecord


class CallStore(ABC):
    """Abstract base class for call record stores."""

    @abstractmethod
    async def get(self, call_id: str) -> Optional[CallRecord]:
        """Get a record by internal call id."""
        pass

    @abstractmethod
    async def save(self, record: CallRecord) -> CallRecord:
        """Insert or replace a record."""
        pass

    @abstractmethod
    async def list_all(self) -> List[CallRecord]:
        """Get every record, in no particular order."""
        pass

    @abstractmethod
    async def get_by_provider_call_id(self, provider_call_id: str) -> Optional[CallRecord]:
        """Get a record by the provider's call id."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Number of stored records."""
        pass


class InMemoryCallStore(CallStore):
    """Process-local store. Everything is lost on restart."""

    def __init__(self):
        self._records: Dict[str, CallRecord] = {}
        self._by_provider_id: Dict[str, str] = {}

    async def get(self, call_id: str) -> Optional[CallRecord]:
        record = self._records.get(call_id)
        return record.model_copy(deep=True) if record else None

    async def save(self, record: CallRecord) -> CallRecord:
        self._records[record.id] = record.model_copy(deep=True)
        self._by_provider_id[record.provider_call_id] = record.id
        return record

    async def list_all(self) -> List[CallRecord]:
        return [record.model_copy(deep=True) for record in self._records.values()]

    async def get_by_provider_call_id(self, provider_call_id: str) -> Optional[CallRecord]:
        call_id = self._by_provider_id.get(provider_call_id)
        return await self.get(call_id) if call_id else None

    async def count(self) -> int:
        return len(self._records)

    def clear(self) -> None:
        self._records.clear()
        self._by_provider_id.clear()
