# backend/store.py

from abc import ABC, abstractmethod
from collections import OrderedDict
from threading import Lock
from typing import List, Optional

from .model import JobRecord


class JobStore(ABC):
    """
    Nơi lưu JobRecord theo job_id. Chỉ có put / get / list, không update hay delete.
    """

    @abstractmethod
    def put(self, record: JobRecord) -> None: ...

    @abstractmethod
    def get(self, job_id: str) -> Optional[JobRecord]: ...

    @abstractmethod
    def list(self) -> List[JobRecord]: ...


class InMemoryJobStore(JobStore):
    """
    Lưu trong RAM, mất khi restart. max_items=None -> không giới hạn,
    ngược lại bỏ record cũ nhất khi vượt quá.
    """

    def __init__(self, max_items: Optional[int] = None):
        if max_items is not None and max_items < 1:
            raise ValueError("max_items must be >= 1")
        self.max_items = max_items
        self._records: "OrderedDict[str, JobRecord]" = OrderedDict()
        self._guard = Lock()

    def put(self, record: JobRecord) -> None:
        with self._guard:
            if record.job_id in self._records:
                raise KeyError(f"Job {record.job_id} already exists")
            self._records[record.job_id] = record
            if self.max_items is not None:
                while len(self._records) > self.max_items:
                    self._records.popitem(last=False)

    def get(self, job_id: str) -> Optional[JobRecord]:
        with self._guard:
            return self._records.get(job_id)

    def list(self) -> List[JobRecord]:
        with self._guard:
            return list(self._records.values())

    def __len__(self) -> int:
        with self._guard:
            return len(self._records)
