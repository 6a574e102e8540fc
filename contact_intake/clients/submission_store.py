"""
contact_intake/clients/submission_store.py — In-memory persistence collaborator
Development and test default only: records live in process memory and are
lost on restart. The store is bounded; once max_records is reached the oldest
record is dropped. Durable storage plugs in by implementing the same
create() signature.
"""
from __future__ import annotations

import threading
import uuid
from collections import OrderedDict
from typing import Optional

from loguru import logger

from contact_intake.models import SanitizedSubmission, StoredSubmission

DEFAULT_MAX_RECORDS = 10_000


class InMemorySubmissionRepository:
    def __init__(self, max_records: int = DEFAULT_MAX_RECORDS) -> None:
        if max_records <= 0:
            raise ValueError("max_records must be positive")
        self.max_records = max_records
        self._records: OrderedDict[str, StoredSubmission] = OrderedDict()
        self._lock = threading.Lock()

    def create(self, submission: SanitizedSubmission) -> StoredSubmission:
        record = StoredSubmission(id=str(uuid.uuid4()), submission=submission)
        with self._lock:
            self._records[record.id] = record
            while len(self._records) > self.max_records:
                dropped_id, _ = self._records.popitem(last=False)
                logger.debug(f"Submission store full, dropped {dropped_id}")
        logger.debug(f"Stored submission {record.id}")
        return record

    def get(self, submission_id: str) -> Optional[StoredSubmission]:
        with self._lock:
            return self._records.get(submission_id)

    def count(self) -> int:
        with self._lock:
            return len(self._records)
