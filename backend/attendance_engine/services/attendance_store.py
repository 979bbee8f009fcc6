# File: backend/attendance_engine/services/attendance_store.py
"""Client-side view of a student's attendance records for one activity."""
import logging
import math
from typing import Dict, Iterable, List, Optional

from attendance_engine.models.attendance import (
    AttendanceRecord, AttendanceStatus, CheckInType, RecordKey
)
from attendance_engine.models.schedule import SlotRef

logger = logging.getLogger(__name__)


class AttendanceRecordStore:
    """
    Records keyed by (activity_id, day_number, slot_key, check_in_type).

    Matching is strict equality on that tuple everywhere: lookups, slot
    states and summaries. Legacy slot labels are normalized into the key when
    records are parsed, never matched fuzzily afterwards. When the backend
    returns several records for one key, the freshest one is authoritative.
    """

    def __init__(self, activity_id: str):
        self.activity_id = str(activity_id)
        self._records: Dict[RecordKey, AttendanceRecord] = {}

    def key(self, ref: SlotRef, check_in_type: CheckInType) -> RecordKey:
        return RecordKey(self.activity_id, ref.day_number, ref.slot_key, check_in_type)

    def reconcile(self, records: Iterable[AttendanceRecord]) -> 'AttendanceRecordStore':
        """Replace the local view with the backend's records."""
        fresh: Dict[RecordKey, AttendanceRecord] = {}
        for record in records:
            if record.key.activity_id != self.activity_id:
                continue
            current = fresh.get(record.key)
            if current is None or record.freshness >= current.freshness:
                fresh[record.key] = record
        self._records = fresh
        logger.debug("Reconciled %d attendance records for activity %s", len(fresh), self.activity_id)
        return self

    def put(self, record: AttendanceRecord):
        """Store a single record, replacing any record with the same key."""
        self._records[record.key] = record

    def get(self, key: RecordKey) -> Optional[AttendanceRecord]:
        return self._records.get(key)

    def record_for(self, ref: SlotRef, check_in_type: CheckInType) -> Optional[AttendanceRecord]:
        return self._records.get(self.key(ref, check_in_type))

    def has_record(self, ref: SlotRef, check_in_type: CheckInType) -> bool:
        return self.key(ref, check_in_type) in self._records

    def mark_provisional(self, record: AttendanceRecord):
        """Keep immediate feedback for a submission whose refresh failed."""
        record.provisional = True
        self.put(record)
        logger.warning(
            "Holding provisional record for %s/%s until the next refresh",
            record.key.day_number, record.key.slot_key.value
        )

    def records(self) -> List[AttendanceRecord]:
        return sorted(
            self._records.values(),
            key=lambda r: (r.key.day_number, r.key.slot_key.order, r.key.check_in_type != CheckInType.START)
        )

    def __len__(self):
        return len(self._records)

    def summary(self, registered: Iterable[SlotRef]) -> Dict[str, int]:
        """
        Totals over the registered (day, slot) pairs.

        A slot counts as attended when either direction is approved.
        """
        refs = sorted(set(registered), key=lambda r: r.sort_key)
        counts = {
            'registered_slots': len(refs),
            'attended_slots': 0,
            'total_check_ins': len(refs) * len(CheckInType),
            'done': 0,
            'approved': 0,
            'pending': 0,
            'rejected': 0,
        }

        for ref in refs:
            attended = False
            for check_in_type in CheckInType:
                record = self.record_for(ref, check_in_type)
                if record is None:
                    continue
                counts['done'] += 1
                counts[record.status.value] += 1
                if record.status == AttendanceStatus.APPROVED:
                    attended = True
            if attended:
                counts['attended_slots'] += 1

        counts['attendance_rate'] = _percentage(counts['attended_slots'], counts['registered_slots'])
        counts['completion_percentage'] = _percentage(counts['done'], counts['total_check_ins'])
        return counts


def _percentage(part: int, whole: int) -> int:
    if not whole:
        return 0
    return int(math.floor(part * 100 / whole + 0.5))
